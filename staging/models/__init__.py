from staging.models.couple import Couple
from staging.models.couple_stats import CoupleStats
from staging.models.court import Court, TournamentCourt
from staging.models.match import Match
from staging.models.match_order_run import MatchOrderRun
from staging.models.stage import GroupCouple, Stage, StageBracket, StageGroup
from staging.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Couple",
    "Court",
    "TournamentCourt",
    "Stage",
    "StageGroup",
    "GroupCouple",
    "StageBracket",
    "Match",
    "CoupleStats",
    "MatchOrderRun",
]
