from enum import Enum


class StageType(str, Enum):
    GROUP = "group"
    ELIMINATION = "elimination"


class BracketType(str, Enum):
    MAIN = "main"
    SILVER = "silver"
    BRONZE = "bronze"


class MatchResultStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    TIME_EXPIRED = "time_expired"
    FORFEITED = "forfeited"


class ScoringType(str, Enum):
    POINTS = "points"
    GAMES = "games"
    BOTH = "both"


class TiebreakerMethod(str, Enum):
    POINTS = "points"
    HEAD_TO_HEAD = "head_to_head"
    GAMES_DIFF = "games_diff"
    GAMES_WON = "games_won"
    MATCHES_WON = "matches_won"


class MatchOrderingStrategy(str, Enum):
    BALANCED_LOAD = "balanced_load"
    COURT_EFFICIENT = "court_efficient"
    TIME_SEQUENTIAL = "time_sequential"
    GROUP_CLUSTERED = "group_clustered"


# Results that end a match (anything but pending)
FINISHED_STATUSES = (
    MatchResultStatus.COMPLETED.value,
    MatchResultStatus.TIME_EXPIRED.value,
    MatchResultStatus.FORFEITED.value,
)
