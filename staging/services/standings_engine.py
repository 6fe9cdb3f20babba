"""
Standings Engine: per-couple statistics and ranking for one group.

Pure functions over Match rows already loaded by the caller:

- compute_standings: aggregate completed matches into CoupleStatsRow objects
- rank_standings: order rows by total points, then the configured tiebreaker
  chain, then couple_id, and assign contiguous 1-based positions
- recalculate_group: both of the above plus a last_updated timestamp

Guarantees:
- Deterministic (row order of the input never changes the result)
- Never raises on empty input
- Data-integrity problems are logged and excluded, not fatal
"""
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from itertools import groupby
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from staging.models.enums import MatchResultStatus, ScoringType, TiebreakerMethod
from staging.models.match import Match
from staging.models.stage_config import ScoringSystem, StageConfig
from staging.services.game_parser import GameParseError, normalize_games

logger = logging.getLogger(__name__)

# Warning reason codes
WARNING_INVALID_MATCH = "INVALID_MATCH"
WARNING_COUPLE_NOT_IN_GROUP = "COUPLE_NOT_IN_GROUP"
WARNING_SCORE_PARSE_FAILED = "SCORE_PARSE_FAILED"


class StandingsError(ValueError):
    """Standings configuration is unusable"""

    pass


@dataclass
class CoupleStatsRow:
    couple_id: int
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    matches_drawn: int = 0
    games_won: int = 0
    games_lost: int = 0
    total_points: float = 0
    position: Optional[int] = None

    @property
    def games_diff(self) -> int:
        return self.games_won - self.games_lost

    @property
    def win_percentage(self) -> float:
        if self.matches_played == 0:
            return 0.0
        return round(self.matches_won / self.matches_played * 100, 2)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "couple_id": self.couple_id,
            "matches_played": self.matches_played,
            "matches_won": self.matches_won,
            "matches_lost": self.matches_lost,
            "matches_drawn": self.matches_drawn,
            "games_won": self.games_won,
            "games_lost": self.games_lost,
            "games_diff": self.games_diff,
            "total_points": self.total_points,
            "win_percentage": self.win_percentage,
            "position": self.position,
        }


@dataclass
class StandingsSnapshot:
    group_id: Optional[int]
    stats: List[CoupleStatsRow]
    warnings: List[Dict[str, Any]] = field(default_factory=list)
    last_updated: datetime = field(default_factory=datetime.utcnow)


def _warn(warnings: Optional[List[Dict[str, Any]]], match: Match, reason: str, detail: str) -> None:
    logger.warning("Match %s excluded from standings: %s (%s)", match.id, reason, detail)
    if warnings is not None:
        warnings.append({"match_id": match.id, "reason": reason, "detail": detail})


def _is_consistent(match: Match) -> Optional[str]:
    """Return why a match cannot be aggregated, or None if it can."""
    if match.couple1_id == match.couple2_id:
        return f"couple {match.couple1_id} plays itself"
    if match.winner_couple_id is not None and match.winner_couple_id not in (match.couple1_id, match.couple2_id):
        return f"winner {match.winner_couple_id} did not play this match"
    return None


def compute_standings(
    matches: Iterable[Match],
    scoring: ScoringSystem,
    couple_ids: Optional[Iterable[int]] = None,
    warnings: Optional[List[Dict[str, Any]]] = None,
) -> List[CoupleStatsRow]:
    """
    Aggregate per-couple statistics from a group's matches.

    Args:
        matches: Matches of one group (any status; only completed ones count)
        scoring: Point values and scoring type of the stage
        couple_ids: The group's couple set. When given, couples without matches
            still get a zero row and matches involving outsiders are excluded.
        warnings: Optional list collecting {match_id, reason, detail} entries

    Returns:
        Unranked rows (position=None), ordered by couple_id
    """
    group_set = set(couple_ids) if couple_ids is not None else None
    rows: Dict[int, CoupleStatsRow] = {cid: CoupleStatsRow(couple_id=cid) for cid in sorted(group_set or ())}

    award_match_points = scoring.type in (ScoringType.POINTS, ScoringType.BOTH)
    award_game_points = scoring.type in (ScoringType.GAMES, ScoringType.BOTH)

    for match in sorted(matches, key=lambda m: m.id or 0):
        problem = _is_consistent(match)
        if problem:
            _warn(warnings, match, WARNING_INVALID_MATCH, problem)
            continue

        c1, c2 = match.couple1_id, match.couple2_id
        if group_set is not None and (c1 not in group_set or c2 not in group_set):
            outsiders = sorted({c1, c2} - group_set)
            _warn(warnings, match, WARNING_COUPLE_NOT_IN_GROUP, f"couples {outsiders} are not in the group")
            continue

        row1 = rows.setdefault(c1, CoupleStatsRow(couple_id=c1))
        row2 = rows.setdefault(c2, CoupleStatsRow(couple_id=c2))

        if match.match_result_status != MatchResultStatus.COMPLETED.value:
            continue

        row1.matches_played += 1
        row2.matches_played += 1

        if match.winner_couple_id == c1:
            winner, loser = row1, row2
        elif match.winner_couple_id == c2:
            winner, loser = row2, row1
        else:
            winner = loser = None

        if winner is not None:
            winner.matches_won += 1
            loser.matches_lost += 1
            if award_match_points:
                winner.total_points += scoring.win
                loser.total_points += scoring.loss
        else:
            row1.matches_drawn += 1
            row2.matches_drawn += 1
            if award_match_points:
                row1.total_points += scoring.draw
                row2.total_points += scoring.draw

        try:
            games = normalize_games(match.games, c1, c2)
        except GameParseError as exc:
            # Result still counts, game totals do not
            logger.warning("Match %s games ignored: %s", match.id, exc)
            if warnings is not None:
                warnings.append({"match_id": match.id, "reason": WARNING_SCORE_PARSE_FAILED, "detail": str(exc)})
            games = []

        for game in games:
            row1.games_won += game.couple1_score
            row1.games_lost += game.couple2_score
            row2.games_won += game.couple2_score
            row2.games_lost += game.couple1_score
            if award_game_points and game.winner_id is not None:
                game_winner, game_loser = (row1, row2) if game.winner_id == c1 else (row2, row1)
                game_winner.total_points += scoring.game_win
                game_loser.total_points += scoring.game_loss

    return [rows[cid] for cid in sorted(rows)]


def _parse_tiebreakers(tiebreakers: Sequence[Any]) -> List[TiebreakerMethod]:
    methods: List[TiebreakerMethod] = []
    for value in tiebreakers:
        try:
            method = TiebreakerMethod(value)
        except ValueError:
            raise StandingsError(
                f"Unknown tiebreaker method: {value}. Must be one of {[t.value for t in TiebreakerMethod]}"
            )
        if method not in methods:
            methods.append(method)
    return methods


def _head_to_head_wins(block: List[CoupleStatsRow], matches: Sequence[Match]) -> Dict[int, int]:
    """Wins of each couple counted only over matches among the couples of `block`."""
    tied = {row.couple_id for row in block}
    wins = {cid: 0 for cid in tied}
    for m in matches:
        if m.couple1_id in tied and m.couple2_id in tied and m.winner_couple_id in tied:
            wins[m.winner_couple_id] += 1
    return wins


def _key_for(
    method: TiebreakerMethod, block: List[CoupleStatsRow], matches: Sequence[Match]
) -> Callable[[CoupleStatsRow], float]:
    if method == TiebreakerMethod.POINTS:
        return lambda r: round(r.total_points, 6)
    if method == TiebreakerMethod.HEAD_TO_HEAD:
        wins = _head_to_head_wins(block, matches)
        return lambda r: wins[r.couple_id]
    if method == TiebreakerMethod.GAMES_DIFF:
        return lambda r: r.games_diff
    if method == TiebreakerMethod.GAMES_WON:
        return lambda r: r.games_won
    return lambda r: r.matches_won


def _resolve(block: List[CoupleStatsRow], methods: List[TiebreakerMethod], matches: Sequence[Match]) -> List[CoupleStatsRow]:
    if len(block) <= 1 or not methods:
        # Unresolved ties fall back to couple_id
        return sorted(block, key=lambda r: r.couple_id)

    method, remaining = methods[0], methods[1:]
    key = _key_for(method, block, matches)
    ordered: List[CoupleStatsRow] = []
    for _, tied in groupby(sorted(block, key=lambda r: (-key(r), r.couple_id)), key=key):
        ordered.extend(_resolve(list(tied), remaining, matches))
    return ordered


def rank_standings(
    stats: Sequence[CoupleStatsRow],
    tiebreakers: Sequence[Any],
    matches: Sequence[Match] = (),
) -> List[CoupleStatsRow]:
    """
    Rank rows and assign positions 1..N.

    total_points (descending) is always the primary key; each tiebreaker is
    applied only inside groups still tied after the previous ones. head_to_head
    is evaluated over `matches` restricted to the couples of the current tie.

    Returns new row objects; the input is left untouched.

    Raises:
        StandingsError: unknown tiebreaker method
    """
    methods = _parse_tiebreakers(tiebreakers)
    chain = [TiebreakerMethod.POINTS] + [m for m in methods if m != TiebreakerMethod.POINTS]
    completed = [
        m for m in matches if m.match_result_status == MatchResultStatus.COMPLETED.value and _is_consistent(m) is None
    ]
    ordered = _resolve(sorted(stats, key=lambda r: r.couple_id), chain, completed)
    return [replace(row, position=position) for position, row in enumerate(ordered, start=1)]


def recalculate_group(
    group_id: Optional[int],
    matches: Sequence[Match],
    couple_ids: Optional[Iterable[int]],
    config: StageConfig,
    now: Optional[datetime] = None,
) -> StandingsSnapshot:
    """Compute and rank a group's standings from a snapshot of its matches."""
    warnings: List[Dict[str, Any]] = []
    rows = compute_standings(matches, config.scoring_system, couple_ids=couple_ids, warnings=warnings)
    ranked = rank_standings(rows, config.advancement_rules.tiebreaker, matches=matches)
    logger.info("Group %s standings recalculated: %d couples, %d warnings", group_id, len(ranked), len(warnings))
    return StandingsSnapshot(
        group_id=group_id,
        stats=ranked,
        warnings=warnings,
        last_updated=now or datetime.utcnow(),
    )


def advancing_couples(ranked: Sequence[Any], top_n: int) -> List[int]:
    """Couple ids finishing in positions 1..top_n (engine rows or stored CoupleStats)."""
    return [row.couple_id for row in sorted(ranked, key=lambda r: r.position or 0) if row.position and row.position <= top_n]
