"""
Match Scheduler: deterministic match ordering and court/time placement.

Given the pending matches of a tournament, the courts booked for it and an
ordering strategy, produce the ordering fields every consumer sorts by
(display_order, order_in_stage, order_in_group, bracket_position,
round_number, priority_score) together with a proposed court and time for
each match.

Strategies:
- balanced_load:   each match goes to the least-loaded court it fits on
- court_efficient: the court finishing soonest takes the match leaving it the
                   least idle time
- time_sequential: fixed precedence (round, stage, group, seed) with start
                   times that never go backwards
- group_clustered: every group/bracket is played out before the next one

Hard constraints (all strategies):
- A court never hosts two overlapping matches
- A couple never plays two overlapping matches, and gets the stage's
  break_between_matches between consecutive ones
- Matches that cannot be placed keep null times and are reported as
  unresolved; they are still ordered (after the placed ones)

Same inputs -> same outputs. Nothing here touches the database.
"""
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from staging.config import DEFAULT_MATCH_DURATION_MINUTES
from staging.models.enums import MatchOrderingStrategy
from staging.models.match import Match
from staging.models.stage_config import MatchRules
from staging.utils.intervals import CoupleCalendar, CourtTimeline, CourtWindow, find_slot, overlaps

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    """Base exception for scheduling errors"""

    pass


class InvalidStrategyError(SchedulingError):
    """Strategy value is missing or not one of MatchOrderingStrategy"""

    pass


class ScheduleValidationError(SchedulingError):
    """Inputs rejected before any computation"""

    pass


class CourtConflictError(SchedulingError):
    """Requested slot overlaps another match on the same court"""

    def __init__(self, message: str, conflicting_match_ids: Sequence[int] = ()):
        super().__init__(message)
        self.conflicting_match_ids = list(conflicting_match_ids)


class CoupleConflictError(SchedulingError):
    """Requested slot overlaps another match of the same couple"""

    def __init__(self, message: str, conflicting_match_ids: Sequence[int] = ()):
        super().__init__(message)
        self.conflicting_match_ids = list(conflicting_match_ids)


def parse_strategy(value: Any) -> MatchOrderingStrategy:
    """Strict strategy parsing: no default, no guessing."""
    if isinstance(value, MatchOrderingStrategy):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        raise InvalidStrategyError("A match ordering strategy is required")
    try:
        return MatchOrderingStrategy(str(value).strip())
    except ValueError:
        raise InvalidStrategyError(
            f"Invalid strategy: {value}. Must be one of {[s.value for s in MatchOrderingStrategy]}"
        )


@dataclass
class SchedulingContext:
    """Tournament structure the strategies need besides the matches themselves."""

    stage_order: Dict[int, int] = field(default_factory=dict)  # stage_id -> Stage.order
    group_order: Dict[int, int] = field(default_factory=dict)  # group_id -> rank within its stage
    bracket_order: Dict[int, int] = field(default_factory=dict)  # bracket_id -> rank within its stage
    stage_rules: Dict[int, MatchRules] = field(default_factory=dict)  # stage_id -> match rules
    default_duration_minutes: int = DEFAULT_MATCH_DURATION_MINUTES


@dataclass
class OrderedMatch:
    match_id: int
    stage_id: int
    group_id: Optional[int]
    bracket_id: Optional[int]
    round_number: int
    bracket_position: Optional[str]
    display_order: int = 0
    order_in_stage: int = 0
    order_in_group: Optional[int] = None
    priority_score: float = 0.0
    court_id: Optional[int] = None
    scheduled_start: Optional[datetime] = None
    scheduled_end: Optional[datetime] = None

    @property
    def resolved(self) -> bool:
        return self.scheduled_start is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "match_id": self.match_id,
            "display_order": self.display_order,
            "order_in_stage": self.order_in_stage,
            "order_in_group": self.order_in_group,
            "bracket_position": self.bracket_position,
            "round_number": self.round_number,
            "priority_score": self.priority_score,
            "court_id": self.court_id,
            "scheduled_start": self.scheduled_start.isoformat() if self.scheduled_start else None,
            "scheduled_end": self.scheduled_end.isoformat() if self.scheduled_end else None,
        }


@dataclass
class OrderingResult:
    strategy: MatchOrderingStrategy
    ordered: List[OrderedMatch]  # display_order ascending

    @property
    def unresolved_match_ids(self) -> List[int]:
        return [om.match_id for om in self.ordered if not om.resolved]

    @property
    def unresolved_count(self) -> int:
        return len(self.unresolved_match_ids)

    @property
    def scheduled_count(self) -> int:
        return len(self.ordered) - self.unresolved_count

    def by_match_id(self) -> Dict[int, OrderedMatch]:
        return {om.match_id: om for om in self.ordered}


# ============================================================================
# Match metadata
# ============================================================================


def match_duration(match: Match, context: SchedulingContext) -> timedelta:
    """Time limit of the match, else of its time-limited stage, else the configured default."""
    if match.is_time_limited and match.time_limit_minutes:
        return timedelta(minutes=match.time_limit_minutes)
    rules = context.stage_rules.get(match.stage_id)
    if rules is not None and rules.time_limited and rules.time_limit_minutes:
        return timedelta(minutes=rules.time_limit_minutes)
    return timedelta(minutes=context.default_duration_minutes)


def rest_between(match: Match, context: SchedulingContext) -> timedelta:
    rules = context.stage_rules.get(match.stage_id)
    return timedelta(minutes=rules.break_between_matches if rules is not None else 0)


def priority_score(display_order: int, total: int) -> float:
    """100 for the first match down to 100/total for the last."""
    return round(100.0 * (total - display_order + 1) / total, 4)


def couple_seed(match: Match) -> Tuple[int, int]:
    """Seed of a pairing: lower couple id first (registration order)."""
    return (min(match.couple1_id, match.couple2_id), max(match.couple1_id, match.couple2_id))


def _scope(match: Match) -> Tuple[int, str, int]:
    if match.group_id is not None:
        return (match.stage_id, "group", match.group_id)
    if match.bracket_id is not None:
        return (match.stage_id, "bracket", match.bracket_id)
    return (match.stage_id, "stage", 0)


def derive_round_numbers(matches: Sequence[Match]) -> Dict[int, int]:
    """
    Round number per match id.

    Explicit round_number values are kept. Missing ones are packed greedily
    per group/bracket: in id order, a match takes the earliest round in which
    neither of its couples already plays.
    """
    rounds: Dict[int, int] = {}
    by_scope: Dict[Tuple[int, str, int], List[Match]] = defaultdict(list)
    for m in matches:
        by_scope[_scope(m)].append(m)

    for scope_matches in by_scope.values():
        busy: Dict[int, set] = defaultdict(set)  # round -> couples playing
        for m in scope_matches:
            if m.round_number is not None:
                rounds[m.id] = m.round_number
                busy[m.round_number].update((m.couple1_id, m.couple2_id))
        for m in sorted(scope_matches, key=lambda x: x.id):
            if m.round_number is not None:
                continue
            r = 1
            while m.couple1_id in busy[r] or m.couple2_id in busy[r]:
                r += 1
            rounds[m.id] = r
            busy[r].update((m.couple1_id, m.couple2_id))
    return rounds


def bracket_positions(matches: Sequence[Match], rounds: Dict[int, int]) -> Dict[int, str]:
    """'R{round}-{slot}' for bracket matches; slots are 1-based by seed within the round."""
    by_round: Dict[Tuple[int, int], List[Match]] = defaultdict(list)
    for m in matches:
        if m.bracket_id is not None:
            by_round[(m.bracket_id, rounds[m.id])].append(m)
    positions: Dict[int, str] = {}
    for (_, round_number), round_matches in by_round.items():
        for slot, m in enumerate(sorted(round_matches, key=lambda x: (couple_seed(x), x.id)), start=1):
            positions[m.id] = f"R{round_number}-{slot}"
    return positions


# ============================================================================
# Precedence keys
# ============================================================================


def _scope_rank(match: Match, context: SchedulingContext) -> Tuple[int, int]:
    if match.group_id is not None:
        return (0, context.group_order.get(match.group_id, match.group_id))
    if match.bracket_id is not None:
        return (1, context.bracket_order.get(match.bracket_id, match.bracket_id))
    return (2, 0)


def _stage_rank(match: Match, context: SchedulingContext) -> int:
    return context.stage_order.get(match.stage_id, match.stage_id)


def sequential_key(match: Match, rounds: Dict[int, int], context: SchedulingContext) -> Tuple:
    """round -> stage order -> group order -> couple seed -> id"""
    return (rounds[match.id], _stage_rank(match, context), _scope_rank(match, context), couple_seed(match), match.id)


def cluster_key(match: Match, rounds: Dict[int, int], context: SchedulingContext) -> Tuple:
    """stage order -> group/bracket -> round -> couple seed -> id"""
    return (_stage_rank(match, context), _scope_rank(match, context), rounds[match.id], couple_seed(match), match.id)


def throughput_key(match: Match, rounds: Dict[int, int], context: SchedulingContext) -> Tuple:
    """stage order -> round -> group order -> couple seed -> id"""
    return (_stage_rank(match, context), rounds[match.id], _scope_rank(match, context), couple_seed(match), match.id)


# ============================================================================
# Placement
# ============================================================================


Placement = Dict[int, Tuple[int, datetime, datetime]]  # match_id -> (court_id, start, end)


class _Board:
    """Court timelines plus couple calendars shared by one calculation."""

    def __init__(self, courts: Sequence[CourtWindow], occupied: Sequence[Match], context: SchedulingContext):
        self.context = context
        self.timelines = [CourtTimeline(w) for w in sorted(courts, key=lambda w: w.court_id)]
        self.calendar = CoupleCalendar()
        by_court = {tl.court_id: tl for tl in self.timelines}
        for m in occupied:
            if m.scheduled_start is None or m.scheduled_end is None:
                continue
            self.calendar.add((m.couple1_id, m.couple2_id), m.scheduled_start, m.scheduled_end)
            timeline = by_court.get(m.court_id)
            if timeline is not None:
                timeline.block(m.scheduled_start, m.scheduled_end)
        self.placement: Placement = {}

    def earliest(self, match: Match, timeline: CourtTimeline, not_before: datetime) -> Optional[datetime]:
        return find_slot(
            timeline,
            self.calendar,
            (match.couple1_id, match.couple2_id),
            not_before,
            match_duration(match, self.context),
            rest_between(match, self.context),
        )

    def place(self, match: Match, timeline: CourtTimeline, start: datetime) -> None:
        end = start + match_duration(match, self.context)
        timeline.reserve(start, end)
        self.calendar.add((match.couple1_id, match.couple2_id), start, end)
        self.placement[match.id] = (timeline.court_id, start, end)
        logger.debug("Match %s -> court %s at %s", match.id, timeline.court_id, start.isoformat())


def _place_monotone(board: _Board, sequence: List[Match]) -> None:
    """Keep the given order; each start is >= the previous start."""
    if not board.timelines:
        return
    floor = min(tl.window.start for tl in board.timelines)
    for match in sequence:
        best: Optional[Tuple[datetime, CourtTimeline]] = None
        for timeline in board.timelines:
            start = board.earliest(match, timeline, floor)
            if start is not None and (best is None or start < best[0]):
                best = (start, timeline)
        if best is None:
            continue
        board.place(match, best[1], best[0])
        floor = best[0]


def _place_balanced(board: _Board, sequence: List[Match]) -> None:
    for match in sequence:
        for timeline in sorted(board.timelines, key=lambda tl: (tl.assigned_minutes, tl.court_id)):
            start = board.earliest(match, timeline, timeline.window.start)
            if start is not None:
                board.place(match, timeline, start)
                break


def _place_court_efficient(board: _Board, sequence: List[Match]) -> None:
    remaining = list(sequence)
    open_courts = list(board.timelines)
    while remaining and open_courts:
        timeline = min(open_courts, key=lambda tl: (tl.free_at, tl.court_id))
        best: Optional[Tuple[timedelta, int, datetime]] = None
        for index, match in enumerate(remaining):
            start = board.earliest(match, timeline, timeline.free_at)
            if start is None:
                continue
            idle = start - timeline.free_at
            if best is None or idle < best[0]:
                best = (idle, index, start)
                if idle == timedelta(0):
                    break
        if best is None:
            # Nothing left fits on this court
            open_courts.remove(timeline)
            continue
        match = remaining.pop(best[1])
        board.place(match, timeline, best[2])


_STRATEGIES: Dict[MatchOrderingStrategy, Tuple[Callable, Callable]] = {
    MatchOrderingStrategy.BALANCED_LOAD: (throughput_key, _place_balanced),
    MatchOrderingStrategy.COURT_EFFICIENT: (throughput_key, _place_court_efficient),
    MatchOrderingStrategy.TIME_SEQUENTIAL: (sequential_key, _place_monotone),
    MatchOrderingStrategy.GROUP_CLUSTERED: (cluster_key, _place_monotone),
}


# ============================================================================
# Public operations
# ============================================================================


def validate_courts(courts: Sequence[CourtWindow]) -> None:
    seen = set()
    for window in courts:
        if window.start >= window.end:
            raise ScheduleValidationError(
                f"Court {window.court_id} availability must start before it ends "
                f"({window.start.isoformat()} >= {window.end.isoformat()})"
            )
        if window.court_id in seen:
            raise ScheduleValidationError(f"Court {window.court_id} listed twice")
        seen.add(window.court_id)


def validate_matches(matches: Sequence[Match]) -> None:
    seen = set()
    for m in matches:
        if m.id is None:
            raise ScheduleValidationError("Matches must be persisted before they can be ordered")
        if m.id in seen:
            raise ScheduleValidationError(f"Match {m.id} listed twice")
        seen.add(m.id)
        if m.couple1_id == m.couple2_id:
            raise ScheduleValidationError(f"Match {m.id} has the same couple on both sides")
        if m.group_id is not None and m.bracket_id is not None:
            raise ScheduleValidationError(f"Match {m.id} belongs to both a group and a bracket")


def calculate_match_order(
    matches: Sequence[Match],
    courts: Sequence[CourtWindow],
    strategy: Any,
    context: Optional[SchedulingContext] = None,
    occupied: Sequence[Match] = (),
) -> OrderingResult:
    """
    Order `matches` with the given strategy and propose court/time slots.

    Args:
        matches: Matches to order (normally the tournament's pending matches)
        courts: Availability windows of the courts that may be used
        strategy: MatchOrderingStrategy or its string value (required)
        context: Stage/group ordering and match rules; defaults to ids
        occupied: Matches outside the batch whose court/time stays fixed

    Returns:
        OrderingResult with one OrderedMatch per input match

    Raises:
        InvalidStrategyError: strategy missing or unknown
        ScheduleValidationError: malformed courts or matches
    """
    strategy = parse_strategy(strategy)
    context = context or SchedulingContext()
    validate_courts(courts)
    validate_matches(matches)

    rounds = derive_round_numbers(matches)
    positions = bracket_positions(matches, rounds)
    key_fn, place_fn = _STRATEGIES[strategy]

    sequence = sorted(matches, key=lambda m: key_fn(m, rounds, context))
    sequence_index = {m.id: i for i, m in enumerate(sequence)}

    batch_ids = set(sequence_index)
    board = _Board(courts, [m for m in occupied if m.id not in batch_ids], context)
    place_fn(board, sequence)

    def display_key(m: Match) -> Tuple:
        placed = board.placement.get(m.id)
        if placed is None:
            return (1, datetime.max, sequence_index[m.id])
        return (0, placed[1], sequence_index[m.id])

    ordered: List[OrderedMatch] = []
    total = len(sequence)
    stage_counter: Dict[int, int] = defaultdict(int)
    group_counter: Dict[int, int] = defaultdict(int)
    for display_order, m in enumerate(sorted(sequence, key=display_key), start=1):
        stage_counter[m.stage_id] += 1
        order_in_group = None
        if m.group_id is not None:
            group_counter[m.group_id] += 1
            order_in_group = group_counter[m.group_id]
        court_id, start, end = board.placement.get(m.id, (None, None, None))
        ordered.append(
            OrderedMatch(
                match_id=m.id,
                stage_id=m.stage_id,
                group_id=m.group_id,
                bracket_id=m.bracket_id,
                round_number=rounds[m.id],
                bracket_position=positions.get(m.id),
                display_order=display_order,
                order_in_stage=stage_counter[m.stage_id],
                order_in_group=order_in_group,
                priority_score=priority_score(display_order, total),
                court_id=court_id,
                scheduled_start=start,
                scheduled_end=end,
            )
        )

    result = OrderingResult(strategy=strategy, ordered=ordered)
    logger.info(
        "Ordered %d matches with %s on %d courts (%d unresolved)",
        total,
        strategy.value,
        len(courts),
        result.unresolved_count,
    )
    return result


def auto_schedule_matches(
    matches: Sequence[Match],
    courts: Sequence[CourtWindow],
    strategy: Any,
    start: datetime,
    end: Optional[datetime] = None,
    context: Optional[SchedulingContext] = None,
    occupied: Sequence[Match] = (),
) -> OrderingResult:
    """
    calculate_match_order restricted to [start, end): court windows are
    clipped to the date range first. Matches with no feasible slot stay
    unresolved; result status is never touched.

    Raises:
        ScheduleValidationError: end is not after start
    """
    if end is not None and end <= start:
        raise ScheduleValidationError(
            f"Invalid date range: end {end.isoformat()} must be after start {start.isoformat()}"
        )
    validate_courts(courts)
    clipped = [w for w in (c.clipped(start, end) for c in courts) if w is not None]
    if not clipped:
        logger.warning("No court availability between %s and %s", start, end)
    return calculate_match_order(matches, clipped, strategy, context=context, occupied=occupied)


def check_court_conflict(
    court_id: int,
    start: datetime,
    end: datetime,
    others: Iterable[Match],
    exclude_match_id: Optional[int] = None,
) -> List[int]:
    """Ids of matches on `court_id` whose interval overlaps [start, end)."""
    conflicts = []
    for m in others:
        if m.id == exclude_match_id or m.court_id != court_id:
            continue
        if m.scheduled_start is None or m.scheduled_end is None:
            continue
        if overlaps(start, end, m.scheduled_start, m.scheduled_end):
            conflicts.append(m.id)
    return sorted(conflicts)


def find_court_double_bookings(matches: Iterable[Match]) -> List[Tuple[int, int]]:
    """Pairs of match ids sharing a court with overlapping intervals (should be empty)."""
    by_court: Dict[int, List[Match]] = defaultdict(list)
    for m in matches:
        if m.court_id is not None and m.scheduled_start is not None and m.scheduled_end is not None:
            by_court[m.court_id].append(m)
    pairs = []
    for court_matches in by_court.values():
        court_matches.sort(key=lambda m: (m.scheduled_start, m.id))
        for i, a in enumerate(court_matches):
            for b in court_matches[i + 1:]:
                if b.scheduled_start >= a.scheduled_end:
                    break
                pairs.append((a.id, b.id))
    return pairs


def validate_manual_schedule(
    match: Match,
    court: CourtWindow,
    start: datetime,
    end: Optional[datetime],
    others: Sequence[Match],
    context: Optional[SchedulingContext] = None,
) -> Tuple[datetime, datetime]:
    """
    Validate a manual court/time override for one match.

    A missing end defaults to start + the match duration.

    Returns:
        (start, end) to store

    Raises:
        ScheduleValidationError: end <= start, or outside the court's availability
        CourtConflictError: the court is already taken during [start, end)
        CoupleConflictError: one of the couples already plays during [start, end)
    """
    context = context or SchedulingContext()
    if end is None:
        end = start + match_duration(match, context)
    if end <= start:
        raise ScheduleValidationError(
            f"Invalid time range: end {end.isoformat()} must be after start {start.isoformat()}"
        )
    if not court.contains(start, end):
        raise ScheduleValidationError(
            f"Court {court.court_id} is only available from {court.start.isoformat()} to {court.end.isoformat()}"
        )

    court_conflicts = check_court_conflict(court.court_id, start, end, others, exclude_match_id=match.id)
    if court_conflicts:
        raise CourtConflictError(
            f"Court {court.court_id} is already booked by match(es) {court_conflicts} during that time",
            court_conflicts,
        )

    couples = {match.couple1_id, match.couple2_id}
    couple_conflicts = sorted(
        m.id
        for m in others
        if m.id != match.id
        and m.scheduled_start is not None
        and m.scheduled_end is not None
        and couples & {m.couple1_id, m.couple2_id}
        and overlaps(start, end, m.scheduled_start, m.scheduled_end)
    )
    if couple_conflicts:
        raise CoupleConflictError(
            f"A couple of match {match.id} already plays match(es) {couple_conflicts} during that time",
            couple_conflicts,
        )
    return start, end
