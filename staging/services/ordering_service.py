"""
Match ordering persistence: load the tournament snapshot, run the match
scheduler, and write ordering fields (and, for auto-schedule, court/times)
back in one transaction.

Finished matches keep their relative order and take the first display
positions; pending matches are numbered after them so display_order stays
unique and contiguous across the whole tournament.
"""
import logging
import time
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlmodel import Session, select

from staging.config import DEFAULT_ORDERING_STRATEGY
from staging.models.court import Court, TournamentCourt
from staging.models.enums import MatchResultStatus
from staging.models.match import Match
from staging.models.match_order_run import MatchOrderRun
from staging.models.stage import Stage, StageBracket, StageGroup
from staging.models.stage_config import parse_stage_config
from staging.models.tournament import Tournament
from staging.services.match_order_report import (
    auto_schedule_response,
    build_match_order_info,
    display_sort_key,
    order_calculation_response,
)
from staging.services.match_scheduler import (
    OrderingResult,
    ScheduleValidationError,
    SchedulingError,
    SchedulingContext,
    auto_schedule_matches,
    calculate_match_order,
    parse_strategy,
    priority_score,
    validate_manual_schedule,
)
from staging.utils.intervals import CourtWindow
from staging.utils.version_guards import ConcurrentRecalculationError, claim_version

logger = logging.getLogger(__name__)


# ============================================================================
# Snapshot loading
# ============================================================================


def load_court_windows(session: Session, tournament_id: int) -> List[CourtWindow]:
    rows = session.exec(
        select(TournamentCourt, Court)
        .join(Court, Court.id == TournamentCourt.court_id)
        .where(TournamentCourt.tournament_id == tournament_id, Court.active == True)  # noqa: E712
        .order_by(TournamentCourt.court_id)
    ).all()
    return [
        CourtWindow(court_id=tc.court_id, start=tc.availability_start, end=tc.availability_end, name=court.name)
        for tc, court in rows
    ]


def build_scheduling_context(session: Session, tournament_id: int) -> SchedulingContext:
    stages = session.exec(select(Stage).where(Stage.tournament_id == tournament_id).order_by(Stage.order)).all()
    context = SchedulingContext()
    for stage in stages:
        context.stage_order[stage.id] = stage.order
        context.stage_rules[stage.id] = parse_stage_config(stage.stage_type, stage.config).match_rules
        groups = session.exec(select(StageGroup).where(StageGroup.stage_id == stage.id)).all()
        for rank, group in enumerate(sorted(groups, key=lambda g: (g.name, g.id)), start=1):
            context.group_order[group.id] = rank
        brackets = session.exec(select(StageBracket).where(StageBracket.stage_id == stage.id)).all()
        for rank, bracket in enumerate(sorted(brackets, key=lambda b: b.id), start=1):
            context.bracket_order[bracket.id] = rank
    return context


def tournament_matches(session: Session, tournament_id: int) -> List[Match]:
    return list(session.exec(select(Match).where(Match.tournament_id == tournament_id).order_by(Match.id)).all())


def _is_pending(match: Match) -> bool:
    return match.match_result_status == MatchResultStatus.PENDING.value


def _is_booked(match: Match) -> bool:
    return match.court_id is not None and match.scheduled_start is not None and match.scheduled_end is not None


# ============================================================================
# Write-back
# ============================================================================


def _apply_ordering(matches: Sequence[Match], result: OrderingResult, write_schedule: bool) -> None:
    """
    Copy the result onto rows and renumber the whole tournament.

    Finished matches come first in their previous display order. Pending
    matches outside the batch (already booked, or scheduled outside an
    auto-schedule window) are merged with the batch by start time.
    """
    rows = {m.id: m for m in matches}
    for om in result.ordered:
        m = rows[om.match_id]
        m.bracket_position = om.bracket_position
        m.round_number = om.round_number
        if write_schedule:
            m.court_id = om.court_id
            m.scheduled_start = om.scheduled_start
            m.scheduled_end = om.scheduled_end

    planned = [rows[om.match_id] for om in result.ordered]
    planned_ids = {m.id for m in planned}
    finished = sorted((m for m in matches if m.id not in planned_ids and not _is_pending(m)), key=display_sort_key)
    carried = sorted((m for m in matches if m.id not in planned_ids and _is_pending(m)), key=display_sort_key)

    pending = planned
    if carried:
        # Planned matches sort by their proposed slot, carried ones by their stored slot
        slot = {om.match_id: om.scheduled_start for om in result.ordered}
        slot.update({m.id: m.scheduled_start for m in carried})
        rank = {m.id: (0, i) for i, m in enumerate(planned)}
        rank.update({m.id: (1, i) for i, m in enumerate(carried)})
        pending = sorted(
            planned + carried,
            key=lambda m: (slot[m.id] is None, slot[m.id] or datetime.max, rank[m.id]),
        )

    stage_counter: Dict[int, int] = defaultdict(int)
    group_counter: Dict[int, int] = defaultdict(int)
    for display_order, m in enumerate(finished + pending, start=1):
        stage_counter[m.stage_id] += 1
        m.display_order = display_order
        m.order_in_stage = stage_counter[m.stage_id]
        if m.group_id is not None:
            group_counter[m.group_id] += 1
            m.order_in_group = group_counter[m.group_id]
        else:
            m.order_in_group = None

    for position, m in enumerate(pending, start=1):
        m.priority_score = priority_score(position, len(pending))


def _persist(
    session: Session,
    tournament: Tournament,
    matches: Sequence[Match],
    result: OrderingResult,
    calculation_time_ms: int,
    write_schedule: bool,
) -> None:
    seen_version = tournament.ordering_version
    try:
        claim_version(session, Tournament, tournament.id, "ordering_version", seen_version)
        _apply_ordering(matches, result, write_schedule)
        for m in matches:
            session.add(m)
        tournament.ordering_strategy = result.strategy.value
        session.add(tournament)
        session.add(
            MatchOrderRun(
                tournament_id=tournament.id,
                strategy=result.strategy.value,
                total_matches_ordered=len(result.ordered),
                unresolved_count=result.unresolved_count,
                calculation_time_ms=calculation_time_ms,
            )
        )
        session.commit()
    except ConcurrentRecalculationError:
        session.rollback()
        logger.warning("Match order for tournament %s lost a concurrent write race", tournament.id)
        raise


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# ============================================================================
# Operations
# ============================================================================


def calculate_tournament_match_order(
    session: Session,
    tournament: Tournament,
    strategy: Any,
    force_recalculate: bool = False,
) -> Dict[str, Any]:
    """
    Order every pending match of the tournament and store the ordering fields.

    Pending matches that already hold a court and times keep them: they block
    their court and couples and are numbered by their booked start.

    Without force_recalculate, an existing ordering (every pending match
    already numbered and a previous run on record) is returned untouched.

    Raises:
        InvalidStrategyError: before anything is read or written
        ConcurrentRecalculationError: another write-back won the race
    """
    strategy = parse_strategy(strategy)
    matches = tournament_matches(session, tournament.id)
    pending = [m for m in matches if _is_pending(m)]
    batch = [m for m in pending if not _is_booked(m)]
    batch_ids = {m.id for m in batch}

    if not force_recalculate:
        previous = session.exec(
            select(MatchOrderRun)
            .where(MatchOrderRun.tournament_id == tournament.id)
            .order_by(MatchOrderRun.id.desc())  # type: ignore[union-attr]
        ).first()
        if previous and all(m.display_order is not None for m in pending):
            logger.info("Tournament %s already ordered with %s; reusing", tournament.id, previous.strategy)
            return order_calculation_response(
                previous.total_matches_ordered,
                previous.strategy,
                previous.calculation_time_ms,
                previous.unresolved_count,
                reused=True,
            )

    started = time.perf_counter()
    result = calculate_match_order(
        batch,
        load_court_windows(session, tournament.id),
        strategy,
        context=build_scheduling_context(session, tournament.id),
        occupied=[m for m in matches if m.id not in batch_ids],
    )
    elapsed = _elapsed_ms(started)
    _persist(session, tournament, matches, result, elapsed, write_schedule=False)
    return order_calculation_response(len(result.ordered), strategy.value, elapsed, result.unresolved_count)


def resolve_strategy(tournament: Tournament, requested: Optional[str]) -> Any:
    """Explicit request, else the tournament's last strategy, else the configured default."""
    if requested is not None:
        return requested
    return tournament.ordering_strategy or DEFAULT_ORDERING_STRATEGY


def auto_schedule_tournament(
    session: Session,
    tournament: Tournament,
    start: datetime,
    end: Optional[datetime],
    strategy: Any,
) -> Dict[str, Any]:
    """
    Assign courts and times to pending matches inside [start, end).

    Pending matches already scheduled outside the window stay where they are
    and block their court and couples. Pending matches inside the window (or
    unscheduled) are re-planned; those that do not fit end up unscheduled.
    Result status is never changed.
    """
    strategy = parse_strategy(strategy)
    if end is not None and end <= start:
        raise ScheduleValidationError(
            f"Invalid date range: end {end.isoformat()} must be after start {start.isoformat()}"
        )

    matches = tournament_matches(session, tournament.id)

    def in_window(m: Match) -> bool:
        if m.scheduled_start is None:
            return True
        return m.scheduled_start >= start and (end is None or m.scheduled_start < end)

    batch = [m for m in matches if _is_pending(m) and in_window(m)]
    batch_ids = {m.id for m in batch}

    started = time.perf_counter()
    result = auto_schedule_matches(
        batch,
        load_court_windows(session, tournament.id),
        strategy,
        start,
        end,
        context=build_scheduling_context(session, tournament.id),
        occupied=[m for m in matches if m.id not in batch_ids],
    )
    elapsed = _elapsed_ms(started)
    _persist(session, tournament, matches, result, elapsed, write_schedule=True)
    logger.info(
        "Auto-scheduled tournament %s: %d placed, %d unresolved",
        tournament.id,
        result.scheduled_count,
        result.unresolved_count,
    )
    return auto_schedule_response(result, elapsed)


def schedule_single_match(
    session: Session,
    match: Match,
    court_id: int,
    start: datetime,
    end: Optional[datetime] = None,
    is_time_limited: Optional[bool] = None,
    time_limit_minutes: Optional[int] = None,
) -> Match:
    """
    Manual override of one match's court and times.

    Raises:
        ScheduleValidationError: court inactive or not booked for the tournament, bad range
        CourtConflictError / CoupleConflictError: slot already taken
    """
    booking = session.exec(
        select(TournamentCourt)
        .join(Court, Court.id == TournamentCourt.court_id)
        .where(
            TournamentCourt.tournament_id == match.tournament_id,
            TournamentCourt.court_id == court_id,
            Court.active == True,  # noqa: E712
        )
    ).first()
    if not booking:
        raise ScheduleValidationError(
            f"Court {court_id} is not an active court of tournament {match.tournament_id}"
        )

    if is_time_limited is not None:
        match.is_time_limited = is_time_limited
    if time_limit_minutes is not None:
        match.time_limit_minutes = time_limit_minutes

    others = [m for m in tournament_matches(session, match.tournament_id) if m.id != match.id]
    window = CourtWindow(court_id=court_id, start=booking.availability_start, end=booking.availability_end)
    try:
        start, end = validate_manual_schedule(
            match, window, start, end, others, context=build_scheduling_context(session, match.tournament_id)
        )
    except SchedulingError:
        # Drop the unsaved time-limit edits
        session.rollback()
        raise

    match.court_id = court_id
    match.scheduled_start = start
    match.scheduled_end = end
    session.add(match)
    session.commit()
    session.refresh(match)
    logger.info("Match %s manually scheduled on court %s at %s", match.id, court_id, start.isoformat())
    return match


def match_order_info(session: Session, tournament: Tournament, now: Optional[datetime] = None) -> Dict[str, Any]:
    return build_match_order_info(
        tournament.id,
        tournament_matches(session, tournament.id),
        now or datetime.utcnow(),
        court_count=len(load_court_windows(session, tournament.id)),
        context=build_scheduling_context(session, tournament.id),
    )
