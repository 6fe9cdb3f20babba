"""
Response shaping for the staging endpoints.

Turns engine outputs (standings rows, ordering results) and match rows into
the JSON contracts the dashboard consumes. No computation beyond
categorization and formatting happens here.
"""
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from staging.config import NEXT_MATCHES_LIMIT, UPCOMING_WINDOW_MINUTES
from staging.models.enums import FINISHED_STATUSES, MatchResultStatus
from staging.models.match import Match
from staging.services.match_scheduler import OrderingResult, SchedulingContext, match_duration
from staging.services.standings_engine import CoupleStatsRow

# Timing status values
TIMING_NOT_SCHEDULED = "not-scheduled"
TIMING_SCHEDULED = "scheduled"
TIMING_UPCOMING = "upcoming"
TIMING_IN_PROGRESS = "in-progress"
TIMING_ENDED = "ended"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def timing_status(match: Match, now: datetime, upcoming_window_minutes: int = UPCOMING_WINDOW_MINUTES) -> str:
    """Where a match stands relative to `now` based on its scheduled times."""
    if match.scheduled_start is None:
        return TIMING_NOT_SCHEDULED
    if match.scheduled_end is not None and now >= match.scheduled_end:
        return TIMING_ENDED
    if now >= match.scheduled_start:
        return TIMING_IN_PROGRESS
    if match.scheduled_start < now + timedelta(minutes=upcoming_window_minutes):
        return TIMING_UPCOMING
    return TIMING_SCHEDULED


def display_sort_key(match: Match):
    """display_order ascending, then priority_score descending, then id."""
    return (
        match.display_order is None,
        match.display_order or 0,
        match.priority_score is None,
        -(match.priority_score or 0.0),
        match.id or 0,
    )


def ordered_matches(matches: Sequence[Match]) -> List[Match]:
    return sorted(matches, key=display_sort_key)


def match_summary(match: Match, now: Optional[datetime] = None) -> Dict[str, Any]:
    summary = {
        "id": match.id,
        "tournament_id": match.tournament_id,
        "stage_id": match.stage_id,
        "group_id": match.group_id,
        "bracket_id": match.bracket_id,
        "couple1_id": match.couple1_id,
        "couple2_id": match.couple2_id,
        "winner_couple_id": match.winner_couple_id,
        "court_id": match.court_id,
        "scheduled_start": _iso(match.scheduled_start),
        "scheduled_end": _iso(match.scheduled_end),
        "is_time_limited": match.is_time_limited,
        "time_limit_minutes": match.time_limit_minutes,
        "match_result_status": match.match_result_status,
        "display_order": match.display_order,
        "order_in_stage": match.order_in_stage,
        "order_in_group": match.order_in_group,
        "bracket_position": match.bracket_position,
        "round_number": match.round_number,
        "priority_score": match.priority_score,
    }
    if now is not None:
        summary["timing_status"] = timing_status(match, now)
    return summary


def estimate_completion(
    pending: Sequence[Match],
    now: datetime,
    court_count: int,
    context: Optional[SchedulingContext] = None,
) -> Optional[datetime]:
    """
    When the remaining pending work should be over: the latest scheduled end
    of pending matches, pushed back by the unscheduled pending matches'
    duration spread evenly over the courts.
    """
    if not pending:
        return None
    context = context or SchedulingContext()
    latest = now
    unscheduled = timedelta(0)
    for m in pending:
        if m.scheduled_start is not None:
            end = m.scheduled_end or m.scheduled_start + match_duration(m, context)
            latest = max(latest, end)
        else:
            unscheduled += match_duration(m, context)
    return latest + unscheduled / max(1, court_count)


def build_match_order_info(
    tournament_id: int,
    matches: Sequence[Match],
    now: datetime,
    court_count: int,
    context: Optional[SchedulingContext] = None,
    next_limit: int = NEXT_MATCHES_LIMIT,
) -> Dict[str, Any]:
    """Categorized view of a tournament's matches for the match-order-info endpoint."""
    ordered = ordered_matches(matches)
    pending = [m for m in ordered if m.match_result_status == MatchResultStatus.PENDING.value]
    live = [m for m in pending if timing_status(m, now) == TIMING_IN_PROGRESS]
    not_started = [m for m in pending if m.scheduled_start is None or m.scheduled_start > now]

    completed_by_stage: Dict[int, List[Dict[str, Any]]] = defaultdict(list)
    completed_count = 0
    for m in ordered:
        if m.match_result_status in FINISHED_STATUSES:
            completed_by_stage[m.stage_id].append(match_summary(m, now))
            completed_count += 1

    estimated = estimate_completion(pending, now, court_count, context)
    return {
        "tournament_id": tournament_id,
        "live_matches": [match_summary(m, now) for m in live],
        "next_matches": [match_summary(m, now) for m in not_started[:next_limit]],
        "all_pending_matches": [match_summary(m, now) for m in pending],
        "completed_matches_by_stage": {str(stage_id): items for stage_id, items in sorted(completed_by_stage.items())},
        "quick_stats": {
            "matches_in_progress": len(live),
            "matches_waiting": len(pending) - len(live),
            "matches_remaining": len(pending),
            "matches_completed": completed_count,
            "estimated_completion": _iso(estimated),
        },
    }


def standings_response(
    group_id: int,
    group_name: str,
    stats: Sequence[CoupleStatsRow],
    couple_names: Optional[Dict[int, str]] = None,
    last_updated: Optional[datetime] = None,
    warnings: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    rows = []
    for row in sorted(stats, key=lambda r: r.position or 0):
        item = row.to_dict()
        if couple_names is not None:
            item["couple_name"] = couple_names.get(row.couple_id, f"Couple {row.couple_id}")
        rows.append(item)
    response: Dict[str, Any] = {"group_id": group_id, "group_name": group_name, "standings": rows}
    if last_updated is not None:
        response["last_updated"] = last_updated.isoformat()
    if warnings:
        response["warnings"] = warnings
    return response


def order_calculation_response(
    total_matches_ordered: int,
    strategy: str,
    calculation_time_ms: int,
    unresolved_count: int,
    reused: bool = False,
) -> Dict[str, Any]:
    if reused:
        message = f"Match order already calculated with {strategy}; pass force_recalculate to recompute"
    elif unresolved_count:
        message = (
            f"Ordered {total_matches_ordered} matches with {strategy}; "
            f"{unresolved_count} could not be fitted into court availability"
        )
    else:
        message = f"Ordered {total_matches_ordered} matches with {strategy}"
    return {
        "success": True,
        "total_matches_ordered": total_matches_ordered,
        "strategy_used": strategy,
        "calculation_time_ms": calculation_time_ms,
        "unresolved_count": unresolved_count,
        "message": message,
    }


def auto_schedule_response(result: OrderingResult, calculation_time_ms: int) -> Dict[str, Any]:
    return {
        "success": True,
        "strategy_used": result.strategy.value,
        "total_matches": len(result.ordered),
        "scheduled_count": result.scheduled_count,
        "unresolved_count": result.unresolved_count,
        "unresolved_match_ids": result.unresolved_match_ids,
        "calculation_time_ms": calculation_time_ms,
    }
