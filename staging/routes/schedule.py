"""
Scheduling endpoints: bulk auto-schedule over a date range and the manual
single-match override.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from staging.database import get_session
from staging.models.match import Match
from staging.models.tournament import Tournament
from staging.services.match_order_report import match_summary
from staging.services.match_scheduler import CoupleConflictError, CourtConflictError, SchedulingError
from staging.services.ordering_service import auto_schedule_tournament, resolve_strategy, schedule_single_match
from staging.utils.timeutils import as_naive_utc
from staging.utils.version_guards import ConcurrentRecalculationError

logger = logging.getLogger(__name__)

router = APIRouter()


class AutoScheduleResponse(BaseModel):
    success: bool
    strategy_used: str
    total_matches: int
    scheduled_count: int
    unresolved_count: int
    unresolved_match_ids: List[int]
    calculation_time_ms: int


@router.post("/staging/tournament/{tournament_id}/auto-schedule", response_model=AutoScheduleResponse)
def auto_schedule(
    tournament_id: int,
    start_date: datetime = Query(..., description="Earliest start (ISO-8601)"),
    end_date: Optional[datetime] = Query(None, description="Latest end (ISO-8601), open-ended if omitted"),
    strategy: Optional[str] = Query(None, description="Defaults to the tournament's last strategy"),
    session: Session = Depends(get_session),
):
    """
    Place pending matches on courts inside [start_date, end_date).

    Matches that cannot be fitted are reported in unresolved_match_ids and
    left unscheduled; the rest of the batch is still applied.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")

    try:
        return auto_schedule_tournament(
            session,
            tournament,
            as_naive_utc(start_date),
            as_naive_utc(end_date),
            resolve_strategy(tournament, strategy),
        )
    except SchedulingError as e:
        # Unknown strategy or malformed date range
        raise HTTPException(status_code=422, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")
    except ConcurrentRecalculationError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/staging/match/{match_id}/schedule")
def schedule_match(
    match_id: int,
    court_id: int = Query(...),
    start_time: datetime = Query(...),
    end_time: Optional[datetime] = Query(None, description="Defaults to start_time + match duration"),
    is_time_limited: Optional[bool] = Query(None),
    time_limit_minutes: Optional[int] = Query(None, gt=0),
    session: Session = Depends(get_session),
) -> Dict[str, Any]:
    """Manual override: put one match on a court at a fixed time, or fail with 409."""
    match = session.get(Match, match_id)
    if not match:
        raise HTTPException(status_code=404, detail=f"Match {match_id} not found")

    try:
        match = schedule_single_match(
            session,
            match,
            court_id,
            as_naive_utc(start_time),
            as_naive_utc(end_time),
            is_time_limited=is_time_limited,
            time_limit_minutes=time_limit_minutes,
        )
    except (CourtConflictError, CoupleConflictError) as e:
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "conflicting_match_ids": e.conflicting_match_ids},
        )
    except SchedulingError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")

    return {"success": True, "match": match_summary(match)}
