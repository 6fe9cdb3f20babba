"""
Match order endpoints: calculate ordering fields and the categorized
match-order view used by the dashboard.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from staging.database import get_session
from staging.models.tournament import Tournament
from staging.services.match_scheduler import InvalidStrategyError, SchedulingError
from staging.services.ordering_service import calculate_tournament_match_order, match_order_info
from staging.utils.version_guards import ConcurrentRecalculationError

logger = logging.getLogger(__name__)

router = APIRouter()


class CalculateMatchOrderRequest(BaseModel):
    strategy: Optional[str] = None
    force_recalculate: bool = False


class CalculateMatchOrderResponse(BaseModel):
    success: bool
    total_matches_ordered: int
    strategy_used: str
    calculation_time_ms: int
    unresolved_count: int = 0
    message: str


class QuickStats(BaseModel):
    matches_in_progress: int
    matches_waiting: int
    matches_remaining: int
    matches_completed: int
    estimated_completion: Optional[str] = None


class MatchOrderInfoResponse(BaseModel):
    tournament_id: int
    live_matches: List[Dict[str, Any]]
    next_matches: List[Dict[str, Any]]
    all_pending_matches: List[Dict[str, Any]]
    completed_matches_by_stage: Dict[str, List[Dict[str, Any]]]
    quick_stats: QuickStats


def _get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")
    return tournament


@router.post(
    "/staging/tournament/{tournament_id}/calculate-match-order",
    response_model=CalculateMatchOrderResponse,
)
def calculate_match_order_endpoint(
    tournament_id: int,
    strategy: Optional[str] = Query(None, description="Ordering strategy (overridden by the body)"),
    request: Optional[CalculateMatchOrderRequest] = Body(None),
    session: Session = Depends(get_session),
):
    """
    Compute display_order / order_in_stage / order_in_group / bracket_position /
    round_number / priority_score for every pending match.

    A strategy is required (body or query). Without force_recalculate an
    existing ordering is returned as-is.
    """
    tournament = _get_tournament(session, tournament_id)
    request = request or CalculateMatchOrderRequest()
    chosen = request.strategy if request.strategy is not None else strategy

    try:
        return calculate_tournament_match_order(
            session, tournament, chosen, force_recalculate=request.force_recalculate
        )
    except InvalidStrategyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except SchedulingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")
    except ConcurrentRecalculationError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/staging/tournament/{tournament_id}/match-order-info", response_model=MatchOrderInfoResponse)
def get_match_order_info(tournament_id: int, session: Session = Depends(get_session)):
    """Live / next / pending / completed matches plus quick stats, in display order."""
    tournament = _get_tournament(session, tournament_id)
    try:
        return match_order_info(session, tournament)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")
