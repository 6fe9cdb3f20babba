"""
Standings endpoints: live group standings, stored standings and stats recalculation.
"""
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from staging.database import get_session
from staging.models.stage import Stage, StageGroup
from staging.models.tournament import Tournament
from staging.services.match_order_report import standings_response
from staging.services.stats_service import (
    StatsNotFoundError,
    compute_group_standings,
    couple_names,
    recalculate_stats,
    stored_standings,
)
from staging.utils.version_guards import ConcurrentRecalculationError

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# Response models
# ============================================================================


class CoupleStatsItem(BaseModel):
    couple_id: int
    couple_name: Optional[str] = None
    matches_played: int
    matches_won: int
    matches_lost: int
    matches_drawn: int
    games_won: int
    games_lost: int
    games_diff: int
    total_points: float
    win_percentage: float
    position: Optional[int] = None


class GroupStandingsResponse(BaseModel):
    group_id: int
    group_name: str
    standings: List[CoupleStatsItem]
    last_updated: Optional[str] = None
    warnings: List[Dict[str, Any]] = []


class StoredCoupleStatsItem(CoupleStatsItem):
    advances: bool = False


class StoredGroupStandings(BaseModel):
    group_id: int
    group_name: str
    stats: List[StoredCoupleStatsItem]
    last_updated: Optional[str] = None


class TournamentStandingsResponse(BaseModel):
    tournament_id: int
    groups: List[StoredGroupStandings]


class RecalculateStatsResponse(BaseModel):
    tournament_id: int
    groups_recalculated: int
    last_updated: str
    warnings: List[Dict[str, Any]] = []


# ============================================================================
# Endpoints
# ============================================================================


@router.get("/staging/group/{group_id}/standings", response_model=GroupStandingsResponse)
def get_group_standings(group_id: int, session: Session = Depends(get_session)):
    """Standings computed from the group's current match results (nothing is stored)."""
    group = session.get(StageGroup, group_id)
    if not group:
        raise HTTPException(status_code=404, detail=f"Group {group_id} not found")
    if not session.get(Stage, group.stage_id):
        raise HTTPException(status_code=404, detail=f"Stage {group.stage_id} not found")

    try:
        snapshot = compute_group_standings(session, group)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")

    names = couple_names(session, [row.couple_id for row in snapshot.stats])
    return standings_response(
        group.id,
        group.name,
        snapshot.stats,
        couple_names=names,
        last_updated=snapshot.last_updated,
        warnings=snapshot.warnings,
    )


@router.get("/staging/tournament/{tournament_id}/standings", response_model=TournamentStandingsResponse)
def get_tournament_standings(
    tournament_id: int,
    group_id: Optional[int] = Query(None, description="Limit the standings to one group"),
    session: Session = Depends(get_session),
):
    """Standings as stored by the last recalculation, per group."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")

    try:
        return stored_standings(session, tournament_id, group_id=group_id)
    except StatsNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")


@router.post("/staging/tournament/{tournament_id}/stats/recalculate", response_model=RecalculateStatsResponse)
def recalculate_tournament_stats(
    tournament_id: int,
    group_id: Optional[int] = Query(None, description="Limit the recalculation to one group"),
    session: Session = Depends(get_session),
):
    """Recompute and persist CoupleStats for one group or the whole tournament."""
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail=f"Tournament {tournament_id} not found")

    try:
        return recalculate_stats(session, tournament_id, group_id=group_id)
    except StatsNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid stage configuration: {e}")
    except ConcurrentRecalculationError as e:
        raise HTTPException(status_code=409, detail=str(e))
