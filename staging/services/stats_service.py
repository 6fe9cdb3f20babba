"""
Standings persistence: load a group snapshot, run the standings engine,
replace the group's CoupleStats rows in one transaction, and serve them back.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from staging.models.couple import Couple
from staging.models.couple_stats import CoupleStats
from staging.models.enums import StageType
from staging.models.match import Match
from staging.models.stage import GroupCouple, Stage, StageGroup
from staging.models.stage_config import StageConfig, parse_stage_config
from staging.services.standings_engine import StandingsSnapshot, advancing_couples, recalculate_group
from staging.utils.version_guards import ConcurrentRecalculationError, claim_version

logger = logging.getLogger(__name__)


class StatsError(Exception):
    """Base exception for standings persistence"""

    pass


class StatsNotFoundError(StatsError):
    """Referenced tournament or group does not exist"""

    pass


def stage_config_for(stage: Stage) -> StageConfig:
    return parse_stage_config(stage.stage_type, stage.config)


def group_couple_ids(session: Session, group_id: int) -> List[int]:
    rows = session.exec(select(GroupCouple).where(GroupCouple.group_id == group_id)).all()
    return sorted(r.couple_id for r in rows)


def compute_group_standings(session: Session, group: StageGroup, now: Optional[datetime] = None) -> StandingsSnapshot:
    """Fresh standings for one group; nothing is written."""
    stage = session.get(Stage, group.stage_id)
    matches = session.exec(select(Match).where(Match.group_id == group.id).order_by(Match.id)).all()
    return recalculate_group(group.id, matches, group_couple_ids(session, group.id), stage_config_for(stage), now=now)


def couple_names(session: Session, couple_ids: List[int]) -> Dict[int, str]:
    if not couple_ids:
        return {}
    couples = session.exec(select(Couple).where(Couple.id.in_(couple_ids))).all()  # type: ignore[attr-defined]
    return {c.id: c.name for c in couples}


def _groups_in_scope(session: Session, tournament_id: int, group_id: Optional[int]) -> List[StageGroup]:
    if group_id is not None:
        group = session.get(StageGroup, group_id)
        if not group:
            raise StatsNotFoundError(f"Group {group_id} not found")
        stage = session.get(Stage, group.stage_id)
        if not stage or stage.tournament_id != tournament_id:
            raise StatsNotFoundError(f"Group {group_id} does not belong to tournament {tournament_id}")
        return [group]

    return list(
        session.exec(
            select(StageGroup)
            .join(Stage, Stage.id == StageGroup.stage_id)
            .where(Stage.tournament_id == tournament_id, Stage.stage_type == StageType.GROUP.value)
            .order_by(Stage.order, StageGroup.id)
        ).all()
    )


def _replace_group_stats(session: Session, tournament_id: int, snapshot: StandingsSnapshot) -> None:
    existing = session.exec(select(CoupleStats).where(CoupleStats.group_id == snapshot.group_id)).all()
    for row in existing:
        session.delete(row)
    session.flush()

    for row in snapshot.stats:
        session.add(
            CoupleStats(
                tournament_id=tournament_id,
                group_id=snapshot.group_id,
                couple_id=row.couple_id,
                matches_played=row.matches_played,
                matches_won=row.matches_won,
                matches_lost=row.matches_lost,
                matches_drawn=row.matches_drawn,
                games_won=row.games_won,
                games_lost=row.games_lost,
                games_diff=row.games_diff,
                total_points=row.total_points,
                win_percentage=row.win_percentage,
                position=row.position,
                last_updated=snapshot.last_updated,
            )
        )


def stored_standings(session: Session, tournament_id: int, group_id: Optional[int] = None) -> Dict[str, Any]:
    """
    CoupleStats as last persisted by recalculate_stats, in position order.

    Groups never recalculated are listed with no stats and no last_updated.

    Raises:
        StatsNotFoundError: group missing or outside the tournament
    """
    groups = _groups_in_scope(session, tournament_id, group_id)
    rows_by_group = {
        group.id: session.exec(
            select(CoupleStats).where(CoupleStats.group_id == group.id).order_by(CoupleStats.position)
        ).all()
        for group in groups
    }
    names = couple_names(session, [row.couple_id for rows in rows_by_group.values() for row in rows])

    sections = []
    for group in groups:
        rows = rows_by_group[group.id]
        top_n = stage_config_for(session.get(Stage, group.stage_id)).advancement_rules.top_n
        advancing = set(advancing_couples(rows, top_n))
        stats = []
        for row in rows:
            item = row.model_dump(exclude={"id", "tournament_id", "group_id", "last_updated"})
            item["couple_name"] = names.get(row.couple_id, f"Couple {row.couple_id}")
            item["advances"] = row.couple_id in advancing
            stats.append(item)
        last_updated = max((row.last_updated for row in rows), default=None)
        sections.append(
            {
                "group_id": group.id,
                "group_name": group.name,
                "stats": stats,
                "last_updated": last_updated.isoformat() if last_updated else None,
            }
        )
    return {"tournament_id": tournament_id, "groups": sections}


def recalculate_stats(
    session: Session,
    tournament_id: int,
    group_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Recompute and persist CoupleStats for one group or every group of the
    tournament's group stages.

    All groups are written in a single commit; each group's stats_version is
    claimed first so two recalculations cannot interleave their writes.

    Raises:
        StatsNotFoundError: group missing or outside the tournament
        ConcurrentRecalculationError: a concurrent recalculation won the race
    """
    now = now or datetime.utcnow()
    groups = _groups_in_scope(session, tournament_id, group_id)

    # Snapshot every group before writing anything
    snapshots: List[Tuple[StageGroup, int, StandingsSnapshot]] = []
    for group in groups:
        snapshots.append((group, group.stats_version, compute_group_standings(session, group, now=now)))

    warnings: List[Dict[str, Any]] = []
    try:
        for group, seen_version, snapshot in snapshots:
            claim_version(session, StageGroup, group.id, "stats_version", seen_version)
            _replace_group_stats(session, tournament_id, snapshot)
            warnings.extend({"group_id": group.id, **w} for w in snapshot.warnings)
        session.commit()
    except ConcurrentRecalculationError:
        session.rollback()
        logger.warning("Stats recalculation for tournament %s lost a concurrent write race", tournament_id)
        raise

    logger.info("Recalculated stats for %d group(s) of tournament %s", len(groups), tournament_id)
    return {
        "tournament_id": tournament_id,
        "groups_recalculated": len(groups),
        "last_updated": now.isoformat(),
        "warnings": warnings,
    }
