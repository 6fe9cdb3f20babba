from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class CoupleStats(SQLModel, table=True):
    """Persisted standings snapshot, replaced wholesale per group on recalculation."""

    __table_args__ = (SAUniqueConstraint("group_id", "couple_id", name="uq_stats_group_couple"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    group_id: int = Field(foreign_key="stagegroup.id", index=True)
    couple_id: int = Field(foreign_key="couple.id")
    matches_played: int = 0
    matches_won: int = 0
    matches_lost: int = 0
    matches_drawn: int = 0
    games_won: int = 0
    games_lost: int = 0
    games_diff: int = 0
    total_points: float = 0
    win_percentage: float = 0
    position: int
    last_updated: datetime = Field(default_factory=datetime.utcnow)
