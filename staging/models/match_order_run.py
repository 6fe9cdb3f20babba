from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class MatchOrderRun(SQLModel, table=True):
    """One row per match-order calculation; the latest one answers non-forced requests."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    strategy: str
    total_matches_ordered: int = 0
    unresolved_count: int = 0
    calculation_time_ms: int = 0
    created_at: datetime = Field(default_factory=datetime.utcnow)
