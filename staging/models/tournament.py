from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from staging.models.couple import Couple
    from staging.models.court import TournamentCourt
    from staging.models.match import Match
    from staging.models.stage import Stage


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    # Bumped on every match-order write-back (compare-and-swap guard)
    ordering_version: int = Field(default=0)
    ordering_strategy: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    couples: List["Couple"] = Relationship(back_populates="tournament")
    courts: List["TournamentCourt"] = Relationship(back_populates="tournament")
    stages: List["Stage"] = Relationship(back_populates="tournament")
    matches: List["Match"] = Relationship(back_populates="tournament")
