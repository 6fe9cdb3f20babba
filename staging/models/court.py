from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from staging.models.tournament import Tournament


class Court(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    active: bool = Field(default=True)


class TournamentCourt(SQLModel, table=True):
    """A court booked for a tournament during [availability_start, availability_end)."""

    __table_args__ = (SAUniqueConstraint("tournament_id", "court_id", name="uq_tournament_court"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    court_id: int = Field(foreign_key="court.id")
    availability_start: datetime
    availability_end: datetime

    tournament: "Tournament" = Relationship(back_populates="courts")
    court: Court = Relationship()
