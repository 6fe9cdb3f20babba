from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import CheckConstraint
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from staging.models.tournament import Tournament


class Couple(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint(
            "tournament_id", "first_player_id", "second_player_id", name="uq_couple_tournament_players"
        ),
        CheckConstraint("first_player_id <> second_player_id", name="ck_couple_distinct_players"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    first_player_id: int
    second_player_id: int
    name: str
    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="couples")
