from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON
from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from staging.models.tournament import Tournament


class Stage(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("tournament_id", "order", name="uq_stage_tournament_order"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    stage_type: str  # "group" | "elimination"
    order: int  # Sequencing within the tournament (ascending)
    config: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="stages")
    groups: List["StageGroup"] = Relationship(back_populates="stage")
    brackets: List["StageBracket"] = Relationship(back_populates="stage")


class StageGroup(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    name: str
    # Bumped on every standings write-back (compare-and-swap guard)
    stats_version: int = Field(default=0)

    stage: Stage = Relationship(back_populates="groups")
    couples: List["GroupCouple"] = Relationship(back_populates="group")


class GroupCouple(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("group_id", "couple_id", name="uq_group_couple"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    group_id: int = Field(foreign_key="stagegroup.id", index=True)
    couple_id: int = Field(foreign_key="couple.id")

    group: StageGroup = Relationship(back_populates="couples")


class StageBracket(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    bracket_type: str = Field(default="main")  # "main" | "silver" | "bronze"

    stage: Stage = Relationship(back_populates="brackets")
