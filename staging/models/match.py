from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import JSON, CheckConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from staging.models.tournament import Tournament


class Match(SQLModel, table=True):
    __table_args__ = (
        CheckConstraint("couple1_id <> couple2_id", name="ck_match_distinct_couples"),
        CheckConstraint("NOT (group_id IS NOT NULL AND bracket_id IS NOT NULL)", name="ck_match_group_xor_bracket"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    stage_id: int = Field(foreign_key="stage.id", index=True)
    group_id: Optional[int] = Field(default=None, foreign_key="stagegroup.id", index=True)
    bracket_id: Optional[int] = Field(default=None, foreign_key="stagebracket.id", index=True)

    couple1_id: int = Field(foreign_key="couple.id")
    couple2_id: int = Field(foreign_key="couple.id")
    winner_couple_id: Optional[int] = Field(default=None, foreign_key="couple.id")

    # Raw backend shape (list of games, {"sets": [...]}, or a score string);
    # normalized by services.game_parser before any computation
    games: Optional[Any] = Field(default=None, sa_column=Column(JSON, nullable=True))

    court_id: Optional[int] = Field(default=None, foreign_key="court.id")
    scheduled_start: Optional[datetime] = Field(default=None)
    scheduled_end: Optional[datetime] = Field(default=None)
    is_time_limited: bool = Field(default=False)
    time_limit_minutes: Optional[int] = Field(default=None)

    match_result_status: str = Field(default="pending")  # pending | completed | time_expired | forfeited

    # Written by the match scheduler
    display_order: Optional[int] = Field(default=None)
    order_in_stage: Optional[int] = Field(default=None)
    order_in_group: Optional[int] = Field(default=None)
    bracket_position: Optional[str] = Field(default=None)  # e.g. "R1-3"
    round_number: Optional[int] = Field(default=None)
    priority_score: Optional[float] = Field(default=None)

    created_at: datetime = Field(default_factory=datetime.utcnow)

    tournament: "Tournament" = Relationship(back_populates="matches")
