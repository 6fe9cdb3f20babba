"""
Stage configuration as stored in Stage.config (JSON).

Missing sections fall back to the defaults organizers get when creating a
stage without custom settings; group and elimination stages differ only in
scoring and advancement.

Read by the engines: scoring_system, match_rules.time_limited /
time_limit_minutes / break_between_matches, advancement_rules.top_n and
tiebreaker. The remaining fields (matches_per_opponent, games_per_match,
win_criteria, to_bracket and the scheduling section) are validated and
stored for the organizer UI and draw generation, which live elsewhere.
"""
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from staging.models.enums import ScoringType, StageType, TiebreakerMethod


class ScoringSystem(BaseModel):
    type: ScoringType = ScoringType.POINTS
    win: float = 3
    draw: float = 1
    loss: float = 0
    game_win: float = 1
    game_loss: float = 0


class MatchRules(BaseModel):
    matches_per_opponent: int = 1
    games_per_match: int = 3
    win_criteria: str = "best_of"
    time_limited: bool = False
    time_limit_minutes: Optional[int] = Field(default=90, gt=0)
    break_between_matches: int = Field(default=30, ge=0)


class AdvancementRules(BaseModel):
    top_n: int = Field(default=2, ge=0)
    to_bracket: Optional[str] = "main"
    tiebreaker: List[TiebreakerMethod] = Field(
        default_factory=lambda: [
            TiebreakerMethod.POINTS,
            TiebreakerMethod.HEAD_TO_HEAD,
            TiebreakerMethod.GAMES_DIFF,
            TiebreakerMethod.GAMES_WON,
        ]
    )

    @field_validator("tiebreaker")
    @classmethod
    def no_repeated_methods(cls, value: List[TiebreakerMethod]) -> List[TiebreakerMethod]:
        if len(value) != len(set(value)):
            raise ValueError("tiebreaker methods must not repeat")
        return value


class SchedulingOptions(BaseModel):
    auto_schedule: bool = True
    overlap_allowed: bool = False
    scheduling_priority: Optional[str] = "court_efficiency"


class StageConfig(BaseModel):
    scoring_system: ScoringSystem = Field(default_factory=ScoringSystem)
    match_rules: MatchRules = Field(default_factory=MatchRules)
    advancement_rules: AdvancementRules = Field(default_factory=AdvancementRules)
    scheduling: SchedulingOptions = Field(default_factory=SchedulingOptions)


def default_stage_config(stage_type: str) -> StageConfig:
    if stage_type == StageType.ELIMINATION.value:
        return StageConfig(
            scoring_system=ScoringSystem(win=1, draw=0, loss=0),
            advancement_rules=AdvancementRules(top_n=1, tiebreaker=[TiebreakerMethod.POINTS]),
        )
    return StageConfig()


def parse_stage_config(stage_type: str, raw: Optional[Dict[str, Any]]) -> StageConfig:
    """Merge a stored config over the stage-type defaults, section by section.

    Raises pydantic.ValidationError on malformed values (unknown tiebreaker,
    negative break, ...).
    """
    base = default_stage_config(stage_type).model_dump()
    for section, values in (raw or {}).items():
        # Older clients send "scheduling_options"
        key = "scheduling" if section == "scheduling_options" else section
        if key in base and isinstance(values, dict):
            base[key].update(values)
    return StageConfig.model_validate(base)
