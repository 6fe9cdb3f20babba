"""
Stage configuration parsing and per-type defaults.
"""
import pytest
from pydantic import ValidationError

from staging.models.enums import ScoringType, TiebreakerMethod
from staging.models.stage_config import default_stage_config, parse_stage_config


def test_group_defaults():
    config = parse_stage_config("group", None)
    assert (config.scoring_system.win, config.scoring_system.draw, config.scoring_system.loss) == (3, 1, 0)
    assert config.advancement_rules.tiebreaker == [
        TiebreakerMethod.POINTS,
        TiebreakerMethod.HEAD_TO_HEAD,
        TiebreakerMethod.GAMES_DIFF,
        TiebreakerMethod.GAMES_WON,
    ]
    assert config.match_rules.time_limit_minutes == 90
    assert config.match_rules.break_between_matches == 30


def test_elimination_defaults():
    config = default_stage_config("elimination")
    assert (config.scoring_system.win, config.scoring_system.draw) == (1, 0)
    assert config.advancement_rules.top_n == 1
    assert config.advancement_rules.tiebreaker == [TiebreakerMethod.POINTS]


def test_partial_sections_merge_over_defaults():
    config = parse_stage_config(
        "group",
        {
            "scoring_system": {"type": "both", "win": 2},
            "match_rules": {"break_between_matches": 10},
            "scheduling_options": {"overlap_allowed": True},
        },
    )
    assert config.scoring_system.type == ScoringType.BOTH
    assert config.scoring_system.win == 2
    assert config.scoring_system.draw == 1
    assert config.match_rules.break_between_matches == 10
    assert config.match_rules.time_limit_minutes == 90
    assert config.scheduling.overlap_allowed is True


@pytest.mark.parametrize(
    "raw",
    [
        {"advancement_rules": {"tiebreaker": ["points", "coin_flip"]}},
        {"advancement_rules": {"tiebreaker": ["games_diff", "games_diff"]}},
        {"match_rules": {"break_between_matches": -5}},
        {"match_rules": {"time_limit_minutes": 0}},
    ],
)
def test_invalid_config_is_rejected(raw):
    with pytest.raises(ValidationError):
        parse_stage_config("group", raw)
