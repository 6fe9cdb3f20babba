"""
Standings engine: aggregation, ranking and tiebreakers over in-memory matches.
"""
import pytest

from staging.models.enums import ScoringType
from staging.models.match import Match
from staging.models.stage_config import ScoringSystem, StageConfig
from staging.services.standings_engine import (
    WARNING_COUPLE_NOT_IN_GROUP,
    WARNING_INVALID_MATCH,
    WARNING_SCORE_PARSE_FAILED,
    CoupleStatsRow,
    StandingsError,
    advancing_couples,
    compute_standings,
    rank_standings,
    recalculate_group,
)

DEFAULT_SCORING = ScoringSystem()  # 3 / 1 / 0
GROUP_TIEBREAKERS = ["points", "head_to_head", "games_diff", "games_won"]


def _match(match_id, c1, c2, winner=None, games=None, status="completed"):
    return Match(
        id=match_id,
        tournament_id=1,
        stage_id=1,
        group_id=1,
        couple1_id=c1,
        couple2_id=c2,
        winner_couple_id=winner,
        games=games,
        match_result_status=status,
    )


def _by_couple(rows):
    return {r.couple_id: r for r in rows}


def _round_robin():
    """Four couples; A(1) and B(2) finish on 6 points, C(3) and D(4) on 3."""
    return [
        _match(1, 1, 2, winner=1, games={"sets": [{"couple1": 6, "couple2": 4}]}),
        _match(2, 1, 3, winner=3, games={"sets": [{"couple1": 0, "couple2": 6}]}),
        _match(3, 1, 4, winner=1, games={"sets": [{"couple1": 6, "couple2": 4}]}),
        _match(4, 2, 3, winner=2, games={"sets": [{"couple1": 6, "couple2": 0}]}),
        _match(5, 2, 4, winner=2, games={"sets": [{"couple1": 6, "couple2": 0}]}),
        _match(6, 3, 4, winner=4, games={"sets": [{"couple1": 4, "couple2": 6}]}),
    ]


# ============================================================================
# Aggregation
# ============================================================================


def test_single_match_example():
    """A beats B 2 games to 0 with 3/1/0 scoring."""
    matches = [_match(1, 1, 2, winner=1, games={"sets": [{"couple1": 2, "couple2": 0}]})]
    ranked = rank_standings(compute_standings(matches, DEFAULT_SCORING), ["points"], matches)
    rows = _by_couple(ranked)

    a, b = rows[1], rows[2]
    assert (a.matches_played, a.matches_won, a.games_won, a.games_lost, a.total_points, a.position) == (
        1,
        1,
        2,
        0,
        3,
        1,
    )
    assert (b.matches_played, b.matches_lost, b.games_won, b.games_lost, b.total_points, b.position) == (
        1,
        1,
        0,
        2,
        0,
        2,
    )


def test_wins_equal_losses_and_played_is_twice_completed():
    matches = _round_robin() + [
        _match(7, 1, 2, winner=None, games="5-5"),
        _match(8, 3, 4, status="pending"),
    ]
    rows = compute_standings(matches, DEFAULT_SCORING)
    completed = [m for m in matches if m.match_result_status == "completed"]

    assert sum(r.matches_won for r in rows) == sum(r.matches_lost for r in rows)
    assert sum(r.matches_played for r in rows) == 2 * len(completed)
    assert sum(r.matches_drawn for r in rows) == 2


def test_draw_awards_draw_points_to_both():
    rows = _by_couple(compute_standings([_match(1, 1, 2, winner=None, games="6-6")], DEFAULT_SCORING))
    assert rows[1].matches_drawn == rows[2].matches_drawn == 1
    assert rows[1].total_points == rows[2].total_points == 1


def test_only_completed_matches_count():
    matches = [
        _match(1, 1, 2, winner=1, status="time_expired"),
        _match(2, 1, 2, winner=2, status="forfeited"),
        _match(3, 1, 2, status="pending"),
    ]
    rows = _by_couple(compute_standings(matches, DEFAULT_SCORING))
    assert rows[1].matches_played == rows[2].matches_played == 0
    assert rows[1].total_points == rows[2].total_points == 0


@pytest.mark.parametrize(
    "scoring_type, winner_points, loser_points",
    [
        (ScoringType.POINTS, 3, 0),
        (ScoringType.GAMES, 2, 0),
        (ScoringType.BOTH, 5, 0),
    ],
)
def test_scoring_types(scoring_type, winner_points, loser_points):
    scoring = ScoringSystem(type=scoring_type, win=3, draw=1, loss=0, game_win=1, game_loss=0)
    rows = _by_couple(compute_standings([_match(1, 1, 2, winner=1, games="6-3 6-4")], scoring))
    assert rows[1].total_points == winner_points
    assert rows[2].total_points == loser_points


def test_win_percentage_and_zero_played():
    matches = [
        _match(1, 1, 2, winner=1),
        _match(2, 1, 3, winner=3),
        _match(3, 1, 4, winner=1),
    ]
    rows = _by_couple(compute_standings(matches, DEFAULT_SCORING, couple_ids=[1, 2, 3, 4, 5]))
    assert rows[1].win_percentage == 66.67
    assert rows[5].matches_played == 0
    assert rows[5].win_percentage == 0


def test_data_integrity_problems_are_excluded_with_warnings():
    warnings = []
    matches = [
        _match(1, 1, 2, winner=1, games="6-3"),
        _match(2, 1, 99, winner=1, games="6-0"),  # outsider
        _match(3, 2, 3, winner=7, games="6-0"),  # winner did not play
        _match(4, 2, 3, winner=2, games="not a score"),
    ]
    rows = _by_couple(compute_standings(matches, DEFAULT_SCORING, couple_ids=[1, 2, 3], warnings=warnings))

    assert 99 not in rows
    assert rows[1].matches_played == 1
    # Unparseable games: result counts, games do not
    assert rows[2].matches_won == 1
    assert rows[2].games_won == 3
    assert [(w["match_id"], w["reason"]) for w in warnings] == [
        (2, WARNING_COUPLE_NOT_IN_GROUP),
        (3, WARNING_INVALID_MATCH),
        (4, WARNING_SCORE_PARSE_FAILED),
    ]


def test_empty_input_never_raises():
    assert compute_standings([], DEFAULT_SCORING) == []
    assert rank_standings([], GROUP_TIEBREAKERS) == []
    snapshot = recalculate_group(1, [], [], StageConfig())
    assert snapshot.stats == []
    assert snapshot.warnings == []


# ============================================================================
# Ranking
# ============================================================================


def test_games_diff_tiebreak_example():
    """A and B both on 9 points; A +5, B +3 -> A first."""
    a = CoupleStatsRow(couple_id=2, matches_played=3, matches_won=3, games_won=15, games_lost=10, total_points=9)
    b = CoupleStatsRow(couple_id=1, matches_played=3, matches_won=3, games_won=13, games_lost=10, total_points=9)
    ranked = _by_couple(rank_standings([b, a], ["games_diff"]))
    assert ranked[2].position == 1
    assert ranked[1].position == 2


def test_points_always_rank_first():
    low = CoupleStatsRow(couple_id=1, total_points=3, games_won=40, games_lost=0)
    high = CoupleStatsRow(couple_id=2, total_points=6, games_won=0, games_lost=40)
    ranked = rank_standings([low, high], ["games_diff"])
    assert [r.couple_id for r in ranked] == [2, 1]


def test_head_to_head_beats_games_diff():
    matches = _round_robin()
    rows = compute_standings(matches, DEFAULT_SCORING)

    with_h2h = rank_standings(rows, GROUP_TIEBREAKERS, matches)
    assert [r.couple_id for r in with_h2h] == [1, 2, 4, 3]

    without_h2h = rank_standings(rows, ["points", "games_diff"], matches)
    assert [r.couple_id for r in without_h2h][:2] == [2, 1]


def test_full_tie_falls_back_to_couple_id():
    rows = [CoupleStatsRow(couple_id=cid) for cid in (7, 3, 5)]
    assert [r.couple_id for r in rank_standings(rows, GROUP_TIEBREAKERS)] == [3, 5, 7]


def test_ranking_is_idempotent_and_order_independent():
    matches = _round_robin()
    rows = compute_standings(matches, DEFAULT_SCORING)

    first = rank_standings(rows, GROUP_TIEBREAKERS, matches)
    second = rank_standings(first, GROUP_TIEBREAKERS, matches)
    shuffled = rank_standings(list(reversed(rows)), GROUP_TIEBREAKERS, list(reversed(matches)))

    positions = [(r.couple_id, r.position) for r in first]
    assert positions == [(r.couple_id, r.position) for r in second]
    assert positions == [(r.couple_id, r.position) for r in shuffled]


def test_positions_are_contiguous():
    matches = _round_robin()
    ranked = rank_standings(compute_standings(matches, DEFAULT_SCORING), GROUP_TIEBREAKERS, matches)
    assert sorted(r.position for r in ranked) == list(range(1, len(ranked) + 1))


def test_input_rows_are_not_mutated():
    rows = [CoupleStatsRow(couple_id=1, total_points=3), CoupleStatsRow(couple_id=2)]
    rank_standings(rows, ["points"])
    assert all(r.position is None for r in rows)


def test_unknown_tiebreaker_is_rejected():
    with pytest.raises(StandingsError, match="coin_flip"):
        rank_standings([CoupleStatsRow(couple_id=1)], ["coin_flip"])


def test_recalculate_group_and_advancement():
    matches = _round_robin()
    snapshot = recalculate_group(1, matches, [1, 2, 3, 4], StageConfig())
    assert [r.couple_id for r in snapshot.stats] == [1, 2, 4, 3]
    assert advancing_couples(snapshot.stats, 2) == [1, 2]
    assert advancing_couples(snapshot.stats, 0) == []
