"""
Games normalization: every stored payload shape maps to the same Game list.
"""
import pytest

from staging.services.game_parser import Game, GameParseError, normalize_games

C1, C2 = 10, 20


def test_empty_payloads_give_no_games():
    for raw in (None, "", [], {}):
        assert normalize_games(raw, C1, C2) == []


def test_canonical_rows_are_kept():
    raw = [
        {"game_number": 1, "couple1_score": 6, "couple2_score": 3, "winner_id": C1, "duration_minutes": 40},
        {"game_number": 2, "couple1_score": 4, "couple2_score": 6, "winner_id": C2},
    ]
    games = normalize_games(raw, C1, C2)
    assert games == [
        Game(game_number=1, couple1_score=6, couple2_score=3, winner_id=C1, duration_minutes=40),
        Game(game_number=2, couple1_score=4, couple2_score=6, winner_id=C2),
    ]


def test_sets_wrapper_and_short_rows_match_score_string():
    from_sets = normalize_games({"sets": [{"couple1": 6, "couple2": 3}, {"couple1": 4, "couple2": 6}]}, C1, C2)
    from_string = normalize_games("6-3 4-6", C1, C2)
    from_commas = normalize_games("6-3, 4-6", C1, C2)
    assert from_sets == from_string == from_commas
    assert [g.game_number for g in from_sets] == [1, 2]
    assert [g.winner_id for g in from_sets] == [C1, C2]


def test_display_object_is_parsed():
    games = normalize_games({"display": "6-3 10-7"}, C1, C2)
    assert [(g.couple1_score, g.couple2_score) for g in games] == [(6, 3), (10, 7)]


def test_level_game_has_no_winner():
    games = normalize_games([{"couple1": 5, "couple2": 5}], C1, C2)
    assert games[0].winner_id is None


def test_rows_are_sorted_by_game_number():
    raw = [
        {"game_number": 2, "couple1": 1, "couple2": 6},
        {"game_number": 1, "couple1": 6, "couple2": 1},
    ]
    assert [g.game_number for g in normalize_games(raw, C1, C2)] == [1, 2]


def test_winner_outside_match_is_rejected():
    with pytest.raises(GameParseError, match="did not play"):
        normalize_games([{"couple1": 6, "couple2": 3, "winner_id": 99}], C1, C2)


def test_negative_score_is_rejected():
    with pytest.raises(GameParseError, match="negative"):
        normalize_games([{"couple1": -1, "couple2": 3}], C1, C2)


def test_duplicate_game_numbers_are_rejected():
    raw = [
        {"game_number": 1, "couple1": 6, "couple2": 3},
        {"game_number": 1, "couple1": 6, "couple2": 4},
    ]
    with pytest.raises(GameParseError, match="Duplicate"):
        normalize_games(raw, C1, C2)


@pytest.mark.parametrize("raw", ["6:3", "six-three", 42, {"foo": 1}, [["6", "3"]]])
def test_garbage_is_rejected(raw):
    with pytest.raises(GameParseError):
        normalize_games(raw, C1, C2)
