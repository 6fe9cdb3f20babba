"""
Normalizer for the loose `games` payloads stored on matches.

Supports:
  [{"game_number": 1, "couple1_score": 6, "couple2_score": 3, ...}]  canonical rows
  [{"couple1": 6, "couple2": 3}]                                     short rows
  {"sets": [{"couple1": 6, "couple2": 3}]}                           sets wrapper
  "6-3 4-6 10-7" / "6-3, 4-6"                                        score string

Everything is turned into a list of Game before the engines see it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple


class GameParseError(ValueError):
    """Games payload cannot be turned into a consistent list of games"""

    pass


@dataclass(frozen=True)
class Game:
    game_number: int
    couple1_score: int
    couple2_score: int
    winner_id: Optional[int]  # None for a level game
    duration_minutes: Optional[int] = None


def normalize_games(raw: Any, couple1_id: int, couple2_id: int) -> List[Game]:
    """Return the canonical games of a match; an empty payload gives []."""
    if raw is None or raw == "" or raw == [] or raw == {}:
        return []

    if isinstance(raw, str):
        rows = [{"couple1": a, "couple2": b} for a, b in _parse_score_string(raw)]
    elif isinstance(raw, dict):
        if isinstance(raw.get("sets"), list):
            rows = raw["sets"]
        elif isinstance(raw.get("games"), list):
            rows = raw["games"]
        elif raw.get("display") or raw.get("score"):
            display = str(raw.get("display") or raw.get("score"))
            rows = [{"couple1": a, "couple2": b} for a, b in _parse_score_string(display)]
        else:
            raise GameParseError(f"Unrecognized games object with keys {sorted(raw)}")
    elif isinstance(raw, list):
        rows = raw
    else:
        raise GameParseError(f"Unsupported games payload type: {type(raw).__name__}")

    games = [_row_to_game(row, index, couple1_id, couple2_id) for index, row in enumerate(rows, start=1)]

    numbers = [g.game_number for g in games]
    if len(numbers) != len(set(numbers)):
        raise GameParseError(f"Duplicate game numbers: {numbers}")

    return sorted(games, key=lambda g: g.game_number)


def _row_to_game(row: Any, position: int, couple1_id: int, couple2_id: int) -> Game:
    if not isinstance(row, dict):
        raise GameParseError(f"Game {position} is not an object: {row!r}")

    score1 = _first_present(row, "couple1_score", "couple1", "a")
    score2 = _first_present(row, "couple2_score", "couple2", "b")
    if score1 is None or score2 is None:
        raise GameParseError(f"Game {position} is missing a score")
    score1 = _to_score(score1, position)
    score2 = _to_score(score2, position)

    game_number = row.get("game_number")
    if game_number is None:
        game_number = position
    try:
        game_number = int(game_number)
    except (TypeError, ValueError):
        raise GameParseError(f"Game {position} has an invalid game_number: {row.get('game_number')!r}")
    if game_number < 1:
        raise GameParseError(f"Game numbers are 1-based, got {game_number}")

    winner_id = row.get("winner_id")
    if winner_id is None:
        if score1 > score2:
            winner_id = couple1_id
        elif score2 > score1:
            winner_id = couple2_id
    elif winner_id not in (couple1_id, couple2_id):
        raise GameParseError(f"Game {game_number} winner {winner_id} did not play this match")

    duration = row.get("duration_minutes")
    return Game(
        game_number=game_number,
        couple1_score=score1,
        couple2_score=score2,
        winner_id=winner_id,
        duration_minutes=int(duration) if duration is not None else None,
    )


def _first_present(row: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if row.get(key) is not None:
            return row[key]
    return None


def _to_score(value: Any, position: int) -> int:
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise GameParseError(f"Game {position} has a non-numeric score: {value!r}")
    if score < 0:
        raise GameParseError(f"Game {position} has a negative score: {score}")
    return score


def _parse_score_string(raw: str) -> List[Tuple[int, int]]:
    """Parse strings like '8-4', '6-3 4-6 10-7', '6-3, 4-6, 10-7'."""
    normalized = raw.replace(",", " ").strip()
    pairs: List[Tuple[int, int]] = []
    for part in normalized.split():
        pair = part.split("-")
        if len(pair) != 2:
            raise GameParseError(f"Cannot parse score fragment {part!r}")
        try:
            pairs.append((int(pair[0]), int(pair[1])))
        except ValueError:
            raise GameParseError(f"Cannot parse score fragment {part!r}")
    if not pairs:
        raise GameParseError(f"Empty score string {raw!r}")
    return pairs
