from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from buzzline.config.settings import GameConfig
from buzzline.game.models import Board, Category, Clue


def load_game_config(path: str = "config.yml") -> GameConfig:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict):
        raise ValueError("config.yml must contain a top-level mapping")

    normalized = _normalize_config_values(data)
    return GameConfig(**normalized)


def _normalize_config_values(data: dict[str, Any]) -> dict[str, Any]:
    values = dict(data)
    if "request_retry_backoff_seconds" in values:
        raw = values["request_retry_backoff_seconds"]
        if isinstance(raw, list):
            values["request_retry_backoff_seconds"] = tuple(float(x) for x in raw)
    if "player_names" in values:
        raw_names = values["player_names"]
        if not isinstance(raw_names, list):
            raise ValueError("config.yml field 'player_names' must be a list of names")
        names = [str(name).strip() for name in raw_names if name is not None and str(name).strip()]
        if not names:
            raise ValueError("config.yml field 'player_names' must name at least one player")
        values["player_names"] = names
    if "max_selection_retries" in values and int(values["max_selection_retries"]) < 0:
        raise ValueError("config.yml field 'max_selection_retries' cannot be negative")
    return values


def load_board(path: str = "board.yml") -> Board:
    """Load a board file: ``categories`` of ``title`` plus ``clues``.

    Clues without an explicit ``value`` take the row value for their
    position, top row first.
    """
    board_path = Path(path)
    if not board_path.exists():
        raise FileNotFoundError(f"Board file not found: {board_path}")

    with board_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if not isinstance(data, dict) or not isinstance(data.get("categories"), list):
        raise ValueError("board file must contain a 'categories' list")

    board = Board()
    if "row_values" in data:
        board.row_values = tuple(int(value) for value in data["row_values"])
    for raw in data["categories"]:
        board.categories.append(_category_from(raw, board.row_values))
    if not board.categories:
        raise ValueError("board file must contain at least one category")
    return board


def _category_from(raw: Any, row_values: tuple[int, ...]) -> Category:
    if not isinstance(raw, dict) or not str(raw.get("title") or "").strip():
        raise ValueError("every board category needs a title")
    title = str(raw["title"]).strip()
    raw_clues = raw.get("clues") or []
    if len(raw_clues) > len(row_values):
        raise ValueError(f"category '{title}' has more clues than rows")

    clues: list[Clue] = []
    for position, item in enumerate(raw_clues):
        if not isinstance(item, dict) or not item.get("question") or not item.get("answer"):
            raise ValueError(f"clue {position + 1} in '{title}' needs a question and an answer")
        value = int(item.get("value", row_values[position]))
        clues.append(Clue(question=str(item["question"]), answer=str(item["answer"]), value=value))
    return Category(title=title, clues=clues)
