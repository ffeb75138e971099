from __future__ import annotations

import re
from collections.abc import Sequence

from buzzline.game.models import Board, SelectionResult
from buzzline.llm.json_utils import coerce_int, try_extract_json_object


EXACT_MATCH_SCORE = 100
MIN_CATEGORY_SCORE = 2
MIN_WORD_LENGTH = 3
MIN_PREFIX_LENGTH = 4

_AMOUNT_RE = re.compile(r"\$?(\d{3,4})")
_FOR_AMOUNT_RE = re.compile(r"for\s+\$?(\d{3,4})")
_SHORTHAND_RE = re.compile(r"(?<![\d$])(10|[2-9])(?!\d)")
_THOUSANDS_SEPARATOR_RE = re.compile(r"(?<=\d),(?=\d{3}\b)")
_TITLE_SPLIT_RE = re.compile(r"[\s\-_]+")
_REPEAT_RE = re.compile(r"\b(same|again|more)\b")

WORD_VALUES: tuple[tuple[str, int], ...] = (
    ("two hundred", 200),
    ("four hundred", 400),
    ("six hundred", 600),
    ("eight hundred", 800),
    ("one thousand", 1000),
    ("a thousand", 1000),
    ("thousand", 1000),
    ("two", 200),
    ("four", 400),
    ("six", 600),
    ("eight", 800),
)
_WORD_VALUE_RES = tuple((re.compile(rf"\b{re.escape(words)}\b"), value) for words, value in WORD_VALUES)


def normalize_utterance(text: str | None) -> str:
    lowered = (text or "").lower().strip()
    return _THOUSANDS_SEPARATOR_RE.sub("", lowered)


def extract_value(text: str | None, row_values: Sequence[int]) -> int | None:
    """Return the dollar amount named in ``text`` if it is a valid row value.

    Patterns are tried in priority order: ``$NNN``/``NNN``, ``for NNN``,
    standalone digits 2-10 read as hundreds, then the spoken-number table.
    The first match decides; an amount that is not on the board fails the
    parse rather than falling through to a later match.
    """
    utterance = normalize_utterance(text)
    if not utterance:
        return None
    found = _first_amount(utterance)
    if found is None or found not in set(row_values):
        return None
    return found


def _first_amount(utterance: str) -> int | None:
    for pattern in (_AMOUNT_RE, _FOR_AMOUNT_RE):
        match = pattern.search(utterance)
        if match:
            return int(match.group(1))
    match = _SHORTHAND_RE.search(utterance)
    if match:
        return int(match.group(1)) * 100
    for pattern, value in _WORD_VALUE_RES:
        if pattern.search(utterance):
            return value
    return None


def score_category(utterance: str, title: str) -> int:
    title = title.lower().strip()
    if not title:
        return 0
    if title in utterance:
        return EXACT_MATCH_SCORE

    score = 0
    for word in _TITLE_SPLIT_RE.split(title):
        if len(word) < MIN_WORD_LENGTH:
            continue
        if word in utterance:
            score += len(word)
            continue
        for length in range(min(len(word), len(utterance)), MIN_PREFIX_LENGTH - 1, -1):
            if word[:length] in utterance:
                score += length
                break
    return score


def wants_same_category(text: str | None) -> bool:
    return bool(_REPEAT_RE.search(normalize_utterance(text)))


def match_category(text: str | None, titles: Sequence[str], last_category_index: int = -1) -> int | None:
    utterance = normalize_utterance(text)
    if not utterance:
        return None
    if 0 <= last_category_index < len(titles) and wants_same_category(utterance):
        return last_category_index

    for index, title in enumerate(titles):
        if title.strip() and title.lower().strip() in utterance:
            return index

    best_index = -1
    best_score = 0
    for index, title in enumerate(titles):
        score = score_category(utterance, title)
        if score > best_score:
            best_score = score
            best_index = index
    if best_score >= MIN_CATEGORY_SCORE:
        return best_index
    return None


def parse_selection(text: str | None, board: Board, last_category_index: int = -1) -> SelectionResult | None:
    value = extract_value(text, board.row_values)
    if value is None:
        return None
    category_index = match_category(text, board.category_titles(), last_category_index)
    if category_index is None:
        return None
    return _available(board, category_index, value, stage=1)


def build_llm_prompt(board: Board, last_category_index: int = -1) -> str:
    lines = [
        "You map a spoken trivia-board selection to a category and a dollar value.",
        "The text was transcribed from speech and may contain transcription errors;",
        "correct them fuzzily to the closest category title.",
        "",
        "Categories:",
    ]
    for number, title in enumerate(board.category_titles(), start=1):
        lines.append(f"{number}. {title}")
    lines.append("")
    lines.append("Valid values: " + ", ".join(str(value) for value in board.row_values))
    if 0 <= last_category_index < len(board.categories):
        lines.append(
            f'If the player says "same", "again" or "more", use category {last_category_index + 1}.'
        )
    lines.append("")
    lines.append('Respond with ONLY a JSON object: {"category_index": <1-based number>, "value": <dollar value>}')
    return "\n".join(lines)


def parse_llm_selection(text: str | None, board: Board) -> SelectionResult | None:
    data = try_extract_json_object(text)
    if data is None:
        return None
    number = coerce_int(data.get("category_index"))
    value = coerce_int(data.get("value"))
    if number is None or value is None:
        return None
    return _available(board, number - 1, value, stage=2)


def _available(board: Board, category_index: int, value: int, stage: int) -> SelectionResult | None:
    if category_index < 0 or category_index >= len(board.categories):
        return None
    row_index = board.row_index_for_value(value)
    if row_index < 0:
        return None
    if board.get_clue(category_index, row_index) is None:
        return None
    return SelectionResult(category_index=category_index, row_index=row_index, value=value, stage=stage)
