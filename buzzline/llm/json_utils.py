from __future__ import annotations

import ast
import json
import re
from typing import Any


_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)
_FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(\{.*\})\s*```", re.DOTALL | re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"-?\d[\d,]*")


def extract_json_object(text: str) -> dict[str, Any]:
    value = try_extract_json_object(text)
    if value is not None:
        return value
    raise ValueError("No JSON object found in model response")


def try_extract_json_object(text: str | None) -> dict[str, Any] | None:
    text = (text or "").strip()
    if not text:
        return None
    try:
        value = json.loads(text)
        if isinstance(value, dict):
            return value
    except json.JSONDecodeError:
        pass

    fenced_match = _FENCED_JSON_RE.search(text)
    if fenced_match:
        parsed = _parse_dict_like(fenced_match.group(1))
        if parsed is not None:
            return parsed

    match = _JSON_OBJECT_RE.search(text)
    if match:
        parsed = _parse_dict_like(match.group(0))
        if parsed is not None:
            return parsed

    return None


def coerce_int(value: Any) -> int | None:
    """Read an integer field the way models tend to write them.

    Accepts ints, integral floats and strings such as ``"3"``, ``"$600"`` or
    ``"1,000"``. Booleans and anything else return None.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        match = _LEADING_INT_RE.search(value.replace("$", ""))
        if match:
            return int(match.group(0).replace(",", ""))
    return None


def coerce_bool(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "correct"}:
            return True
        if lowered in {"false", "no", "incorrect"}:
            return False
    return None


def _parse_dict_like(candidate: str) -> dict[str, Any] | None:
    try:
        value = json.loads(candidate)
        if isinstance(value, dict):
            return value
    except json.JSONDecodeError:
        pass

    try:
        value = ast.literal_eval(candidate)
        if isinstance(value, dict):
            return {str(k): v for k, v in value.items()}
    except (ValueError, SyntaxError):
        pass

    return None
