"""Turn free-form provider text into a validated output model."""
from __future__ import annotations

import json
from typing import Any, TypeVar

import pydantic
from pydantic import BaseModel

from kasama_ai.core.exceptions import MalformedOutputError

T = TypeVar("T", bound=BaseModel)


def strip_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        if lines[0].startswith("```"):
            lines = lines[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()


def _balanced_object(text: str) -> str | None:
    """First balanced {...} block in text, honoring strings."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return None


def extract_json(text: str) -> Any:
    cleaned = strip_fences(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass
    block = _balanced_object(cleaned)
    if block is None:
        raise MalformedOutputError("no JSON object in provider output", raw=text[:500])
    try:
        return json.loads(block)
    except json.JSONDecodeError as e:
        raise MalformedOutputError(f"invalid JSON in provider output: {e}", raw=text[:500]) from e


def parse_output(raw: Any, model: type[T]) -> T:
    data = raw if isinstance(raw, (dict, list)) else extract_json(str(raw))
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise MalformedOutputError(
            f"{model.__name__} validation failed: {e.error_count()} error(s): {e.errors()[0]['msg']}",
            raw=json.dumps(data, default=str)[:500] if not isinstance(raw, str) else raw[:500],
        ) from e
