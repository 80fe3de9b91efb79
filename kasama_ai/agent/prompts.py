"""Small helpers shared by the per-agent prompt builders."""
from __future__ import annotations

import json
from typing import Any

JSON_ONLY = "Respond with a single JSON object only, no markdown, using exactly the keys shown."


def render(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def context_section(context: dict[str, Any] | None) -> str:
    if not context:
        return ""
    return "\nSITUATIONAL CONTEXT:\n" + render(context) + "\n"


def respond_with(shape: dict[str, Any]) -> str:
    return f"\n{JSON_ONLY}\n{render(shape)}"


def bullet_list(items: list[str], empty: str = "none provided") -> str:
    if not items:
        return f"- {empty}"
    return "\n".join(f"- {i}" for i in items)
