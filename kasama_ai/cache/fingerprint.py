"""Deterministic request fingerprints: agent type + normalized payload."""
from __future__ import annotations

import hashlib
import json
from typing import Any

TRANSIENT_KEYS = frozenset({"timestamp", "created_at", "updated_at", "requested_at", "request_id", "trace_id"})


def normalize(value: Any) -> Any:
    """Drop transient keys at any depth and render integral floats as ints."""
    if isinstance(value, dict):
        return {str(k): normalize(v) for k, v in value.items() if str(k) not in TRANSIENT_KEYS}
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def fingerprint(agent_type: str, payload: dict[str, Any]) -> str:
    canonical = json.dumps(
        {"agent_type": getattr(agent_type, "value", agent_type), "payload": normalize(payload)},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
