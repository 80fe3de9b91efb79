"""Append-only provider metrics with per-provider summaries and an optional archive sink."""
from __future__ import annotations

import logging
from collections import deque
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from kasama_ai.core.contracts.requests import TokenUsage

log = logging.getLogger("metrics")


class ProviderMetricsRecord(BaseModel):
    provider: str
    request_id: str
    agent_type: str | None = None
    status: str  # "succeeded" | "failed" | "timeout" | "dispatched" | "usage"
    usage: TokenUsage = Field(default_factory=TokenUsage)
    latency_ms: int | None = None
    cost: float = 0.0
    error_code: str | None = None
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


MetricsSink = Callable[[ProviderMetricsRecord], Awaitable[None]]


class ProviderMetrics:
    def __init__(
        self,
        cost_per_token: dict[str, float] | None = None,
        capacity: int = 10000,
        sink: MetricsSink | None = None,
    ):
        self.cost_per_token = dict(cost_per_token or {})
        self._records: deque[ProviderMetricsRecord] = deque(maxlen=capacity)
        self._sink = sink

    def cost_for(self, provider: str, usage: TokenUsage) -> float:
        return round(usage.total_tokens * self.cost_per_token.get(provider, 0.0), 6)

    async def record(
        self,
        provider: str,
        request_id: str,
        status: str,
        usage: TokenUsage | None = None,
        latency_ms: int | None = None,
        agent_type: Any = None,
        error_code: str | None = None,
    ) -> ProviderMetricsRecord:
        usage = usage or TokenUsage()
        rec = ProviderMetricsRecord(
            provider=provider,
            request_id=request_id,
            agent_type=getattr(agent_type, "value", agent_type),
            status=status,
            usage=usage,
            latency_ms=latency_ms,
            cost=self.cost_for(provider, usage),
            error_code=error_code,
        )
        self._records.append(rec)
        if self._sink is not None:
            try:
                await self._sink(rec)
            except Exception as e:
                log.warning("sink write failed request_id=%s: %s", request_id, e)
        return rec

    def records(self, provider: str | None = None, request_id: str | None = None) -> list[ProviderMetricsRecord]:
        return [
            r
            for r in self._records
            if (provider is None or r.provider == provider) and (request_id is None or r.request_id == request_id)
        ]

    def summary(self) -> dict[str, dict[str, Any]]:
        out: dict[str, dict[str, Any]] = {}
        for r in self._records:
            s = out.setdefault(
                r.provider,
                {"requests": 0, "failures": 0, "tokens": 0, "cost": 0.0, "avg_latency_ms": None, "_lat": []},
            )
            if r.status in ("succeeded", "failed", "timeout"):
                s["requests"] += 1
            if r.status in ("failed", "timeout"):
                s["failures"] += 1
            s["tokens"] += r.usage.total_tokens
            s["cost"] = round(s["cost"] + r.cost, 6)
            if r.latency_ms is not None:
                s["_lat"].append(r.latency_ms)
        for s in out.values():
            lat = s.pop("_lat")
            s["avg_latency_ms"] = int(sum(lat) / len(lat)) if lat else None
        return out

    def __len__(self) -> int:
        return len(self._records)
