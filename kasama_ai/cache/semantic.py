"""In-memory semantic cache of provider responses keyed by request fingerprint."""
from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Callable

from kasama_ai.cache.fingerprint import fingerprint
from kasama_ai.core.config.models import CacheConfig
from kasama_ai.core.contracts.requests import AIRequest, AIResponse

log = logging.getLogger("cache")


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    agent_type: str
    response: AIResponse
    created_at: float
    ttl_seconds: float

    def expired(self, now: float) -> bool:
        return now >= self.created_at + self.ttl_seconds


@dataclass
class _Usage:
    hits: int = 0
    last_access: float = 0.0


@dataclass
class CacheStats:
    entries: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0
    expirations: int = 0
    errors: int = 0
    by_agent: dict[str, int] = field(default_factory=dict)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return round(self.hits / total, 4) if total else 0.0

    def as_dict(self) -> dict:
        return {
            "entries": self.entries,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hit_rate,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "errors": self.errors,
            "by_agent": dict(self.by_agent),
        }


class SemanticCache:
    """
    Fingerprint -> response store with per-entry TTL.

    Reads and writes never await between lookup and mutation, so concurrent
    handlers on one event loop cannot interleave inside an operation.
    Entries are replaced, never mutated; hit bookkeeping lives beside them.
    """

    def __init__(
        self,
        config: CacheConfig | None = None,
        ttl_by_agent: dict[str, float] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self.ttl_by_agent = dict(ttl_by_agent or {})
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._usage: dict[str, _Usage] = {}
        self._stats = CacheStats()

    def key_for(self, request: AIRequest) -> str:
        return fingerprint(request.agent_type, request.input)

    def ttl_for(self, agent_type: str) -> float:
        agent_type = getattr(agent_type, "value", agent_type)
        return float(self.ttl_by_agent.get(agent_type, self.config.default_ttl_seconds))

    async def get(self, request: AIRequest) -> AIResponse | None:
        if not self.config.enabled:
            return None
        try:
            key = self.key_for(request)
            now = self._clock()
            entry = self._entries.get(key)
            if entry is None:
                self._stats.misses += 1
                return None
            if entry.expired(now):
                self._stats.misses += 1
                return None
            usage = self._usage.setdefault(key, _Usage())
            usage.hits += 1
            usage.last_access = now
            self._stats.hits += 1
            log.info("HIT %s %s… request_id=%s", entry.agent_type, key[:12], request.id)
            return entry.response.model_copy(update={"request_id": request.id, "cache_hit": True})
        except Exception as e:
            self._stats.errors += 1
            log.warning("get failed, treating as miss request_id=%s: %s", request.id, e)
            return None

    async def set(self, request: AIRequest, response: AIResponse, ttl_seconds: float | None = None) -> None:
        if not self.config.enabled:
            return
        try:
            key = self.key_for(request)
            now = self._clock()
            agent_type = getattr(request.agent_type, "value", request.agent_type)
            self._drop_expired(now)
            if key not in self._entries and len(self._entries) >= self.config.max_entries:
                self._evict()
            ttl = ttl_seconds if ttl_seconds is not None else self.ttl_for(agent_type)
            self._entries[key] = CacheEntry(
                fingerprint=key,
                agent_type=agent_type,
                response=response.model_copy(update={"cache_hit": False}),
                created_at=now,
                ttl_seconds=float(ttl),
            )
            self._usage[key] = _Usage(last_access=now)
            log.debug("SET %s %s… ttl=%ss", agent_type, key[:12], ttl)
        except Exception as e:
            self._stats.errors += 1
            log.warning("set failed, skipping request_id=%s: %s", request.id, e)

    def invalidate(self, agent_type: str | None = None) -> int:
        """Remove all entries, or all entries of one agent type. Returns removed count."""
        agent_type = getattr(agent_type, "value", agent_type)
        keys = [k for k, e in self._entries.items() if agent_type is None or e.agent_type == agent_type]
        for k in keys:
            self._remove(k)
        if keys:
            log.info("invalidated %s entries (agent=%s)", len(keys), agent_type or "*")
        return len(keys)

    def clear(self) -> None:
        self._entries.clear()
        self._usage.clear()

    def sweep(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        return self._drop_expired(self._clock())

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        interval = interval_seconds or self.config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                removed = self.sweep()
                if removed:
                    log.info("sweep removed %s expired entries", removed)
            except Exception:
                log.exception("sweep failed")

    def stats(self) -> dict:
        self._stats.entries = len(self._entries)
        by_agent: dict[str, int] = {}
        for e in self._entries.values():
            by_agent[e.agent_type] = by_agent.get(e.agent_type, 0) + 1
        self._stats.by_agent = by_agent
        return self._stats.as_dict()

    def __len__(self) -> int:
        return len(self._entries)

    def _drop_expired(self, now: float) -> int:
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for k in expired:
            self._remove(k)
        self._stats.expirations += len(expired)
        return len(expired)

    def _evict(self) -> None:
        # Lowest (hits, last_access) first; removes 10% of capacity, at least one entry.
        count = max(1, self.config.max_entries // 10)
        ranked = sorted(
            self._entries,
            key=lambda k: (self._usage.get(k, _Usage()).hits, self._usage.get(k, _Usage()).last_access),
        )
        for k in ranked[:count]:
            self._remove(k)
        self._stats.evictions += min(count, len(ranked))
        log.info("evicted %s entries (capacity %s)", min(count, len(ranked)), self.config.max_entries)

    def _remove(self, key: str) -> None:
        self._entries.pop(key, None)
        self._usage.pop(key, None)
