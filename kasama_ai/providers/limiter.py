"""Sliding-window request limits, checked before any provider is called."""
from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable

from kasama_ai.core.config.models import RateLimitConfig
from kasama_ai.core.contracts.requests import AIRequest
from kasama_ai.core.exceptions import ProviderError

log = logging.getLogger("limiter")

SCOPES = ("global", "user", "agent")


@dataclass(frozen=True)
class LimitStatus:
    remaining: int | None  # None when limiting is disabled
    reset_in_seconds: float
    limited: bool
    scope: str | None = None  # first exhausted window


class RateLimiter:
    """
    Three windows per request: global, per user, and per (user, agent type).

    A request is counted against every window only when all of them have room.
    The request's priority scales each window's allowance.
    """

    def __init__(self, config: RateLimitConfig | None = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or RateLimitConfig()
        self._clock = clock
        self._windows: dict[str, deque[float]] = {}
        self._allowed = 0
        self._rejected = {scope: 0 for scope in SCOPES}

    def limits_for(self, request: AIRequest) -> list[tuple[str, str, int]]:
        """(scope, window key, allowance) for each window the request counts against."""
        c = self.config
        multiplier = c.priority_multipliers.get(request.priority, 1.0)
        windows = [
            ("global", "global", c.global_max_requests),
            ("user", f"user:{request.user_id}", c.per_user_max_requests),
            ("agent", f"agent:{request.user_id}:{request.agent_type.value}", c.per_agent_max_requests),
        ]
        return [(scope, key, max(1, math.floor(limit * multiplier))) for scope, key, limit in windows]

    def acquire(self, request: AIRequest) -> LimitStatus:
        """Count the request, or raise RATE_LIMIT_EXCEEDED without counting it."""
        if not self.config.enabled:
            return LimitStatus(remaining=None, reset_in_seconds=0.0, limited=False)
        now = self._clock()
        limits = self.limits_for(request)
        for scope, key, allowance in limits:
            window = self._window(key, now)
            if len(window) >= allowance:
                self._rejected[scope] += 1
                reset = window[0] + self.config.window_seconds - now
                log.warning(
                    "limited %s request_id=%s key=%s (%s/%s, resets in %.1fs)",
                    scope,
                    request.id,
                    key,
                    len(window),
                    allowance,
                    reset,
                )
                raise ProviderError(
                    f"rate limit exceeded for {scope} window; retry in {math.ceil(reset)}s",
                    code="RATE_LIMIT_EXCEEDED",
                    status_code=429,
                )
        for _, key, _ in limits:
            self._windows[key].append(now)
        self._allowed += 1
        return self._status(limits, now)

    def status(self, request: AIRequest) -> LimitStatus:
        """Where the request stands without counting it."""
        if not self.config.enabled:
            return LimitStatus(remaining=None, reset_in_seconds=0.0, limited=False)
        return self._status(self.limits_for(request), self._clock())

    def cleanup(self) -> int:
        """Drop windows with no requests left in them. Returns how many were removed."""
        now = self._clock()
        idle = [key for key in list(self._windows) if not self._window(key, now)]
        for key in idle:
            del self._windows[key]
        return len(idle)

    async def run_cleanup(self, interval_seconds: float | None = None) -> None:
        interval = interval_seconds or self.config.cleanup_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                removed = self.cleanup()
                if removed:
                    log.info("cleanup removed %s idle windows", removed)
            except Exception:
                log.exception("cleanup failed")

    def stats(self) -> dict:
        now = self._clock()
        users = []
        for key in list(self._windows):
            if key.startswith("user:"):
                count = len(self._window(key, now))
                if count:
                    users.append({"user_id": key[len("user:"):], "requests": count})
        users.sort(key=lambda u: u["requests"], reverse=True)
        return {
            "enabled": self.config.enabled,
            "windows": len(self._windows),
            "allowed": self._allowed,
            "rejected": sum(self._rejected.values()),
            "rejected_by_scope": dict(self._rejected),
            "top_users": users[:5],
        }

    def _status(self, limits: list[tuple[str, str, int]], now: float) -> LimitStatus:
        remaining: int | None = None
        reset = 0.0
        scope: str | None = None
        for name, key, allowance in limits:
            window = self._window(key, now)
            left = max(0, allowance - len(window))
            if remaining is None or left < remaining:
                remaining = left
            if left == 0 and scope is None:
                scope = name
            if window:
                reset = max(reset, window[0] + self.config.window_seconds - now)
        return LimitStatus(remaining=remaining, reset_in_seconds=round(reset, 3), limited=remaining == 0, scope=scope)

    def _window(self, key: str, now: float) -> deque[float]:
        window = self._windows.setdefault(key, deque())
        cutoff = now - self.config.window_seconds
        while window and window[0] <= cutoff:
            window.popleft()
        return window
