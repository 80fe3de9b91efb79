"""Pending callbacks: callers parked until a webhook resolves or rejects them."""
from __future__ import annotations

import asyncio
import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from kasama_ai.core.config.models import CallbackConfig
from kasama_ai.core.exceptions import ProviderError, ProviderTimeout

log = logging.getLogger("callbacks")


@dataclass
class PendingCallback:
    request_id: str
    future: asyncio.Future
    registered_at: float
    expires_at: float
    agent_type: str | None = None
    provider: str | None = None
    callback_url: str | None = None

    @property
    def settled(self) -> bool:
        return self.future.done()


class CallbackRegistry:
    """
    Request id -> PendingCallback, O(1) lookup.

    An entry leaves the map exactly once: on resolve, reject, expiry or cancel.
    Processed webhook event ids are remembered (bounded) so replays are no-ops.
    """

    def __init__(self, config: CallbackConfig | None = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or CallbackConfig()
        self._clock = clock
        self._pending: dict[str, PendingCallback] = {}
        self._callback_urls: dict[str, tuple[str, float]] = {}
        self._processed: OrderedDict[str, None] = OrderedDict()

    def register(
        self,
        request_id: str,
        expiration_minutes: float | None = None,
        agent_type: Any = None,
        provider: str | None = None,
        callback_url: str | None = None,
    ) -> PendingCallback:
        existing = self._pending.get(request_id)
        if existing is not None and not existing.settled:
            if callback_url:
                existing.callback_url = callback_url
            return existing
        now = self._clock()
        minutes = expiration_minutes if expiration_minutes is not None else self.config.expiration_minutes
        pending = PendingCallback(
            request_id=request_id,
            future=asyncio.get_running_loop().create_future(),
            registered_at=now,
            expires_at=now + minutes * 60,
            agent_type=getattr(agent_type, "value", agent_type),
            provider=provider,
            callback_url=callback_url or self.callback_url_for(request_id),
        )
        self._pending[request_id] = pending
        log.info("registered request_id=%s provider=%s expires_in=%sm", request_id, provider, minutes)
        return pending

    def register_callback_url(self, request_id: str, callback_url: str, expiration_minutes: float | None = None) -> datetime:
        """Remember where to POST the result of a request; attaches to a pending entry if one exists."""
        minutes = expiration_minutes if expiration_minutes is not None else self.config.expiration_minutes
        self._callback_urls[request_id] = (callback_url, self._clock() + minutes * 60)
        pending = self._pending.get(request_id)
        if pending is not None:
            pending.callback_url = callback_url
        return datetime.now(timezone.utc) + timedelta(minutes=minutes)

    def callback_url_for(self, request_id: str) -> str | None:
        entry = self._callback_urls.get(request_id)
        if entry is None:
            return None
        url, expires_at = entry
        if self._clock() >= expires_at:
            self._callback_urls.pop(request_id, None)
            return None
        return url

    def now(self) -> float:
        return self._clock()

    def get(self, request_id: str) -> PendingCallback | None:
        return self._pending.get(request_id)

    def resolve(self, request_id: str, payload: Any) -> PendingCallback | None:
        """Settle with a result. Returns the removed entry, or None if nothing was pending."""
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.settled:
            return None
        pending.future.set_result(payload)
        log.info("resolved request_id=%s", request_id)
        return pending

    def reject(self, request_id: str, error: BaseException) -> PendingCallback | None:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.settled:
            return None
        pending.future.set_exception(error)
        log.info("rejected request_id=%s: %s", request_id, error)
        return pending

    def cancel(self, request_id: str) -> bool:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return False
        if not pending.settled:
            pending.future.cancel()
        return True

    def expire(self, request_id: str) -> bool:
        pending = self._pending.pop(request_id, None)
        if pending is None or pending.settled:
            return False
        pending.future.set_exception(
            ProviderTimeout(f"callback for {request_id} expired", provider=pending.provider, retryable=False)
        )
        log.warning("expired request_id=%s provider=%s", request_id, pending.provider)
        return True

    def sweep(self) -> int:
        """Reject every pending callback past its expiry. Returns how many were expired."""
        now = self._clock()
        due = [rid for rid, p in self._pending.items() if now >= p.expires_at]
        expired = sum(1 for rid in due if self.expire(rid))
        stale_urls = [rid for rid, (_, exp) in self._callback_urls.items() if now >= exp]
        for rid in stale_urls:
            self._callback_urls.pop(rid, None)
        return expired

    async def run_sweeper(self, interval_seconds: float | None = None) -> None:
        interval = interval_seconds or self.config.sweep_interval_seconds
        while True:
            await asyncio.sleep(interval)
            try:
                expired = self.sweep()
                if expired:
                    log.info("sweep expired %s pending callbacks", expired)
            except Exception:
                log.exception("sweep failed")

    def mark_processed(self, event_id: str) -> bool:
        """Record an event id. Returns False if it was already processed."""
        if event_id in self._processed:
            return False
        self._processed[event_id] = None
        while len(self._processed) > self.config.processed_event_capacity:
            self._processed.popitem(last=False)
        return True

    def reject_all(self, error: BaseException | None = None) -> int:
        """Reject everything still pending (used on shutdown)."""
        ids = list(self._pending)
        for rid in ids:
            self.reject(rid, error or ProviderError("service shutting down", code="PROVIDER_UNAVAILABLE"))
        return len(ids)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def callback_url_count(self) -> int:
        return len(self._callback_urls)

    @property
    def processed_count(self) -> int:
        return len(self._processed)
