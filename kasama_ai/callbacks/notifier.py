"""POST settled request results to caller-registered callback URLs."""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

log = logging.getLogger("callbacks.notify")


class CallbackNotifier:
    def __init__(self, timeout_seconds: float = 10.0, transport: httpx.AsyncBaseTransport | None = None):
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()
        self.delivered = 0
        self.failed = 0

    def notify(self, callback_url: str, request_id: str, payload: dict[str, Any]) -> asyncio.Task:
        """Schedule delivery in the background; failures are logged, never raised."""
        task = asyncio.create_task(self.deliver(callback_url, request_id, payload))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def deliver(self, callback_url: str, request_id: str, payload: dict[str, Any]) -> bool:
        body = {"request_id": request_id, **payload}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                r = await client.post(callback_url, json=body)
            if r.status_code >= 400:
                self.failed += 1
                log.warning("← %s: HTTP %s request_id=%s", callback_url, r.status_code, request_id)
                return False
            self.delivered += 1
            log.info("← %s: delivered request_id=%s", callback_url, request_id)
            return True
        except Exception as e:
            self.failed += 1
            log.warning("← %s: failed request_id=%s: %s", callback_url, request_id, e)
            return False

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
