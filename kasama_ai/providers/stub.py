"""Deterministic offline provider for local development and tests."""
from __future__ import annotations

import asyncio
from typing import Callable, Union

from kasama_ai.core.config.models import ProviderConfig
from kasama_ai.core.contracts.requests import TokenUsage
from kasama_ai.providers.base import ProviderBackend, ProviderCall, ProviderResult

# A scripted reply: literal text, an exception to raise, or a function of the call.
Reply = Union[str, BaseException, Callable[[ProviderCall], str]]

DEFAULT_REPLY = "This is a stubbed response."


class StubProvider(ProviderBackend):
    """
    Answers from a script keyed by agent type ("*" matches any).

    A list value is consumed one reply per call; the last reply repeats.
    """

    def __init__(
        self,
        config: ProviderConfig,
        replies: dict[str, Reply | list[Reply]] | None = None,
        delay_seconds: float = 0.0,
    ):
        super().__init__(config)
        self.replies = dict(replies or {})
        self.delay_seconds = delay_seconds
        self.calls: list[ProviderCall] = []
        self.dispatched: list[tuple[ProviderCall, str | None]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def script(self, agent_type: str, reply: Reply | list[Reply]) -> None:
        self.replies[getattr(agent_type, "value", agent_type)] = reply

    async def complete(self, call: ProviderCall) -> ProviderResult:
        self.calls.append(call)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            reply = self._next_reply(call)
            if isinstance(reply, BaseException):
                raise reply
            text = reply(call) if callable(reply) else reply
        finally:
            self.in_flight -= 1
        return ProviderResult(
            content=text,
            usage=TokenUsage.of(len(call.prompt.split()), len(text.split())),
            model=self.model,
            provider=self.name,
        )

    async def dispatch(self, call: ProviderCall, callback_url: str | None = None) -> None:
        self.calls.append(call)
        self.dispatched.append((call, callback_url))
        reply = self._next_reply(call)
        if isinstance(reply, BaseException):
            raise reply

    def _next_reply(self, call: ProviderCall) -> Reply:
        key = call.agent_type if call.agent_type in self.replies else "*"
        reply = self.replies.get(key, DEFAULT_REPLY)
        if isinstance(reply, list):
            if not reply:
                return DEFAULT_REPLY
            return reply.pop(0) if len(reply) > 1 else reply[0]
        return reply
