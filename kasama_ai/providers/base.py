"""Provider backend interface and the call/result types passed through the router."""
from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

import httpx

from kasama_ai.core.config.models import ProviderConfig
from kasama_ai.core.contracts.requests import Interaction, TokenUsage
from kasama_ai.core.exceptions import ProviderError, ProviderTimeout
from kasama_ai.errors.classifier import status_to_code


@dataclass(frozen=True)
class ProviderCall:
    request_id: str
    agent_type: str
    system: str
    prompt: str
    max_tokens: int
    temperature: float
    history: list[Interaction] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderResult:
    content: str | dict | list  # callback results may arrive already parsed
    usage: TokenUsage
    model: str
    provider: str


class ProviderBackend(ABC):
    """One upstream model provider. Sync backends answer `complete`; callback backends `dispatch`."""

    def __init__(self, config: ProviderConfig):
        self.config = config

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def model(self) -> str:
        return self.config.model

    @property
    def callback_mode(self) -> bool:
        return self.config.mode == "callback"

    @abstractmethod
    async def complete(self, call: ProviderCall) -> ProviderResult:
        """Run the completion and return its text and usage."""

    async def dispatch(self, call: ProviderCall, callback_url: str | None = None) -> None:
        """Submit the call for asynchronous completion; the result arrives via webhook."""
        raise ProviderError(f"{self.name} does not support callback completion", provider=self.name)

    async def aclose(self) -> None:
        return None


def error_from_response(provider: str, response: httpx.Response) -> ProviderError:
    code, retryable, status = status_to_code(response.status_code)
    body = response.text[:300]
    return ProviderError(
        f"{provider} HTTP {response.status_code}: {body}",
        provider=provider,
        code=code,
        retryable=retryable,
        status_code=status,
        upstream_status=response.status_code,
    )


def error_from_exception(provider: str, exc: BaseException) -> ProviderError:
    """Wrap a client-library exception as a ProviderError, keeping retryability."""
    if isinstance(exc, ProviderError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)) or "timeout" in type(exc).__name__.lower():
        return ProviderTimeout(f"{provider} timed out: {exc}", provider=provider)
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        code, retryable, ours = status_to_code(status)
        return ProviderError(
            f"{provider} HTTP {status}: {exc}",
            provider=provider,
            code=code,
            retryable=retryable,
            status_code=ours,
            upstream_status=status,
        )
    if isinstance(exc, httpx.TransportError) or "connection" in type(exc).__name__.lower():
        return ProviderError(f"{provider} unreachable: {exc}", provider=provider, retryable=True)
    return ProviderError(f"{provider} failed: {exc}", provider=provider, code="UNKNOWN_ERROR")
