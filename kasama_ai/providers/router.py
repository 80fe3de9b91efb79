"""Pick a provider for a request, bound each call, retry/fail over, and record metrics."""
from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable

from kasama_ai.callbacks.registry import CallbackRegistry
from kasama_ai.core.config.models import OrchestratorConfig, RetryConfig
from kasama_ai.core.contracts.requests import AIRequest, AIResponse, TokenUsage
from kasama_ai.core.exceptions import InternalError, ProviderError, ProviderTimeout
from kasama_ai.errors.classifier import ErrorClassifier, ErrorContext
from kasama_ai.providers.base import ProviderBackend, ProviderCall, ProviderResult, error_from_exception
from kasama_ai.providers.limiter import RateLimiter
from kasama_ai.providers.metrics import ProviderMetrics

log = logging.getLogger("router")


class ProviderRouter:
    def __init__(
        self,
        config: OrchestratorConfig,
        backends: dict[str, ProviderBackend],
        classifier: ErrorClassifier,
        metrics: ProviderMetrics,
        callbacks: CallbackRegistry,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        limiter: RateLimiter | None = None,
    ):
        self.config = config
        self.backends = backends
        self.classifier = classifier
        self.metrics = metrics
        self.callbacks = callbacks
        self._sleep = sleep
        self.limiter = limiter

    def candidates(self, request: AIRequest) -> list[ProviderBackend]:
        names = self.config.providers_for(request.agent_type.value, request.priority)
        if not names:
            names = list(self.backends)
        return [self.backends[n] for n in names if n in self.backends]

    def webhook_url(self, request_id: str) -> str:
        """Where a callback-mode provider reports the result of one request."""
        return f"{self.config.public_base_url.rstrip('/')}/webhooks/callback/{request_id}"

    def backoff_seconds(self, attempt: int, retry: RetryConfig | None = None) -> float:
        retry = retry or self.config.retry
        delay = min(retry.max_delay_seconds, retry.base_delay_seconds * retry.backoff_multiplier ** (attempt - 1))
        if retry.jitter and delay > 0:
            delay += random.uniform(0, delay * 0.1)
        return delay

    async def invoke(self, request: AIRequest, call: ProviderCall) -> AIResponse:
        """Run the call on the first provider that succeeds; raise the last ProviderError otherwise."""
        if self.limiter is not None:
            self.limiter.acquire(request)
        last_error: ProviderError | None = None
        for backend in self.candidates(request):
            attempt = 1
            while True:
                log.info("→ %s: %s request_id=%s attempt=%s", backend.name, request.agent_type.value, request.id, attempt)
                start = time.perf_counter()
                try:
                    if backend.callback_mode:
                        result = await self._invoke_callback(backend, request, call)
                    else:
                        result = await asyncio.wait_for(backend.complete(call), timeout=backend.config.timeout_seconds)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    latency_ms = int((time.perf_counter() - start) * 1000)
                    err = error_from_exception(backend.name, e)
                    if isinstance(e, asyncio.TimeoutError):
                        err = ProviderTimeout(
                            f"{backend.name} exceeded {backend.config.timeout_seconds}s", provider=backend.name
                        )
                    await self.metrics.record(
                        backend.name,
                        request.id,
                        "timeout" if err.code == "TIMEOUT" else "failed",
                        latency_ms=latency_ms,
                        agent_type=request.agent_type,
                        error_code=err.code,
                    )
                    log.warning("← %s: %s (%s ms) request_id=%s", backend.name, err.code, latency_ms, request.id)
                    decision = self.classifier.classify(
                        err,
                        ErrorContext(
                            agent_type=request.agent_type.value,
                            request_id=request.id,
                            provider=backend.name,
                            operation=request.operation,
                            attempt=attempt,
                            max_attempts=backend.config.max_attempts,
                        ),
                    )
                    last_error = err
                    if decision.action == "retry":
                        await self._sleep(self.backoff_seconds(attempt))
                        attempt += 1
                        continue
                    break
                latency_ms = int((time.perf_counter() - start) * 1000)
                record = await self.metrics.record(
                    backend.name,
                    request.id,
                    "succeeded",
                    usage=result.usage,
                    latency_ms=latency_ms,
                    agent_type=request.agent_type,
                )
                log.info(
                    "← %s: %s tokens (%s ms) request_id=%s",
                    backend.name,
                    result.usage.total_tokens,
                    latency_ms,
                    request.id,
                )
                return AIResponse(
                    request_id=request.id,
                    agent_type=request.agent_type,
                    output=result.content,
                    usage=result.usage,
                    provider=result.provider,
                    model=result.model,
                    latency_ms=latency_ms,
                    cost=record.cost,
                )
        if last_error is None:
            raise InternalError(f"no provider configured for {request.agent_type.value}")
        raise last_error

    async def _invoke_callback(self, backend: ProviderBackend, request: AIRequest, call: ProviderCall) -> ProviderResult:
        pending = self.callbacks.register(request.id, agent_type=request.agent_type, provider=backend.name)
        try:
            await asyncio.wait_for(
                backend.dispatch(call, callback_url=self.webhook_url(request.id)),
                timeout=backend.config.timeout_seconds,
            )
        except BaseException:
            self.callbacks.cancel(request.id)
            raise
        await self.metrics.record(backend.name, request.id, "dispatched", agent_type=request.agent_type)
        remaining = max(0.0, pending.expires_at - self.callbacks.now())
        try:
            payload = await asyncio.wait_for(asyncio.shield(pending.future), timeout=remaining)
        except asyncio.TimeoutError:
            if self.callbacks.expire(request.id):
                pending.future.exception()  # consumed here; the caller gets the timeout below
            raise ProviderTimeout(f"callback for {request.id} expired", provider=backend.name, retryable=False)
        return ProviderResult(
            content=payload.get("output", ""),
            usage=payload.get("usage") or TokenUsage(),
            model=payload.get("model") or backend.model,
            provider=backend.name,
        )
