"""Verify, parse and dispatch provider webhooks onto pending callbacks."""
from __future__ import annotations

import json
import logging
from typing import Any

import pydantic
from pydantic import BaseModel

from kasama_ai.callbacks.notifier import CallbackNotifier
from kasama_ai.callbacks.registry import CallbackRegistry, PendingCallback
from kasama_ai.core.contracts.requests import TokenUsage
from kasama_ai.core.contracts.webhooks import (
    AnthropicEvent,
    CallbackDelivery,
    CallbackRegistration,
    CallbackRegistrationResponse,
    GenericEvent,
    OpenAIEvent,
    WebhookOutcome,
    WebhookStats,
)
from kasama_ai.core.exceptions import NotFoundError, ProviderError, ValidationError
from kasama_ai.providers.metrics import ProviderMetrics
from kasama_ai.webhooks.signatures import verify_signature

log = logging.getLogger("webhooks")

PROVIDERS = ("anthropic", "openai", "generic")

# upstream error type -> normalized code
_FAILURE_CODES = {
    "rate_limit_error": "RATE_LIMIT_EXCEEDED",
    "rate_limit_exceeded": "RATE_LIMIT_EXCEEDED",
    "overloaded_error": "MODEL_OVERLOADED",
    "authentication_error": "AUTHENTICATION_FAILED",
    "invalid_api_key": "AUTHENTICATION_FAILED",
    "insufficient_quota": "INSUFFICIENT_CREDITS",
    "timeout": "TIMEOUT",
}


def _parse(model: type[BaseModel], body: bytes) -> Any:
    try:
        return model.model_validate_json(body)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        raise ValidationError(f"invalid {model.__name__} payload: {first['msg']} at {first['loc']}") from e


class WebhookReceiver:
    def __init__(
        self,
        registry: CallbackRegistry,
        metrics: ProviderMetrics,
        notifier: CallbackNotifier | None = None,
        secrets: dict[str, str | None] | None = None,
        public_base_url: str = "http://127.0.0.1:8000",
    ):
        self.registry = registry
        self.metrics = metrics
        self.notifier = notifier
        self.secrets = dict(secrets or {})
        self.public_base_url = public_base_url.rstrip("/")

    async def handle(self, provider: str, body: bytes, signature: str | None) -> WebhookOutcome:
        if provider not in PROVIDERS:
            raise NotFoundError(f"no webhook endpoint for provider '{provider}'")
        verify_signature(self.secrets.get(provider), body, signature, allow_bare_hex=provider == "openai")
        if provider == "anthropic":
            return await self.handle_anthropic(_parse(AnthropicEvent, body))
        if provider == "openai":
            return await self.handle_openai(_parse(OpenAIEvent, body))
        return await self.handle_generic(_parse(GenericEvent, body))

    async def handle_anthropic(self, event: AnthropicEvent) -> WebhookOutcome:
        data = event.data
        usage = TokenUsage.of(data.usage.input_tokens, data.usage.output_tokens) if data.usage else TokenUsage()
        outcome = WebhookOutcome(status="processed", event_id=event.id, event_type=event.type, request_id=data.id)
        if not self.registry.mark_processed(event.id):
            return self._duplicate(outcome)
        if event.type == "message.completed" and data.status == "completed":
            outcome.resolved = await self._succeed("anthropic", data.id, data.result, usage, data.model)
        elif event.type in ("message.completed", "message.failed"):
            reason = data.error.message if data.error else f"message {data.status}"
            code = _FAILURE_CODES.get(data.error.type, "PROVIDER_UNAVAILABLE") if data.error else "PROVIDER_UNAVAILABLE"
            outcome.resolved = await self._fail("anthropic", data.id, reason, code, usage)
        elif event.type == "usage.updated":
            await self._usage("anthropic", data.id, usage)
        else:
            outcome.status = "ignored"
        log.info("anthropic %s %s request_id=%s (%s)", event.type, event.id, data.id, outcome.status)
        return outcome

    async def handle_openai(self, event: OpenAIEvent) -> WebhookOutcome:
        data = event.data
        usage = (
            TokenUsage(
                input_tokens=data.usage.prompt_tokens,
                output_tokens=data.usage.completion_tokens,
                total_tokens=data.usage.total_tokens,
            )
            if data.usage
            else TokenUsage()
        )
        outcome = WebhookOutcome(status="processed", event_id=event.id, event_type=event.type, request_id=data.id)
        if not self.registry.mark_processed(event.id):
            return self._duplicate(outcome)
        if event.type == "completion.succeeded" and data.status == "succeeded":
            outcome.resolved = await self._succeed("openai", data.id, data.output, usage, data.model)
        elif event.type in ("completion.succeeded", "completion.failed"):
            reason = data.error.message if data.error else f"completion {data.status}"
            upstream = data.error.code or data.error.type if data.error else None
            code = _FAILURE_CODES.get(upstream or "", "PROVIDER_UNAVAILABLE")
            outcome.resolved = await self._fail("openai", data.id, reason, code, usage)
        elif event.type == "usage.updated":
            await self._usage("openai", data.id, usage)
        else:
            outcome.status = "ignored"
        log.info("openai %s %s request_id=%s (%s)", event.type, event.id, data.id, outcome.status)
        return outcome

    async def handle_generic(self, event: GenericEvent) -> WebhookOutcome:
        event_id = event.event_id or f"{event.request_id}:{event.status}"
        usage = TokenUsage.of(event.usage.input_tokens, event.usage.output_tokens) if event.usage else TokenUsage()
        provider = event.provider
        outcome = WebhookOutcome(
            status="processed", event_id=event_id, event_type=event.status, request_id=event.request_id
        )
        if not self.registry.mark_processed(event_id):
            return self._duplicate(outcome)
        if event.status == "completed":
            outcome.resolved = await self._succeed(provider, event.request_id, event.data, usage, None)
        elif event.status == "failed":
            reason = event.error or "provider reported failure"
            outcome.resolved = await self._fail(provider, event.request_id, reason, "PROVIDER_UNAVAILABLE", usage)
        else:
            log.info("generic %s request_id=%s still processing", provider, event.request_id)
        return outcome

    def register_callback(self, registration: CallbackRegistration) -> CallbackRegistrationResponse:
        expires = self.registry.register_callback_url(
            registration.request_id, str(registration.callback_url), registration.expiration_minutes
        )
        log.info("callback url registered request_id=%s", registration.request_id)
        return CallbackRegistrationResponse(
            request_id=registration.request_id,
            webhook_url=f"{self.public_base_url}/webhooks/callback/{registration.request_id}",
            expires_at=expires.isoformat(),
        )

    async def deliver_callback(self, request_id: str, body: bytes, signature: str | None) -> WebhookOutcome:
        """Result pushed for one request id, signed with the generic secret."""
        verify_signature(self.secrets.get("generic"), body, signature)
        delivery = _parse(CallbackDelivery, body)
        pending = self.registry.get(request_id)
        if pending is None:
            raise NotFoundError(f"no pending request {request_id}")
        usage = TokenUsage.of(delivery.usage.input_tokens, delivery.usage.output_tokens) if delivery.usage else TokenUsage()
        provider = pending.provider or "custom"
        if delivery.success:
            resolved = await self._succeed(provider, request_id, delivery.data, usage, None)
        else:
            reason = delivery.error or "callback reported failure"
            resolved = await self._fail(provider, request_id, reason, "PROVIDER_UNAVAILABLE", usage)
        return WebhookOutcome(
            status="processed",
            event_id=f"{request_id}:callback",
            event_type="callback.delivered",
            request_id=request_id,
            resolved=resolved,
        )

    def stats(self) -> WebhookStats:
        return WebhookStats(
            pending_callbacks=self.registry.pending_count,
            registered_callback_urls=self.registry.callback_url_count,
            registered_secrets=sum(1 for s in self.secrets.values() if s),
            processed_events=self.registry.processed_count,
        )

    async def _succeed(self, provider: str, request_id: str, output: Any, usage: TokenUsage, model: str | None) -> bool:
        if output is not None and not isinstance(output, (str, dict, list)):
            output = json.dumps(output, default=str)
        payload = {"output": output if output is not None else "", "usage": usage, "model": model}
        pending = self.registry.resolve(request_id, payload)
        if pending is None:
            # late or unknown; the router never saw this result, so account for it here
            await self.metrics.record(provider, request_id, "unmatched", usage=usage)
            return False
        self._notify(pending, {"status": "completed", "output": payload["output"], "usage": usage.model_dump()})
        return True

    async def _fail(self, provider: str, request_id: str, reason: str, code: str, usage: TokenUsage) -> bool:
        error = ProviderError(f"{provider} reported failure: {reason}", provider=provider, code=code)
        pending = self.registry.reject(request_id, error)
        if pending is None:
            await self.metrics.record(provider, request_id, "unmatched", usage=usage, error_code=code)
            return False
        self._notify(pending, {"status": "failed", "error": {"code": code, "message": reason}})
        return True

    async def _usage(self, provider: str, request_id: str, usage: TokenUsage) -> None:
        pending = self.registry.get(request_id)
        await self.metrics.record(
            provider, request_id, "usage", usage=usage, agent_type=pending.agent_type if pending else None
        )

    def _notify(self, pending: PendingCallback, payload: dict[str, Any]) -> None:
        if pending.callback_url and self.notifier is not None:
            self.notifier.notify(pending.callback_url, pending.request_id, payload)

    def _duplicate(self, outcome: WebhookOutcome) -> WebhookOutcome:
        log.info("duplicate event %s request_id=%s", outcome.event_id, outcome.request_id)
        outcome.status = "duplicate"
        return outcome
