"""Anthropic Messages API backend over httpx."""
from __future__ import annotations

import logging
import os

import httpx

from kasama_ai.core.config.models import ProviderConfig
from kasama_ai.core.contracts.requests import TokenUsage
from kasama_ai.core.exceptions import ProviderError
from kasama_ai.providers.base import (
    ProviderBackend,
    ProviderCall,
    ProviderResult,
    error_from_exception,
    error_from_response,
)

log = logging.getLogger("provider.anthropic")

ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_BASE_URL = "https://api.anthropic.com"


class AnthropicProvider(ProviderBackend):
    def __init__(self, config: ProviderConfig, api_key: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(config)
        self._api_key = api_key if api_key is not None else os.environ.get(config.api_key_env or "ANTHROPIC_API_KEY")
        self._base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._transport = transport

    def _headers(self) -> dict[str, str]:
        if not self._api_key:
            raise ProviderError(f"{self.name}: API key not configured", provider=self.name, code="AUTHENTICATION_FAILED")
        return {
            "x-api-key": self._api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

    def _params(self, call: ProviderCall) -> dict:
        messages = []
        for turn in call.history:
            messages.append({"role": "user", "content": turn.prompt})
            messages.append({"role": "assistant", "content": turn.response})
        messages.append({"role": "user", "content": call.prompt})
        return {
            "model": self.model,
            "max_tokens": call.max_tokens,
            "temperature": call.temperature,
            "system": call.system,
            "messages": messages,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self.config.timeout_seconds, transport=self._transport)

    async def complete(self, call: ProviderCall) -> ProviderResult:
        headers = self._headers()
        try:
            async with self._client() as client:
                r = await client.post("/v1/messages", json=self._params(call), headers=headers)
        except Exception as e:
            raise error_from_exception(self.name, e) from e
        if r.status_code != 200:
            raise error_from_response(self.name, r)
        data = r.json()
        text = "".join(block.get("text", "") for block in data.get("content", []) if block.get("type") == "text")
        usage = data.get("usage") or {}
        return ProviderResult(
            content=text,
            usage=TokenUsage.of(usage.get("input_tokens"), usage.get("output_tokens")),
            model=data.get("model", self.model),
            provider=self.name,
        )

    async def dispatch(self, call: ProviderCall, callback_url: str | None = None) -> None:
        """Queue the call as a one-item message batch; completion is reported by webhook under custom_id."""
        headers = self._headers()
        body = {"requests": [{"custom_id": call.request_id, "params": self._params(call)}]}
        try:
            async with self._client() as client:
                r = await client.post("/v1/messages/batches", json=body, headers=headers)
        except Exception as e:
            raise error_from_exception(self.name, e) from e
        if r.status_code not in (200, 201, 202):
            raise error_from_response(self.name, r)
        log.info("dispatched request_id=%s batch=%s", call.request_id, r.json().get("id"))
