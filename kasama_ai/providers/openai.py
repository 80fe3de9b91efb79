"""OpenAI backend: LangChain ChatOpenAI for completions, Responses API for background jobs."""
from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from langchain_core.messages import AIMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_openai import ChatOpenAI

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

log = logging.getLogger("provider.openai")

DEFAULT_BASE_URL = "https://api.openai.com"

PROMPT = ChatPromptTemplate.from_messages([
    ("system", "{system}"),
    MessagesPlaceholder(variable_name="history", optional=True),
    ("human", "{prompt}"),
])


class OpenAIProvider(ProviderBackend):
    def __init__(self, config: ProviderConfig, api_key: str | None = None, llm_factory: Any = None):
        super().__init__(config)
        self._api_key = api_key if api_key is not None else os.environ.get(config.api_key_env or "OPENAI_API_KEY")
        self._base_url = (config.base_url or DEFAULT_BASE_URL).rstrip("/")
        self._llm_factory = llm_factory or self._build_llm

    def _build_llm(self, call: ProviderCall) -> ChatOpenAI:
        return ChatOpenAI(
            model=self.model,
            temperature=call.temperature,
            max_tokens=call.max_tokens,
            timeout=self.config.timeout_seconds,
            max_retries=0,
            api_key=self._api_key,
            base_url=f"{self._base_url}/v1",
        )

    def _require_key(self) -> None:
        if not self._api_key:
            raise ProviderError(f"{self.name}: API key not configured", provider=self.name, code="AUTHENTICATION_FAILED")

    async def complete(self, call: ProviderCall) -> ProviderResult:
        self._require_key()
        history = []
        for turn in call.history:
            history.append(HumanMessage(content=turn.prompt))
            history.append(AIMessage(content=turn.response))
        llm = self._llm_factory(call)
        try:
            out = await (PROMPT | llm).ainvoke({"system": call.system, "history": history, "prompt": call.prompt})
        except Exception as e:
            raise error_from_exception(self.name, e) from e
        content = out.content if hasattr(out, "content") else str(out)
        if isinstance(content, list):
            content = "".join(part.get("text", "") if isinstance(part, dict) else str(part) for part in content)
        usage = getattr(out, "usage_metadata", None) or {}
        model = (getattr(out, "response_metadata", None) or {}).get("model_name", self.model)
        return ProviderResult(
            content=content,
            usage=TokenUsage.of(usage.get("input_tokens"), usage.get("output_tokens")),
            model=model,
            provider=self.name,
        )

    async def dispatch(self, call: ProviderCall, callback_url: str | None = None) -> None:
        """Start a background response; completion is reported by webhook under metadata.request_id."""
        self._require_key()
        body = {
            "model": self.model,
            "instructions": call.system,
            "input": call.prompt,
            "max_output_tokens": call.max_tokens,
            "temperature": call.temperature,
            "background": True,
            "metadata": {"request_id": call.request_id},
        }
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self.config.timeout_seconds) as client:
                r = await client.post("/v1/responses", json=body, headers=headers)
        except Exception as e:
            raise error_from_exception(self.name, e) from e
        if r.status_code not in (200, 201, 202):
            raise error_from_response(self.name, r)
        log.info("dispatched request_id=%s response=%s", call.request_id, r.json().get("id"))
