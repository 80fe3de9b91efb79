"""The shared agent sequence: cache -> provider -> validate -> fallback."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable

import pydantic
from pydantic import BaseModel

from kasama_ai.agent.history import ConversationHistory
from kasama_ai.agent.parsing import parse_output
from kasama_ai.cache.semantic import SemanticCache
from kasama_ai.core.config.models import OrchestratorConfig
from kasama_ai.core.contracts.requests import AgentResult, AgentType, AIRequest, AIResponse, new_request_id
from kasama_ai.core.exceptions import MalformedOutputError, OrchestratorError, ValidationError
from kasama_ai.errors.classifier import ErrorClassifier, ErrorContext, NormalizedError
from kasama_ai.providers.base import ProviderCall
from kasama_ai.providers.router import ProviderRouter

log = logging.getLogger("agent")

PromptBuilder = Callable[[Any, dict | None], str]
FallbackBuilder = Callable[[Any, dict | None], dict]


@dataclass(frozen=True)
class AgentOperation:
    """One agent capability: typed input, typed output, a prompt builder and a fallback."""

    agent_type: AgentType
    name: str
    input_model: type[BaseModel]
    output_model: type[BaseModel]
    build_prompt: PromptBuilder
    fallback: FallbackBuilder

    @property
    def topic(self) -> str:
        return f"{self.agent_type.value}.{self.name}"


@dataclass
class PipelineOutcome:
    request: AIRequest
    output: BaseModel
    cache_hit: bool = False
    fallback_used: bool = False
    shared: bool = False
    response: AIResponse | None = None
    error: NormalizedError | None = None

    def to_result(self) -> AgentResult:
        return AgentResult(
            request_id=self.request.id,
            agent_type=self.request.agent_type,
            operation=self.request.operation,
            output=self.output.model_dump(mode="json"),
            cache_hit=self.cache_hit,
            fallback_used=self.fallback_used,
            provider=self.response.provider if self.response else None,
            error_code=self.error.code if self.error else None,
        )


# (validated output or None, provider response or None, absorbed error or None)
_LiveResult = tuple[BaseModel | None, AIResponse | None, NormalizedError | None]


class AgentPipeline:
    def __init__(
        self,
        config: OrchestratorConfig,
        cache: SemanticCache,
        router: ProviderRouter,
        classifier: ErrorClassifier,
        history: ConversationHistory,
        system_prompts: dict[str, str] | None = None,
    ):
        self.config = config
        self.cache = cache
        self.router = router
        self.classifier = classifier
        self.history = history
        self.system_prompts = dict(system_prompts or {})
        self._inflight: dict[str, asyncio.Future] = {}
        self._stats: dict[str, dict[str, int]] = {}

    def system_prompt(self, agent_type: AgentType) -> str:
        agent = self.config.get_agent(agent_type.value)
        if agent and agent.system_prompt:
            return agent.system_prompt
        return self.system_prompts.get(agent_type.value, "You are a relationship coaching assistant. Reply with JSON only.")

    async def run(
        self,
        op: AgentOperation,
        payload: Any,
        *,
        user_id: str = "anonymous",
        context: dict[str, Any] | None = None,
        priority: str = "medium",
        max_tokens: int | None = None,
        temperature: float | None = None,
        request_id: str | None = None,
    ) -> PipelineOutcome:
        data = self._validate_input(op, payload)
        request = AIRequest(
            id=request_id or new_request_id(),
            user_id=user_id,
            agent_type=op.agent_type,
            operation=op.name,
            input={"operation": op.name, "data": data.model_dump(mode="json"), "context": context or {}},
            history=self.history.recent(user_id, op.topic),
            priority=priority,
            max_tokens=max_tokens,
            temperature=temperature,
        )
        self._count(op, "requests")

        cached = await self.cache.get(request)
        if cached is not None:
            try:
                output = parse_output(cached.output, op.output_model)
                self._count(op, "cache_hits")
                return PipelineOutcome(request=request, output=output, cache_hit=True, response=cached)
            except MalformedOutputError as e:
                log.warning("cached payload unreadable for %s request_id=%s: %s", op.topic, request.id, e)

        if self.config.cache.single_flight:
            key = self.cache.key_for(request)
            leader = self._inflight.get(key)
            if leader is None:
                live = await self._lead(key, op, data, context, request)
            else:
                self._count(op, "shared")
                shared = await asyncio.shield(leader)
                if shared is not None:
                    return self._finish(op, data, context, request, *shared, shared=True)
                # the leading caller was cancelled before its call settled
                live = await self._live(op, data, context, request)
        else:
            live = await self._live(op, data, context, request)
        output, response, error = live
        return self._finish(op, data, context, request, output, response, error)

    def stats(self) -> dict[str, dict[str, int]]:
        return {k: dict(v) for k, v in self._stats.items()}

    async def _lead(
        self, key: str, op: AgentOperation, data: BaseModel, context: dict | None, request: AIRequest
    ) -> _LiveResult:
        """Make the live call on behalf of every identical request that arrives while it runs."""
        future = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            live = await self._live(op, data, context, request)
        except asyncio.CancelledError:
            # None tells followers to make their own call
            future.set_result(None)
            raise
        except Exception as e:
            future.set_exception(e)
            future.exception()  # followers re-raise it; mark as retrieved for the leader
            raise
        finally:
            self._inflight.pop(key, None)
        future.set_result(live)
        return live

    def _finish(
        self,
        op: AgentOperation,
        data: BaseModel,
        context: dict | None,
        request: AIRequest,
        output: BaseModel | None,
        response: AIResponse | None,
        error: NormalizedError | None,
        shared: bool = False,
    ) -> PipelineOutcome:
        if output is not None:
            self._count(op, "live")
            return PipelineOutcome(request=request, output=output, response=response, shared=shared)
        self._count(op, "fallbacks")
        logging.getLogger(f"agent.{op.agent_type.value}").info(
            "fallback %s request_id=%s (%s)", op.name, request.id, error.code if error else "unknown"
        )
        fallback = op.output_model.model_validate(op.fallback(data, context))
        return PipelineOutcome(
            request=request,
            output=fallback,
            fallback_used=True,
            shared=shared,
            response=response,
            error=error,
        )

    async def _live(self, op: AgentOperation, data: BaseModel, context: dict | None, request: AIRequest) -> _LiveResult:
        agent = self.config.get_agent(op.agent_type.value)
        call = ProviderCall(
            request_id=request.id,
            agent_type=op.agent_type.value,
            system=self.system_prompt(op.agent_type),
            prompt=op.build_prompt(data, context),
            max_tokens=request.max_tokens or (agent.max_tokens if agent else 4000),
            temperature=request.temperature if request.temperature is not None else (agent.temperature if agent else 0.5),
            history=list(request.history),
        )
        ctx = ErrorContext(
            agent_type=op.agent_type.value,
            request_id=request.id,
            operation=op.name,
            has_fallback=True,
        )
        try:
            response = await self.router.invoke(request, call)
        except Exception as e:
            decision = self.classifier.classify(e, ctx)
            if decision.action == "surface":
                if isinstance(e, OrchestratorError):
                    raise
                raise decision.error.to_exception() from e
            return None, None, decision.error

        try:
            output = parse_output(response.output, op.output_model)
        except MalformedOutputError as e:
            e.provider = response.provider
            ctx.provider = response.provider
            decision = self.classifier.classify(e, ctx)
            return None, response, decision.error

        await self.cache.set(request, response)
        text = response.output if isinstance(response.output, str) else json.dumps(response.output, default=str)
        self.history.append(request.user_id, op.topic, call.prompt, text)
        return output, response, None

    def _validate_input(self, op: AgentOperation, payload: Any) -> BaseModel:
        if isinstance(payload, op.input_model):
            return payload
        if isinstance(payload, BaseModel):
            payload = payload.model_dump()
        try:
            return op.input_model.model_validate(payload or {})
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid input for {op.topic}: {e.errors()[0]['msg']} at {e.errors()[0]['loc']}") from e

    def _count(self, op: AgentOperation, key: str) -> None:
        agent = self._stats.setdefault(
            op.agent_type.value, {"requests": 0, "cache_hits": 0, "live": 0, "fallbacks": 0, "shared": 0}
        )
        agent[key] = agent.get(key, 0) + 1
