from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

from kasama_ai.agent.handlers import AgentHandlers
from kasama_ai.agent.history import ConversationHistory
from kasama_ai.agent.pipeline import AgentPipeline
from kasama_ai.agent.registry import SYSTEM_PROMPTS
from kasama_ai.cache.semantic import SemanticCache
from kasama_ai.callbacks.notifier import CallbackNotifier
from kasama_ai.callbacks.registry import CallbackRegistry
from kasama_ai.core.config.env import get_secret
from kasama_ai.core.config.loader import load_orchestrator_config
from kasama_ai.core.config.models import OrchestratorConfig
from kasama_ai.core.exceptions import ConfigError
from kasama_ai.errors.classifier import ErrorClassifier
from kasama_ai.orchestrator.batch import BatchOrchestrator, JobArchive
from kasama_ai.orchestrator.scheduler import BatchScheduler
from kasama_ai.orchestrator.session import PostgresArchive, get_app_db_url
from kasama_ai.providers.anthropic import AnthropicProvider
from kasama_ai.providers.base import ProviderBackend
from kasama_ai.providers.limiter import RateLimiter
from kasama_ai.providers.metrics import ProviderMetrics
from kasama_ai.providers.openai import OpenAIProvider
from kasama_ai.providers.router import ProviderRouter
from kasama_ai.providers.stub import StubProvider
from kasama_ai.webhooks.receiver import WebhookReceiver

log = logging.getLogger("orchestrator")

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
CONFIG_PATH = os.environ.get("CONFIG_PATH", "config/orchestrator.json")


@dataclass
class Orchestrator:
    """Every long-lived store and service, built once and shared by reference."""

    config: OrchestratorConfig
    backends: dict[str, ProviderBackend]
    cache: SemanticCache
    classifier: ErrorClassifier
    metrics: ProviderMetrics
    callbacks: CallbackRegistry
    notifier: CallbackNotifier
    limiter: RateLimiter
    router: ProviderRouter
    history: ConversationHistory
    pipeline: AgentPipeline
    handlers: AgentHandlers
    batches: BatchOrchestrator
    scheduler: BatchScheduler
    webhooks: WebhookReceiver
    archive: JobArchive | None = None
    _tasks: list[asyncio.Task] = field(default_factory=list)

    def start(self) -> None:
        """Start the background loops. Needs a running event loop."""
        if self._tasks:
            return
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self.cache.run_sweeper(self.config.cache.sweep_interval_seconds)),
            loop.create_task(self.callbacks.run_sweeper(self.config.callbacks.sweep_interval_seconds)),
            loop.create_task(self.limiter.run_cleanup(self.config.rate_limits.cleanup_interval_seconds)),
            loop.create_task(self.scheduler.run()),
        ]
        log.info("started %s background tasks", len(self._tasks))

    async def shutdown(self) -> None:
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        await self.batches.shutdown()
        rejected = self.callbacks.reject_all()
        if rejected:
            log.info("rejected %s pending callbacks on shutdown", rejected)
        await self.notifier.drain()
        for backend in self.backends.values():
            await backend.aclose()

    def stats(self) -> dict[str, Any]:
        return {
            "cache": self.cache.stats(),
            "errors": self.classifier.stats(),
            "providers": self.metrics.summary(),
            "rate_limits": self.limiter.stats(),
            "agents": self.handlers.stats(),
            "batches": self.batches.stats().model_dump(),
            "webhooks": self.webhooks.stats().model_dump(),
        }


def build_backends(config: OrchestratorConfig, env: dict[str, str] | None = None) -> dict[str, ProviderBackend]:
    backends: dict[str, ProviderBackend] = {}
    for p in config.providers:
        if p.kind == "anthropic":
            backends[p.name] = AnthropicProvider(p, api_key=get_secret(p.api_key_env, env) or "")
        elif p.kind == "openai":
            backends[p.name] = OpenAIProvider(p, api_key=get_secret(p.api_key_env, env) or "")
        elif p.kind == "stub":
            backends[p.name] = StubProvider(p)
        else:
            raise ConfigError(f"Provider {p.name} has unknown kind {p.kind!r}")
    return backends


def webhook_secrets(config: OrchestratorConfig, env: dict[str, str] | None = None) -> dict[str, str | None]:
    """Signing secret per webhook endpoint; the first provider of a kind that names one wins."""
    secrets: dict[str, str | None] = {"anthropic": None, "openai": None}
    for p in config.providers:
        if p.kind in secrets and secrets[p.kind] is None:
            secrets[p.kind] = get_secret(p.webhook_secret_env, env)
    secrets["generic"] = get_secret(config.generic_webhook_secret_env, env)
    return secrets


def build_archive(config: OrchestratorConfig, env: dict[str, str] | None = None) -> PostgresArchive | None:
    store = config.session_store
    if store is None:
        return None
    if store.type != "postgres":
        raise ConfigError(f"Unsupported session store type {store.type!r}")
    try:
        url = get_app_db_url(env if env is not None else dict(os.environ), store.connection_id)
    except ValueError as e:
        log.warning("session store disabled: %s", e)
        return None
    return PostgresArchive(url)


def build_orchestrator(
    config: OrchestratorConfig,
    backends: dict[str, ProviderBackend] | None = None,
    archive: JobArchive | None = None,
    env: dict[str, str] | None = None,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    clock: Callable[[], float] | None = None,
    notifier: CallbackNotifier | None = None,
) -> Orchestrator:
    backends = backends if backends is not None else build_backends(config, env)
    if archive is None:
        archive = build_archive(config, env)
    clock_kw = {"clock": clock} if clock is not None else {}

    cache = SemanticCache(
        config.cache,
        ttl_by_agent={a.name: a.cache_ttl_seconds for a in config.agents},
        **clock_kw,
    )
    classifier = ErrorClassifier()
    metrics = ProviderMetrics(
        cost_per_token={p.name: p.cost_per_token for p in config.providers},
        sink=getattr(archive, "record_metric", None),
    )
    callbacks = CallbackRegistry(config.callbacks, **clock_kw)
    notifier = notifier or CallbackNotifier()
    router_kw = {"sleep": sleep} if sleep is not None else {}
    limiter = RateLimiter(config.rate_limits, **clock_kw)
    router = ProviderRouter(config, backends, classifier, metrics, callbacks, limiter=limiter, **router_kw)
    history = ConversationHistory(max_turns=config.history_size)
    pipeline = AgentPipeline(config, cache, router, classifier, history, system_prompts=SYSTEM_PROMPTS)
    handlers = AgentHandlers(pipeline)
    batches = BatchOrchestrator(config.batch, handlers.dispatch, archive=archive)
    scheduler = BatchScheduler(batches, poll_seconds=config.batch.scheduler_poll_seconds)
    batches.queued = lambda: scheduler.queued
    webhooks = WebhookReceiver(
        callbacks,
        metrics,
        notifier,
        secrets=webhook_secrets(config, env),
        public_base_url=config.public_base_url,
    )
    return Orchestrator(
        config=config,
        backends=backends,
        cache=cache,
        classifier=classifier,
        metrics=metrics,
        callbacks=callbacks,
        notifier=notifier,
        limiter=limiter,
        router=router,
        history=history,
        pipeline=pipeline,
        handlers=handlers,
        batches=batches,
        scheduler=scheduler,
        webhooks=webhooks,
        archive=archive,
    )


_ORCHESTRATOR: Orchestrator | None = None


def get_orchestrator() -> Orchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        config = load_orchestrator_config(CONFIG_PATH, project_root=PROJECT_ROOT)
        _ORCHESTRATOR = build_orchestrator(config)
    return _ORCHESTRATOR


def set_orchestrator(orchestrator: Orchestrator | None) -> None:
    """Swap the process-wide instance (tests build their own)."""
    global _ORCHESTRATOR
    _ORCHESTRATOR = orchestrator
