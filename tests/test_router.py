import asyncio

import pytest

from kasama_ai.callbacks.registry import CallbackRegistry
from kasama_ai.core.config.models import (
    AgentConfig,
    CallbackConfig,
    OrchestratorConfig,
    ProviderConfig,
    RetryConfig,
)
from kasama_ai.core.contracts.requests import AgentType, AIRequest, TokenUsage
from kasama_ai.core.exceptions import InternalError, ProviderError, ProviderTimeout
from kasama_ai.errors.classifier import ErrorClassifier
from kasama_ai.providers.base import ProviderCall
from kasama_ai.providers.metrics import ProviderMetrics
from kasama_ai.providers.router import ProviderRouter
from kasama_ai.providers.stub import StubProvider


def make_config(**overrides) -> OrchestratorConfig:
    data = dict(
        env_file_path=None,
        providers=[
            ProviderConfig(name="primary", kind="stub", model="large", timeout_seconds=1.0, cost_per_token=0.01),
            ProviderConfig(name="secondary", kind="stub", model="small", timeout_seconds=1.0),
            ProviderConfig(name="cheap", kind="stub", model="tiny", timeout_seconds=1.0),
        ],
        agents=[
            AgentConfig(
                name="progress_tracker",
                providers=["primary", "secondary"],
                low_priority_providers=["cheap"],
            )
        ],
        default_providers=["secondary"],
        retry=RetryConfig(jitter=False, base_delay_seconds=1.0, backoff_multiplier=2.0, max_delay_seconds=3.0),
    )
    data.update(overrides)
    return OrchestratorConfig(**data)


def make_router(config: OrchestratorConfig, clock=None, callbacks: CallbackRegistry | None = None):
    backends = {p.name: StubProvider(p) for p in config.providers}
    sleeps: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    registry = callbacks or CallbackRegistry(config.callbacks)
    router = ProviderRouter(config, backends, ErrorClassifier(), ProviderMetrics({"primary": 0.01}), registry, fake_sleep)
    return router, backends, sleeps


def request(agent=AgentType.PROGRESS_TRACKER, priority="medium") -> AIRequest:
    return AIRequest(agent_type=agent, operation="analyze_progress", input={"n": 1}, priority=priority)


def call_for(req: AIRequest) -> ProviderCall:
    return ProviderCall(
        request_id=req.id,
        agent_type=req.agent_type.value,
        system="system",
        prompt="how am I doing",
        max_tokens=100,
        temperature=0.2,
    )


def test_candidates_follow_agent_failover_order():
    router, _, _ = make_router(make_config())
    assert [b.name for b in router.candidates(request())] == ["primary", "secondary"]


def test_low_priority_prefers_cheap_providers():
    router, _, _ = make_router(make_config())
    names = [b.name for b in router.candidates(request(priority="low"))]
    assert names == ["cheap", "primary", "secondary"]


def test_unconfigured_agent_uses_default_providers():
    router, _, _ = make_router(make_config())
    assert [b.name for b in router.candidates(request(agent=AgentType.INSIGHT_GENERATOR))] == ["secondary"]


def test_backoff_grows_and_is_capped():
    router, _, _ = make_router(make_config())
    assert [router.backoff_seconds(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]


@pytest.mark.asyncio
async def test_success_records_usage_and_cost():
    router, backends, _ = make_router(make_config())
    backends["primary"].script("*", "four words of text")
    req = request()

    response = await router.invoke(req, call_for(req))

    assert response.provider == "primary"
    assert response.model == "large"
    assert response.output == "four words of text"
    assert response.usage.output_tokens == 4
    assert response.cost == pytest.approx(response.usage.total_tokens * 0.01)
    [record] = router.metrics.records(request_id=req.id)
    assert record.status == "succeeded"


@pytest.mark.asyncio
async def test_retryable_failure_retries_then_fails_over():
    router, backends, sleeps = make_router(make_config())
    backends["primary"].script("*", ProviderError("busy", code="MODEL_OVERLOADED", retryable=True))
    backends["secondary"].script("*", "fine")
    req = request()

    response = await router.invoke(req, call_for(req))

    assert response.provider == "secondary"
    assert len(backends["primary"].calls) == 2
    assert sleeps == [1.0]
    statuses = [r.status for r in router.metrics.records(request_id=req.id)]
    assert statuses == ["failed", "failed", "succeeded"]


@pytest.mark.asyncio
async def test_non_retryable_failure_moves_on_immediately():
    router, backends, sleeps = make_router(make_config())
    backends["primary"].script("*", ProviderError("bad key", code="AUTHENTICATION_FAILED", retryable=False))
    backends["secondary"].script("*", "fine")
    req = request()

    response = await router.invoke(req, call_for(req))

    assert response.provider == "secondary"
    assert len(backends["primary"].calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_slow_provider_times_out():
    config = make_config()
    router, backends, _ = make_router(config)
    backends["primary"].config.timeout_seconds = 0.02
    backends["primary"].config.max_attempts = 1
    backends["primary"].delay_seconds = 0.5
    backends["secondary"].script("*", "fine")
    req = request()

    response = await router.invoke(req, call_for(req))

    assert response.provider == "secondary"
    [timeout] = router.metrics.records(provider="primary")
    assert timeout.status == "timeout"
    assert timeout.error_code == "TIMEOUT"


@pytest.mark.asyncio
async def test_all_providers_failing_raises_last_error():
    router, backends, _ = make_router(make_config())
    for name in ("primary", "secondary"):
        backends[name].script("*", ProviderError(f"{name} down", code="PROVIDER_UNAVAILABLE", retryable=False))
    req = request()

    with pytest.raises(ProviderError) as info:
        await router.invoke(req, call_for(req))
    assert "secondary down" in str(info.value)


@pytest.mark.asyncio
async def test_no_candidates_is_an_internal_error():
    config = make_config(default_providers=[])
    router, _, _ = make_router(config)
    router.backends = {}
    req = request(agent=AgentType.INSIGHT_GENERATOR)

    with pytest.raises(InternalError):
        await router.invoke(req, call_for(req))


@pytest.mark.asyncio
async def test_callback_mode_waits_for_webhook_result():
    config = make_config()
    config.providers[0].mode = "callback"
    router, backends, _ = make_router(config)
    req = request()

    task = asyncio.create_task(router.invoke(req, call_for(req)))
    for _ in range(20):
        if backends["primary"].dispatched:
            break
        await asyncio.sleep(0)
    [(dispatched, callback_url)] = backends["primary"].dispatched
    assert dispatched.request_id == req.id
    assert callback_url == f"http://127.0.0.1:8000/webhooks/callback/{req.id}"

    router.callbacks.resolve(req.id, {"output": '{"ok": true}', "usage": TokenUsage.of(5, 2), "model": "large-2"})
    response = await task

    assert response.output == '{"ok": true}'
    assert response.usage.total_tokens == 7
    assert response.model == "large-2"
    statuses = [r.status for r in router.metrics.records(request_id=req.id)]
    assert statuses == ["dispatched", "succeeded"]
    assert router.callbacks.pending_count == 0


@pytest.mark.asyncio
async def test_callback_mode_expires_when_no_webhook_arrives():
    config = make_config(
        agents=[AgentConfig(name="progress_tracker", providers=["primary"])],
        callbacks=CallbackConfig(expiration_minutes=0.0005),
    )
    config.providers[0].mode = "callback"
    router, _, _ = make_router(config)
    req = request()

    with pytest.raises(ProviderTimeout):
        await router.invoke(req, call_for(req))
    assert router.callbacks.pending_count == 0
