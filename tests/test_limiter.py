import json

import pytest

from kasama_ai.core.config.models import RateLimitConfig
from kasama_ai.core.contracts.requests import AgentType, AIRequest
from kasama_ai.core.exceptions import ProviderError
from kasama_ai.providers.limiter import RateLimiter

THEME = json.dumps(
    {
        "theme": "Listening",
        "description": "A week of hearing each other out.",
        "dailyFocus": ["Pause before replying"],
        "practices": ["Reflective listening"],
    }
)


def request(user_id="u1", agent=AgentType.PROGRESS_TRACKER, priority="medium") -> AIRequest:
    return AIRequest(user_id=user_id, agent_type=agent, operation="analyze_progress", priority=priority)


def limiter(clock, **limits) -> RateLimiter:
    config = RateLimitConfig(
        **{"global_max_requests": 100, "per_user_max_requests": 100, "per_agent_max_requests": 100, **limits}
    )
    return RateLimiter(config, clock=clock)


def test_user_window_rejects_then_recovers(clock):
    rl = limiter(clock, per_user_max_requests=2)

    rl.acquire(request())
    status = rl.acquire(request())
    assert status.remaining == 0
    assert status.limited is True

    with pytest.raises(ProviderError) as info:
        rl.acquire(request())
    assert info.value.code == "RATE_LIMIT_EXCEEDED"
    assert info.value.status_code == 429
    rl.acquire(request(user_id="u2"))

    clock.advance(61)
    assert rl.acquire(request()).remaining == 1


def test_priority_scales_the_allowance(clock):
    rl = limiter(clock, per_user_max_requests=4)

    assert [scope for scope, _, _ in rl.limits_for(request())] == ["global", "user", "agent"]
    assert rl.limits_for(request(priority="low"))[1][2] == 2
    assert rl.limits_for(request(priority="high"))[1][2] == 6


def test_agent_window_is_per_user_and_agent(clock):
    rl = limiter(clock, per_agent_max_requests=1)

    rl.acquire(request())
    rl.acquire(request(agent=AgentType.INSIGHT_GENERATOR))
    rl.acquire(request(user_id="u2"))
    with pytest.raises(ProviderError):
        rl.acquire(request())


def test_rejected_requests_are_not_counted(clock):
    rl = limiter(clock, per_user_max_requests=1)

    rl.acquire(request())
    for _ in range(3):
        with pytest.raises(ProviderError):
            rl.acquire(request())

    status = rl.status(request())
    assert status.limited is True
    assert status.scope == "user"
    assert status.reset_in_seconds == 60.0
    stats = rl.stats()
    assert stats["allowed"] == 1
    assert stats["rejected"] == 3
    assert stats["rejected_by_scope"] == {"global": 0, "user": 3, "agent": 0}
    assert stats["top_users"] == [{"user_id": "u1", "requests": 1}]


def test_global_window_covers_every_user(clock):
    rl = limiter(clock, global_max_requests=2)

    rl.acquire(request(user_id="a"))
    rl.acquire(request(user_id="b"))
    with pytest.raises(ProviderError):
        rl.acquire(request(user_id="c"))
    assert rl.stats()["rejected_by_scope"]["global"] == 1


def test_cleanup_drops_idle_windows(clock):
    rl = limiter(clock)
    rl.acquire(request())
    assert rl.cleanup() == 0

    clock.advance(120)

    assert rl.cleanup() == 3
    assert rl.stats()["windows"] == 0


def test_disabled_limiter_never_rejects(clock):
    rl = limiter(clock, per_user_max_requests=1, enabled=False)
    for _ in range(5):
        assert rl.acquire(request()).remaining is None


@pytest.mark.asyncio
async def test_limited_request_falls_back_without_calling_a_provider(orchestrator, primary):
    orchestrator.limiter.config.per_user_max_requests = 1
    primary.script("*", THEME)

    first = await orchestrator.handlers.run("insight_generator", "weekly_theme", {"currentGoals": ["a"]}, user_id="u1")
    second = await orchestrator.handlers.run("insight_generator", "weekly_theme", {"currentGoals": ["b"]}, user_id="u1")

    assert first.error_code != "RATE_LIMIT_EXCEEDED"
    assert second.fallback_used is True
    assert second.error_code == "RATE_LIMIT_EXCEEDED"
    assert second.output["theme"]
    assert len(primary.calls) == 1
    assert orchestrator.stats()["rate_limits"]["rejected"] == 1


@pytest.mark.asyncio
async def test_cache_hits_do_not_count_against_the_limit(orchestrator, primary):
    orchestrator.limiter.config.per_user_max_requests = 1
    primary.script("*", THEME)

    await orchestrator.handlers.run("insight_generator", "weekly_theme", {"currentGoals": ["a"]}, user_id="u1")
    again = await orchestrator.handlers.run("insight_generator", "weekly_theme", {"currentGoals": ["a"]}, user_id="u1")

    assert again.cache_hit is True
    assert orchestrator.stats()["rate_limits"]["rejected"] == 0
