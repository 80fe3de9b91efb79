import pytest

from kasama_ai.core.config.models import AgentConfig, OrchestratorConfig, ProviderConfig, RetryConfig
from kasama_ai.core.contracts.requests import AgentType
from kasama_ai.core.exceptions import ProviderError
from kasama_ai.orchestrator.deps import build_orchestrator
from kasama_ai.providers.stub import StubProvider


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def config() -> OrchestratorConfig:
    return OrchestratorConfig(
        env_file_path=None,
        providers=[
            ProviderConfig(name="primary", kind="stub", model="stub-large", timeout_seconds=1.0, cost_per_token=0.001),
            ProviderConfig(name="secondary", kind="stub", model="stub-small", timeout_seconds=1.0),
        ],
        default_providers=["primary", "secondary"],
        agents=[AgentConfig(name=t.value, providers=["primary", "secondary"]) for t in AgentType],
        retry=RetryConfig(jitter=False),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def primary(config) -> StubProvider:
    return StubProvider(config.get_provider("primary"))


@pytest.fixture
def secondary(config) -> StubProvider:
    return StubProvider(config.get_provider("secondary"))


@pytest.fixture
def orchestrator(config, primary, secondary, clock, sleeps):
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return build_orchestrator(
        config,
        backends={"primary": primary, "secondary": secondary},
        env={},
        sleep=fake_sleep,
        clock=clock,
    )


@pytest.fixture
def providers_down(primary, secondary):
    """Every provider refuses every call without retry, so agents answer from fallbacks."""
    down = ProviderError("upstream refused the request", code="AUTHENTICATION_FAILED", retryable=False)
    primary.script("*", down)
    secondary.script("*", down)
    return down
