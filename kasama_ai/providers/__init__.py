from kasama_ai.providers.base import ProviderBackend, ProviderCall, ProviderResult
from kasama_ai.providers.limiter import LimitStatus, RateLimiter
from kasama_ai.providers.metrics import ProviderMetrics, ProviderMetricsRecord
from kasama_ai.providers.router import ProviderRouter
from kasama_ai.providers.stub import StubProvider

__all__ = [
    "ProviderBackend",
    "ProviderCall",
    "ProviderResult",
    "LimitStatus",
    "RateLimiter",
    "ProviderMetrics",
    "ProviderMetricsRecord",
    "ProviderRouter",
    "StubProvider",
]
