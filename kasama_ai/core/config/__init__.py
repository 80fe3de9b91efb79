from kasama_ai.core.config.loader import load_orchestrator_config
from kasama_ai.core.config.models import (
    AgentConfig,
    BatchConfig,
    CacheConfig,
    CallbackConfig,
    OrchestratorConfig,
    ProviderConfig,
    RateLimitConfig,
    RetryConfig,
    SessionStoreConfig,
)
from kasama_ai.core.config.env import get_secret, load_env_from_path

__all__ = [
    "load_orchestrator_config",
    "OrchestratorConfig",
    "AgentConfig",
    "ProviderConfig",
    "CacheConfig",
    "BatchConfig",
    "CallbackConfig",
    "RateLimitConfig",
    "RetryConfig",
    "SessionStoreConfig",
    "load_env_from_path",
    "get_secret",
]
