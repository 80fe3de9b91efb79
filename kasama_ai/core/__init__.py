from kasama_ai.core.config import load_orchestrator_config, OrchestratorConfig, AgentConfig, ProviderConfig
from kasama_ai.core.exceptions import (
    ConfigError,
    OrchestratorError,
    ValidationError,
    AuthenticationError,
    NotFoundError,
    ConflictError,
    InternalError,
    ProviderError,
    ProviderTimeout,
    MalformedOutputError,
)

__all__ = [
    "load_orchestrator_config",
    "OrchestratorConfig",
    "AgentConfig",
    "ProviderConfig",
    "ConfigError",
    "OrchestratorError",
    "ValidationError",
    "AuthenticationError",
    "NotFoundError",
    "ConflictError",
    "InternalError",
    "ProviderError",
    "ProviderTimeout",
    "MalformedOutputError",
]
