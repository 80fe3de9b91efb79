from __future__ import annotations

from pydantic import BaseModel, Field


class ProviderConfig(BaseModel):
    name: str
    kind: str  # "anthropic" | "openai" | "stub"
    model: str
    base_url: str | None = None
    api_key_env: str | None = None  # env var name
    webhook_secret_env: str | None = None  # env var name
    mode: str = "sync"  # "sync" | "callback"
    timeout_seconds: float = 30.0
    cost_per_token: float = 0.0
    max_attempts: int = 2


class AgentConfig(BaseModel):
    name: str  # agent type, e.g. "assessment_analyst"
    providers: list[str] = Field(default_factory=list)  # ordered failover list
    low_priority_providers: list[str] = Field(default_factory=list)
    max_tokens: int = 4000
    temperature: float = 0.5
    cache_ttl_seconds: int = 6 * 3600
    system_prompt: str | None = None  # None -> built-in prompt for the agent type


class CacheConfig(BaseModel):
    enabled: bool = True
    max_entries: int = 10000
    default_ttl_seconds: int = 24 * 3600
    sweep_interval_seconds: float = 3600.0
    single_flight: bool = True


class BatchConfig(BaseModel):
    max_members: int = 50
    default_max_concurrency: int = 5
    max_concurrency_cap: int = 10
    default_timeout_ms: int = 300000
    retained_jobs: int = 500
    scheduler_poll_seconds: float = 5.0


class CallbackConfig(BaseModel):
    expiration_minutes: float = 60.0
    sweep_interval_seconds: float = 60.0
    processed_event_capacity: int = 10000


class RateLimitConfig(BaseModel):
    enabled: bool = True
    window_seconds: float = 60.0
    global_max_requests: int = 100
    per_user_max_requests: int = 20
    per_agent_max_requests: int = 30  # per (user, agent type)
    priority_multipliers: dict[str, float] = Field(
        default_factory=lambda: {"low": 0.5, "medium": 1.0, "high": 1.5}
    )
    cleanup_interval_seconds: float = 300.0


class RetryConfig(BaseModel):
    base_delay_seconds: float = 1.0
    max_delay_seconds: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: bool = True


class SessionStoreConfig(BaseModel):
    type: str  # "postgres"
    connection_id: str  # env var name


class OrchestratorConfig(BaseModel):
    service_name: str = "kasama-ai"
    env_file_path: str | None = ".env"
    public_base_url: str = "http://127.0.0.1:8000"
    providers: list[ProviderConfig] = Field(default_factory=list)
    agents: list[AgentConfig] = Field(default_factory=list)
    default_providers: list[str] = Field(default_factory=list)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    callbacks: CallbackConfig = Field(default_factory=CallbackConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limits: RateLimitConfig = Field(default_factory=RateLimitConfig)
    history_size: int = 10
    generic_webhook_secret_env: str | None = "GENERIC_WEBHOOK_SECRET"
    session_store: SessionStoreConfig | None = None

    def get_agent(self, name: str) -> AgentConfig | None:
        for a in self.agents:
            if a.name == name:
                return a
        return None

    def get_provider(self, name: str) -> ProviderConfig | None:
        for p in self.providers:
            if p.name == name:
                return p
        return None

    def providers_for(self, agent_name: str, priority: str = "medium") -> list[str]:
        """Ordered provider names for an agent; low priority prefers its cheap list."""
        agent = self.get_agent(agent_name)
        if not agent:
            return list(self.default_providers)
        names = list(agent.providers) or list(self.default_providers)
        if priority == "low" and agent.low_priority_providers:
            names = list(agent.low_priority_providers) + [n for n in names if n not in agent.low_priority_providers]
        return names
