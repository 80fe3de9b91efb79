from kasama_ai.core.contracts.requests import (
    AgentCallRequest,
    AgentResult,
    AgentType,
    AIRequest,
    AIResponse,
    Interaction,
    TokenUsage,
)
from kasama_ai.core.contracts.batch import (
    BatchJob,
    BatchMember,
    BatchOptions,
    BatchStats,
    MemberResult,
    ScheduledMember,
)
from kasama_ai.core.contracts.webhooks import WebhookOutcome

__all__ = [
    "AgentCallRequest",
    "AgentResult",
    "AgentType",
    "AIRequest",
    "AIResponse",
    "Interaction",
    "TokenUsage",
    "BatchJob",
    "BatchMember",
    "BatchOptions",
    "BatchStats",
    "MemberResult",
    "ScheduledMember",
    "WebhookOutcome",
]
