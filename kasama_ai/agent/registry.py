from __future__ import annotations

from kasama_ai.agent import assessment, communication, insight, learning, progress
from kasama_ai.agent.pipeline import AgentOperation
from kasama_ai.core.contracts.requests import AgentType

_MODULES = {
    AgentType.ASSESSMENT_ANALYST: assessment,
    AgentType.LEARNING_COACH: learning,
    AgentType.PROGRESS_TRACKER: progress,
    AgentType.INSIGHT_GENERATOR: insight,
    AgentType.COMMUNICATION_ADVISOR: communication,
}

OPERATIONS: dict[tuple[str, str], AgentOperation] = {
    (op.agent_type.value, op.name): op for module in _MODULES.values() for op in module.OPERATIONS
}

# first listed operation of each agent; used when a batch member names no operation
DEFAULT_OPERATIONS: dict[str, str] = {t.value: m.OPERATIONS[0].name for t, m in _MODULES.items()}

SYSTEM_PROMPTS: dict[str, str] = {t.value: m.SYSTEM_PROMPT for t, m in _MODULES.items()}


def get_operation(agent_type: str, operation: str | None = None) -> AgentOperation | None:
    """Look up an operation by agent type and name; None when either is unknown."""
    agent_type = getattr(agent_type, "value", agent_type)
    name = operation or DEFAULT_OPERATIONS.get(agent_type)
    if name is None:
        return None
    return OPERATIONS.get((agent_type, name))


def operation_names(agent_type: str) -> list[str]:
    return [name for (t, name) in OPERATIONS if t == agent_type]
