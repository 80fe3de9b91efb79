from kasama_ai.agent.handlers import AgentHandlers
from kasama_ai.agent.history import ConversationHistory
from kasama_ai.agent.pipeline import AgentOperation, AgentPipeline, PipelineOutcome
from kasama_ai.agent.registry import DEFAULT_OPERATIONS, OPERATIONS, SYSTEM_PROMPTS, get_operation

__all__ = [
    "AgentHandlers",
    "AgentOperation",
    "AgentPipeline",
    "ConversationHistory",
    "DEFAULT_OPERATIONS",
    "OPERATIONS",
    "PipelineOutcome",
    "SYSTEM_PROMPTS",
    "get_operation",
]
