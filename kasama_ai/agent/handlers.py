"""Entry point for running agent operations by name."""
from __future__ import annotations

from typing import Any

import pydantic

from kasama_ai.agent import assessment, communication
from kasama_ai.agent.pipeline import AgentPipeline
from kasama_ai.agent.registry import DEFAULT_OPERATIONS, get_operation, operation_names
from kasama_ai.core.contracts.assessment import AssessmentAnalysisInput, InputValidationReport
from kasama_ai.core.contracts.batch import BatchMember
from kasama_ai.core.contracts.communication import QuickTips
from kasama_ai.core.contracts.requests import AgentResult
from kasama_ai.core.exceptions import NotFoundError, ValidationError


class AgentHandlers:
    def __init__(self, pipeline: AgentPipeline):
        self.pipeline = pipeline

    async def run(
        self,
        agent_type: str,
        operation: str | None,
        payload: dict[str, Any] | None,
        *,
        user_id: str = "anonymous",
        context: dict[str, Any] | None = None,
        priority: str = "medium",
        max_tokens: int | None = None,
        temperature: float | None = None,
        request_id: str | None = None,
    ) -> AgentResult:
        """Run one operation. Unknown agent types or operations raise NotFoundError."""
        agent_type = getattr(agent_type, "value", agent_type)
        if agent_type not in DEFAULT_OPERATIONS:
            raise NotFoundError(f"unknown agent type '{agent_type}'")
        op = get_operation(agent_type, operation)
        if op is None:
            raise NotFoundError(
                f"unknown operation '{operation}' for {agent_type}; expected one of {operation_names(agent_type)}"
            )
        outcome = await self.pipeline.run(
            op,
            payload,
            user_id=user_id,
            context=context,
            priority=priority,
            max_tokens=max_tokens,
            temperature=temperature,
            request_id=request_id,
        )
        return outcome.to_result()

    async def dispatch(self, member: BatchMember) -> AgentResult:
        return await self.run(
            member.agent_type,
            member.operation,
            member.input,
            user_id=member.user_id,
            context=member.context,
            priority=member.priority,
            max_tokens=member.max_tokens,
            temperature=member.temperature,
        )

    def quick_tips(self, situation: str) -> QuickTips:
        return communication.quick_tips(situation)

    def validate_assessment_input(self, payload: dict[str, Any]) -> InputValidationReport:
        try:
            data = AssessmentAnalysisInput.model_validate(payload or {})
        except pydantic.ValidationError as e:
            raise ValidationError(f"invalid assessment input: {e}") from e
        return assessment.validate_assessment_input(data)

    def stats(self) -> dict[str, dict[str, int]]:
        return self.pipeline.stats()
