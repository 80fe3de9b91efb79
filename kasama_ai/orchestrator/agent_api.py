"""Agent endpoints: run one operation, static quick tips, assessment input check."""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from kasama_ai.core.contracts.assessment import InputValidationReport
from kasama_ai.core.contracts.communication import QuickTips
from kasama_ai.core.contracts.requests import AgentCallRequest, AgentResult
from kasama_ai.orchestrator.deps import get_orchestrator

log = logging.getLogger("orchestrator")

router = APIRouter(prefix="/agents", tags=["agents"])


@router.get("/communication_advisor/quick-tips/{situation}", response_model=QuickTips)
def quick_tips(situation: str):
    return get_orchestrator().handlers.quick_tips(situation)


@router.post("/assessment_analyst/validate-input", response_model=InputValidationReport)
def validate_assessment_input(payload: dict[str, Any]):
    return get_orchestrator().handlers.validate_assessment_input(payload)


@router.post("/{agent_type}/{operation}", response_model=AgentResult)
async def run_operation(agent_type: str, operation: str, req: AgentCallRequest):
    log.info("RECV %s.%s user=%s", agent_type, operation, req.user_id)
    result = await get_orchestrator().handlers.run(
        agent_type,
        operation,
        req.input,
        user_id=req.user_id,
        context=req.context,
        priority=req.priority,
        max_tokens=req.max_tokens,
        temperature=req.temperature,
    )
    log.info(
        "SEND %s.%s request_id=%s cache_hit=%s fallback=%s",
        agent_type,
        operation,
        result.request_id,
        result.cache_hit,
        result.fallback_used,
    )
    return result
