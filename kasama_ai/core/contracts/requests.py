from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class AgentType(str, Enum):
    ASSESSMENT_ANALYST = "assessment_analyst"
    LEARNING_COACH = "learning_coach"
    PROGRESS_TRACKER = "progress_tracker"
    INSIGHT_GENERATOR = "insight_generator"
    COMMUNICATION_ADVISOR = "communication_advisor"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_request_id() -> str:
    return str(uuid.uuid4())


class Interaction(BaseModel):
    """One remembered prompt/answer pair from the short-term history."""

    model_config = ConfigDict(frozen=True)

    prompt: str
    response: str
    at: datetime = Field(default_factory=_now)


class TokenUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def of(cls, input_tokens: int | None, output_tokens: int | None) -> "TokenUsage":
        i = int(input_tokens or 0)
        o = int(output_tokens or 0)
        return cls(input_tokens=i, output_tokens=o, total_tokens=i + o)


class AIRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_request_id)
    user_id: str = "anonymous"
    agent_type: AgentType
    operation: str
    input: dict[str, Any] = Field(default_factory=dict)  # fingerprinted payload
    history: list[Interaction] = Field(default_factory=list)  # prompt context only
    priority: Literal["low", "medium", "high"] = "medium"
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0, le=2)
    created_at: datetime = Field(default_factory=_now)


class AIResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    request_id: str
    agent_type: AgentType
    output: str | dict[str, Any] | list[Any]
    usage: TokenUsage = Field(default_factory=TokenUsage)
    provider: str
    model: str
    cache_hit: bool = False
    latency_ms: int | None = None
    cost: float = 0.0
    completed_at: datetime = Field(default_factory=_now)


class AgentCallRequest(BaseModel):
    """HTTP body for running a single agent operation."""

    user_id: str = "anonymous"
    input: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0, le=2)


class AgentResult(BaseModel):
    request_id: str
    agent_type: AgentType
    operation: str
    output: dict[str, Any]
    cache_hit: bool = False
    fallback_used: bool = False
    provider: str | None = None
    error_code: str | None = None  # code of the error absorbed into a fallback
