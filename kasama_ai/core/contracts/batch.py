from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field


def _now() -> datetime:
    return datetime.now(timezone.utc)


class BatchMember(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: str = "anonymous"
    agent_type: str  # checked at dispatch; unknown types fail the member, not the submission
    operation: str | None = None  # None -> default operation of the agent type
    input: dict[str, Any] = Field(default_factory=dict)
    context: dict[str, Any] | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0, le=2)


class BatchOptions(BaseModel):
    parallel: bool = True
    max_concurrency: int = Field(default=5, ge=1)
    fail_fast: bool = False
    timeout_ms: int | None = Field(default=None, gt=0)


class BatchSubmitRequest(BaseModel):
    members: list[BatchMember] = Field(min_length=1)
    options: BatchOptions = Field(default_factory=BatchOptions)


class MemberResult(BaseModel):
    member_id: str
    index: int
    agent_type: str
    operation: str | None = None
    status: str  # "succeeded" | "failed" | "skipped" | "cancelled"
    output: dict[str, Any] | None = None
    error: dict[str, Any] | None = None  # {"code", "message"}
    cache_hit: bool = False
    fallback_used: bool = False
    latency_ms: int | None = None


class BatchJob(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    members: list[BatchMember]
    options: BatchOptions
    status: str = "accepted"  # "accepted" | "processing" | "completed" | "failed" | "cancelled"
    progress: float = 0.0  # percent, monotonic
    completed_count: int = 0
    total_count: int = 0
    results: list[MemberResult] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


TERMINAL_STATUSES = ("completed", "failed", "cancelled")


class BatchSubmitResponse(BaseModel):
    batch_id: str
    status: str  # "accepted"
    status_url: str
    member_count: int


class BatchStatusResponse(BaseModel):
    batch_id: str
    status: str
    progress: float
    completed_count: int
    total_count: int
    error: str | None = None
    results: list[MemberResult] | None = None  # present once terminal


class ScheduledMember(BatchMember):
    scheduled_time: datetime


class ScheduleRequest(BaseModel):
    user_id: str = "anonymous"
    members: list[ScheduledMember] = Field(min_length=1)
    options: BatchOptions = Field(default_factory=BatchOptions)


class ScheduleResponse(BaseModel):
    schedule_id: str
    status: str  # "scheduled"
    queue_position: int
    member_count: int


class BatchStats(BaseModel):
    active: int = 0
    completed: int = 0
    failed: int = 0
    cancelled: int = 0
    queued: int = 0
    total: int = 0
