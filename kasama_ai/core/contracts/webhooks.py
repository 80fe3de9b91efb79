from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field, HttpUrl


class AnthropicUsage(BaseModel):
    input_tokens: int = Field(ge=0)
    output_tokens: int = Field(ge=0)


class AnthropicError(BaseModel):
    type: str
    message: str


class AnthropicEventData(BaseModel):
    id: str  # request id the call was dispatched under
    type: str
    status: Literal["completed", "failed", "cancelled"]
    model: str | None = None
    usage: AnthropicUsage | None = None
    result: Any = None
    error: AnthropicError | None = None


class AnthropicEvent(BaseModel):
    type: str  # "message.completed" | "message.failed" | "usage.updated"
    id: str  # event id
    created_at: str
    data: AnthropicEventData


class OpenAIUsage(BaseModel):
    prompt_tokens: int = Field(ge=0)
    completion_tokens: int = Field(ge=0)
    total_tokens: int = Field(ge=0)


class OpenAIError(BaseModel):
    code: str | None = None
    message: str
    type: str | None = None


class OpenAIEventData(BaseModel):
    id: str  # request id the call was dispatched under
    status: Literal["succeeded", "failed", "cancelled"]
    model: str | None = None
    usage: OpenAIUsage | None = None
    output: Any = None
    error: OpenAIError | None = None


class OpenAIEvent(BaseModel):
    id: str  # event id
    object: str = "event"
    created_at: int
    type: str  # "completion.succeeded" | "completion.failed" | "usage.updated"
    data: OpenAIEventData


class GenericUsage(BaseModel):
    input_tokens: int = Field(default=0, ge=0)
    output_tokens: int = Field(default=0, ge=0)


class GenericEvent(BaseModel):
    provider: Literal["anthropic", "openai", "custom"]
    event_id: str | None = None  # defaults to "<request_id>:<status>"
    request_id: str
    status: Literal["completed", "failed", "processing"]
    data: Any = None
    error: str | None = None
    usage: GenericUsage | None = None
    timestamp: str


class WebhookOutcome(BaseModel):
    status: str  # "processed" | "duplicate" | "ignored"
    event_id: str
    event_type: str
    request_id: str | None = None
    resolved: bool = False


class CallbackRegistration(BaseModel):
    request_id: str = Field(min_length=1)
    callback_url: HttpUrl
    expiration_minutes: float = Field(default=60, gt=0, le=24 * 60)


class CallbackRegistrationResponse(BaseModel):
    request_id: str
    webhook_url: str
    expires_at: str


class CallbackDelivery(BaseModel):
    success: bool
    data: Any = None
    error: str | None = None
    usage: GenericUsage | None = None


class WebhookStats(BaseModel):
    pending_callbacks: int
    registered_callback_urls: int
    registered_secrets: int
    processed_events: int
