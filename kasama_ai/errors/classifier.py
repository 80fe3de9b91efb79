"""Classify failures into surface / retry / fallback with a normalized error."""
from __future__ import annotations

import asyncio
import logging
import re
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

import httpx
import pydantic

from kasama_ai.core.exceptions import (
    AuthenticationError,
    ConflictError,
    InternalError,
    NotFoundError,
    OrchestratorError,
    ProviderError,
    ProviderTimeout,
    ValidationError,
)

log = logging.getLogger("classifier")

Action = Literal["surface", "retry", "fallback"]

USER_MESSAGES = {
    "PROVIDER_UNAVAILABLE": "AI service is temporarily unavailable. Please try again in a few moments.",
    "RATE_LIMIT_EXCEEDED": "Too many requests. Please wait a moment before trying again.",
    "INVALID_INPUT": "Invalid input provided. Please check your data and try again.",
    "AUTHENTICATION_FAILED": "Authentication failed. Please check your credentials.",
    "INSUFFICIENT_CREDITS": "Insufficient API credits. Please contact support.",
    "MODEL_OVERLOADED": "AI model is currently overloaded. Please try again shortly.",
    "TIMEOUT": "Request timed out. Please try again.",
    "VALIDATION_FAILED": "Response validation failed. Please try again.",
    "MALFORMED_OUTPUT": "The AI service returned an unreadable response.",
    "NOT_FOUND": "The requested item was not found.",
    "CONFLICT": "The request conflicts with the current state.",
    "CACHE_ERROR": "Cache operation failed.",
    "INTERNAL_ERROR": "An internal error occurred.",
    "UNKNOWN_ERROR": "An unexpected error occurred. Please try again.",
}

# (pattern, code, retryable, status); first match wins
_MESSAGE_PATTERNS = [
    (re.compile(r"rate.?limit|\b429\b|too many requests", re.I), "RATE_LIMIT_EXCEEDED", True, 429),
    (re.compile(r"timed? ?out|timeout", re.I), "TIMEOUT", True, 504),
    (re.compile(r"\b401\b|unauthori[sz]ed|invalid api key", re.I), "AUTHENTICATION_FAILED", False, 502),
    (re.compile(r"\b402\b|quota|insufficient.?credit", re.I), "INSUFFICIENT_CREDITS", False, 502),
    (re.compile(r"\b503\b|overload", re.I), "MODEL_OVERLOADED", True, 503),
    (re.compile(r"\b50[024]\b|bad gateway|internal server error", re.I), "PROVIDER_UNAVAILABLE", True, 502),
    (re.compile(r"\b400\b|invalid|bad request", re.I), "INVALID_INPUT", False, 502),
]


@dataclass
class ErrorContext:
    agent_type: str | None = None
    request_id: str | None = None
    provider: str | None = None
    operation: str | None = None
    attempt: int = 1
    max_attempts: int = 1
    has_fallback: bool = False


@dataclass(frozen=True)
class NormalizedError:
    code: str
    message: str
    user_message: str
    status_code: int
    retryable: bool
    category: str  # "validation" | "provider" | "authentication" | "not_found" | "conflict" | "internal"
    agent_type: str | None = None
    request_id: str | None = None
    provider: str | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "user_message": self.user_message}

    def to_exception(self) -> OrchestratorError:
        cls = {
            "validation": ValidationError,
            "authentication": AuthenticationError,
            "not_found": NotFoundError,
            "conflict": ConflictError,
            "internal": InternalError,
        }.get(self.category)
        if cls is not None:
            return cls(self.message, code=self.code, status_code=self.status_code)
        if self.code == "TIMEOUT":
            return ProviderTimeout(self.message, provider=self.provider)
        return ProviderError(
            self.message,
            provider=self.provider,
            code=self.code,
            retryable=self.retryable,
            status_code=self.status_code,
        )


@dataclass(frozen=True)
class Classification:
    action: Action
    error: NormalizedError


class ErrorClassifier:
    """Pure decision function plus bounded error statistics. Never retries itself."""

    def __init__(self, recent_capacity: int = 100):
        self._by_code: dict[str, int] = {}
        self._by_agent: dict[str, int] = {}
        self._recent: deque[NormalizedError] = deque(maxlen=recent_capacity)

    def normalize(self, error: BaseException, context: ErrorContext | None = None) -> NormalizedError:
        ctx = context or ErrorContext()
        code, status, retryable, category, provider = self._describe(error)
        return NormalizedError(
            code=code,
            message=str(error) or type(error).__name__,
            user_message=USER_MESSAGES.get(code, USER_MESSAGES["UNKNOWN_ERROR"]),
            status_code=status,
            retryable=retryable,
            category=category,
            agent_type=_value(ctx.agent_type),
            request_id=ctx.request_id,
            provider=provider or ctx.provider,
        )

    def classify(self, error: BaseException, context: ErrorContext | None = None) -> Classification:
        ctx = context or ErrorContext()
        normalized = self.normalize(error, ctx)
        if normalized.category != "provider":
            action: Action = "surface"
        elif normalized.retryable and ctx.attempt < ctx.max_attempts:
            action = "retry"
        elif ctx.has_fallback:
            action = "fallback"
        else:
            action = "surface"
        self._record(normalized)
        log.warning(
            "%s → %s request_id=%s agent=%s provider=%s attempt=%s/%s at=%s: %s",
            normalized.code,
            action,
            normalized.request_id,
            normalized.agent_type,
            normalized.provider,
            ctx.attempt,
            ctx.max_attempts,
            normalized.timestamp,
            normalized.message[:300],
        )
        return Classification(action=action, error=normalized)

    def stats(self) -> dict[str, Any]:
        return {
            "total": sum(self._by_code.values()),
            "by_code": dict(self._by_code),
            "by_agent": dict(self._by_agent),
            "recent": [
                {"code": e.code, "agent_type": e.agent_type, "request_id": e.request_id, "timestamp": e.timestamp}
                for e in list(self._recent)[-10:]
            ],
        }

    def reset(self) -> None:
        self._by_code.clear()
        self._by_agent.clear()
        self._recent.clear()

    def _record(self, error: NormalizedError) -> None:
        self._by_code[error.code] = self._by_code.get(error.code, 0) + 1
        agent = error.agent_type or "unknown"
        self._by_agent[agent] = self._by_agent.get(agent, 0) + 1
        self._recent.append(error)

    def _describe(self, error: BaseException) -> tuple[str, int, bool, str, str | None]:
        """Return (code, status, retryable, category, provider)."""
        if isinstance(error, ProviderError):
            return error.code, error.status_code, error.retryable, "provider", error.provider
        if isinstance(error, ValidationError):
            return error.code, error.status_code, False, "validation", None
        if isinstance(error, pydantic.ValidationError):
            return "INVALID_INPUT", 400, False, "validation", None
        if isinstance(error, AuthenticationError):
            return error.code, error.status_code, False, "authentication", None
        if isinstance(error, NotFoundError):
            return error.code, error.status_code, False, "not_found", None
        if isinstance(error, ConflictError):
            return error.code, error.status_code, False, "conflict", None
        if isinstance(error, OrchestratorError):
            return error.code, error.status_code, False, "internal", None
        if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
            return "TIMEOUT", 504, True, "provider", None
        if isinstance(error, httpx.HTTPStatusError):
            code, retryable, status = status_to_code(error.response.status_code)
            return code, status, retryable, "provider", None
        if isinstance(error, httpx.TransportError):
            return "PROVIDER_UNAVAILABLE", 502, True, "provider", None
        upstream = getattr(error, "status_code", None)
        if isinstance(upstream, int):
            code, retryable, status = status_to_code(upstream)
            return code, status, retryable, "provider", None
        for pattern, code, retryable, status in _MESSAGE_PATTERNS:
            if pattern.search(str(error)):
                return code, status, retryable, "provider", None
        return "UNKNOWN_ERROR", 500, False, "provider", None


def status_to_code(status: int) -> tuple[str, bool, int]:
    """Map an upstream HTTP status to (code, retryable, our status)."""
    if status == 429:
        return "RATE_LIMIT_EXCEEDED", True, 429
    if status in (401, 403):
        return "AUTHENTICATION_FAILED", False, 502
    if status == 402:
        return "INSUFFICIENT_CREDITS", False, 502
    if status in (503, 529):
        return "MODEL_OVERLOADED", True, 503
    if status == 408 or status == 504:
        return "TIMEOUT", True, 504
    if status >= 500:
        return "PROVIDER_UNAVAILABLE", True, 502
    if status >= 400:
        return "INVALID_INPUT", False, 502
    return "UNKNOWN_ERROR", False, 502


def _value(agent_type: Any) -> str | None:
    return getattr(agent_type, "value", agent_type)


__all__ = [
    "Classification",
    "ErrorClassifier",
    "ErrorContext",
    "NormalizedError",
    "status_to_code",
    "USER_MESSAGES",
]
