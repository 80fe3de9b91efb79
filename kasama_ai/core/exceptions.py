class ConfigError(Exception):
    """Raised when config loading or validation fails."""


class OrchestratorError(Exception):
    """Base for errors that carry a normalized code and an HTTP-equivalent status."""

    code = "UNKNOWN_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code


class ValidationError(OrchestratorError):
    """Raised when caller input fails validation. Always surfaced."""

    code = "INVALID_INPUT"
    status_code = 400


class AuthenticationError(OrchestratorError):
    """Raised when a webhook signature or credential check fails."""

    code = "AUTHENTICATION_FAILED"
    status_code = 401


class NotFoundError(OrchestratorError):
    """Raised for an unknown batch, job, request or agent operation."""

    code = "NOT_FOUND"
    status_code = 404


class ConflictError(OrchestratorError):
    """Raised when a state transition is not allowed (e.g. cancelling a finished job)."""

    code = "CONFLICT"
    status_code = 409


class InternalError(OrchestratorError):
    """Raised for router/orchestrator faults."""

    code = "INTERNAL_ERROR"
    status_code = 500


class ProviderError(OrchestratorError):
    """Raised when an upstream provider call fails."""

    code = "PROVIDER_UNAVAILABLE"
    status_code = 502

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        code: str | None = None,
        retryable: bool = False,
        status_code: int | None = None,
        upstream_status: int | None = None,
    ):
        super().__init__(message, code=code, status_code=status_code)
        self.provider = provider
        self.retryable = retryable
        self.upstream_status = upstream_status


class ProviderTimeout(ProviderError):
    """Raised when a provider call exceeds its timeout or a pending callback expires."""

    code = "TIMEOUT"
    status_code = 504

    def __init__(self, message: str, provider: str | None = None, retryable: bool = True):
        super().__init__(message, provider=provider, retryable=retryable)


class MalformedOutputError(ProviderError):
    """Raised when provider output cannot be parsed or fails the output schema."""

    code = "MALFORMED_OUTPUT"

    def __init__(self, message: str, provider: str | None = None, raw: str | None = None):
        super().__init__(message, provider=provider, retryable=False)
        self.raw = raw
