from kasama_ai.errors.classifier import (
    Classification,
    ErrorClassifier,
    ErrorContext,
    NormalizedError,
    status_to_code,
)

__all__ = ["Classification", "ErrorClassifier", "ErrorContext", "NormalizedError", "status_to_code"]
