from typing import Any, Optional


class ToneFluentError(Exception):
    pass


class ConfigError(ToneFluentError):
    pass


def get_backend_error_message(status: int) -> str:
    if status == 401:
        return "Authentication with the completion backend failed (401). Check the API key."
    if status == 403:
        return "Access to the completion backend was denied (403). Check the API key settings."
    if status == 429:
        return "The completion backend rate limit was reached (429). Wait a moment and retry."
    if status >= 500:
        return f"The completion backend reported a server error ({status}). Retry later."
    if status == 0:
        return "The completion backend could not be reached."
    return f"The completion backend returned an error ({status})."


class BackendError(ToneFluentError):
    """Non-success response from the completion backend."""

    def __init__(self, status: int, message: Optional[str] = None, details: Any = None):
        self.status = status
        self.message = message or get_backend_error_message(status)
        self.details = details
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.status == 0 or self.status == 429 or self.status >= 500


class MalformedResponseError(ToneFluentError):
    """No JSON object could be recovered from a model response."""


class CancellationError(ToneFluentError):
    """The caller cancelled the request. Always propagated, never degraded."""


class StructuralAnalysisUnavailable(ToneFluentError):
    pass


class VerificationUnavailable(ToneFluentError):
    pass
