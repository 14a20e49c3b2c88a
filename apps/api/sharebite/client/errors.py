"""Client-side error types."""


class ShareBiteClientError(Exception):
    """Base class for client errors."""


class ServiceError(ShareBiteClientError):
    """Network failure or unexpected server response. Never retried."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ValidationFailed(ShareBiteClientError):
    """Input rejected (locally or with a 422)."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotAuthenticated(ShareBiteClientError):
    """No session, or the server rejected it (401)."""
