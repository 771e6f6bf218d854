"""
Service layer exceptions.
"""

from typing import Any


class ServiceError(Exception):
    """Base exception for service layer errors."""

    def __init__(self, message: str, service_id: str | None = None):
        self.service_id = service_id
        super().__init__(message)


class ValidationError(ServiceError):
    """Malformed input. Never retried."""

    def __init__(
        self,
        message: str = "Validation failed",
        details: list[dict[str, Any]] | None = None,
    ):
        self.details = details or []
        super().__init__(message, service_id="validation")


class RateLimitError(ServiceError):
    """Rate limit exceeded for a client in a policy category."""

    def __init__(
        self,
        category: str,
        limit: int,
        reset_at: float,
        retry_after: float | None = None,
        message: str | None = None,
    ):
        self.category = category
        self.limit = limit
        self.reset_at = reset_at
        self.retry_after = retry_after
        msg = message or f"Rate limit exceeded for '{category}'"
        if retry_after and message is None:
            msg += f", retry after {retry_after:.0f}s"
        super().__init__(msg, service_id=category)


class ConflictError(ServiceError):
    """Write rejected by a uniqueness constraint."""

    pass


class AlreadySubscribedError(ConflictError):
    """Email address is already on the subscriber list."""

    def __init__(self, email: str):
        self.email = email
        super().__init__(
            f"This email is already subscribed: {email}", service_id="subscribers"
        )


class NotFoundError(ServiceError):
    """Requested record does not exist."""

    pass


class BackendError(ServiceError):
    """Persistence backend call failed."""

    def __init__(self, message: str, operation: str | None = None):
        self.operation = operation
        super().__init__(message, service_id=operation)


class LoadError(ServiceError):
    """Cache loader failed and no stale entry was available."""

    def __init__(self, key: str, cause: BaseException):
        self.key = key
        self.cause = cause
        super().__init__(
            f"Failed to load '{key}': {type(cause).__name__}: {cause}",
            service_id="cache",
        )


class OperationCancelledError(ServiceError):
    """A cancellation token fired before the operation finished."""

    def __init__(self, operation: str | None = None):
        self.operation = operation
        super().__init__(
            f"Operation '{operation or 'unknown'}' was cancelled", service_id=operation
        )
