"""API error classes.

Every component surfaces one of the errors below rather than raw store,
crypto or generator exceptions. Only the outermost layer (the exception
handlers in ``gatekeeper.main``) decides the response and whether the
failure is recorded to the audit sink.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy.exc import SQLAlchemyError


class APIError(Exception):
    """Base class for API errors.

    All API errors have a code, message, and HTTP status.
    Subclasses set default status_code.

    Attributes:
        code: Machine-readable error code (e.g., "NOT_FOUND").
        message: Human-readable error message.
        status_code: HTTP status code to return.
        details: Optional list of additional error details.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 500,
        details: list[dict] | None = None,
    ) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class ValidationError(APIError):
    """Malformed request (400).

    Use for bodies that cannot be parsed, unknown fields, oversized payloads.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="VALIDATION_ERROR",
            message=message,
            status_code=400,
            details=details,
        )


class UnauthorizedError(APIError):
    """Authentication required (401).

    Raised for a bad password, and for a missing, unknown, stale or revoked
    session token. The message never says which.
    """

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(
            code="UNAUTHORIZED",
            message=message,
            status_code=401,
        )


class ForbiddenError(APIError):
    """Authenticated but not allowed (403)."""

    def __init__(
        self, message: str = "Access denied", code: str = "FORBIDDEN"
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=403,
        )


class NotFoundError(APIError):
    """Resource not found (404).

    For one-time tokens this covers unknown, already consumed and replaced
    tokens alike.
    """

    def __init__(self, resource: str, resource_id: str | None = None) -> None:
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        else:
            message = f"{resource} not found"
        super().__init__(
            code="NOT_FOUND",
            message=message,
            status_code=404,
        )


class ConflictError(APIError):
    """Duplicate or conflicting resource (409).

    Accepts custom code for specific conflict types.
    """

    def __init__(
        self,
        code: str,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code=code,
            message=message,
            status_code=409,
            details=details,
        )


class GoneError(APIError):
    """Token present but past its absolute validity window (410)."""

    def __init__(self, resource: str) -> None:
        super().__init__(
            code="EXPIRED",
            message=f"{resource} has expired",
            status_code=410,
        )


class UnprocessableError(APIError):
    """Well-formed input that fails semantic validation (422).

    E.g., a name that is too long or an address that is not an email.
    """

    def __init__(
        self,
        message: str,
        details: list[dict] | None = None,
    ) -> None:
        super().__init__(
            code="UNPROCESSABLE",
            message=message,
            status_code=422,
            details=details,
        )


class InternalError(APIError):
    """Unexpected server error (500).

    Never expose the underlying error to clients. The extra attributes feed
    the audit sink.

    Attributes:
        operation: Name of the failing operation (e.g., "session.validate").
        context: Structured context for the audit record. Never holds raw
            passwords or raw tokens.
        user_id: Acting account id, 0 when unauthenticated.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        operation: str = "internal",
        context: dict[str, Any] | None = None,
        user_id: int = 0,
    ) -> None:
        super().__init__(
            code="INTERNAL_ERROR",
            message=message,
            status_code=500,
        )
        self.operation = operation
        self.context = context or {}
        self.user_id = user_id


@contextmanager
def store_errors(
    operation: str,
    *,
    user_id: int = 0,
    context: dict[str, Any] | None = None,
) -> Iterator[None]:
    """Translate database failures into InternalError.

    Usage:
        with store_errors("session.create", user_id=user_id):
            await SessionRepository.create(db, ...)

    Args:
        operation: Audit name of the wrapped operation.
        user_id: Acting account id (0 when unauthenticated).
        context: Extra structured context for the audit record.

    Raises:
        InternalError: If the wrapped block raises SQLAlchemyError.
    """
    try:
        yield
    except SQLAlchemyError as exc:
        raise InternalError(
            f"Database failure in {operation}",
            operation=operation,
            context=context,
            user_id=user_id,
        ) from exc
