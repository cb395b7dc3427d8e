"""Custom exceptions for the sync core."""

from fastapi import HTTPException, status


class ApplyTrakError(Exception):
    """Base exception for sync core errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class NotFoundError(ApplyTrakError):
    """Raised when an operation references an identity that does not exist."""

    def __init__(self, record_id: str, kind: str = "Application"):
        self.record_id = record_id
        self.kind = kind
        super().__init__(f"{kind} {record_id} not found")


class InvariantViolation(ApplyTrakError):
    """Raised when a conflict, snapshot or strategy is structurally malformed."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Invariant violated: {detail}")


class StorageFailure(ApplyTrakError):
    """Raised when the persistence layer could not complete a read or write."""

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Storage failure during {operation}: {detail}")


def not_found_exception(detail: str = "Resource not found") -> HTTPException:
    """Return a 404 Not Found exception."""
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=detail,
    )


def unprocessable_exception(detail: str = "Malformed request") -> HTTPException:
    """Return a 422 Unprocessable Entity exception."""
    return HTTPException(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        detail=detail,
    )


def service_unavailable_exception(
    detail: str = "Storage temporarily unavailable",
) -> HTTPException:
    """Return a 503 Service Unavailable exception."""
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=detail,
    )


def to_http_exception(error: ApplyTrakError) -> HTTPException:
    """Translate a sync core error into its HTTP response."""
    if isinstance(error, NotFoundError):
        return not_found_exception(error.message)
    if isinstance(error, InvariantViolation):
        return unprocessable_exception(error.message)
    if isinstance(error, StorageFailure):
        return service_unavailable_exception(error.message)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=error.message,
    )
