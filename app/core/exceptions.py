"""
Base exception classes for application-wide error handling.

Every domain error raised by the escrow engine derives from
BaseApplicationError, so views can turn any of them into the same
response envelope and Celery tasks can log them with a stable code.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Input or precondition failures
    ├── NotFoundError - Resource not found
    ├── PermissionDeniedError - Actor is not allowed to perform the action
    ├── ConflictError - State conflicts (duplicates, concurrent modifications)
    └── ExternalServiceError - Payment provider failures

Usage:
    from core.exceptions import ConflictError, PermissionDeniedError

    # Raise with message only
    raise PermissionDeniedError("Only seller can mark item as shipped")

    # Raise with error code and details
    raise ConflictError(
        "Payout already completed for this transaction",
        error_code="DUPLICATE_PAYOUT",
        details={"transaction_id": str(transaction.id)},
    )

    # Convert to dict for API response
    try:
        ...
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, remaining time, etc.)
        http_status: Status code views should answer with
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Must wait 3 more days after delivery before requesting release",
                "error_code": "RELEASE_TOO_EARLY",
                "details": {"days_remaining": 3}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when input validation or a business precondition fails.

    Example:
        if transaction.delivered_at is None:
            raise ValidationError(
                "Cannot request release until item is marked as delivered",
                error_code="NOT_DELIVERED",
            )
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        transaction = Transaction.objects.filter(id=transaction_id).first()
        if not transaction:
            raise NotFoundError(
                "Transaction not found",
                details={"transaction_id": str(transaction_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the acting user lacks permission for an operation.

    For authentication failures (missing/invalid token), DRF's
    NotAuthenticated is used instead. This is for authorization.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Duplicate entries (a second completed payout)
    - Concurrent modification conflicts
    - Invalid state transitions
    - Lost compare-and-set claims
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Log the original error for debugging but don't expose provider
    internals to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502
