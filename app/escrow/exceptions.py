"""
Escrow-specific exceptions.

Exception Hierarchy:
    EscrowAuthorizationError (PermissionDeniedError) - wrong actor for a transition
    EscrowPreconditionError (ValidationError) - business guard failed
    EscrowNotFoundError (NotFoundError) - transaction/hold lookup failed
    InvalidStateTransitionError (ConflictError) - transition not allowed from current state
    StaleRecordError (ConflictError) - compare-and-set update matched no row
    └── ClaimConflictError - another worker claimed the hold first
    DuplicatePayoutError (ConflictError) - a completed payout already exists
    PayoutRailError (ExternalServiceError) - base for payout rail failures
        ├── NoPayoutDestinationError - seller has no Stripe account or PayPal email
        ├── StripeError - Stripe Connect transfer failures
        │   ├── StripeInvalidAccountError - destination account unusable (seller action)
        │   ├── StripeInsufficientFundsError - platform balance too low
        │   ├── StripeInvalidRequestError - malformed request / auth failure
        │   ├── StripeRateLimitError - rate limited (transient)
        │   ├── StripeAPIUnavailableError - network or 5xx (transient)
        │   └── StripeTimeoutError - no response in time (transient)
        └── PayPalError - PayPal Payouts failures
            ├── PayPalInvalidAccountError - receiver email unusable (seller action)
            ├── PayPalAuthenticationError - client credentials rejected
            ├── PayPalRequestError - request rejected
            └── PayPalUnavailableError - network, 429 or 5xx (transient)

Usage:
    from escrow.exceptions import EscrowAuthorizationError, PayoutRailError

    try:
        rail.transfer(...)
    except PayoutRailError as e:
        if e.requires_seller_action:
            notify_seller_to_fix_account(e)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Transition Errors
# =============================================================================


class EscrowAuthorizationError(PermissionDeniedError):
    """
    Raised when the acting party may not perform a transition.

    Example:
        raise EscrowAuthorizationError(
            "Only seller can mark item as shipped",
            details={"transaction_id": str(txn.id), "required_role": "seller"},
        )
    """

    default_error_code: str = "ESCROW_FORBIDDEN"


class EscrowPreconditionError(ValidationError):
    """Raised when a business guard on a transition fails."""

    default_error_code: str = "ESCROW_PRECONDITION_FAILED"


class EscrowNotFoundError(NotFoundError):
    """Raised when a transaction or hold cannot be found."""

    default_error_code: str = "ESCROW_NOT_FOUND"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a transition is attempted from a state that does not allow it.

    Example:
        raise InvalidStateTransitionError(
            "Cannot confirm delivery from 'payment_held' state",
            details={"current_state": "payment_held", "action": "confirm_delivery"},
        )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


class StaleRecordError(ConflictError):
    """
    Raised when a compare-and-set update matches no row.

    The row changed between read and write. Callers reload and decide
    again rather than overwrite.
    """

    default_error_code: str = "STALE_RECORD"


class ClaimConflictError(StaleRecordError):
    """Raised when another worker already claimed a hold for payout."""

    default_error_code: str = "CLAIM_CONFLICT"


class DuplicatePayoutError(ConflictError):
    """
    Raised before any rail call when the transaction already has a
    completed payout.
    """

    default_error_code: str = "DUPLICATE_PAYOUT"


# =============================================================================
# Payout Rail Errors
# =============================================================================


class PayoutRailError(ExternalServiceError):
    """
    Base exception for payout rail failures.

    Attributes:
        provider_code: Provider's own error code, if any
        is_retryable: Transient failure; the next sweep may succeed
        requires_seller_action: The seller must fix their payout destination

    The executor never retries inside a call. A failed attempt leaves the
    hold in FAILED so the next sweep picks it up again.
    """

    default_error_code: str = "PAYOUT_RAIL_ERROR"
    is_retryable: bool = False
    requires_seller_action: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider_code = provider_code


class NoPayoutDestinationError(PayoutRailError):
    """Seller has neither a Stripe account nor a PayPal email configured."""

    default_error_code: str = "NO_PAYOUT_DESTINATION"
    requires_seller_action: bool = True


# -----------------------------------------------------------------------------
# Stripe
# -----------------------------------------------------------------------------


class StripeError(PayoutRailError):
    """
    Base exception for Stripe errors.

    Example:
        except StripeError as e:
            if e.is_retryable:
                leave_for_next_sweep()
    """

    default_error_code: str = "STRIPE_ERROR"


class StripeInvalidAccountError(StripeError):
    """
    Destination Connect account is missing, restricted or not onboarded.

    Requires the seller to finish onboarding or update the account.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"
    requires_seller_action: bool = True


class StripeInsufficientFundsError(StripeError):
    """Platform balance cannot cover the transfer."""

    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidRequestError(StripeError):
    """
    Invalid request parameters sent to Stripe.

    Usually a bug in our code or a bad API key, not a seller problem.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeRateLimitError(StripeError):
    """Rate limited by the Stripe API."""

    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Network failure or Stripe server error."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    Stripe API call timed out.

    The transfer may have succeeded on Stripe's side. The next attempt
    reuses the same idempotency key so Stripe returns the original result.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# -----------------------------------------------------------------------------
# PayPal
# -----------------------------------------------------------------------------


class PayPalError(PayoutRailError):
    """Base exception for PayPal Payouts errors."""

    default_error_code: str = "PAYPAL_ERROR"


class PayPalInvalidAccountError(PayPalError):
    """Receiver email is invalid or cannot receive payouts."""

    default_error_code: str = "INVALID_PAYPAL_ACCOUNT"
    requires_seller_action: bool = True


class PayPalAuthenticationError(PayPalError):
    """Client credentials rejected by PayPal."""

    default_error_code: str = "PAYPAL_AUTHENTICATION_FAILED"


class PayPalRequestError(PayPalError):
    """PayPal rejected the payout request."""

    default_error_code: str = "PAYPAL_REQUEST_REJECTED"


class PayPalUnavailableError(PayPalError):
    """Network failure, rate limit or PayPal server error."""

    default_error_code: str = "PAYPAL_UNAVAILABLE"
    is_retryable: bool = True


__all__ = [
    "ClaimConflictError",
    "DuplicatePayoutError",
    "EscrowAuthorizationError",
    "EscrowNotFoundError",
    "EscrowPreconditionError",
    "InvalidStateTransitionError",
    "NoPayoutDestinationError",
    "PayPalAuthenticationError",
    "PayPalError",
    "PayPalInvalidAccountError",
    "PayPalRequestError",
    "PayPalUnavailableError",
    "PayoutRailError",
    "StaleRecordError",
    "StripeAPIUnavailableError",
    "StripeError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeTimeoutError",
]
