"""
PayPal Payouts API adapter.

Sends single-item payouts to a seller's PayPal email over the PayPal REST
API using requests. Mirrors StripeAdapter: class methods only, a timeout
on every call, structured timing logs and translation of HTTP failures to
escrow PayPal exceptions.

Configuration (via settings):
- PAYPAL_CLIENT_ID / PAYPAL_CLIENT_SECRET: REST app credentials
- PAYPAL_MODE: "sandbox" or "live" (default: sandbox)
- PAYPAL_API_TIMEOUT_SECONDS: API call timeout (default: 15)

Usage:
    from escrow.adapters import PayPalAdapter

    result = PayPalAdapter.create_payout(
        receiver_email="seller@example.com",
        amount=Decimal("145.30"),
        currency="gbp",
        note="Payout for Driver",
        sender_batch_id="payout:...:1:ab12cd34",
    )
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import requests
from django.conf import settings

from escrow.exceptions import (
    PayPalAuthenticationError,
    PayPalInvalidAccountError,
    PayPalRequestError,
    PayPalUnavailableError,
)

BASE_URLS = {
    "sandbox": "https://api-m.sandbox.paypal.com",
    "live": "https://api-m.paypal.com",
}

# Refresh the OAuth token this long before PayPal expires it
TOKEN_SAFETY_BUFFER_S = 60

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

# PayPal error names that mean the receiver cannot be paid
RECEIVER_ERROR_NAMES = {
    "RECEIVER_UNREGISTERED",
    "RECEIVER_UNCONFIRMED",
    "RECEIVER_ACCOUNT_LOCKED",
    "RECEIVER_COUNTRY_NOT_ALLOWED",
    "RECEIVER_STATE_RESTRICTED",
    "RECEIVER_YOUTH_ACCOUNT",
}


@dataclass
class PayPalPayoutResult:
    """
    Result from a PayPal payout batch.

    Attributes:
        batch_id: PayPal payout_batch_id
        batch_status: PENDING, PROCESSING, SUCCESS, ...
        sender_batch_id: Our idempotent batch id
        raw_response: Full PayPal response dict
    """

    batch_id: str
    batch_status: str
    sender_batch_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


class PayPalAdapter:
    """Adapter for PayPal Payouts API operations."""

    _token: str | None = None
    _token_expires_at: float = 0.0
    _token_lock = threading.Lock()

    # =========================================================================
    # Configuration
    # =========================================================================

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def base_url() -> str:
        mode = getattr(settings, "PAYPAL_MODE", "sandbox")
        return BASE_URLS.get(mode, BASE_URLS["sandbox"])

    @staticmethod
    def _timeout() -> float:
        return getattr(settings, "PAYPAL_API_TIMEOUT_SECONDS", 15)

    @classmethod
    def get_access_token(cls) -> str:
        """
        Return a cached client-credentials token, fetching a new one if needed.

        Raises:
            PayPalAuthenticationError: Credentials rejected
            PayPalUnavailableError: Network failure or PayPal error
        """
        with cls._token_lock:
            now = time.time()
            if cls._token and now < cls._token_expires_at - TOKEN_SAFETY_BUFFER_S:
                return cls._token

            try:
                response = requests.post(
                    f"{cls.base_url()}/v1/oauth2/token",
                    auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
                    data={"grant_type": "client_credentials"},
                    headers={"Accept": "application/json"},
                    timeout=cls._timeout(),
                )
            except requests.RequestException as e:
                cls.get_logger().error(
                    "PayPal token request failed",
                    extra={"error": str(e)},
                )
                raise PayPalUnavailableError(
                    "Could not connect to PayPal. Please retry.",
                    provider_code="token_request_failed",
                ) from e

            if response.status_code in (400, 401):
                cls.get_logger().critical("PayPal authentication failed - check credentials")
                raise PayPalAuthenticationError(
                    "PayPal authentication failed",
                    provider_code="authentication_error",
                )
            if response.status_code != 200:
                raise PayPalUnavailableError(
                    f"PayPal token endpoint returned HTTP {response.status_code}",
                    provider_code=f"http_{response.status_code}",
                )

            payload = response.json()
            cls._token = payload["access_token"]
            cls._token_expires_at = now + int(payload.get("expires_in", 3600))
            return cls._token

    @classmethod
    def clear_token(cls) -> None:
        with cls._token_lock:
            cls._token = None
            cls._token_expires_at = 0.0

    # =========================================================================
    # Payouts
    # =========================================================================

    @classmethod
    def create_payout(
        cls,
        receiver_email: str,
        amount: Decimal,
        currency: str,
        note: str,
        sender_batch_id: str,
        sender_item_id: str | None = None,
    ) -> PayPalPayoutResult:
        """
        Send one EMAIL payout item.

        sender_batch_id doubles as the PayPal-Request-Id header; PayPal
        rejects a second batch with the same id instead of paying twice.

        Raises:
            PayPalInvalidAccountError: Receiver cannot be paid
            PayPalAuthenticationError: Credentials rejected
            PayPalRequestError: Request rejected
            PayPalUnavailableError: Network failure, 429 or 5xx
        """
        logger = cls.get_logger()
        log_context = {
            "operation": "create_payout",
            "amount": str(amount),
            "currency": currency,
            "sender_batch_id": sender_batch_id,
        }

        token = cls.get_access_token()

        body = {
            "sender_batch_header": {
                "sender_batch_id": sender_batch_id,
                "email_subject": "Seller Payout",
                "email_message": note,
            },
            "items": [
                {
                    "recipient_type": "EMAIL",
                    "amount": {"value": f"{amount:.2f}", "currency": currency.upper()},
                    "receiver": receiver_email,
                    "note": note,
                    "sender_item_id": sender_item_id or sender_batch_id,
                }
            ],
        }

        start_time = time.time()
        logger.info("Starting PayPal operation", extra=log_context)

        try:
            response = requests.post(
                f"{cls.base_url()}/v1/payments/payouts",
                json=body,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json",
                    "PayPal-Request-Id": sender_batch_id,
                },
                timeout=cls._timeout(),
            )
        except requests.Timeout as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "PayPal request timed out",
                extra={**log_context, "duration_ms": duration_ms},
            )
            raise PayPalUnavailableError(
                "PayPal request timed out. The payout may have been created.",
                provider_code="timeout",
            ) from e
        except requests.RequestException as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "Connection error to PayPal",
                extra={**log_context, "duration_ms": duration_ms},
                exc_info=True,
            )
            raise PayPalUnavailableError(
                "Could not connect to PayPal. Please retry.",
                provider_code="connection_error",
            ) from e

        duration_ms = (time.time() - start_time) * 1000

        if response.status_code not in (200, 201):
            cls._handle_error_response(response, log_context, duration_ms)

        payload = response.json()
        header = payload.get("batch_header", {})
        result = PayPalPayoutResult(
            batch_id=header.get("payout_batch_id", ""),
            batch_status=header.get("batch_status", ""),
            sender_batch_id=sender_batch_id,
            raw_response=payload,
        )

        logger.info(
            "PayPal operation completed",
            extra={
                **log_context,
                "batch_id": result.batch_id,
                "batch_status": result.batch_status,
                "duration_ms": duration_ms,
            },
        )
        return result

    # =========================================================================
    # Accounts
    # =========================================================================

    @staticmethod
    def is_valid_email(email: str | None) -> bool:
        """PayPal has no receiver lookup API; only the email format is checked."""
        return bool(email and EMAIL_PATTERN.match(email))

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_error_response(
        cls,
        response: requests.Response,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """Translate a non-2xx PayPal response to a domain exception."""
        logger = cls.get_logger()
        status_code = response.status_code

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        name = payload.get("name", "") if isinstance(payload, dict) else ""
        message = (
            payload.get("message") if isinstance(payload, dict) else None
        ) or f"PayPal returned HTTP {status_code}"

        log_context = {
            **log_context,
            "status_code": status_code,
            "paypal_error": name,
            "duration_ms": duration_ms,
        }

        if status_code == 429 or status_code >= 500:
            logger.error("PayPal unavailable", extra=log_context)
            raise PayPalUnavailableError(message, provider_code=name or f"http_{status_code}")

        if status_code == 401:
            cls.clear_token()
            logger.critical("PayPal rejected access token", extra=log_context)
            raise PayPalAuthenticationError(message, provider_code=name or "unauthorized")

        details_text = str(payload.get("details", "")) if isinstance(payload, dict) else ""
        if (
            name in RECEIVER_ERROR_NAMES
            or "receiver" in details_text.lower()
            or "email" in details_text.lower()
        ):
            logger.warning("PayPal receiver rejected", extra=log_context)
            raise PayPalInvalidAccountError(message, provider_code=name or "invalid_receiver")

        logger.error("Invalid request to PayPal", extra=log_context)
        raise PayPalRequestError(message, provider_code=name or f"http_{status_code}")


__all__ = ["PayPalAdapter", "PayPalPayoutResult"]
