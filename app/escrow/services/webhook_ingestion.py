"""
Capture ingestion: turns a completed checkout into a Transaction and its hold.

Idempotency does not depend on the webhook event id. The checkout session
id is unique on Transaction, so the same capture re-sent under any event
id resolves to the same Transaction and never creates a second hold.
Concurrent deliveries race on that unique constraint inside a savepoint;
the loser reads the winner's row.

Session metadata written at checkout:
    productId       catalog product id (required)
    sellerId        seller user id (required)
    productTitle    product title at checkout
    sellerTier      seller tier at checkout (falls back to SellerAccount)
    commissionRate  rate charged at checkout (falls back to the tier rate)
    commissionAmount

Usage:
    result = WebhookIngestionService.ingest_capture(session_dict)
    if result.success and result.data.created:
        ...
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from django.contrib.auth import get_user_model
from django.db import IntegrityError
from django.utils import timezone

from core.services import BaseService, ServiceResult

from escrow.catalog import ProductStatus, set_product_status
from escrow.commission import (
    DEFAULT_RAIL_FEE,
    calculate_capture_fee,
    calculate_payout,
    commission_rate_for,
    quantize,
)
from escrow.models import PaymentHold, SellerAccount, Transaction
from escrow.rails import select_rail
from escrow.exceptions import NoPayoutDestinationError
from escrow.services.activity import record_activity
from escrow.services.hold_ledger import HoldLedger
from escrow.state_machines import ActivityType, SellerTier, TransactionHoldStatus


@dataclass
class CaptureResult:
    transaction: Transaction
    hold: PaymentHold
    created: bool


class WebhookIngestionService(BaseService):
    """Creates escrow records from provider capture events exactly once."""

    @classmethod
    def ingest_capture(
        cls,
        session: dict[str, Any],
        now: datetime | None = None,
    ) -> ServiceResult[CaptureResult]:
        """
        Record a completed checkout session.

        Returns:
            ServiceResult with CaptureResult; created is False when the
            capture was already recorded. Failure for unusable sessions
            (missing metadata, unknown seller, zero amount).
        """
        now = now or timezone.now()
        logger = cls.get_logger()

        session_id = session.get("id")
        if not session_id:
            return ServiceResult.failure("Session id missing", error_code="MISSING_SESSION_ID")

        existing = cls._existing(session_id)
        if existing is not None:
            logger.info(
                "Capture already recorded",
                extra={"session_id": session_id, "transaction_id": str(existing.transaction.id)},
            )
            return ServiceResult.success(existing)

        metadata = session.get("metadata") or {}
        product_id = metadata.get("productId")
        seller_id = metadata.get("sellerId")
        if not product_id or not seller_id:
            logger.error("Missing metadata in checkout session", extra={"session_id": session_id})
            return ServiceResult.failure(
                "Checkout session is missing productId or sellerId metadata",
                error_code="MISSING_METADATA",
            )

        User = get_user_model()
        try:
            seller = User.objects.filter(pk=seller_id).first()
        except (TypeError, ValueError):
            seller = None
        if seller is None:
            logger.error(
                "Seller not found for checkout session",
                extra={"session_id": session_id, "seller_id": seller_id},
            )
            return ServiceResult.failure("Seller not found", error_code="SELLER_NOT_FOUND")

        amount = quantize(Decimal(session.get("amount_total") or 0) / 100)
        if amount <= 0:
            return ServiceResult.failure("Captured amount must be positive", error_code="INVALID_AMOUNT")

        buyer_email = (
            session.get("customer_email")
            or (session.get("customer_details") or {}).get("email")
            or ""
        )
        if not buyer_email:
            logger.warning(
                "Checkout session has no buyer email; buyer cannot act until it is set",
                extra={"session_id": session_id},
            )

        seller_account = SellerAccount.for_user(seller)
        tier = metadata.get("sellerTier") or (
            seller_account.tier if seller_account else SellerTier.FREE
        )
        commission_rate, commission_amount = cls._commission(metadata, amount, tier)
        expected_fee = cls._expected_rail_fee(seller_account)
        calc = calculate_payout(
            amount,
            tier,
            expected_fee,
            commission_rate=commission_rate,
            commission_amount=commission_amount,
        )

        try:
            with cls.atomic():
                txn = Transaction.objects.create(
                    amount=amount,
                    currency=(session.get("currency") or "gbp").lower(),
                    commission_rate=commission_rate,
                    commission_amount=commission_amount,
                    seller_amount=amount - commission_amount,
                    processing_fee=calculate_capture_fee(amount),
                    seller_tier=tier,
                    buyer_email=buyer_email,
                    buyer=User.objects.filter(email=buyer_email).first() if buyer_email else None,
                    seller=seller,
                    product_id=product_id,
                    product_title=metadata.get("productTitle", ""),
                    provider_session_id=session_id,
                    provider_payment_intent_id=session.get("payment_intent") or "",
                    hold_status=TransactionHoldStatus.PAYMENT_HELD,
                    paid_at=now,
                )
                hold = HoldLedger.create_hold(
                    transaction=txn,
                    held_amount=amount,
                    currency=txn.currency,
                    commission_amount=commission_amount,
                    processing_fee=calc.rail_fee,
                    now=now,
                )
                record_activity(
                    txn,
                    ActivityType.PAYMENT_HELD,
                    f"Payment held in escrow for: {txn.product_title or txn.product_id}",
                    metadata={
                        "held_amount": str(amount),
                        "commission": str(commission_amount),
                        "seller_amount": str(txn.seller_amount),
                        "buyer_email": buyer_email,
                        "session_id": session_id,
                    },
                )
        except IntegrityError:
            # Lost the race against a concurrent delivery of the same capture
            existing = cls._existing(session_id)
            if existing is None:
                raise
            logger.info("Concurrent capture already recorded", extra={"session_id": session_id})
            return ServiceResult.success(existing)

        set_product_status(product_id, ProductStatus.PENDING)

        logger.info(
            "Capture recorded, payment held",
            extra={
                "session_id": session_id,
                "transaction_id": str(txn.id),
                "amount": str(amount),
                "seller_tier": tier,
            },
        )
        return ServiceResult.success(CaptureResult(transaction=txn, hold=hold, created=True))

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _existing(session_id: str) -> CaptureResult | None:
        txn = Transaction.objects.filter(provider_session_id=session_id).first()
        if txn is None:
            return None
        hold = PaymentHold.objects.filter(transaction=txn).first()
        if hold is None:
            return None
        return CaptureResult(transaction=txn, hold=hold, created=False)

    @staticmethod
    def _commission(
        metadata: dict[str, Any],
        amount: Decimal,
        tier: str,
    ) -> tuple[Decimal, Decimal]:
        """Commission charged at checkout, or the tier's rate when absent."""
        try:
            rate = Decimal(str(metadata["commissionRate"]))
        except (KeyError, InvalidOperation):
            rate = commission_rate_for(tier)

        try:
            commission = quantize(metadata["commissionAmount"])
        except (KeyError, InvalidOperation):
            commission = quantize(amount * rate)

        return rate, min(commission, amount)

    @staticmethod
    def _expected_rail_fee(seller_account: SellerAccount | None) -> Decimal:
        try:
            rail, _ = select_rail(seller_account)
        except NoPayoutDestinationError:
            return DEFAULT_RAIL_FEE
        return rail.fee


__all__ = ["CaptureResult", "WebhookIngestionService"]
