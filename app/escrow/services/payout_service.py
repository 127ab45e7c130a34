"""
Payout executor: moves a released hold's net amount to the seller.

Each hold is paid in phases so the provider call never runs inside a
database transaction:

1. Claim: compare-and-set the hold to PROCESSING (commits immediately)
2. Prepare: duplicate check, rail selection, amounts, Payout row
3. Call the rail OUTSIDE any transaction
4. Store the provider transfer id on the Payout
5. Record the outcome on Payout, PaymentHold and Transaction atomically

If the process dies between 3 and 5 the hold stays PROCESSING. The
recovery sweep (recover_stuck) finalizes it when a transfer id was stored,
otherwise fails the attempt and keeps its idempotency key so the next
attempt replays the same provider request instead of paying twice.

Usage:
    from escrow.services import PayoutExecutor

    outcome = PayoutExecutor.execute_hold(hold.id)
    summary = PayoutExecutor.run_sweep()
    print(summary.to_dict())
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.utils import timezone

from core.services import BaseService

from escrow.adapters import IdempotencyKeyGenerator
from escrow.commission import PayoutCalculation, calculate_payout
from escrow.exceptions import (
    ClaimConflictError,
    DuplicatePayoutError,
    InvalidStateTransitionError,
    PayoutRailError,
)
from escrow.models import PaymentHold, Payout, SellerAccount, Transaction
from escrow.notifications import NotificationKind, notify
from escrow.rails import RailTransferResult, select_rail
from escrow.services.activity import record_activity
from escrow.services.hold_ledger import HoldLedger
from escrow.services.payout_scheduler import PayoutScheduler, stuck_after
from escrow.state_machines import (
    ActivityType,
    PayoutStatus,
    TransactionHoldStatus,
)

if TYPE_CHECKING:
    from uuid import UUID

    from escrow.rails import PayoutRail

INTERRUPTED_CODE = "attempt_interrupted"


# =============================================================================
# Result Types
# =============================================================================


class OutcomeStatus:
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"
    RECOVERED = "recovered"


@dataclass
class PayoutOutcome:
    """
    Result of one hold's payout attempt.

    status is one of completed, failed, skipped, recovered.
    """

    hold_id: str
    status: str
    transaction_id: str | None = None
    payout_id: str | None = None
    method: str | None = None
    transfer_id: str | None = None
    net_amount: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SweepSummary:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    skipped: int = 0
    results: list[PayoutOutcome] = field(default_factory=list)

    def add(self, outcome: PayoutOutcome) -> None:
        self.processed += 1
        if outcome.status in (OutcomeStatus.COMPLETED, OutcomeStatus.RECOVERED):
            self.successful += 1
        elif outcome.status == OutcomeStatus.FAILED:
            self.failed += 1
        else:
            self.skipped += 1
        self.results.append(outcome)

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "successful": self.successful,
            "failed": self.failed,
            "skipped": self.skipped,
            "results": [r.to_dict() for r in self.results],
        }


# =============================================================================
# Payout Executor
# =============================================================================


class PayoutExecutor(BaseService):
    """
    Executes scheduled payouts over the Stripe or PayPal rail.

    Error Handling:
        - ClaimConflictError: another worker owns the hold, skipped
        - DuplicatePayoutError: a completed payout exists, hold repaired
        - PayoutRailError: attempt failed, hold FAILED, retried next sweep
        - Anything else propagates; the hold stays PROCESSING for recovery
    """

    # =========================================================================
    # Single Hold
    # =========================================================================

    @classmethod
    def execute_hold(cls, hold_id: UUID, now: datetime | None = None) -> PayoutOutcome:
        now = now or timezone.now()
        logger = cls.get_logger()

        # Phase 1: claim
        try:
            hold = PayoutScheduler.claim(hold_id, now)
        except ClaimConflictError as e:
            logger.info(
                "Payout skipped: hold not claimable",
                extra={"hold_id": str(hold_id), "reason": e.message},
            )
            return PayoutOutcome(
                hold_id=str(hold_id),
                status=OutcomeStatus.SKIPPED,
                error=e.message,
                error_code=e.error_code,
            )

        txn = hold.transaction

        # Phase 2: prepare
        try:
            cls._ensure_no_completed_payout(txn)
        except DuplicatePayoutError as e:
            return cls._repair_duplicate(hold, txn, e, now)

        seller_account = SellerAccount.for_user(txn.seller)
        try:
            rail, destination = select_rail(seller_account)
        except PayoutRailError as e:
            return cls._record_failure(hold, txn, None, e, method="", now=now)

        # Commission is the figure frozen at capture, not the current tier rate
        calc = calculate_payout(
            hold.held_amount,
            txn.seller_tier,
            rail.fee,
            commission_rate=txn.commission_rate,
            commission_amount=hold.commission_held,
        )
        payout = cls._create_attempt(hold, txn, rail, calc)

        if calc.net_amount <= Decimal("0.00"):
            logger.warning(
                "Net payout is zero, completing without a transfer",
                extra={"hold_id": str(hold.id), "gross_amount": str(calc.gross_amount)},
            )
            result = RailTransferResult(transfer_id="", status="zero_amount")
            return cls._record_success(hold, txn, payout, result, seller_account, now)

        # Phase 3: rail call, outside any transaction
        logger.info(
            "Calling payout rail",
            extra={
                "hold_id": str(hold.id),
                "payout_id": str(payout.id),
                "method": rail.method,
                "net_amount": str(calc.net_amount),
                "attempt": payout.attempt,
            },
        )
        try:
            result = rail.transfer(
                destination=destination,
                amount=calc.net_amount,
                currency=txn.currency,
                description=f"Payout for {txn.product_title or 'order ' + str(txn.id)}",
                idempotency_key=payout.idempotency_key,
                metadata={
                    "hold_id": str(hold.id),
                    "transaction_id": str(txn.id),
                    "payout_id": str(payout.id),
                },
            )
        except PayoutRailError as e:
            return cls._record_failure(hold, txn, payout, e, method=rail.method, now=now)

        # Phase 4: keep the transfer id even if the final write fails
        Payout.objects.filter(id=payout.id).update(provider_transfer_id=result.transfer_id)

        # Phase 5: record
        return cls._record_success(hold, txn, payout, result, seller_account, now)

    # =========================================================================
    # Sweeps
    # =========================================================================

    @classmethod
    def run_sweep(cls, now: datetime | None = None, limit: int | None = None) -> SweepSummary:
        """
        Pay every eligible hold once. A failing hold never aborts the pass.
        """
        now = now or timezone.now()
        summary = SweepSummary()
        hold_ids = list(
            PayoutScheduler.eligible_holds(now, limit).values_list("id", flat=True)
        )

        cls.get_logger().info(
            "Payout sweep started",
            extra={"eligible": len(hold_ids), "now": now.isoformat()},
        )

        for hold_id in hold_ids:
            try:
                outcome = cls.execute_hold(hold_id, now=now)
            except Exception as e:
                result = cls.handle_exception(e, f"Payout sweep item {hold_id}")
                outcome = PayoutOutcome(
                    hold_id=str(hold_id),
                    status=OutcomeStatus.FAILED,
                    error=result.error,
                    error_code=result.error_code,
                )
            summary.add(outcome)

        cls.get_logger().info(
            "Payout sweep finished",
            extra={
                "processed": summary.processed,
                "successful": summary.successful,
                "failed": summary.failed,
                "skipped": summary.skipped,
            },
        )
        return summary

    @classmethod
    def recover_stuck(cls, now: datetime | None = None) -> SweepSummary:
        """
        Resolve holds left in PROCESSING by an interrupted attempt.

        - Attempt already completed or holding a transfer id: finalize
        - Otherwise: fail the attempt as attempt_interrupted and revert the
          hold to FAILED with its idempotency key kept
        """
        now = now or timezone.now()
        summary = SweepSummary()

        for hold in PayoutScheduler.stuck_holds(now):
            try:
                outcome = cls._recover_hold(hold, now)
            except (ClaimConflictError, InvalidStateTransitionError) as e:
                outcome = PayoutOutcome(
                    hold_id=str(hold.id),
                    status=OutcomeStatus.SKIPPED,
                    error=e.message,
                    error_code=e.error_code,
                )
            summary.add(outcome)

        if summary.processed:
            cls.get_logger().warning(
                "Recovered stuck payouts",
                extra={"processed": summary.processed, "finalized": summary.successful},
            )
        return summary

    @classmethod
    def _recover_hold(cls, hold: PaymentHold, now: datetime) -> PayoutOutcome:
        txn = hold.transaction
        last = (
            Payout.objects.filter(payment_hold=hold)
            .order_by("-created_at")
            .first()
        )

        if last is not None and (
            last.status == PayoutStatus.COMPLETED
            or (last.status == PayoutStatus.PROCESSING and last.provider_transfer_id)
        ):
            result = RailTransferResult(
                transfer_id=last.provider_transfer_id or "",
                status="recovered",
            )
            outcome = cls._record_success(
                hold,
                txn,
                last,
                result,
                SellerAccount.for_user(txn.seller),
                now,
                activity_type=ActivityType.PAYOUT_RECOVERED,
            )
            outcome.status = OutcomeStatus.RECOVERED
            return outcome

        with cls.atomic():
            if last is not None and last.status == PayoutStatus.PROCESSING:
                last.fail(INTERRUPTED_CODE, "Payout attempt was interrupted", now=now)
                last.save()

            HoldLedger.reset_stuck_claim(
                hold.id,
                claimed_before=now - stuck_after(),
                details={
                    "error": "Payout attempt was interrupted",
                    "error_code": INTERRUPTED_CODE,
                    "attempt": hold.payout_attempts,
                    "idempotency_key": hold.payout_idempotency_key,
                },
            )
            record_activity(
                txn,
                ActivityType.PAYOUT_RECOVERED,
                "Interrupted payout attempt reset for retry",
                metadata={
                    "payout_id": str(last.id) if last else None,
                    "attempt": hold.payout_attempts,
                },
            )

        cls.get_logger().warning(
            "Interrupted payout reset",
            extra={"hold_id": str(hold.id), "attempt": hold.payout_attempts},
        )
        return PayoutOutcome(
            hold_id=str(hold.id),
            status=OutcomeStatus.FAILED,
            transaction_id=str(txn.id),
            payout_id=str(last.id) if last else None,
            error_code=INTERRUPTED_CODE,
        )

    # =========================================================================
    # Preparation
    # =========================================================================

    @staticmethod
    def _ensure_no_completed_payout(txn: Transaction) -> None:
        existing = Payout.objects.filter(
            transaction=txn,
            status=PayoutStatus.COMPLETED,
        ).first()
        if existing is not None:
            raise DuplicatePayoutError(
                "Payout already completed for this transaction",
                details={
                    "transaction_id": str(txn.id),
                    "payout_id": str(existing.id),
                    "transfer_id": existing.provider_transfer_id,
                },
            )

    @classmethod
    def _create_attempt(
        cls,
        hold: PaymentHold,
        txn: Transaction,
        rail: PayoutRail,
        calc: PayoutCalculation,
    ) -> Payout:
        # Resume the interrupted attempt's key, otherwise one per attempt
        idempotency_key = hold.payout_idempotency_key or IdempotencyKeyGenerator.generate(
            operation="payout",
            entity_id=hold.id,
            attempt=hold.payout_attempts,
        )

        with cls.atomic():
            HoldLedger.record_attempt_key(hold.id, idempotency_key)
            payout = Payout.objects.create(
                transaction=txn,
                payment_hold=hold,
                seller_id=txn.seller_id,
                method=rail.method,
                gross_amount=calc.gross_amount,
                commission_amount=calc.commission_amount,
                processing_fee=calc.rail_fee,
                net_amount=calc.net_amount,
                currency=txn.currency,
                idempotency_key=idempotency_key,
                attempt=hold.payout_attempts,
            )
        hold.payout_idempotency_key = idempotency_key
        return payout

    # =========================================================================
    # Outcome Recording
    # =========================================================================

    @classmethod
    def _record_success(
        cls,
        hold: PaymentHold,
        txn: Transaction,
        payout: Payout,
        result: RailTransferResult,
        seller_account: SellerAccount | None,
        now: datetime,
        activity_type: str = ActivityType.PAYOUT_COMPLETED,
    ) -> PayoutOutcome:
        transfer_id = result.transfer_id or None

        with cls.atomic():
            payout = Payout.objects.select_for_update().get(id=payout.id)
            if payout.status == PayoutStatus.PROCESSING:
                payout.complete(
                    transfer_id,
                    metadata={"rail_status": result.status},
                    now=now,
                )
                payout.save()

            details = {
                "payout_id": str(payout.id),
                "transfer_id": transfer_id,
                "gross_amount": str(payout.gross_amount),
                "commission_amount": str(payout.commission_amount),
                "fee": str(payout.processing_fee),
                "net_amount": str(payout.net_amount),
                "attempt": payout.attempt,
            }
            HoldLedger.complete_payout(hold.id, payout.method, details, now)

            txn = Transaction.objects.select_for_update().get(id=txn.id)
            if txn.hold_status == TransactionHoldStatus.CONFIRMED:
                txn.complete_payout(now=now)
            else:
                # Auto-released transactions are already RELEASED
                txn.transferred_at = now
            txn.save()

            record_activity(
                txn,
                activity_type,
                f"Payout of {payout.net_amount} {payout.currency.upper()} sent via "
                f"{payout.get_method_display()}",
                metadata=details,
            )

        cls.get_logger().info(
            "Payout completed",
            extra={
                "hold_id": str(hold.id),
                "payout_id": str(payout.id),
                "transfer_id": transfer_id,
                "method": payout.method,
            },
        )
        cls._notify_success(txn, payout, seller_account)

        return PayoutOutcome(
            hold_id=str(hold.id),
            status=OutcomeStatus.COMPLETED,
            transaction_id=str(txn.id),
            payout_id=str(payout.id),
            method=payout.method,
            transfer_id=transfer_id,
            net_amount=str(payout.net_amount),
        )

    @classmethod
    def _record_failure(
        cls,
        hold: PaymentHold,
        txn: Transaction,
        payout: Payout | None,
        error: PayoutRailError,
        method: str,
        now: datetime,
    ) -> PayoutOutcome:
        details = {
            "error": error.message,
            "error_code": error.error_code,
            "attempt": hold.payout_attempts,
            "retryable": error.is_retryable,
            "payout_id": str(payout.id) if payout else None,
        }

        with cls.atomic():
            if payout is not None:
                payout.fail(error.error_code, error.message, now=now)
                payout.save()

            HoldLedger.fail_payout(
                hold.id,
                method,
                details,
                keep_idempotency_key=error.is_retryable,
            )

            txn.failed_at = now
            txn.save(update_fields=["failed_at"])

            record_activity(
                txn,
                ActivityType.PAYOUT_FAILED,
                f"Payout failed: {error.message}",
                metadata=details,
            )

        cls.get_logger().error(
            "Payout failed",
            extra={
                "hold_id": str(hold.id),
                "transaction_id": str(txn.id),
                "error_code": error.error_code,
                "retryable": error.is_retryable,
                "requires_seller_action": error.requires_seller_action,
            },
        )
        cls._notify_failure(txn, error)

        return PayoutOutcome(
            hold_id=str(hold.id),
            status=OutcomeStatus.FAILED,
            transaction_id=str(txn.id),
            payout_id=str(payout.id) if payout else None,
            method=method or None,
            error=error.message,
            error_code=error.error_code,
        )

    @classmethod
    def _repair_duplicate(
        cls,
        hold: PaymentHold,
        txn: Transaction,
        error: DuplicatePayoutError,
        now: datetime,
    ) -> PayoutOutcome:
        """A completed payout exists: mark the hold completed, move no money."""
        cls.get_logger().error(
            "Duplicate payout blocked",
            extra={"hold_id": str(hold.id), **error.details},
        )

        existing = Payout.objects.get(id=error.details["payout_id"])
        with cls.atomic():
            HoldLedger.complete_payout(
                hold.id,
                existing.method,
                {
                    "payout_id": str(existing.id),
                    "transfer_id": existing.provider_transfer_id,
                    "net_amount": str(existing.net_amount),
                    "repaired": True,
                },
                now,
            )
            txn = Transaction.objects.select_for_update().get(id=txn.id)
            if txn.hold_status == TransactionHoldStatus.CONFIRMED:
                txn.complete_payout(now=now)
                txn.save()

            record_activity(
                txn,
                ActivityType.PAYOUT_DUPLICATE_BLOCKED,
                "Duplicate payout blocked; existing payout kept",
                metadata=error.details,
            )

        return PayoutOutcome(
            hold_id=str(hold.id),
            status=OutcomeStatus.SKIPPED,
            transaction_id=str(txn.id),
            payout_id=str(existing.id),
            transfer_id=existing.provider_transfer_id,
            error=error.message,
            error_code=error.error_code,
        )

    # =========================================================================
    # Notifications
    # =========================================================================

    @staticmethod
    def _notify_success(
        txn: Transaction,
        payout: Payout,
        seller_account: SellerAccount | None,
    ) -> None:
        data = {
            "seller_name": seller_account.name if seller_account else "Seller",
            "product_title": txn.product_title,
            "gross_amount": str(payout.gross_amount),
            "commission_amount": str(payout.commission_amount),
            "fee": str(payout.processing_fee),
            "net_amount": str(payout.net_amount),
            "currency": payout.currency.upper(),
            "payout_method": payout.get_method_display(),
            "transfer_id": payout.provider_transfer_id or "",
            "transaction_id": str(txn.id),
        }
        notify(txn.seller.email, NotificationKind.SELLER_PAYOUT_PROCESSED, data)
        notify(
            txn.buyer_email,
            NotificationKind.BUYER_PAYOUT_COMPLETED,
            {"product_title": txn.product_title, "transaction_id": str(txn.id)},
        )

    @staticmethod
    def _notify_failure(txn: Transaction, error: PayoutRailError) -> None:
        kind = (
            NotificationKind.SELLER_PAYOUT_ACTION_REQUIRED
            if error.requires_seller_action
            else NotificationKind.SELLER_PAYOUT_FAILED
        )
        seller_account = SellerAccount.for_user(txn.seller)
        notify(
            txn.seller.email,
            kind,
            {
                "seller_name": seller_account.name if seller_account else "Seller",
                "product_title": txn.product_title,
                "transaction_id": str(txn.id),
                "error_message": error.message,
            },
        )


def verify_payout_account(seller_account: SellerAccount) -> dict[str, Any]:
    """
    Check the seller's preferred payout destination with its rail.

    Returns:
        {"valid": bool, "method": str | None, "error": str | None}
    """
    try:
        rail, destination = select_rail(seller_account)
    except PayoutRailError as e:
        return {"valid": False, "method": None, "error": e.message}

    verification = rail.verify_account(destination)
    return {
        "valid": verification.valid,
        "method": rail.method,
        "error": verification.error,
    }


__all__ = [
    "OutcomeStatus",
    "PayoutExecutor",
    "PayoutOutcome",
    "SweepSummary",
    "verify_payout_account",
]
