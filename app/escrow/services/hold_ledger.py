"""
Payment hold ledger.

HoldLedger is the only writer of PaymentHold rows. After creation every
change is a field-scoped QuerySet.update() keyed by id that:

- writes only the fields its transition owns,
- increments version,
- is conditioned on the current status (compare-and-set).

An update that matches no row means another process moved the hold first;
it raises InvalidStateTransitionError (ClaimConflictError for claims) and
never overwrites the other writer.

Usage:
    from escrow.services import HoldLedger

    hold = HoldLedger.create_hold(
        transaction=txn,
        held_amount=Decimal("150.00"),
        currency="gbp",
        commission_amount=Decimal("4.50"),
        processing_fee=Decimal("0.20"),
    )
    HoldLedger.release(hold, HoldReason.BUYER_CONFIRMED, now)
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.db.models import F
from django.utils import timezone

from core.services import BaseService

from escrow.exceptions import ClaimConflictError, InvalidStateTransitionError
from escrow.models import PaymentHold
from escrow.state_machines import HoldReason, HoldStatus, PayoutScheduleStatus

if TYPE_CHECKING:
    from uuid import UUID

    from escrow.models import Transaction

# Payout states from which a hold may be claimed
CLAIMABLE_PAYOUT_STATUSES = [PayoutScheduleStatus.SCHEDULED, PayoutScheduleStatus.FAILED]


class HoldLedger(BaseService):
    """
    Owner of PaymentHold state.

    Status transitions:
        HELD -> RELEASED (buyer confirmed / auto release)
        HELD -> DISPUTED

    Payout transitions (RELEASED holds only):
        "" / SCHEDULED / FAILED -> SCHEDULED      schedule_payout
        SCHEDULED / FAILED -> PROCESSING          claim_payout
        PROCESSING -> COMPLETED                   complete_payout
        PROCESSING -> FAILED                      fail_payout / reset_stuck_claim
    """

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_hold(
        cls,
        transaction: Transaction,
        held_amount: Decimal,
        currency: str,
        commission_amount: Decimal,
        processing_fee: Decimal,
        now: datetime | None = None,
    ) -> PaymentHold:
        """
        Create the hold for a freshly captured transaction.

        Called exactly once per transaction; the OneToOne relation rejects
        a second hold.
        """
        hold = PaymentHold.objects.create(
            transaction=transaction,
            held_amount=held_amount,
            currency=currency,
            status=HoldStatus.HELD,
            reason=HoldReason.PAYMENT_CAPTURED,
            commission_held=commission_amount,
            processing_fee_held=processing_fee,
            held_at=now or timezone.now(),
        )

        cls.get_logger().info(
            "Payment hold created",
            extra={
                "hold_id": str(hold.id),
                "transaction_id": str(transaction.id),
                "held_amount": str(held_amount),
                "currency": currency,
            },
        )
        return hold

    # =========================================================================
    # Custody Transitions
    # =========================================================================

    @classmethod
    def mark_awaiting_delivery(cls, hold: PaymentHold) -> PaymentHold:
        cls._compare_and_set(
            hold.id,
            expected={"status": HoldStatus.HELD},
            changes={"reason": HoldReason.AWAITING_DELIVERY},
            action="mark_awaiting_delivery",
        )
        return cls._reload(hold)

    @classmethod
    def release(
        cls,
        hold: PaymentHold,
        reason: str,
        now: datetime,
    ) -> PaymentHold:
        """Release held funds (HELD -> RELEASED)."""
        changes: dict[str, Any] = {
            "status": HoldStatus.RELEASED,
            "reason": reason,
            "released_at": now,
        }
        if reason == HoldReason.AUTO_RELEASE:
            changes["auto_release_executed_at"] = now

        cls._compare_and_set(
            hold.id,
            expected={"status": HoldStatus.HELD},
            changes=changes,
            action="release",
        )
        cls.get_logger().info(
            "Payment hold released",
            extra={"hold_id": str(hold.id), "reason": reason},
        )
        return cls._reload(hold)

    @classmethod
    def dispute(
        cls,
        hold: PaymentHold,
        raised_by: str,
        reason: str,
        now: datetime,
    ) -> PaymentHold:
        """Freeze the hold in dispute (HELD -> DISPUTED)."""
        cls._compare_and_set(
            hold.id,
            expected={"status": HoldStatus.HELD},
            changes={
                "status": HoldStatus.DISPUTED,
                "reason": HoldReason.BUYER_DISPUTED,
                "dispute_raised": True,
                "dispute_raised_by": raised_by,
                "dispute_raised_at": now,
                "dispute_reason": reason,
            },
            action="dispute",
        )
        cls.get_logger().warning(
            "Payment hold disputed",
            extra={"hold_id": str(hold.id), "raised_by": raised_by},
        )
        return cls._reload(hold)

    @classmethod
    def record_release_request(
        cls,
        hold: PaymentHold,
        now: datetime,
        eligible_at: datetime,
    ) -> PaymentHold:
        cls._compare_and_set(
            hold.id,
            expected={"status": HoldStatus.HELD},
            changes={
                "reason": HoldReason.SELLER_REQUESTED,
                "seller_release_requested": True,
                "seller_release_requested_at": now,
                "auto_release_eligible_at": eligible_at,
            },
            action="record_release_request",
        )
        return cls._reload(hold)

    # =========================================================================
    # Payout Transitions
    # =========================================================================

    @classmethod
    def schedule_payout(cls, hold: PaymentHold, scheduled_at: datetime) -> PaymentHold:
        """
        Stamp the payout eligibility time on a released hold.

        A hold that is being paid or already paid is never rescheduled.
        """
        rows = (
            PaymentHold.objects.filter(id=hold.id, status=HoldStatus.RELEASED)
            .exclude(
                payout_status__in=[
                    PayoutScheduleStatus.PROCESSING,
                    PayoutScheduleStatus.COMPLETED,
                ]
            )
            .update(
                payout_scheduled_at=scheduled_at,
                payout_status=PayoutScheduleStatus.SCHEDULED,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
        )
        if rows == 0:
            cls._raise_conflict(hold.id, "schedule_payout", InvalidStateTransitionError)

        cls.get_logger().info(
            "Payout scheduled",
            extra={"hold_id": str(hold.id), "scheduled_at": scheduled_at.isoformat()},
        )
        return cls._reload(hold)

    @classmethod
    def claim_payout(cls, hold_id: UUID, now: datetime) -> PaymentHold:
        """
        Claim a released hold for payout (SCHEDULED/FAILED -> PROCESSING).

        Exactly one concurrent caller wins; the others get ClaimConflictError.
        """
        rows = PaymentHold.objects.filter(
            id=hold_id,
            status=HoldStatus.RELEASED,
            payout_status__in=CLAIMABLE_PAYOUT_STATUSES,
        ).update(
            payout_status=PayoutScheduleStatus.PROCESSING,
            payout_claimed_at=now,
            payout_attempts=F("payout_attempts") + 1,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if rows == 0:
            cls._raise_conflict(hold_id, "claim_payout", ClaimConflictError)

        return PaymentHold.objects.select_related(
            "transaction", "transaction__seller"
        ).get(id=hold_id)

    @classmethod
    def record_attempt_key(cls, hold_id: UUID, idempotency_key: str) -> None:
        """Remember the provider idempotency key of the in-flight attempt."""
        cls._compare_and_set(
            hold_id,
            expected={"payout_status": PayoutScheduleStatus.PROCESSING},
            changes={"payout_idempotency_key": idempotency_key},
            action="record_attempt_key",
        )

    @classmethod
    def complete_payout(
        cls,
        hold_id: UUID,
        method: str,
        details: dict[str, Any],
        now: datetime,
    ) -> None:
        """Record a successful payout (PROCESSING -> COMPLETED)."""
        cls._compare_and_set(
            hold_id,
            expected={"payout_status": PayoutScheduleStatus.PROCESSING},
            changes={
                "payout_status": PayoutScheduleStatus.COMPLETED,
                "payout_method": method,
                "payout_details": details,
                "payout_completed_at": now,
                "payout_claimed_at": None,
                "payout_idempotency_key": "",
            },
            action="complete_payout",
        )

    @classmethod
    def fail_payout(
        cls,
        hold_id: UUID,
        method: str,
        details: dict[str, Any],
        keep_idempotency_key: bool = False,
    ) -> None:
        """
        Record a failed attempt (PROCESSING -> FAILED).

        Args:
            keep_idempotency_key: True when the provider outcome is unknown
                (timeout, connection drop); the next attempt replays the same
                key so the provider cannot pay twice.
        """
        changes: dict[str, Any] = {
            "payout_status": PayoutScheduleStatus.FAILED,
            "payout_method": method,
            "payout_details": details,
            "payout_claimed_at": None,
        }
        if not keep_idempotency_key:
            changes["payout_idempotency_key"] = ""

        cls._compare_and_set(
            hold_id,
            expected={"payout_status": PayoutScheduleStatus.PROCESSING},
            changes=changes,
            action="fail_payout",
        )

    @classmethod
    def reset_stuck_claim(
        cls,
        hold_id: UUID,
        claimed_before: datetime,
        details: dict[str, Any],
    ) -> None:
        """
        Revert an interrupted claim to FAILED, keeping its idempotency key.

        Only matches claims older than claimed_before so a live attempt is
        never reset.
        """
        rows = PaymentHold.objects.filter(
            id=hold_id,
            payout_status=PayoutScheduleStatus.PROCESSING,
            payout_claimed_at__lt=claimed_before,
        ).update(
            payout_status=PayoutScheduleStatus.FAILED,
            payout_details=details,
            payout_claimed_at=None,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if rows == 0:
            cls._raise_conflict(hold_id, "reset_stuck_claim", ClaimConflictError)

    @classmethod
    def reset_attempts(cls, hold_id: UUID) -> None:
        """Zero the attempt counter so the sweep selects the hold again."""
        cls._compare_and_set(
            hold_id,
            expected={"payout_status__in": CLAIMABLE_PAYOUT_STATUSES},
            changes={"payout_attempts": 0},
            action="reset_attempts",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _compare_and_set(
        cls,
        hold_id: UUID,
        expected: dict[str, Any],
        changes: dict[str, Any],
        action: str,
    ) -> None:
        rows = PaymentHold.objects.filter(id=hold_id, **expected).update(
            **changes,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if rows == 0:
            cls._raise_conflict(hold_id, action, InvalidStateTransitionError)

    @classmethod
    def _raise_conflict(cls, hold_id: UUID, action: str, error_cls: type) -> None:
        current = (
            PaymentHold.objects.filter(id=hold_id)
            .values("status", "payout_status")
            .first()
        )
        cls.get_logger().warning(
            "Payment hold update rejected",
            extra={"hold_id": str(hold_id), "action": action, "current": current},
        )
        if current is None:
            raise InvalidStateTransitionError(
                "Payment hold not found",
                details={"hold_id": str(hold_id), "action": action},
            )
        raise error_cls(
            f"Cannot {action.replace('_', ' ')} for hold in status "
            f"'{current['status']}' with payout status '{current['payout_status'] or 'none'}'",
            details={"hold_id": str(hold_id), "action": action, **current},
        )

    @staticmethod
    def _reload(hold: PaymentHold) -> PaymentHold:
        hold.refresh_from_db()
        return hold


__all__ = ["HoldLedger"]
