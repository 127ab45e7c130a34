"""
Escrow transaction state machine operations.

Each operation:
1. Opens transaction.atomic()
2. Reloads the Transaction with select_for_update()
3. Checks the actor with require_actor()
4. Applies the django-fsm transition and saves
5. Moves the PaymentHold through HoldLedger
6. Appends an Activity row

Rejections raise, never silently no-op:
    EscrowAuthorizationError     wrong actor (403)
    InvalidStateTransitionError  wrong source state (409)
    EscrowPreconditionError      business guard failed (400)

Usage:
    from escrow.authorization import Actor
    from escrow.services import EscrowTransactionService

    txn = EscrowTransactionService.mark_shipped(
        transaction_id,
        Actor.for_user(request.user),
        tracking_number="JD000222",
        carrier="Royal Mail",
    )
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from escrow.authorization import SYSTEM_ACTOR, Actor, Role, require_actor
from escrow.catalog import ProductStatus, set_product_status
from escrow.exceptions import (
    EscrowNotFoundError,
    EscrowPreconditionError,
    InvalidStateTransitionError,
)
from escrow.models import PaymentHold, Transaction
from escrow.notifications import NotificationKind, notify
from escrow.services.activity import record_activity
from escrow.services.hold_ledger import HoldLedger
from escrow.services.payout_scheduler import PayoutScheduler
from escrow.state_machines import ActivityType, HoldReason

if TYPE_CHECKING:
    from uuid import UUID

DEFAULT_CARRIER = "Unknown"
DEFAULT_DISPUTE_REASON = "Buyer reported issue with delivery"


class EscrowTransactionService(BaseService):
    """Actor-gated custody transitions for escrow transactions."""

    # =========================================================================
    # Seller Operations
    # =========================================================================

    @classmethod
    def mark_shipped(
        cls,
        transaction_id: UUID,
        actor: Actor,
        tracking_number: str,
        carrier: str | None = None,
        estimated_delivery: datetime | None = None,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Seller marks the item shipped (PAYMENT_HELD -> SHIPPED).

        delivered_at is set to the estimated delivery, or now + 3 days.
        """
        now = now or timezone.now()
        if not tracking_number:
            raise EscrowPreconditionError(
                "Tracking number is required",
                details={"transaction_id": str(transaction_id)},
            )

        if estimated_delivery is None:
            estimated_delivery = now + timedelta(
                days=getattr(settings, "ESCROW_DEFAULT_DELIVERY_DAYS", 3)
            )
        carrier = carrier or DEFAULT_CARRIER

        with cls.atomic():
            txn = cls._lock(transaction_id)
            require_actor(
                actor, Role.SELLER, txn,
                message="Only seller can mark item as shipped",
            )

            cls._apply(
                txn, "mark_shipped",
                lambda: txn.ship(tracking_number, carrier, estimated_delivery, now=now),
            )
            HoldLedger.mark_awaiting_delivery(cls._hold_for(txn))

            record_activity(
                txn,
                ActivityType.ITEM_SHIPPED,
                f"Item shipped via {carrier} (tracking {tracking_number})",
                actor=actor,
                metadata={
                    "carrier": carrier,
                    "tracking_number": tracking_number,
                    "estimated_delivery": estimated_delivery.isoformat(),
                },
            )

        cls.get_logger().info(
            "Transaction marked shipped",
            extra={"transaction_id": str(txn.id), "carrier": carrier},
        )
        return txn

    @classmethod
    def mark_delivered(
        cls,
        transaction_id: UUID,
        actor: Actor,
        delivered_at: datetime | None = None,
    ) -> Transaction:
        """Record actual delivery (SHIPPED -> DELIVERED). Seller or system."""
        delivered_at = delivered_at or timezone.now()

        with cls.atomic():
            txn = cls._lock(transaction_id)
            require_actor(
                actor, [Role.SELLER, Role.SYSTEM], txn,
                message="Only seller can mark item as delivered",
            )

            cls._apply(txn, "mark_delivered", lambda: txn.deliver(delivered_at))

            record_activity(
                txn,
                ActivityType.ITEM_DELIVERED,
                "Item marked as delivered",
                actor=actor,
                metadata={"delivered_at": delivered_at.isoformat()},
            )

        return txn

    @classmethod
    def request_release(
        cls,
        transaction_id: UUID,
        actor: Actor,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Seller asks for release after the buyer stayed silent.

        Requires delivery at least ESCROW_RELEASE_REQUEST_WAIT_DAYS ago. The
        buyer then has ESCROW_AUTO_RELEASE_GRACE_HOURS to confirm or dispute
        before the funds auto-release.

        Raises:
            EscrowPreconditionError: Not delivered, or waited too little
        """
        now = now or timezone.now()
        wait = timedelta(days=getattr(settings, "ESCROW_RELEASE_REQUEST_WAIT_DAYS", 7))
        grace = timedelta(hours=getattr(settings, "ESCROW_AUTO_RELEASE_GRACE_HOURS", 24))

        with cls.atomic():
            txn = cls._lock(transaction_id)
            require_actor(
                actor, Role.SELLER, txn,
                message="Only seller can request payment release",
            )

            if txn.delivered_at is None:
                raise EscrowPreconditionError(
                    "Cannot request release until item is marked as delivered",
                    details={"transaction_id": str(txn.id)},
                )

            elapsed = now - txn.delivered_at
            if elapsed < wait:
                remaining = wait - elapsed
                days_remaining = math.ceil(remaining.total_seconds() / 86400)
                raise EscrowPreconditionError(
                    f"Must wait {days_remaining} more days after delivery "
                    "before requesting release",
                    error_code="RELEASE_TOO_EARLY",
                    details={
                        "transaction_id": str(txn.id),
                        "days_remaining": days_remaining,
                    },
                )

            deadline = now + grace
            cls._apply(
                txn, "request_release",
                lambda: txn.request_release(deadline, now=now),
            )
            HoldLedger.record_release_request(cls._hold_for(txn), now, eligible_at=deadline)

            record_activity(
                txn,
                ActivityType.RELEASE_REQUESTED,
                "Seller requested payment release",
                actor=actor,
                metadata={"final_release_deadline": deadline.isoformat()},
            )

        notify(
            txn.buyer_email,
            NotificationKind.BUYER_RELEASE_REQUESTED,
            {
                "product_title": txn.product_title,
                "transaction_id": str(txn.id),
                "deadline": deadline.isoformat(),
            },
        )
        cls.get_logger().info(
            "Release requested",
            extra={"transaction_id": str(txn.id), "deadline": deadline.isoformat()},
        )
        return txn

    # =========================================================================
    # Buyer Operations
    # =========================================================================

    @classmethod
    def confirm_delivery(
        cls,
        transaction_id: UUID,
        actor: Actor,
        satisfied: bool = True,
        notes: str | None = None,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Buyer confirms delivery, or disputes it.

        Satisfied: CONFIRMED, hold released, payout scheduled at now + delay,
        product sold.
        Not satisfied: DISPUTED, hold disputed, nothing scheduled.
        """
        now = now or timezone.now()

        with cls.atomic():
            txn = cls._lock(transaction_id)
            require_actor(
                actor, Role.BUYER, txn,
                message="Only buyer can confirm delivery",
            )
            hold = cls._hold_for(txn)

            if satisfied:
                cls._apply(txn, "confirm_delivery", lambda: txn.confirm(now=now))
                hold = HoldLedger.release(hold, HoldReason.BUYER_CONFIRMED, now)
                hold = PayoutScheduler.schedule(hold, confirmed_at=now)

                record_activity(
                    txn,
                    ActivityType.DELIVERY_CONFIRMED,
                    "Buyer confirmed delivery",
                    actor=actor,
                    metadata={
                        "payout_scheduled_at": hold.payout_scheduled_at.isoformat(),
                        "notes": notes or "",
                    },
                )
            else:
                reason = notes or DEFAULT_DISPUTE_REASON
                cls._apply(
                    txn, "confirm_delivery",
                    lambda: txn.dispute(reason, now=now),
                )
                HoldLedger.dispute(hold, raised_by=Role.BUYER, reason=reason, now=now)

                record_activity(
                    txn,
                    ActivityType.DELIVERY_DISPUTED,
                    "Buyer disputed delivery",
                    actor=actor,
                    metadata={"reason": reason},
                )

        if satisfied:
            set_product_status(txn.product_id, ProductStatus.SOLD)

        cls.get_logger().info(
            "Delivery confirmation recorded",
            extra={
                "transaction_id": str(txn.id),
                "satisfied": satisfied,
                "hold_status": txn.hold_status,
            },
        )
        return txn

    # =========================================================================
    # System Operations
    # =========================================================================

    @classmethod
    def auto_release(
        cls,
        transaction_id: UUID,
        actor: Actor = SYSTEM_ACTOR,
        now: datetime | None = None,
    ) -> Transaction:
        """
        Release funds once the buyer let the release deadline pass.

        RELEASE_REQUESTED -> RELEASED, hold released with reason auto_release.
        No payout is scheduled here; see the admin "pay out now" action.
        """
        now = now or timezone.now()

        with cls.atomic():
            txn = cls._lock(transaction_id)
            require_actor(
                actor, Role.SYSTEM, txn,
                message="Only the system can auto-release funds",
            )
            hold = cls._hold_for(txn)

            if hold.auto_release_eligible_at is None:
                raise EscrowPreconditionError(
                    "Auto-release not eligible",
                    details={"transaction_id": str(txn.id)},
                )
            if now < hold.auto_release_eligible_at:
                raise EscrowPreconditionError(
                    "Auto-release time not reached yet",
                    details={
                        "transaction_id": str(txn.id),
                        "eligible_at": hold.auto_release_eligible_at.isoformat(),
                    },
                )

            cls._apply(txn, "auto_release", lambda: txn.auto_release(now=now))
            HoldLedger.release(hold, HoldReason.AUTO_RELEASE, now)

            record_activity(
                txn,
                ActivityType.AUTO_RELEASE_EXECUTED,
                "Funds auto-released after buyer did not respond",
                actor=actor,
                metadata={"released_at": now.isoformat()},
            )

        set_product_status(txn.product_id, ProductStatus.SOLD)

        cls.get_logger().info(
            "Transaction auto-released",
            extra={"transaction_id": str(txn.id)},
        )
        return txn

    # =========================================================================
    # Helpers
    # =========================================================================

    @classmethod
    def _lock(cls, transaction_id: UUID) -> Transaction:
        try:
            return Transaction.objects.select_for_update().get(id=transaction_id)
        except Transaction.DoesNotExist:
            raise EscrowNotFoundError(
                "Transaction not found",
                details={"transaction_id": str(transaction_id)},
            ) from None

    @staticmethod
    def _hold_for(txn: Transaction) -> PaymentHold:
        try:
            return PaymentHold.objects.get(transaction=txn)
        except PaymentHold.DoesNotExist:
            raise EscrowNotFoundError(
                "Payment hold not found for transaction",
                details={"transaction_id": str(txn.id)},
            ) from None

    @classmethod
    def _apply(cls, txn: Transaction, action: str, transition) -> None:
        """Run an FSM transition and save, mapping FSM rejections."""
        current = txn.hold_status
        try:
            transition()
        except TransitionNotAllowed:
            cls.get_logger().warning(
                "Transition rejected",
                extra={
                    "transaction_id": str(txn.id),
                    "action": action,
                    "current_state": current,
                },
            )
            raise InvalidStateTransitionError(
                f"Cannot {action.replace('_', ' ')} from '{current}' state",
                details={"current_state": current, "action": action},
            ) from None
        txn.save()


__all__ = ["EscrowTransactionService"]
