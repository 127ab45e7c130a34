"""
Payout scheduler: when may a released hold be paid, and who pays it.

Deadlines live in the database (PaymentHold.payout_scheduled_at), so a
restart never loses a scheduled payout. The hourly sweep reads eligible
holds and claims each one with a compare-and-set; concurrent sweeps are
safe because only one claimer wins.

Usage:
    from escrow.services import PayoutScheduler

    PayoutScheduler.schedule(hold, confirmed_at=now)

    for hold in PayoutScheduler.eligible_holds(now):
        try:
            claimed = PayoutScheduler.claim(hold.id, now)
        except ClaimConflictError:
            continue  # another worker got it
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.conf import settings
from django.db.models import QuerySet

from core.services import BaseService

from escrow.models import PaymentHold
from escrow.services.hold_ledger import CLAIMABLE_PAYOUT_STATUSES, HoldLedger
from escrow.state_machines import HoldReason, HoldStatus, PayoutScheduleStatus

if TYPE_CHECKING:
    from uuid import UUID


def payout_delay() -> timedelta:
    return timedelta(hours=getattr(settings, "ESCROW_PAYOUT_DELAY_HOURS", 2))


def stuck_after() -> timedelta:
    return timedelta(minutes=getattr(settings, "ESCROW_PAYOUT_STUCK_MINUTES", 30))


def max_attempts() -> int:
    return getattr(settings, "ESCROW_PAYOUT_MAX_ATTEMPTS", 10)


class PayoutScheduler(BaseService):
    """Schedules, selects and claims holds for payout."""

    @classmethod
    def schedule(cls, hold: PaymentHold, confirmed_at: datetime) -> PaymentHold:
        """Stamp payout_scheduled_at = confirmed_at + payout delay."""
        return HoldLedger.schedule_payout(hold, confirmed_at + payout_delay())

    @classmethod
    def eligible_holds(
        cls,
        now: datetime,
        limit: int | None = None,
    ) -> QuerySet[PaymentHold]:
        """
        Holds due for payout, oldest schedule first. Read-only.

        Selection:
            status = released, reason = buyer_confirmed
            payout_scheduled_at <= now
            payout_status in (scheduled, failed)
            payout_attempts below the retry cap
        """
        if limit is None:
            limit = getattr(settings, "ESCROW_PAYOUT_BATCH_SIZE", 100)

        return (
            PaymentHold.objects.filter(
                status=HoldStatus.RELEASED,
                reason=HoldReason.BUYER_CONFIRMED,
                payout_scheduled_at__lte=now,
                payout_status__in=CLAIMABLE_PAYOUT_STATUSES,
                payout_attempts__lt=max_attempts(),
            )
            .select_related("transaction")
            .order_by("payout_scheduled_at")[:limit]
        )

    @classmethod
    def claim(cls, hold_id: UUID, now: datetime) -> PaymentHold:
        """
        Claim a hold for payout.

        Raises:
            ClaimConflictError: Another worker claimed it, or it is no longer payable
        """
        hold = HoldLedger.claim_payout(hold_id, now)
        cls.get_logger().info(
            "Payout claimed",
            extra={"hold_id": str(hold_id), "attempt": hold.payout_attempts},
        )
        return hold

    @classmethod
    def stuck_holds(cls, now: datetime) -> QuerySet[PaymentHold]:
        """Holds claimed longer ago than the stuck threshold."""
        return PaymentHold.objects.filter(
            payout_status=PayoutScheduleStatus.PROCESSING,
            payout_claimed_at__lt=now - stuck_after(),
        ).select_related("transaction")


__all__ = ["PayoutScheduler", "max_attempts", "payout_delay", "stuck_after"]
