"""
Auto-release worker.

Releases funds for transactions whose seller release request went
unanswered: hold_status is release_requested and the hold's
auto_release_eligible_at has passed.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from core.exceptions import BaseApplicationError

from escrow.models import Transaction
from escrow.state_machines import TransactionHoldStatus

logger = logging.getLogger(__name__)


@shared_task(bind=True, acks_late=True)
def process_auto_releases(self) -> dict:
    """
    Auto-release every due release-requested transaction.

    Each transaction is released in its own atomic block; one rejection
    never stops the sweep.

    Returns:
        Dict with released and failed counts
    """
    from escrow.services import EscrowTransactionService

    now = timezone.now()
    batch_size = getattr(settings, "ESCROW_PAYOUT_BATCH_SIZE", 100)

    due_ids = list(
        Transaction.objects.filter(
            hold_status=TransactionHoldStatus.RELEASE_REQUESTED,
            payment_hold__auto_release_eligible_at__lte=now,
        )
        .order_by("payment_hold__auto_release_eligible_at")
        .values_list("id", flat=True)[:batch_size]
    )

    released = 0
    failed = 0
    for transaction_id in due_ids:
        try:
            EscrowTransactionService.auto_release(transaction_id, now=now)
            released += 1
        except BaseApplicationError as e:
            failed += 1
            logger.warning(
                "Auto-release rejected",
                extra={
                    "transaction_id": str(transaction_id),
                    "error_code": e.error_code,
                    "error": e.message,
                },
            )

    logger.info(
        f"Auto-release sweep complete: released {released}",
        extra={"released": released, "failed": failed},
    )
    return {"released": released, "failed": failed}


__all__ = ["process_auto_releases"]
