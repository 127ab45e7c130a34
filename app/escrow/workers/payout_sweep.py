"""
Payout sweep workers.

Tasks:
- process_scheduled_payouts: hourly sweep paying every due hold
- execute_hold_payout: pays one hold now (admin "pay out now")
- recover_stuck_payouts: resolves claims left in processing

Usage:
    from escrow.workers import execute_hold_payout, process_scheduled_payouts

    process_scheduled_payouts.delay()
    execute_hold_payout.delay(str(hold.id))
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task

from escrow.models import PaymentHold

logger = logging.getLogger(__name__)


# =============================================================================
# Periodic Task: Scheduled Payout Sweep
# =============================================================================


@shared_task(bind=True, acks_late=True)
def process_scheduled_payouts(self) -> dict:
    """
    Pay every released hold whose payout time has passed.

    Safe to run concurrently: each hold is claimed by compare-and-set and
    only one sweep wins it.

    Returns:
        Dict with processed, successful, failed and skipped counts
    """
    from escrow.services import PayoutExecutor

    logger.info("Starting scheduled payout sweep")

    summary = PayoutExecutor.run_sweep()

    logger.info(
        f"Scheduled payout sweep complete: {summary.successful} paid, "
        f"{summary.failed} failed, {summary.skipped} skipped",
        extra={
            "processed": summary.processed,
            "successful": summary.successful,
            "failed": summary.failed,
            "skipped": summary.skipped,
        },
    )

    return {
        "processed": summary.processed,
        "successful": summary.successful,
        "failed": summary.failed,
        "skipped": summary.skipped,
    }


# =============================================================================
# Individual Execution Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def execute_hold_payout(self, hold_id: str) -> dict:
    """
    Execute the payout of a single hold.

    Returns:
        Dict with:
        - status: One of "completed", "failed", "skipped", "not_found"
        - hold_id: The hold processed
        - transfer_id / error / error_code when applicable
    """
    from escrow.services import PayoutExecutor

    try:
        hold_uuid = UUID(str(hold_id))
    except ValueError:
        logger.error(f"Invalid hold_id format: {hold_id}")
        return {"status": "not_found", "hold_id": hold_id, "error": "Invalid UUID format"}

    if not PaymentHold.objects.filter(id=hold_uuid).exists():
        logger.error("PaymentHold not found", extra={"hold_id": hold_id})
        return {"status": "not_found", "hold_id": hold_id}

    outcome = PayoutExecutor.execute_hold(hold_uuid)

    logger.info(
        f"Hold payout {outcome.status}",
        extra={"hold_id": hold_id, "status": outcome.status},
    )
    return outcome.to_dict()


# =============================================================================
# Periodic Task: Stuck Claim Recovery
# =============================================================================


@shared_task(bind=True, acks_late=True)
def recover_stuck_payouts(self) -> dict:
    """
    Finalize or reset payout claims interrupted mid-call.

    Returns:
        Dict with processed, finalized and reset counts
    """
    from escrow.services import PayoutExecutor

    summary = PayoutExecutor.recover_stuck()

    return {
        "processed": summary.processed,
        "finalized": summary.successful,
        "reset": summary.failed,
    }


__all__ = ["execute_hold_payout", "process_scheduled_payouts", "recover_stuck_payouts"]
