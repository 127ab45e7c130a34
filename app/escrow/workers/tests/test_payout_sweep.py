"""
Tests for the payout sweep Celery tasks.
"""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone

from escrow.adapters import StripeAdapter, TransferResult
from escrow.exceptions import StripeRateLimitError
from escrow.state_machines import (
    HoldReason,
    HoldStatus,
    PayoutScheduleStatus,
    TransactionHoldStatus,
)
from escrow.workers import (
    execute_hold_payout,
    process_scheduled_payouts,
    recover_stuck_payouts,
)


@pytest.fixture
def create_transfer():
    with patch.object(StripeAdapter, "create_transfer") as mock:
        mock.return_value = TransferResult(
            id="tr_sweep_1",
            amount_pence=14530,
            currency="gbp",
            destination_account="acct_test",
        )
        yield mock


@pytest.mark.django_db
class TestProcessScheduledPayouts:
    def test_pays_due_holds(self, due_escrow, create_transfer, sent_notifications):
        _, hold = due_escrow

        result = process_scheduled_payouts.apply().get()

        assert result == {"processed": 1, "successful": 1, "failed": 0, "skipped": 0}
        hold.refresh_from_db()
        assert hold.payout_status == PayoutScheduleStatus.COMPLETED

    def test_counts_failures(self, due_escrow, create_transfer, sent_notifications):
        create_transfer.side_effect = StripeRateLimitError("Stripe rate limit exceeded")

        result = process_scheduled_payouts.apply().get()

        assert result["failed"] == 1
        assert result["successful"] == 0

    def test_not_yet_due(self, make_escrow, create_transfer):
        make_escrow(
            TransactionHoldStatus.CONFIRMED,
            hold_kwargs={
                "status": HoldStatus.RELEASED,
                "reason": HoldReason.BUYER_CONFIRMED,
                "payout_status": PayoutScheduleStatus.SCHEDULED,
                "payout_scheduled_at": timezone.now() + timedelta(minutes=30),
            },
        )

        result = process_scheduled_payouts.apply().get()

        assert result["processed"] == 0
        create_transfer.assert_not_called()


@pytest.mark.django_db
class TestExecuteHoldPayout:
    def test_pays_one_hold(self, due_escrow, create_transfer, sent_notifications):
        _, hold = due_escrow

        result = execute_hold_payout.apply(args=[str(hold.id)]).get()

        assert result["status"] == "completed"
        assert result["transfer_id"] == "tr_sweep_1"

    def test_unknown_hold(self):
        hold_id = str(uuid4())

        result = execute_hold_payout.apply(args=[hold_id]).get()

        assert result == {"status": "not_found", "hold_id": hold_id}

    def test_invalid_uuid(self):
        result = execute_hold_payout.apply(args=["not-a-valid-uuid"]).get()

        assert result["status"] == "not_found"
        assert result["error"] == "Invalid UUID format"


@pytest.mark.django_db
class TestRecoverStuckPayouts:
    def test_resets_interrupted_claim(self, make_escrow):
        _, hold = make_escrow(
            TransactionHoldStatus.CONFIRMED,
            hold_kwargs={
                "status": HoldStatus.RELEASED,
                "reason": HoldReason.BUYER_CONFIRMED,
                "payout_status": PayoutScheduleStatus.PROCESSING,
                "payout_claimed_at": timezone.now() - timedelta(hours=2),
                "payout_attempts": 1,
            },
        )

        result = recover_stuck_payouts.apply().get()

        assert result == {"processed": 1, "finalized": 0, "reset": 1}
        hold.refresh_from_db()
        assert hold.payout_status == PayoutScheduleStatus.FAILED
