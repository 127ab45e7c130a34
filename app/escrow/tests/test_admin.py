"""
Tests for the PaymentHold admin actions.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.contrib import admin, messages
from django.test import RequestFactory
from django.utils import timezone

from escrow.models import PaymentHold
from escrow.state_machines import (
    HoldReason,
    HoldStatus,
    PayoutScheduleStatus,
    TransactionHoldStatus,
)


@pytest.fixture
def hold_admin():
    return admin.site._registry[PaymentHold]


@pytest.fixture
def admin_request():
    return RequestFactory().post("/admin/escrow/paymenthold/")


@pytest.fixture
def auto_released_escrow(make_escrow):
    now = timezone.now()
    return make_escrow(
        TransactionHoldStatus.RELEASED,
        hold_kwargs={
            "status": HoldStatus.RELEASED,
            "reason": HoldReason.AUTO_RELEASE,
            "released_at": now - timedelta(hours=1),
        },
    )


@pytest.mark.django_db
class TestPayOutNow:
    def test_schedules_and_queues_released_hold(
        self, hold_admin, admin_request, auto_released_escrow
    ):
        _, hold = auto_released_escrow

        with patch("escrow.tasks.execute_hold_payout.delay") as mock_delay, patch.object(
            hold_admin, "message_user"
        ) as mock_message:
            hold_admin.pay_out_now(admin_request, PaymentHold.objects.filter(id=hold.id))

        mock_delay.assert_called_once_with(str(hold.id))
        hold.refresh_from_db()
        assert hold.payout_status == PayoutScheduleStatus.SCHEDULED
        assert hold.payout_scheduled_at is not None
        assert mock_message.call_args.args[1] == "Queued 1 payout(s)."

    def test_held_funds_are_not_paid(self, hold_admin, admin_request, held_escrow):
        _, hold = held_escrow

        with patch("escrow.tasks.execute_hold_payout.delay") as mock_delay, patch.object(
            hold_admin, "message_user"
        ) as mock_message:
            hold_admin.pay_out_now(admin_request, PaymentHold.objects.filter(id=hold.id))

        mock_delay.assert_not_called()
        warning = mock_message.call_args_list[0]
        assert warning.kwargs["level"] == messages.WARNING
        assert mock_message.call_args.args[1] == "Queued 0 payout(s)."


@pytest.mark.django_db
class TestResetPayoutForRetry:
    def test_zeroes_attempts(self, hold_admin, admin_request, due_escrow):
        _, hold = due_escrow
        PaymentHold.objects.filter(id=hold.id).update(
            payout_status=PayoutScheduleStatus.FAILED, payout_attempts=10
        )

        with patch.object(hold_admin, "message_user") as mock_message:
            hold_admin.reset_payout_for_retry(
                admin_request, PaymentHold.objects.filter(id=hold.id)
            )

        hold.refresh_from_db()
        assert hold.payout_attempts == 0
        assert mock_message.call_args.args[1] == "Reset 1 hold(s) for retry."
