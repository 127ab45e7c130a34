"""
Tests for the auto-release sweep.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from escrow.state_machines import HoldReason, HoldStatus, TransactionHoldStatus
from escrow.workers import process_auto_releases


@pytest.fixture
def release_requested(make_escrow):
    """Release-requested transaction whose buyer deadline is eligible_in away."""

    def _make(eligible_in: timedelta):
        now = timezone.now()
        return make_escrow(
            TransactionHoldStatus.RELEASE_REQUESTED,
            delivered_at=now - timedelta(days=8),
            release_requested_at=now - timedelta(days=1),
            final_release_deadline=now + eligible_in,
            hold_kwargs={
                "reason": HoldReason.SELLER_REQUESTED,
                "seller_release_requested": True,
                "auto_release_eligible_at": now + eligible_in,
            },
        )

    return _make


@pytest.mark.django_db
class TestProcessAutoReleases:
    def test_releases_expired_requests(self, release_requested, product_status_calls):
        txn, hold = release_requested(timedelta(minutes=-5))

        result = process_auto_releases.apply().get()

        assert result == {"released": 1, "failed": 0}
        txn.refresh_from_db()
        assert txn.hold_status == TransactionHoldStatus.RELEASED
        hold.refresh_from_db()
        assert hold.status == HoldStatus.RELEASED
        assert hold.reason == HoldReason.AUTO_RELEASE

    def test_leaves_pending_requests(self, release_requested, product_status_calls):
        txn, _ = release_requested(timedelta(hours=3))

        result = process_auto_releases.apply().get()

        assert result == {"released": 0, "failed": 0}
        txn.refresh_from_db()
        assert txn.hold_status == TransactionHoldStatus.RELEASE_REQUESTED

    def test_rejection_is_counted_and_sweep_continues(
        self, release_requested, product_status_calls
    ):
        broken, broken_hold = release_requested(timedelta(hours=-2))
        ok, _ = release_requested(timedelta(hours=-1))
        # Hold already disputed out of band; release is rejected
        broken_hold.status = HoldStatus.DISPUTED
        broken_hold.save()

        result = process_auto_releases.apply().get()

        assert result == {"released": 1, "failed": 1}
        ok.refresh_from_db()
        assert ok.hold_status == TransactionHoldStatus.RELEASED
        broken.refresh_from_db()
        assert broken.hold_status == TransactionHoldStatus.RELEASE_REQUESTED
