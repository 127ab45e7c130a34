"""
Pytest fixtures shared by all escrow tests.

Fixtures provide a seller with a payout destination, a buyer, and
transactions with their holds in the states the tests start from.

Usage:
    def test_confirm(delivered_escrow, buyer_actor):
        txn, hold = delivered_escrow
        EscrowTransactionService.confirm_delivery(txn.id, buyer_actor)
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.utils import timezone

from escrow.authorization import Actor
from escrow.state_machines import (
    HoldReason,
    HoldStatus,
    PayoutScheduleStatus,
    TransactionHoldStatus,
)
from escrow.tests.factories import (
    PaymentHoldFactory,
    SellerAccountFactory,
    TransactionFactory,
    UserFactory,
)


# =============================================================================
# Parties
# =============================================================================


@pytest.fixture
def seller(db):
    return UserFactory(first_name="Sam", last_name="Seller")


@pytest.fixture
def seller_account(seller):
    """Pro-tier seller paid over Stripe."""
    return SellerAccountFactory(user=seller, display_name="Sam")


@pytest.fixture
def buyer(db):
    return UserFactory()


@pytest.fixture
def seller_actor(seller):
    return Actor.for_user(seller)


@pytest.fixture
def buyer_actor(buyer):
    return Actor.for_user(buyer)


@pytest.fixture
def stranger_actor(db):
    return Actor.for_user(UserFactory())


# =============================================================================
# Transactions With Holds
# =============================================================================


@pytest.fixture
def make_escrow(seller, seller_account, buyer):
    """
    Build a transaction and its hold.

    Usage:
        txn, hold = make_escrow(TransactionHoldStatus.DELIVERED, delivered_at=...)
    """

    def _make(hold_status=TransactionHoldStatus.PAYMENT_HELD, hold_kwargs=None, **txn_kwargs):
        txn = TransactionFactory(
            seller=seller,
            buyer_email=buyer.email,
            hold_status=hold_status,
            **txn_kwargs,
        )
        hold = PaymentHoldFactory(transaction=txn, **(hold_kwargs or {}))
        return txn, hold

    return _make


@pytest.fixture
def held_escrow(make_escrow):
    return make_escrow()


@pytest.fixture
def shipped_escrow(make_escrow):
    now = timezone.now()
    return make_escrow(
        TransactionHoldStatus.SHIPPED,
        shipped_at=now,
        delivered_at=now + timedelta(days=3),
        shipping_tracking_number="TRK123",
        shipping_carrier="Royal Mail",
        hold_kwargs={"reason": HoldReason.AWAITING_DELIVERY},
    )


@pytest.fixture
def delivered_escrow(make_escrow):
    return make_escrow(
        TransactionHoldStatus.DELIVERED,
        delivered_at=timezone.now() - timedelta(days=1),
        hold_kwargs={"reason": HoldReason.AWAITING_DELIVERY},
    )


@pytest.fixture
def due_escrow(make_escrow):
    """Confirmed transaction whose hold is released and due for payout."""
    now = timezone.now()
    return make_escrow(
        TransactionHoldStatus.CONFIRMED,
        delivery_confirmed_at=now - timedelta(hours=3),
        hold_kwargs={
            "status": HoldStatus.RELEASED,
            "reason": HoldReason.BUYER_CONFIRMED,
            "released_at": now - timedelta(hours=3),
            "payout_status": PayoutScheduleStatus.SCHEDULED,
            "payout_scheduled_at": now - timedelta(hours=1),
        },
    )


# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def sent_notifications():
    """
    Capture notifications instead of queueing emails.

    Yields the list of (recipient_email, kind, data) tuples sent.
    """
    sent = []
    sender = MagicMock()
    sender.send.side_effect = lambda email, kind, data: sent.append((email, kind, data))

    with patch("escrow.notifications.get_notification_sender", return_value=sender):
        yield sent


@pytest.fixture
def product_status_calls():
    """Capture catalog product status flips as (product_id, status) tuples."""
    calls = []
    handler = MagicMock()
    handler.set_status.side_effect = lambda product_id, status: calls.append(
        (product_id, status)
    )

    with patch("escrow.catalog.get_product_status_handler", return_value=handler):
        yield calls
