"""
Pytest fixtures for webhook tests.

Provides Stripe event payloads and WebhookEvent rows for testing the
webhook view, handlers and processing task.
"""

import uuid

import pytest

from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus


@pytest.fixture
def checkout_completed_event(seller, buyer):
    """
    Build a checkout.session.completed event.

    Usage:
        event = checkout_completed_event(event_id="evt_1", session_id="cs_1")
    """

    def _make(event_id=None, session_id="cs_test_webhook_1", **session_overrides):
        session = {
            "id": session_id,
            "object": "checkout.session",
            "amount_total": 15000,
            "currency": "gbp",
            "customer_email": buyer.email,
            "payment_intent": "pi_test_webhook_1",
            "payment_status": "paid",
            "metadata": {
                "productId": "prod_0099",
                "sellerId": str(seller.pk),
                "productTitle": "Ping Putter",
                "sellerTier": "pro",
            },
        }
        session.update(session_overrides)
        return {
            "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
            "type": "checkout.session.completed",
            "data": {"object": session},
        }

    return _make


@pytest.fixture
def pending_webhook_event(db, checkout_completed_event, seller_account):
    """WebhookEvent for a paid checkout, waiting to be processed."""
    payload = checkout_completed_event(event_id="evt_test_pending")
    return WebhookEvent.objects.create(
        provider_event_id=payload["id"],
        event_type=payload["type"],
        payload=payload,
        status=WebhookEventStatus.PENDING,
    )


@pytest.fixture
def processed_webhook_event(pending_webhook_event):
    pending_webhook_event.mark_processing()
    pending_webhook_event.mark_processed()
    pending_webhook_event.save()
    return pending_webhook_event
