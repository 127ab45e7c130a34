"""
Tests for the Stripe webhook view.

Tests cover:
- Signature verification
- WebhookEvent creation and idempotency
- Task queuing
- Capture idempotency across event ids
"""

import json
from unittest.mock import patch

import pytest
from django.test import RequestFactory

from escrow.exceptions import StripeInvalidRequestError
from escrow.models import PaymentHold, Transaction, WebhookEvent
from escrow.state_machines import WebhookEventStatus
from escrow.webhooks.views import stripe_webhook


@pytest.fixture
def rf():
    return RequestFactory()


def make_webhook_request(rf, payload: dict, signature: str = "test_sig"):
    """Create a POST request to the webhook endpoint."""
    kwargs = {"HTTP_STRIPE_SIGNATURE": signature} if signature else {}
    return rf.post(
        "/api/v1/escrow/webhooks/stripe/",
        data=json.dumps(payload),
        content_type="application/json",
        **kwargs,
    )


@pytest.fixture
def verify_signature():
    """Signature check that accepts the request body as the event."""
    with patch(
        "escrow.webhooks.views.StripeAdapter.verify_webhook_signature"
    ) as mock_verify:
        mock_verify.side_effect = lambda payload, signature: json.loads(payload)
        yield mock_verify


@pytest.fixture
def queued_tasks():
    with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
        yield mock_delay


# =============================================================================
# Signature Verification
# =============================================================================


@pytest.mark.django_db
class TestStripeWebhookSignature:
    def test_missing_signature_returns_400(self, rf):
        request = make_webhook_request(rf, {"id": "evt_test"}, signature="")

        response = stripe_webhook(request)

        assert response.status_code == 400
        assert b"Missing signature" in response.content
        assert not WebhookEvent.objects.exists()

    def test_invalid_signature_returns_400(self, rf):
        with patch(
            "escrow.webhooks.views.StripeAdapter.verify_webhook_signature"
        ) as mock_verify:
            mock_verify.side_effect = StripeInvalidRequestError("Invalid webhook signature")

            response = stripe_webhook(
                make_webhook_request(rf, {"id": "evt_test", "type": "x"}, signature="bad")
            )

        assert response.status_code == 400
        assert b"Invalid signature" in response.content
        assert not WebhookEvent.objects.exists()

    def test_event_without_type_returns_400(self, rf, verify_signature):
        response = stripe_webhook(make_webhook_request(rf, {"id": "evt_test"}))

        assert response.status_code == 400

    def test_get_not_allowed(self, rf):
        response = stripe_webhook(rf.get("/api/v1/escrow/webhooks/stripe/"))

        assert response.status_code == 405


# =============================================================================
# Event Recording
# =============================================================================


@pytest.mark.django_db
class TestStripeWebhookRecording:
    def test_new_event_is_stored_and_queued(
        self, rf, verify_signature, queued_tasks, checkout_completed_event
    ):
        payload = checkout_completed_event(event_id="evt_new_1")

        response = stripe_webhook(make_webhook_request(rf, payload))

        assert response.status_code == 200
        event = WebhookEvent.objects.get(provider_event_id="evt_new_1")
        assert event.status == WebhookEventStatus.PENDING
        assert event.event_type == "checkout.session.completed"
        queued_tasks.assert_called_once_with(str(event.id))

    def test_processed_event_is_not_requeued(
        self, rf, verify_signature, queued_tasks, processed_webhook_event
    ):
        response = stripe_webhook(
            make_webhook_request(rf, processed_webhook_event.payload)
        )

        assert response.status_code == 200
        assert b"Already processed" in response.content
        queued_tasks.assert_not_called()

    def test_pending_duplicate_is_requeued(
        self, rf, verify_signature, queued_tasks, pending_webhook_event
    ):
        response = stripe_webhook(make_webhook_request(rf, pending_webhook_event.payload))

        assert response.status_code == 200
        assert WebhookEvent.objects.count() == 1
        queued_tasks.assert_called_once_with(str(pending_webhook_event.id))

    def test_queue_failure_still_acknowledges(
        self, rf, verify_signature, queued_tasks, checkout_completed_event
    ):
        queued_tasks.side_effect = ConnectionError("broker down")

        response = stripe_webhook(make_webhook_request(rf, checkout_completed_event()))

        assert response.status_code == 200
        assert WebhookEvent.objects.get().status == WebhookEventStatus.PENDING


# =============================================================================
# End To End
# =============================================================================


@pytest.mark.django_db
class TestCaptureIdempotency:
    def test_same_capture_under_two_event_ids_holds_once(
        self, rf, verify_signature, checkout_completed_event, seller_account,
        product_status_calls,
    ):
        first = checkout_completed_event(event_id="evt_first", session_id="cs_same")
        second = checkout_completed_event(event_id="evt_second", session_id="cs_same")

        assert stripe_webhook(make_webhook_request(rf, first)).status_code == 200
        assert stripe_webhook(make_webhook_request(rf, second)).status_code == 200

        assert Transaction.objects.filter(provider_session_id="cs_same").count() == 1
        assert PaymentHold.objects.count() == 1
        assert set(
            WebhookEvent.objects.values_list("status", flat=True)
        ) == {WebhookEventStatus.PROCESSED}
