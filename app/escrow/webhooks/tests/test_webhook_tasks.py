"""
Tests for webhook processing tasks.
"""

from datetime import timedelta
from unittest.mock import patch
from uuid import uuid4

import pytest
from django.utils import timezone
from freezegun import freeze_time

from core.services import ServiceResult
from escrow.models import Transaction, WebhookEvent
from escrow.state_machines import WebhookEventStatus
from escrow.tasks import process_webhook_event, retry_failed_webhooks


@pytest.mark.django_db
class TestProcessWebhookEvent:
    def test_processes_pending_event(self, pending_webhook_event, product_status_calls):
        result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "processed"
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED
        assert pending_webhook_event.processed_at is not None
        assert Transaction.objects.count() == 1

    def test_delay_runs_inline_under_test_settings(
        self, pending_webhook_event, product_status_calls
    ):
        async_result = process_webhook_event.delay(str(pending_webhook_event.id))

        assert async_result.get()["status"] == "processed"
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED

    def test_already_processed(self, processed_webhook_event):
        result = process_webhook_event(str(processed_webhook_event.id))

        assert result["status"] == "already_processed"
        assert not Transaction.objects.exists()

    def test_not_found(self, db):
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_handler_failure_marks_failed(self, pending_webhook_event):
        with patch(
            "escrow.webhooks.handlers.dispatch_webhook",
            return_value=ServiceResult.failure("Seller not found", error_code="SELLER_NOT_FOUND"),
        ):
            result = process_webhook_event(str(pending_webhook_event.id))

        assert result["status"] == "handler_failed"
        assert result["error_code"] == "SELLER_NOT_FOUND"
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert pending_webhook_event.error_message == "Seller not found"

    def test_exception_marks_failed_and_raises(self, pending_webhook_event):
        with patch(
            "escrow.webhooks.handlers.dispatch_webhook",
            side_effect=RuntimeError("db gone"),
        ):
            with pytest.raises(RuntimeError, match="db gone"):
                process_webhook_event(str(pending_webhook_event.id))

        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.FAILED
        assert "RuntimeError" in pending_webhook_event.error_message


@pytest.mark.django_db
class TestRetryFailedWebhooks:
    def test_requeues_retryable_failures(self, pending_webhook_event):
        pending_webhook_event.mark_processing()
        pending_webhook_event.mark_failed("boom")
        pending_webhook_event.save()
        WebhookEvent.objects.create(
            provider_event_id="evt_exhausted",
            event_type="checkout.session.completed",
            payload={},
            status=WebhookEventStatus.FAILED,
            retry_count=5,
        )

        with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(pending_webhook_event.id))

    def test_requeues_pending_event_whose_message_was_lost(self, pending_webhook_event):
        WebhookEvent.objects.filter(id=pending_webhook_event.id).update(
            updated_at=timezone.now() - timedelta(minutes=15)
        )
        WebhookEvent.objects.create(
            provider_event_id="evt_just_arrived",
            event_type="checkout.session.completed",
            payload={},
            status=WebhookEventStatus.PENDING,
        )

        with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(pending_webhook_event.id))

    def test_requeues_event_stuck_processing(self, pending_webhook_event):
        WebhookEvent.objects.filter(id=pending_webhook_event.id).update(
            status=WebhookEventStatus.PROCESSING,
            updated_at=timezone.now() - timedelta(hours=1),
        )

        with patch("escrow.tasks.process_webhook_event.delay") as mock_delay:
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        mock_delay.assert_called_once_with(str(pending_webhook_event.id))

    def test_capture_recovered_after_queue_outage(
        self, pending_webhook_event, product_status_calls
    ):
        with freeze_time(timezone.now() + timedelta(minutes=11)), patch(
            "escrow.tasks.process_webhook_event.delay",
            side_effect=lambda event_id: process_webhook_event(event_id),
        ):
            result = retry_failed_webhooks()

        assert result == {"queued_count": 1}
        pending_webhook_event.refresh_from_db()
        assert pending_webhook_event.status == WebhookEventStatus.PROCESSED
        assert Transaction.objects.count() == 1
