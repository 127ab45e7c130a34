"""
WebhookEvent model for provider webhook event tracking.

Stores every webhook event received for idempotent processing and audit.
The unique provider_event_id ensures duplicate deliveries are detected.

Usage:
    event, created = WebhookEvent.objects.get_or_create(
        provider_event_id="evt_1234567890",
        defaults={
            "event_type": "checkout.session.completed",
            "payload": event_data,
        },
    )

    if not created and event.is_processed:
        return HttpResponse("Already processed", status=200)
"""

from __future__ import annotations

from datetime import timedelta

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.state_machines import WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5

# Pending or processing events untouched this long lost their queue message
STALE_WEBHOOK_AGE = timedelta(minutes=10)


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks provider webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, signature verified
        2. Insert/get WebhookEvent by provider_event_id
        3. If exists and PROCESSED -> 200 (duplicate)
        4. Queue processing task
        5. Task marks PROCESSING, dispatches, marks PROCESSED or FAILED

    Note:
        Capture idempotency does not rely on this table alone: the same
        checkout session re-sent under a new event id is still a no-op
        because Transaction.provider_session_id is unique.
    """

    provider = models.CharField(max_length=20, default="stripe")

    provider_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider event id (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Event type (e.g., 'checkout.session.completed')",
    )

    payload = models.JSONField(help_text="Full webhook payload (JSON)")

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(default=0)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="escrow_webh_status_3e81b5_idx"),
            models.Index(fields=["event_type", "created_at"], name="escrow_webh_event_t_a0c4d7_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.provider_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < MAX_WEBHOOK_RETRIES
        )

    # ==========================================================================
    # Helper Methods
    # ==========================================================================

    def mark_processing(self) -> None:
        """Mark event as being processed. Caller saves."""
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        """Mark event as successfully processed. Caller saves."""
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        """Mark event as failed. Caller saves."""
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return payload.data.object, or an empty dict."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}
