"""
Escrow notifications to buyers and sellers.

Notifications are best-effort: notify() never raises, so a mail outage can
not fail a payout or a transition. The default sender queues the
send_escrow_notification Celery task, which renders
templates/escrow/emails/<kind>.txt and sends it with Django mail.

Kinds:
    seller_payout_processed: seller was paid
    buyer_payout_completed: buyer's purchase is complete
    seller_payout_failed: payout failed, will be retried
    seller_payout_action_required: payout failed until the seller fixes
        their payout destination
    buyer_release_requested: seller asked for release; buyer has 24h to act

Usage:
    from escrow.notifications import NotificationKind, notify

    notify(
        seller.email,
        NotificationKind.SELLER_PAYOUT_PROCESSED,
        {"seller_name": "Sam", "net_amount": "145.30", "product_title": "Driver"},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.db import models
from django.template.loader import render_to_string
from django.utils.module_loading import import_string

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class NotificationKind(models.TextChoices):
    SELLER_PAYOUT_PROCESSED = "seller_payout_processed", "Seller Payout Processed"
    BUYER_PAYOUT_COMPLETED = "buyer_payout_completed", "Buyer Payout Completed"
    SELLER_PAYOUT_FAILED = "seller_payout_failed", "Seller Payout Failed"
    SELLER_PAYOUT_ACTION_REQUIRED = (
        "seller_payout_action_required",
        "Seller Payout Action Required",
    )
    BUYER_RELEASE_REQUESTED = "buyer_release_requested", "Buyer Release Requested"


SUBJECTS: dict[str, str] = {
    NotificationKind.SELLER_PAYOUT_PROCESSED: "Payout processed for your sale",
    NotificationKind.BUYER_PAYOUT_COMPLETED: "Your purchase is complete",
    NotificationKind.SELLER_PAYOUT_FAILED: "We could not send your payout yet",
    NotificationKind.SELLER_PAYOUT_ACTION_REQUIRED: "Payout issue - action required",
    NotificationKind.BUYER_RELEASE_REQUESTED: "The seller has asked for payment release",
}


# =============================================================================
# Senders
# =============================================================================


@runtime_checkable
class NotificationSender(Protocol):
    """Delivers one notification. Implementations may raise; notify() catches."""

    def send(self, recipient_email: str, kind: str, data: dict[str, Any]) -> None: ...


class EmailNotificationSender:
    """Queue the notification email on Celery."""

    def send(self, recipient_email: str, kind: str, data: dict[str, Any]) -> None:
        from escrow.tasks import send_escrow_notification

        send_escrow_notification.delay(recipient_email, kind, data)


def get_notification_sender() -> NotificationSender:
    sender_path = getattr(
        settings,
        "ESCROW_NOTIFICATION_SENDER",
        "escrow.notifications.EmailNotificationSender",
    )
    return import_string(sender_path)()


# =============================================================================
# Rendering & Delivery
# =============================================================================


def render_notification(kind: str, data: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, plain-text body) for a notification."""
    subject = SUBJECTS.get(kind, "Update on your order")
    body = render_to_string(f"escrow/emails/{kind}.txt", data)
    return subject, body


def deliver_email(recipient_email: str, kind: str, data: dict[str, Any]) -> None:
    """Render and send a notification email synchronously."""
    subject, body = render_notification(kind, data)
    email = EmailMultiAlternatives(
        subject=subject,
        body=body,
        from_email=settings.DEFAULT_FROM_EMAIL,
        to=[recipient_email],
    )
    email.send(fail_silently=False)
    logger.info(
        "Escrow notification email sent",
        extra={"kind": kind, "recipient": recipient_email},
    )


def notify(recipient_email: str | None, kind: str, data: dict[str, Any]) -> bool:
    """
    Send a notification without ever raising.

    Returns:
        True if the sender accepted the notification
    """
    if not recipient_email:
        logger.warning("Notification skipped: no recipient", extra={"kind": kind})
        return False

    try:
        get_notification_sender().send(recipient_email, kind, data)
    except Exception:
        logger.error(
            "Failed to send escrow notification",
            extra={"kind": kind, "recipient": recipient_email},
            exc_info=True,
        )
        return False
    return True


__all__ = [
    "EmailNotificationSender",
    "NotificationKind",
    "NotificationSender",
    "deliver_email",
    "notify",
    "render_notification",
]
