"""
Webhook event handlers for provider events.

Handlers are registered per event type. Unregistered types are acknowledged
and ignored, so new event types Stripe starts sending never fail delivery.

Usage:
    from escrow.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("charge.refunded")
    def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from escrow.models import WebhookEvent
from escrow.services import WebhookIngestionService

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """Decorator registering a handler for one event type."""

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Returns:
        ServiceResult from the handler, or success if no handler is registered
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"provider_event_id": webhook_event.provider_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"provider_event_id": webhook_event.provider_event_id},
    )

    return handler(webhook_event)


# =============================================================================
# Capture Handlers
# =============================================================================


@register_handler("checkout.session.completed")
def handle_checkout_session_completed(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Record the capture: Transaction in payment_held plus its PaymentHold.

    Re-delivery of the same session is a no-op success.
    """
    session = webhook_event.get_object()

    if not session.get("id"):
        logger.error(
            "checkout.session.completed: Could not extract session id",
            extra={"provider_event_id": webhook_event.provider_event_id},
        )
        return ServiceResult.failure(
            "Could not extract session id from event",
            error_code="INVALID_EVENT",
        )

    if session.get("payment_status") not in (None, "paid", "no_payment_required"):
        logger.info(
            "Checkout completed without payment, ignoring",
            extra={
                "provider_event_id": webhook_event.provider_event_id,
                "payment_status": session.get("payment_status"),
            },
        )
        return ServiceResult.success(None)

    return WebhookIngestionService.ingest_capture(session)


__all__ = ["WEBHOOK_HANDLERS", "dispatch_webhook", "register_handler"]
