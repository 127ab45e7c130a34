"""
State enums for escrow models.

This module defines the state and choice enums used by escrow models.
They are Django TextChoices for database storage and admin integration.

State Machines Overview:

Transaction hold_status (django-fsm):
    payment_held → shipped → delivered → confirmed → released
    shipped/delivered → release_requested → released (seller-initiated)
    shipped/delivered/release_requested → disputed (terminal here)

PaymentHold status (compare-and-set updates):
    held → released
    held → disputed

PaymentHold payout status:
    scheduled → processing → completed
    scheduled/failed → processing → failed (retried by the next sweep)

Payout attempt status:
    processing → completed
    processing → failed
"""

from django.db import models


class TransactionHoldStatus(models.TextChoices):
    """
    Custody state of a Transaction.

    Terminal states: RELEASED, DISPUTED

    State Flow (buyer confirms):
        PAYMENT_HELD → SHIPPED → DELIVERED → CONFIRMED → RELEASED

    State Flow (seller requests release after buyer silence):
        SHIPPED/DELIVERED → RELEASE_REQUESTED → RELEASED

    Dispute Flow:
        SHIPPED/DELIVERED/RELEASE_REQUESTED → DISPUTED
    """

    PAYMENT_HELD = "payment_held", "Payment Held"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CONFIRMED = "confirmed", "Confirmed"
    RELEASE_REQUESTED = "release_requested", "Release Requested"
    RELEASED = "released", "Released"
    DISPUTED = "disputed", "Disputed"


class HoldStatus(models.TextChoices):
    """
    Custody status of a PaymentHold.

    REFUNDED is written by an external refund process only.
    """

    HELD = "held", "Held"
    RELEASED = "released", "Released"
    DISPUTED = "disputed", "Disputed"
    REFUNDED = "refunded", "Refunded"


class HoldReason(models.TextChoices):
    """Why a PaymentHold is in its current status."""

    PAYMENT_CAPTURED = "payment_captured", "Payment Captured"
    AWAITING_DELIVERY = "awaiting_delivery", "Awaiting Delivery"
    BUYER_CONFIRMED = "buyer_confirmed", "Buyer Confirmed"
    SELLER_REQUESTED = "seller_requested", "Seller Requested"
    AUTO_RELEASE = "auto_release", "Auto Release"
    BUYER_DISPUTED = "buyer_disputed", "Buyer Disputed"


class PayoutScheduleStatus(models.TextChoices):
    """
    Payout progress recorded on a PaymentHold.

    State Flow:
        SCHEDULED → PROCESSING → COMPLETED
        SCHEDULED/FAILED → PROCESSING → FAILED
    """

    SCHEDULED = "scheduled", "Scheduled"
    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PayoutStatus(models.TextChoices):
    """Status of a single Payout attempt."""

    PROCESSING = "processing", "Processing"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class PayoutMethod(models.TextChoices):
    """
    Payout rail used for a Payout.

    - STRIPE: Stripe Connect transfer to the seller's bank-backed account
    - PAYPAL: PayPal Payouts to the seller's wallet email
    """

    STRIPE = "stripe", "Stripe Transfer"
    PAYPAL = "paypal", "PayPal Payout"


class SellerTier(models.TextChoices):
    """Seller subscription tier; drives the commission rate."""

    PGA_PRO = "pga-pro", "PGA Pro"
    BUSINESS = "business", "Business"
    PRO = "pro", "Pro"
    FREE = "free", "Free"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


class ActivityType(models.TextChoices):
    """Audit activity written for every transition and payout attempt."""

    PAYMENT_HELD = "payment_held", "Payment Held"
    ITEM_SHIPPED = "item_shipped", "Item Shipped"
    ITEM_DELIVERED = "item_delivered", "Item Delivered"
    DELIVERY_CONFIRMED = "delivery_confirmed", "Delivery Confirmed"
    DELIVERY_DISPUTED = "delivery_disputed", "Delivery Disputed"
    RELEASE_REQUESTED = "release_requested", "Release Requested"
    AUTO_RELEASE_EXECUTED = "auto_release_executed", "Auto Release Executed"
    PAYOUT_COMPLETED = "scheduled_payout_completed", "Scheduled Payout Completed"
    PAYOUT_FAILED = "scheduled_payout_failed", "Scheduled Payout Failed"
    PAYOUT_DUPLICATE_BLOCKED = "payout_duplicate_blocked", "Duplicate Payout Blocked"
    PAYOUT_RECOVERED = "payout_recovered", "Interrupted Payout Recovered"


__all__ = [
    "ActivityType",
    "HoldReason",
    "HoldStatus",
    "PayoutMethod",
    "PayoutScheduleStatus",
    "PayoutStatus",
    "SellerTier",
    "TransactionHoldStatus",
    "WebhookEventStatus",
]
