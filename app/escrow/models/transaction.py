"""
Transaction model: one purchase of one product by one buyer from one seller.

The transaction owns the custody state machine (hold_status). Funds are
held from capture until the buyer confirms delivery, the seller's release
request times out, or the buyer disputes.

Usage:
    from escrow.models import Transaction
    from escrow.state_machines import TransactionHoldStatus

    txn = Transaction.objects.select_for_update().get(id=transaction_id)
    txn.ship(tracking_number="JD0002", carrier="Royal Mail", estimated_delivery=eta)
    txn.save()

    assert txn.hold_status == TransactionHoldStatus.SHIPPED
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from escrow.state_machines import SellerTier, TransactionHoldStatus

MONEY = {"max_digits": 12, "decimal_places": 2}

# Sources from which the buyer may still confirm or dispute
BUYER_DECISION_SOURCES = [
    TransactionHoldStatus.SHIPPED,
    TransactionHoldStatus.DELIVERED,
    TransactionHoldStatus.RELEASE_REQUESTED,
]


class DeliveryConfirmedBy(models.TextChoices):
    BUYER = "buyer", "Buyer"
    AUTO_CONFIRMED = "auto_confirmed", "Auto Confirmed"


class Transaction(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A single escrowed purchase.

    State Flow:
        PAYMENT_HELD -> SHIPPED -> DELIVERED -> CONFIRMED -> RELEASED
        SHIPPED/DELIVERED -> RELEASE_REQUESTED -> RELEASED
        SHIPPED/DELIVERED/RELEASE_REQUESTED -> DISPUTED

    Fields:
        amount: Gross amount captured from the buyer
        commission_rate / commission_amount: Platform commission at capture
        seller_amount: amount - commission_amount
        processing_fee: Card capture fee (informational)
        seller_tier: Seller tier frozen at capture
        buyer_email: Buyer identity used for actor checks
        provider_session_id: Checkout session id, unique correlation key
        hold_status: Current custody state (managed by FSM)

    Note:
        Transactions are never deleted.
    """

    # ==========================================================================
    # Money
    # ==========================================================================

    amount = models.DecimalField(
        **MONEY,
        help_text="Gross amount captured from the buyer (major units)",
    )

    currency = models.CharField(
        max_length=3,
        default="gbp",
        help_text="ISO 4217 currency code (lowercase)",
    )

    commission_rate = models.DecimalField(
        max_digits=5,
        decimal_places=4,
        help_text="Commission rate applied at capture (0.05 = 5%)",
    )

    commission_amount = models.DecimalField(
        **MONEY,
        help_text="Platform commission",
    )

    seller_amount = models.DecimalField(
        **MONEY,
        help_text="Gross amount minus commission",
    )

    processing_fee = models.DecimalField(
        **MONEY,
        default=0,
        help_text="Card capture fee charged by the provider (informational)",
    )

    seller_tier = models.CharField(
        max_length=20,
        choices=SellerTier.choices,
        default=SellerTier.FREE,
        help_text="Seller tier at capture; payouts use this, not the current tier",
    )

    # ==========================================================================
    # Parties & Product
    # ==========================================================================

    buyer_email = models.EmailField(
        db_index=True,
        help_text="Buyer's email; the buyer is matched on this exactly",
    )

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_purchases",
        help_text="Buyer account, when the buyer checked out signed in",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_sales",
        help_text="Seller receiving the payout",
    )

    product_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Catalog product id",
    )

    product_title = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Product title at capture, for emails and descriptions",
    )

    # ==========================================================================
    # Provider Correlation
    # ==========================================================================

    provider_session_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Checkout session id (cs_xxx) - unique constraint for idempotency",
    )

    provider_payment_intent_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="PaymentIntent id (pi_xxx) of the capture",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    hold_status = FSMField(
        default=TransactionHoldStatus.PAYMENT_HELD,
        choices=TransactionHoldStatus.choices,
        db_index=True,
        help_text="Custody state of the funds (managed by FSM)",
    )

    # ==========================================================================
    # Shipping
    # ==========================================================================

    shipping_carrier = models.CharField(max_length=100, blank=True, default="")
    shipping_tracking_number = models.CharField(max_length=100, blank=True, default="")

    # ==========================================================================
    # Transition Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Estimated delivery when shipped, actual delivery once delivered",
    )
    delivery_confirmed_at = models.DateTimeField(null=True, blank=True)
    delivery_confirmed_by = models.CharField(
        max_length=20,
        choices=DeliveryConfirmedBy.choices,
        blank=True,
        default="",
    )
    disputed_at = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(blank=True, default="")
    release_requested_at = models.DateTimeField(null=True, blank=True)
    final_release_deadline = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Buyer must respond before this or funds auto-release",
    )
    released_at = models.DateTimeField(null=True, blank=True)
    transferred_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout to the seller completed",
    )
    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Last failed payout attempt",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transaction"
        verbose_name_plural = "Transactions"
        indexes = [
            models.Index(fields=["seller", "hold_status"], name="escrow_tran_seller__5c1d2e_idx"),
            models.Index(fields=["buyer_email", "hold_status"], name="escrow_tran_buyer_e_9a3f71_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(amount__gt=0),
                name="escrow_transaction_amount_positive",
            ),
            models.CheckConstraint(
                check=models.Q(
                    amount=models.F("commission_amount") + models.F("seller_amount")
                ),
                name="escrow_transaction_split_balances",
            ),
        ]

    def __str__(self) -> str:
        return f"Transaction({self.id}, {self.hold_status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=hold_status,
        source=TransactionHoldStatus.PAYMENT_HELD,
        target=TransactionHoldStatus.SHIPPED,
    )
    def ship(
        self,
        tracking_number: str,
        carrier: str,
        estimated_delivery: datetime,
        now: datetime | None = None,
    ):
        """
        Record shipment.

        Transition: PAYMENT_HELD -> SHIPPED

        delivered_at holds the estimated delivery until the actual
        delivery is recorded.
        """
        self.shipped_at = now or timezone.now()
        self.shipping_tracking_number = tracking_number
        self.shipping_carrier = carrier
        self.delivered_at = estimated_delivery

    @transition(
        field=hold_status,
        source=TransactionHoldStatus.SHIPPED,
        target=TransactionHoldStatus.DELIVERED,
    )
    def deliver(self, delivered_at: datetime | None = None):
        """
        Record actual delivery.

        Transition: SHIPPED -> DELIVERED
        """
        self.delivered_at = delivered_at or timezone.now()

    @transition(
        field=hold_status,
        source=BUYER_DECISION_SOURCES,
        target=TransactionHoldStatus.CONFIRMED,
    )
    def confirm(self, now: datetime | None = None):
        """
        Buyer confirmed satisfactory delivery.

        Transition: SHIPPED/DELIVERED/RELEASE_REQUESTED -> CONFIRMED
        """
        self.delivery_confirmed_at = now or timezone.now()
        self.delivery_confirmed_by = DeliveryConfirmedBy.BUYER

    @transition(
        field=hold_status,
        source=BUYER_DECISION_SOURCES,
        target=TransactionHoldStatus.DISPUTED,
    )
    def dispute(self, reason: str, now: datetime | None = None):
        """
        Buyer reported a problem.

        Transition: SHIPPED/DELIVERED/RELEASE_REQUESTED -> DISPUTED

        DISPUTED is terminal for the escrow engine; resolution happens
        outside it.
        """
        self.disputed_at = now or timezone.now()
        self.dispute_reason = reason

    @transition(
        field=hold_status,
        source=[TransactionHoldStatus.SHIPPED, TransactionHoldStatus.DELIVERED],
        target=TransactionHoldStatus.RELEASE_REQUESTED,
    )
    def request_release(self, deadline: datetime, now: datetime | None = None):
        """
        Seller asked for release after the buyer stayed silent.

        Transition: SHIPPED/DELIVERED -> RELEASE_REQUESTED
        """
        self.release_requested_at = now or timezone.now()
        self.final_release_deadline = deadline

    @transition(
        field=hold_status,
        source=TransactionHoldStatus.RELEASE_REQUESTED,
        target=TransactionHoldStatus.RELEASED,
    )
    def auto_release(self, now: datetime | None = None):
        """
        Release after the buyer let the release deadline pass.

        Transition: RELEASE_REQUESTED -> RELEASED
        """
        now = now or timezone.now()
        self.released_at = now
        self.delivery_confirmed_at = now
        self.delivery_confirmed_by = DeliveryConfirmedBy.AUTO_CONFIRMED

    @transition(
        field=hold_status,
        source=TransactionHoldStatus.CONFIRMED,
        target=TransactionHoldStatus.RELEASED,
    )
    def complete_payout(self, now: datetime | None = None):
        """
        Seller has been paid.

        Transition: CONFIRMED -> RELEASED
        """
        now = now or timezone.now()
        self.released_at = now
        self.transferred_at = now

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.hold_status in (
            TransactionHoldStatus.RELEASED,
            TransactionHoldStatus.DISPUTED,
        )
