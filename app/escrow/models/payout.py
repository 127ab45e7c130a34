"""
Payout model: one attempt to move a hold's net amount to the seller.

A hold may have several Payout rows (one per attempt), but at most one
COMPLETED payout per transaction. That is enforced by a conditional unique
constraint and by the executor's pre-call duplicate check.

Usage:
    payout = Payout.objects.create(
        transaction=txn,
        payment_hold=hold,
        seller=txn.seller,
        method=PayoutMethod.STRIPE,
        gross_amount=calc.gross_amount,
        commission_amount=calc.commission_amount,
        processing_fee=calc.rail_fee,
        net_amount=calc.net_amount,
        idempotency_key=key,
        attempt=hold.payout_attempts,
    )

    payout.complete(transfer_id="tr_123")
    payout.save()
"""

from __future__ import annotations

from datetime import datetime

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from escrow.state_machines import PayoutMethod, PayoutStatus

MONEY = {"max_digits": 12, "decimal_places": 2}


class Payout(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    A single payout attempt over one rail.

    State Flow:
        PROCESSING -> COMPLETED
        PROCESSING -> FAILED

    Completed payouts are immutable.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    transaction = models.ForeignKey(
        "escrow.Transaction",
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    payment_hold = models.ForeignKey(
        "escrow.PaymentHold",
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_payouts",
    )

    # ==========================================================================
    # Amounts
    # ==========================================================================

    method = models.CharField(max_length=20, choices=PayoutMethod.choices)

    gross_amount = models.DecimalField(**MONEY)
    commission_amount = models.DecimalField(**MONEY)
    processing_fee = models.DecimalField(**MONEY, help_text="Rail fee applied")
    net_amount = models.DecimalField(**MONEY, help_text="Amount sent to the seller")
    currency = models.CharField(max_length=3, default="gbp")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutStatus.PROCESSING,
        choices=PayoutStatus.choices,
        db_index=True,
        help_text="Attempt outcome (managed by FSM)",
    )

    # ==========================================================================
    # Provider Integration
    # ==========================================================================

    provider_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe transfer id (tr_xxx) or PayPal payout batch id",
    )

    idempotency_key = models.CharField(
        max_length=255,
        db_index=True,
        help_text="Key sent to the provider; replayed when resuming an interrupted attempt",
    )

    attempt = models.PositiveIntegerField(default=1)

    failure_code = models.CharField(max_length=100, blank=True, default="")
    failure_reason = models.TextField(blank=True, default="")

    processed_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Provider response summary",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["payment_hold", "status"], name="escrow_payo_payment_4b7e0c_idx"),
            models.Index(fields=["seller", "status"], name="escrow_payo_seller__e28a14_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["transaction"],
                condition=models.Q(status=PayoutStatus.COMPLETED),
                name="escrow_one_completed_payout_per_transaction",
            ),
            models.CheckConstraint(
                check=models.Q(net_amount__gte=0),
                name="escrow_payout_net_not_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.method}, {self.status}, {self.net_amount} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PayoutStatus.PROCESSING,
        target=PayoutStatus.COMPLETED,
    )
    def complete(
        self,
        transfer_id: str | None,
        metadata: dict | None = None,
        now: datetime | None = None,
    ):
        """
        Mark the attempt as paid.

        Transition: PROCESSING -> COMPLETED
        """
        self.provider_transfer_id = transfer_id
        self.processed_at = now or timezone.now()
        if metadata:
            self.metadata = {**self.metadata, **metadata}

    @transition(
        field=status,
        source=PayoutStatus.PROCESSING,
        target=PayoutStatus.FAILED,
    )
    def fail(self, code: str, reason: str, now: datetime | None = None):
        """
        Mark the attempt as failed.

        Transition: PROCESSING -> FAILED
        """
        self.failure_code = code
        self.failure_reason = reason
        self.processed_at = now or timezone.now()

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutStatus.COMPLETED
