"""
PaymentHold model: the funds held in escrow for one transaction.

Every change after creation goes through escrow.services.HoldLedger, which
writes with field-scoped QuerySet.update() calls conditioned on the current
status. Never call hold.save() to change status or payout progress.

Usage:
    from escrow.models import PaymentHold

    hold = PaymentHold.objects.get(transaction=txn)
    hold.net_payable            # held - commission - expected rail fee
    hold.payout_schedule        # PayoutSchedule or None
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

from escrow.state_machines import HoldReason, HoldStatus, PayoutScheduleStatus

MONEY = {"max_digits": 12, "decimal_places": 2}


@dataclass(frozen=True)
class PayoutSchedule:
    """Typed read view over a hold's payout columns."""

    scheduled_at: datetime
    status: str
    method: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    attempts: int = 0

    @property
    def is_completed(self) -> bool:
        return self.status == PayoutScheduleStatus.COMPLETED

    def is_due(self, now: datetime) -> bool:
        return self.scheduled_at <= now


class PaymentHold(UUIDPrimaryKeyMixin, VersionedMixin, BaseModel):
    """
    Funds held for a transaction until release or dispute.

    Status Flow:
        HELD -> RELEASED
        HELD -> DISPUTED (terminal here)

    Payout Flow (on released holds):
        SCHEDULED -> PROCESSING -> COMPLETED
        SCHEDULED/FAILED -> PROCESSING -> FAILED

    Invariant:
        net_payable = held_amount - commission_held - processing_fee_held
    """

    transaction = models.OneToOneField(
        "escrow.Transaction",
        on_delete=models.PROTECT,
        related_name="payment_hold",
    )

    # ==========================================================================
    # Custody
    # ==========================================================================

    held_amount = models.DecimalField(**MONEY)
    currency = models.CharField(max_length=3, default="gbp")

    status = models.CharField(
        max_length=20,
        choices=HoldStatus.choices,
        default=HoldStatus.HELD,
        db_index=True,
    )

    reason = models.CharField(
        max_length=30,
        choices=HoldReason.choices,
        default=HoldReason.PAYMENT_CAPTURED,
    )

    commission_held = models.DecimalField(**MONEY, default=0)
    processing_fee_held = models.DecimalField(
        **MONEY,
        default=0,
        help_text="Expected payout rail fee",
    )

    held_at = models.DateTimeField()
    released_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Dispute
    # ==========================================================================

    dispute_raised = models.BooleanField(default=False)
    dispute_raised_by = models.CharField(max_length=20, blank=True, default="")
    dispute_raised_at = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(blank=True, default="")

    # ==========================================================================
    # Seller Release Request
    # ==========================================================================

    seller_release_requested = models.BooleanField(default=False)
    seller_release_requested_at = models.DateTimeField(null=True, blank=True)
    auto_release_eligible_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Funds may auto-release from this moment",
    )
    auto_release_executed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Payout Schedule
    # ==========================================================================

    payout_scheduled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Earliest moment the payout sweep may pay this hold",
    )

    payout_status = models.CharField(
        max_length=20,
        choices=PayoutScheduleStatus.choices,
        blank=True,
        default="",
    )

    payout_method = models.CharField(max_length=20, blank=True, default="")

    payout_details = models.JSONField(
        default=dict,
        blank=True,
        help_text="Last payout outcome (transfer id, net amount, error)",
    )

    payout_claimed_at = models.DateTimeField(null=True, blank=True)
    payout_attempts = models.PositiveIntegerField(default=0)
    payout_completed_at = models.DateTimeField(null=True, blank=True)
    payout_idempotency_key = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Key of the last attempt; reused when resuming an interrupted attempt",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment Hold"
        verbose_name_plural = "Payment Holds"
        indexes = [
            models.Index(
                fields=["status", "reason", "payout_status", "payout_scheduled_at"],
                name="escrow_hold_payout_due_idx",
            ),
            models.Index(
                fields=["payout_status", "payout_claimed_at"],
                name="escrow_hold_claimed_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(held_amount__gt=0),
                name="escrow_hold_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentHold({self.id}, {self.status}, {self.held_amount} {self.currency.upper()})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def net_payable(self) -> Decimal:
        return self.held_amount - self.commission_held - self.processing_fee_held

    @property
    def payout_schedule(self) -> PayoutSchedule | None:
        if self.payout_scheduled_at is None:
            return None
        return PayoutSchedule(
            scheduled_at=self.payout_scheduled_at,
            status=self.payout_status,
            method=self.payout_method or None,
            details=dict(self.payout_details or {}),
            attempts=self.payout_attempts,
        )
