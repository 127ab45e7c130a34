"""
Activity model: append-only audit trail of escrow events.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.state_machines import ActivityType


class Activity(UUIDPrimaryKeyMixin, BaseModel):
    """
    One audit row per transition or payout attempt.

    Fields:
        transaction: Transaction the event belongs to
        user: Acting user, null for system actions
        type: Event type
        description: Human-readable summary
        metadata: Structured event context (amounts, ids, error codes)
    """

    transaction = models.ForeignKey(
        "escrow.Transaction",
        on_delete=models.PROTECT,
        related_name="activities",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escrow_activities",
    )

    type = models.CharField(max_length=50, choices=ActivityType.choices, db_index=True)
    description = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Activity"
        verbose_name_plural = "Activities"
        indexes = [
            models.Index(fields=["transaction", "type"], name="escrow_acti_transac_7d2f90_idx"),
        ]

    def __str__(self) -> str:
        return f"Activity({self.type}, {self.transaction_id})"
