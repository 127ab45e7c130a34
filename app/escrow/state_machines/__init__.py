"""
State machine enums for escrow models.

This module re-exports the state enums used by escrow models with django-fsm
and by the hold ledger's compare-and-set updates.
"""

from escrow.state_machines.states import (
    ActivityType,
    HoldReason,
    HoldStatus,
    PayoutMethod,
    PayoutScheduleStatus,
    PayoutStatus,
    SellerTier,
    TransactionHoldStatus,
    WebhookEventStatus,
)

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
