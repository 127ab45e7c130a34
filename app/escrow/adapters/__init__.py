"""
Provider adapters used by the payout rails and webhook ingestion.

Usage:
    from escrow.adapters import IdempotencyKeyGenerator, PayPalAdapter, StripeAdapter
"""

from escrow.adapters.paypal_adapter import PayPalAdapter, PayPalPayoutResult
from escrow.adapters.stripe_adapter import (
    AccountResult,
    IdempotencyKeyGenerator,
    StripeAdapter,
    TransferResult,
)

__all__ = [
    "AccountResult",
    "IdempotencyKeyGenerator",
    "PayPalAdapter",
    "PayPalPayoutResult",
    "StripeAdapter",
    "TransferResult",
]
