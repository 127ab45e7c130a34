"""
Escrow service layer.

Usage:
    from escrow.services import (
        EscrowTransactionService,
        HoldLedger,
        PayoutExecutor,
        PayoutScheduler,
        WebhookIngestionService,
    )
"""

from escrow.services.hold_ledger import HoldLedger
from escrow.services.payout_scheduler import PayoutScheduler
from escrow.services.payout_service import (
    PayoutExecutor,
    PayoutOutcome,
    SweepSummary,
    verify_payout_account,
)
from escrow.services.transaction_service import EscrowTransactionService
from escrow.services.webhook_ingestion import CaptureResult, WebhookIngestionService

__all__ = [
    "CaptureResult",
    "EscrowTransactionService",
    "HoldLedger",
    "PayoutExecutor",
    "PayoutOutcome",
    "PayoutScheduler",
    "SweepSummary",
    "WebhookIngestionService",
    "verify_payout_account",
]
