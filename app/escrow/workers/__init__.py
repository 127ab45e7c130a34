"""
Celery workers for the escrow background sweeps.

Usage:
    from escrow.workers import (
        execute_hold_payout,
        process_auto_releases,
        process_scheduled_payouts,
        recover_stuck_payouts,
    )
"""

from escrow.workers.payout_sweep import (
    execute_hold_payout,
    process_scheduled_payouts,
    recover_stuck_payouts,
)
from escrow.workers.release_sweep import process_auto_releases

__all__ = [
    "execute_hold_payout",
    "process_auto_releases",
    "process_scheduled_payouts",
    "recover_stuck_payouts",
]
