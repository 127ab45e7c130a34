"""
Wallet rail: PayPal Payouts to the seller's PayPal email.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from escrow.adapters import PayPalAdapter
from escrow.rails.base import AccountVerification, PayoutRail, RailTransferResult
from escrow.state_machines import PayoutMethod

if TYPE_CHECKING:
    from escrow.models import SellerAccount


class PayPalPayoutRail(PayoutRail):
    method = PayoutMethod.PAYPAL
    fee_setting = "ESCROW_PAYPAL_PAYOUT_FEE"

    def destination_for(self, seller_account: SellerAccount) -> str | None:
        return seller_account.paypal_email or None

    def transfer(
        self,
        destination: str,
        amount: Decimal,
        currency: str,
        description: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> RailTransferResult:
        # PayPal caps sender_batch_id at 127 characters
        batch_id = idempotency_key[:127]
        result = PayPalAdapter.create_payout(
            receiver_email=destination,
            amount=amount,
            currency=currency,
            note=description,
            sender_batch_id=batch_id,
            sender_item_id=(metadata or {}).get("hold_id"),
        )
        return RailTransferResult(
            transfer_id=result.batch_id,
            status=result.batch_status.lower() or "pending",
            raw=result.raw_response,
        )

    def verify_account(self, identifier: str) -> AccountVerification:
        if not PayPalAdapter.is_valid_email(identifier):
            return AccountVerification(valid=False, error="Invalid PayPal email address")
        return AccountVerification(valid=True)


__all__ = ["PayPalPayoutRail"]
