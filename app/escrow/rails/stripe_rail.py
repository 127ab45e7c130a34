"""
Bank transfer rail: Stripe Connect transfers to the seller's account.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from escrow.adapters import StripeAdapter
from escrow.exceptions import StripeError
from escrow.rails.base import AccountVerification, PayoutRail, RailTransferResult
from escrow.state_machines import PayoutMethod

if TYPE_CHECKING:
    from escrow.models import SellerAccount


class StripeTransferRail(PayoutRail):
    method = PayoutMethod.STRIPE
    fee_setting = "ESCROW_STRIPE_PAYOUT_FEE"

    def destination_for(self, seller_account: SellerAccount) -> str | None:
        return seller_account.stripe_account_id or None

    def transfer(
        self,
        destination: str,
        amount: Decimal,
        currency: str,
        description: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> RailTransferResult:
        metadata = dict(metadata or {})
        metadata.setdefault("platform", "escrow")

        hold_id = metadata.get("hold_id")
        result = StripeAdapter.create_transfer(
            amount_pence=int((amount * 100).to_integral_value()),
            destination_account=destination,
            idempotency_key=idempotency_key,
            currency=currency,
            description=description,
            metadata=metadata,
            transfer_group=f"hold_{hold_id}" if hold_id else None,
        )
        return RailTransferResult(
            transfer_id=result.id,
            status="paid",
            raw=result.raw_response,
        )

    def verify_account(self, identifier: str) -> AccountVerification:
        if not identifier.startswith("acct_"):
            return AccountVerification(valid=False, error="Invalid Stripe account id")

        try:
            account = StripeAdapter.retrieve_account(identifier)
        except StripeError as e:
            return AccountVerification(valid=False, error=e.message)

        if not account.payouts_enabled:
            return AccountVerification(
                valid=False,
                error="Stripe account cannot receive payouts yet; finish onboarding",
            )
        return AccountVerification(valid=True)


__all__ = ["StripeTransferRail"]
