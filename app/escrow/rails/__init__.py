"""
Payout rails and rail selection.

Rail preference: Stripe (bank transfer) when the seller has a Connect
account, otherwise PayPal (wallet) when they have a PayPal email. A seller
with neither cannot be paid until they configure one.

Usage:
    from escrow.rails import select_rail

    rail, destination = select_rail(seller_account)
    calc = calculate_payout(
        hold.held_amount, txn.seller_tier, rail.fee,
        commission_amount=hold.commission_held,
    )
    rail.transfer(destination, calc.net_amount, "gbp", "Payout", key)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from escrow.exceptions import NoPayoutDestinationError
from escrow.rails.base import AccountVerification, PayoutRail, RailTransferResult
from escrow.rails.paypal_rail import PayPalPayoutRail
from escrow.rails.stripe_rail import StripeTransferRail
from escrow.state_machines import PayoutMethod

if TYPE_CHECKING:
    from escrow.models import SellerAccount

RAILS: dict[str, type[PayoutRail]] = {
    PayoutMethod.STRIPE: StripeTransferRail,
    PayoutMethod.PAYPAL: PayPalPayoutRail,
}

# Order in which rails are tried for a seller
RAIL_PREFERENCE = [PayoutMethod.STRIPE, PayoutMethod.PAYPAL]


def get_rail(method: str) -> PayoutRail:
    try:
        return RAILS[method]()
    except KeyError:
        raise ValueError(f"Unknown payout method: {method}") from None


def select_rail(seller_account: SellerAccount | None) -> tuple[PayoutRail, str]:
    """
    Pick the single rail to use for a seller.

    Returns:
        (rail, destination)

    Raises:
        NoPayoutDestinationError: Seller has no usable destination
    """
    if seller_account is not None:
        for method in RAIL_PREFERENCE:
            rail = get_rail(method)
            destination = rail.destination_for(seller_account)
            if destination:
                return rail, destination

    raise NoPayoutDestinationError(
        "Seller has no payout method configured. "
        "Add a Stripe account or PayPal email to receive payouts.",
        details={"seller_id": seller_account.user_id if seller_account else None},
    )


__all__ = [
    "AccountVerification",
    "PayPalPayoutRail",
    "PayoutRail",
    "RAILS",
    "RailTransferResult",
    "StripeTransferRail",
    "get_rail",
    "select_rail",
]
