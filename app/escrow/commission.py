"""
Commission and fee calculation for seller payouts.

Pure functions with no database or network access. All amounts are
Decimal major units (pounds) quantized to pennies with ROUND_HALF_UP.

Commission rates by seller tier:
    pga-pro   1%
    business  3%
    pro       3%
    free      5% (also used for an unknown or missing tier)

Usage:
    from decimal import Decimal
    from escrow.commission import calculate_payout

    calc = calculate_payout(Decimal("150.00"), "pro")
    calc.commission_amount  # Decimal("4.50")
    calc.rail_fee           # Decimal("0.20")
    calc.net_amount         # Decimal("145.30")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from escrow.state_machines import SellerTier

# =============================================================================
# Constants
# =============================================================================

PENNY = Decimal("0.01")

COMMISSION_RATES: dict[str, Decimal] = {
    SellerTier.PGA_PRO: Decimal("0.01"),
    SellerTier.BUSINESS: Decimal("0.03"),
    SellerTier.PRO: Decimal("0.03"),
    SellerTier.FREE: Decimal("0.05"),
}

DEFAULT_COMMISSION_RATE = COMMISSION_RATES[SellerTier.FREE]

# Flat per-payout fee when a rail does not configure its own
DEFAULT_RAIL_FEE = Decimal("0.20")

# Card capture fee charged by Stripe on the buyer's payment
CAPTURE_FEE_RATE = Decimal("0.029")
CAPTURE_FEE_FIXED = Decimal("0.20")


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class PayoutCalculation:
    """
    Split of a gross amount into commission, rail fee and seller net.

    Invariant: commission_amount + rail_fee + net_amount == gross_amount
    """

    gross_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    rail_fee: Decimal
    net_amount: Decimal


# =============================================================================
# Calculations
# =============================================================================


def quantize(amount: Decimal | int | float | str) -> Decimal:
    """Round an amount to pennies, half up."""
    return Decimal(str(amount)).quantize(PENNY, rounding=ROUND_HALF_UP)


def commission_rate_for(seller_tier: str | None) -> Decimal:
    """Commission rate for a seller tier; unknown tiers pay the free rate."""
    return COMMISSION_RATES.get(seller_tier or SellerTier.FREE, DEFAULT_COMMISSION_RATE)


def calculate_payout(
    gross_amount: Decimal,
    seller_tier: str | None,
    rail_fee: Decimal = DEFAULT_RAIL_FEE,
    *,
    commission_rate: Decimal | None = None,
    commission_amount: Decimal | None = None,
) -> PayoutCalculation:
    """
    Compute the seller's net payout for a gross sale amount.

    The net is floored at zero. When the floor applies the rail fee is
    reduced to whatever the commission leaves, so the three parts still
    add up to the gross exactly.

    Args:
        gross_amount: Amount captured from the buyer
        seller_tier: Tier frozen on the transaction at capture
        rail_fee: Flat fee of the payout rail that will move the money
        commission_rate: Rate agreed at checkout; the tier rate when None
        commission_amount: Commission frozen at capture; gross * rate
            when None

    Returns:
        PayoutCalculation with every amount quantized to pennies
    """
    gross = quantize(gross_amount)
    if commission_rate is None:
        commission_rate = commission_rate_for(seller_tier)
    rate = Decimal(commission_rate)
    if commission_amount is None:
        commission = quantize(gross * rate)
    else:
        commission = min(quantize(commission_amount), gross)
    fee = quantize(rail_fee)

    net = gross - commission - fee
    if net < 0:
        net = Decimal("0.00")
        fee = max(gross - commission, Decimal("0.00"))

    return PayoutCalculation(
        gross_amount=gross,
        commission_rate=rate,
        commission_amount=commission,
        rail_fee=quantize(fee),
        net_amount=quantize(net),
    )


def calculate_capture_fee(amount: Decimal) -> Decimal:
    """
    Card processing fee on a captured payment (2.9% + 0.20).

    Informational only; stored on the transaction for reporting and never
    deducted from the seller's payout.
    """
    return quantize(quantize(amount) * CAPTURE_FEE_RATE + CAPTURE_FEE_FIXED)


__all__ = [
    "COMMISSION_RATES",
    "DEFAULT_RAIL_FEE",
    "PayoutCalculation",
    "calculate_capture_fee",
    "calculate_payout",
    "commission_rate_for",
    "quantize",
]
