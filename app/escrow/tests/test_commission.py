"""
Tests for commission and fee calculation.
"""

from decimal import Decimal

import pytest

from escrow.commission import (
    calculate_capture_fee,
    calculate_payout,
    commission_rate_for,
    quantize,
)
from escrow.state_machines import SellerTier


class TestCommissionRates:
    @pytest.mark.parametrize(
        "tier,rate",
        [
            (SellerTier.PGA_PRO, Decimal("0.01")),
            (SellerTier.BUSINESS, Decimal("0.03")),
            (SellerTier.PRO, Decimal("0.03")),
            (SellerTier.FREE, Decimal("0.05")),
        ],
    )
    def test_rate_per_tier(self, tier, rate):
        assert commission_rate_for(tier) == rate

    def test_unknown_tier_uses_free_rate(self):
        assert commission_rate_for("platinum") == Decimal("0.05")

    def test_missing_tier_uses_free_rate(self):
        assert commission_rate_for(None) == Decimal("0.05")
        assert commission_rate_for("") == Decimal("0.05")


class TestCalculatePayout:
    def test_pro_seller_sale(self):
        calc = calculate_payout(Decimal("150.00"), SellerTier.PRO)

        assert calc.commission_amount == Decimal("4.50")
        assert calc.rail_fee == Decimal("0.20")
        assert calc.net_amount == Decimal("145.30")

    def test_free_seller_sale(self):
        calc = calculate_payout(Decimal("100.00"), SellerTier.FREE)

        assert calc.commission_amount == Decimal("5.00")
        assert calc.net_amount == Decimal("94.80")

    def test_pga_pro_seller_sale(self):
        calc = calculate_payout(Decimal("80.00"), SellerTier.PGA_PRO)

        assert calc.commission_amount == Decimal("0.80")
        assert calc.net_amount == Decimal("79.00")

    def test_rounds_half_up_to_pennies(self):
        # 3% of 10.50 = 0.315 -> 0.32
        calc = calculate_payout(Decimal("10.50"), SellerTier.PRO)

        assert calc.commission_amount == Decimal("0.32")

    @pytest.mark.parametrize(
        "gross",
        ["0.01", "0.25", "1.00", "9.99", "33.33", "150.00", "1234.57"],
    )
    @pytest.mark.parametrize("tier", list(SellerTier.values) + ["unknown"])
    def test_parts_add_up_to_gross(self, gross, tier):
        calc = calculate_payout(Decimal(gross), tier)

        assert calc.net_amount >= 0
        assert calc.commission_amount + calc.rail_fee + calc.net_amount == calc.gross_amount

    def test_net_floored_at_zero_for_tiny_amounts(self):
        calc = calculate_payout(Decimal("0.10"), SellerTier.FREE)

        assert calc.net_amount == Decimal("0.00")
        assert calc.rail_fee == Decimal("0.10") - calc.commission_amount

    def test_custom_rail_fee(self):
        calc = calculate_payout(Decimal("150.00"), SellerTier.PRO, rail_fee=Decimal("0.35"))

        assert calc.rail_fee == Decimal("0.35")
        assert calc.net_amount == Decimal("145.15")

    def test_checkout_rate_overrides_tier(self):
        calc = calculate_payout(
            Decimal("150.00"), SellerTier.PRO, commission_rate=Decimal("0.05")
        )

        assert calc.commission_rate == Decimal("0.05")
        assert calc.commission_amount == Decimal("7.50")
        assert calc.net_amount == Decimal("142.30")

    def test_frozen_commission_amount_used_as_is(self):
        calc = calculate_payout(
            Decimal("150.00"),
            SellerTier.PGA_PRO,
            commission_rate=Decimal("0.05"),
            commission_amount=Decimal("7.25"),
        )

        assert calc.commission_amount == Decimal("7.25")
        assert calc.net_amount == Decimal("142.55")

    def test_frozen_commission_capped_at_gross(self):
        calc = calculate_payout(
            Decimal("1.00"), SellerTier.PRO, commission_amount=Decimal("2.00")
        )

        assert calc.commission_amount == Decimal("1.00")
        assert calc.rail_fee == Decimal("0.00")
        assert calc.net_amount == Decimal("0.00")


class TestCaptureFee:
    def test_card_fee(self):
        # 2.9% of 150.00 = 4.35 + 0.20
        assert calculate_capture_fee(Decimal("150.00")) == Decimal("4.55")

    def test_quantize(self):
        assert quantize("1.005") == Decimal("1.01")
        assert quantize(2) == Decimal("2.00")
