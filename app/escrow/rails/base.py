"""
Abstract payout rail.

A rail moves a seller's net funds through one external provider. The
executor picks exactly one rail per attempt and never retries inside a
call; retries happen on the next sweep.

Usage:
    class MyRail(PayoutRail):
        method = "my_rail"
        fee_setting = "ESCROW_MY_RAIL_PAYOUT_FEE"

        def destination_for(self, seller_account):
            return seller_account.my_rail_id or None

        def transfer(self, destination, amount, currency, description,
                     idempotency_key, metadata=None):
            ...

        def verify_account(self, identifier):
            ...
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings

from escrow.commission import DEFAULT_RAIL_FEE, quantize

if TYPE_CHECKING:
    from escrow.models import SellerAccount


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class RailTransferResult:
    """
    Outcome of a successful rail transfer.

    Attributes:
        transfer_id: Provider reference (tr_xxx, PayPal batch id)
        status: Provider status string
        raw: Provider response, kept on the Payout for audit
    """

    transfer_id: str
    status: str
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class AccountVerification:
    valid: bool
    error: str | None = None


# =============================================================================
# Abstract Rail
# =============================================================================


class PayoutRail(ABC):
    """
    Contract every payout rail implements.

    Attributes:
        method: PayoutMethod value stored on Payout and PaymentHold
        fee_setting: Settings name of the rail's flat fee
    """

    method: str = ""
    fee_setting: str = ""

    @property
    def fee(self) -> Decimal:
        """Flat per-payout fee, configurable through settings."""
        return quantize(getattr(settings, self.fee_setting, DEFAULT_RAIL_FEE))

    @abstractmethod
    def destination_for(self, seller_account: SellerAccount) -> str | None:
        """Return the seller's destination on this rail, or None."""

    @abstractmethod
    def transfer(
        self,
        destination: str,
        amount: Decimal,
        currency: str,
        description: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> RailTransferResult:
        """
        Move amount to destination.

        Raises:
            PayoutRailError: Any provider failure
        """

    @abstractmethod
    def verify_account(self, identifier: str) -> AccountVerification:
        """Check the destination can receive payouts on this rail."""


__all__ = ["AccountVerification", "PayoutRail", "RailTransferResult"]
