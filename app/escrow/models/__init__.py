"""
Escrow models.

Models:
    Transaction: One escrowed purchase with the custody state machine
    PaymentHold: Funds held for a transaction and its payout schedule
    Payout: One payout attempt over a rail
    Activity: Append-only audit trail
    SellerAccount: Seller tier and payout destinations
    WebhookEvent: Provider webhook deliveries
"""

from escrow.models.activity import Activity
from escrow.models.payment_hold import PaymentHold, PayoutSchedule
from escrow.models.payout import Payout
from escrow.models.seller_account import SellerAccount
from escrow.models.transaction import DeliveryConfirmedBy, Transaction
from escrow.models.webhook_event import WebhookEvent

__all__ = [
    "Activity",
    "DeliveryConfirmedBy",
    "PaymentHold",
    "Payout",
    "PayoutSchedule",
    "SellerAccount",
    "Transaction",
    "WebhookEvent",
]
