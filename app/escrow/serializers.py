"""
DRF serializers for the escrow app.

This module provides serializers for:
- Transaction detail and list responses
- Transaction action requests (ship, deliver, confirm, request release)
- Payout sweep and account verification responses

Related files:
    - models/: Transaction, PaymentHold
    - views.py: Escrow API views

Usage:
    serializer = TransactionActionSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
"""

from __future__ import annotations

from rest_framework import serializers

from escrow.authorization import role_of
from escrow.models import PaymentHold, Transaction


class TransactionAction:
    MARK_SHIPPED = "mark_shipped"
    MARK_DELIVERED = "mark_delivered"
    CONFIRM_DELIVERY = "confirm_delivery"
    REQUEST_RELEASE = "request_release"

    CHOICES = [MARK_SHIPPED, MARK_DELIVERED, CONFIRM_DELIVERY, REQUEST_RELEASE]


class PaymentHoldSerializer(serializers.ModelSerializer):
    """Read-only view of the hold behind a transaction."""

    net_payable = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = PaymentHold
        fields = [
            "id",
            "status",
            "reason",
            "held_amount",
            "currency",
            "commission_held",
            "processing_fee_held",
            "net_payable",
            "held_at",
            "released_at",
            "auto_release_eligible_at",
            "payout_scheduled_at",
            "payout_status",
            "payout_method",
            "payout_completed_at",
        ]
        read_only_fields = fields


class TransactionSerializer(serializers.ModelSerializer):
    """
    Transaction serializer for API responses.

    Fields:
        user_role: "buyer" or "seller" for the actor passed in context
        payment_hold: Nested hold summary
    """

    user_role = serializers.SerializerMethodField()
    payment_hold = PaymentHoldSerializer(read_only=True)

    class Meta:
        model = Transaction
        fields = [
            "id",
            "hold_status",
            "amount",
            "currency",
            "commission_rate",
            "commission_amount",
            "seller_amount",
            "processing_fee",
            "seller_tier",
            "buyer_email",
            "seller_id",
            "product_id",
            "product_title",
            "shipping_carrier",
            "shipping_tracking_number",
            "paid_at",
            "shipped_at",
            "delivered_at",
            "delivery_confirmed_at",
            "delivery_confirmed_by",
            "disputed_at",
            "dispute_reason",
            "release_requested_at",
            "final_release_deadline",
            "released_at",
            "transferred_at",
            "created_at",
            "user_role",
            "payment_hold",
        ]
        read_only_fields = fields

    def get_user_role(self, obj) -> str | None:
        actor = self.context.get("actor")
        if actor is None:
            return None
        return role_of(actor, obj)


class TransactionListQuerySerializer(serializers.Serializer):
    """Filters for GET /transactions/."""

    role = serializers.ChoiceField(choices=["buyer", "seller"], required=False)
    status = serializers.CharField(max_length=30, required=False)


class TransactionActionSerializer(serializers.Serializer):
    """
    Serializer for transaction action requests.

    Fields:
        action: Which transition to perform
        tracking_number: Required for mark_shipped
        carrier: Optional for mark_shipped
        estimated_delivery: Optional for mark_shipped
        satisfied: confirm_delivery only; false opens a dispute
        notes: confirm_delivery only; dispute reason when not satisfied
    """

    action = serializers.ChoiceField(choices=TransactionAction.CHOICES)
    tracking_number = serializers.CharField(max_length=100, required=False, allow_blank=True)
    carrier = serializers.CharField(max_length=100, required=False, allow_blank=True)
    estimated_delivery = serializers.DateTimeField(required=False)
    satisfied = serializers.BooleanField(required=False, default=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class PayoutOutcomeSerializer(serializers.Serializer):
    hold_id = serializers.CharField()
    status = serializers.CharField()
    transaction_id = serializers.CharField(required=False)
    payout_id = serializers.CharField(required=False)
    method = serializers.CharField(required=False)
    transfer_id = serializers.CharField(required=False)
    net_amount = serializers.CharField(required=False)
    error = serializers.CharField(required=False)
    error_code = serializers.CharField(required=False)


class PayoutSweepSerializer(serializers.Serializer):
    """Summary returned by the cron payout trigger."""

    processed = serializers.IntegerField()
    successful = serializers.IntegerField()
    failed = serializers.IntegerField()
    skipped = serializers.IntegerField()
    results = PayoutOutcomeSerializer(many=True)


class PayoutAccountVerificationSerializer(serializers.Serializer):
    valid = serializers.BooleanField()
    method = serializers.CharField(allow_null=True)
    error = serializers.CharField(allow_null=True)


__all__ = [
    "PaymentHoldSerializer",
    "PayoutAccountVerificationSerializer",
    "PayoutSweepSerializer",
    "TransactionAction",
    "TransactionActionSerializer",
    "TransactionListQuerySerializer",
    "TransactionSerializer",
]
