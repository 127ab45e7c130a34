"""
Escrow admin configuration.

Registers the escrow models with the Django admin. State changes go through
the service layer: the only writes offered here are the two payout actions
on PaymentHold.
"""

from django.contrib import admin, messages
from django.utils import timezone

from core.exceptions import BaseApplicationError

from escrow.models import (
    Activity,
    PaymentHold,
    Payout,
    SellerAccount,
    Transaction,
    WebhookEvent,
)
from escrow.services import HoldLedger

__all__ = [
    "ActivityAdmin",
    "PaymentHoldAdmin",
    "PayoutAdmin",
    "SellerAccountAdmin",
    "TransactionAdmin",
    "WebhookEventAdmin",
]


@admin.register(SellerAccount)
class SellerAccountAdmin(admin.ModelAdmin):
    list_display = ["id", "user", "display_name", "tier", "stripe_account_id", "paypal_email"]
    list_filter = ["tier"]
    search_fields = ["user__email", "display_name", "stripe_account_id", "paypal_email"]
    readonly_fields = ["id", "created_at", "updated_at"]


@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    """
    Admin configuration for Transaction.

    Read-mostly: custody transitions must go through EscrowTransactionService.
    """

    list_display = [
        "id",
        "product_title",
        "amount_display",
        "hold_status",
        "seller_tier",
        "buyer_email",
        "seller",
        "created_at",
    ]
    list_filter = ["hold_status", "seller_tier", "currency", "created_at"]
    search_fields = [
        "id",
        "provider_session_id",
        "provider_payment_intent_id",
        "buyer_email",
        "seller__email",
        "product_id",
    ]
    readonly_fields = [
        "id",
        "hold_status",
        "version",
        "created_at",
        "updated_at",
        "paid_at",
        "shipped_at",
        "delivered_at",
        "delivery_confirmed_at",
        "disputed_at",
        "release_requested_at",
        "final_release_deadline",
        "released_at",
        "transferred_at",
        "failed_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "hold_status", "provider_session_id", "provider_payment_intent_id")}),
        (
            "Amount",
            {
                "fields": (
                    "amount",
                    "currency",
                    "commission_rate",
                    "commission_amount",
                    "seller_amount",
                    "processing_fee",
                    "seller_tier",
                ),
            },
        ),
        ("Parties", {"fields": ("buyer_email", "buyer", "seller", "product_id", "product_title")}),
        ("Shipping", {"fields": ("shipping_carrier", "shipping_tracking_number")}),
        (
            "Timeline",
            {
                "fields": (
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
                    "failed_at",
                ),
            },
        ),
        ("Timestamps", {"fields": ("version", "created_at", "updated_at")}),
    )

    def amount_display(self, obj: Transaction) -> str:
        return f"{obj.amount} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(PaymentHold)
class PaymentHoldAdmin(admin.ModelAdmin):
    """
    Admin configuration for PaymentHold.

    Actions:
        pay_out_now: Schedule the payout for now and queue it
        reset_payout_for_retry: Zero the attempt counter after max attempts
    """

    list_display = [
        "id",
        "transaction",
        "held_amount",
        "status",
        "reason",
        "payout_status",
        "payout_attempts",
        "payout_scheduled_at",
    ]
    list_filter = ["status", "reason", "payout_status", "payout_method"]
    search_fields = ["id", "transaction__id", "transaction__provider_session_id"]
    readonly_fields = [
        field.name for field in PaymentHold._meta.fields
    ]
    ordering = ["-created_at"]
    actions = ["pay_out_now", "reset_payout_for_retry"]

    @admin.action(description="Pay out now")
    def pay_out_now(self, request, queryset):
        from escrow.tasks import execute_hold_payout

        now = timezone.now()
        queued = 0
        for hold in queryset:
            try:
                HoldLedger.schedule_payout(hold, now)
            except BaseApplicationError as e:
                self.message_user(
                    request,
                    f"Hold {hold.id}: {e.message}",
                    level=messages.WARNING,
                )
                continue
            execute_hold_payout.delay(str(hold.id))
            queued += 1

        self.message_user(request, f"Queued {queued} payout(s).")

    @admin.action(description="Reset payout for retry")
    def reset_payout_for_retry(self, request, queryset):
        reset = 0
        for hold in queryset:
            try:
                HoldLedger.reset_attempts(hold.id)
            except BaseApplicationError as e:
                self.message_user(
                    request,
                    f"Hold {hold.id}: {e.message}",
                    level=messages.WARNING,
                )
                continue
            reset += 1

        self.message_user(request, f"Reset {reset} hold(s) for retry.")

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "transaction",
        "seller",
        "method",
        "net_amount",
        "status",
        "attempt",
        "provider_transfer_id",
        "created_at",
    ]
    list_filter = ["status", "method", "currency", "created_at"]
    search_fields = ["id", "provider_transfer_id", "idempotency_key", "seller__email"]
    readonly_fields = [field.name for field in Payout._meta.fields]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Activity)
class ActivityAdmin(admin.ModelAdmin):
    list_display = ["id", "transaction", "type", "user", "created_at"]
    list_filter = ["type", "created_at"]
    search_fields = ["transaction__id", "description"]
    readonly_fields = ["id", "transaction", "user", "type", "description", "metadata", "created_at", "updated_at"]
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    list_display = ["id", "provider_event_id", "event_type", "status", "retry_count", "created_at"]
    list_filter = ["status", "event_type", "provider"]
    search_fields = ["id", "provider_event_id"]
    readonly_fields = [
        "id",
        "provider",
        "provider_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
