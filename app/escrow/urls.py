"""
URL configuration for the escrow app.

All routes are prefixed with /api/v1/escrow/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("escrow/", include("escrow.urls")),
    ]
"""

from django.urls import path

from escrow.views import (
    PayoutAccountVerifyView,
    PayoutCronView,
    TransactionActionView,
    TransactionDetailView,
    TransactionListView,
)
from escrow.webhooks.views import stripe_webhook

app_name = "escrow"

urlpatterns = [
    # Transactions
    path("transactions/", TransactionListView.as_view(), name="transaction-list"),
    path(
        "transactions/<uuid:transaction_id>/",
        TransactionDetailView.as_view(),
        name="transaction-detail",
    ),
    path(
        "transactions/<uuid:transaction_id>/actions/",
        TransactionActionView.as_view(),
        name="transaction-action",
    ),
    # Payouts
    path(
        "payout-account/verify/",
        PayoutAccountVerifyView.as_view(),
        name="payout-account-verify",
    ),
    path("cron/payouts/", PayoutCronView.as_view(), name="cron-payouts"),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
