"""
Tests for escrow API views.
"""

import uuid
from datetime import timedelta
from unittest.mock import patch

import pytest
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APIClient

from escrow.adapters import AccountResult, StripeAdapter, TransferResult
from escrow.models import SellerAccount
from escrow.state_machines import HoldStatus, TransactionHoldStatus
from escrow.tests.factories import TransactionFactory, UserFactory


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def seller_client(seller):
    client = APIClient()
    client.force_authenticate(user=seller)
    return client


@pytest.fixture
def buyer_client(buyer):
    client = APIClient()
    client.force_authenticate(user=buyer)
    return client


def action_url(txn):
    return reverse("escrow:transaction-action", kwargs={"transaction_id": txn.id})


def detail_url(txn_id):
    return reverse("escrow:transaction-detail", kwargs={"transaction_id": txn_id})


# =============================================================================
# List & Detail
# =============================================================================


@pytest.mark.django_db
class TestTransactionList:
    def test_requires_authentication(self, api_client):
        response = api_client.get(reverse("escrow:transaction-list"))

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_lists_bought_and_sold(self, seller, seller_client, held_escrow):
        txn, _ = held_escrow
        bought = TransactionFactory(buyer_email=seller.email)
        TransactionFactory()  # someone else's

        response = seller_client.get(reverse("escrow:transaction-list"))

        assert response.status_code == status.HTTP_200_OK
        ids = {row["id"] for row in response.data}
        assert ids == {str(txn.id), str(bought.id)}
        roles = {row["id"]: row["user_role"] for row in response.data}
        assert roles[str(txn.id)] == "seller"
        assert roles[str(bought.id)] == "buyer"

    def test_role_filter(self, seller, seller_client, held_escrow):
        TransactionFactory(buyer_email=seller.email)

        response = seller_client.get(reverse("escrow:transaction-list"), {"role": "seller"})

        assert [row["user_role"] for row in response.data] == ["seller"]

    def test_status_filter(self, buyer_client, make_escrow):
        make_escrow()
        shipped, _ = make_escrow(TransactionHoldStatus.SHIPPED)

        response = buyer_client.get(
            reverse("escrow:transaction-list"),
            {"status": TransactionHoldStatus.SHIPPED},
        )

        assert [row["id"] for row in response.data] == [str(shipped.id)]

    def test_invalid_role(self, buyer_client):
        response = buyer_client.get(reverse("escrow:transaction-list"), {"role": "admin"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestTransactionDetail:
    def test_buyer_sees_transaction_with_hold(self, buyer_client, held_escrow):
        txn, hold = held_escrow

        response = buyer_client.get(detail_url(txn.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["user_role"] == "buyer"
        assert response.data["amount"] == "150.00"
        assert response.data["payment_hold"]["status"] == HoldStatus.HELD
        assert response.data["payment_hold"]["net_payable"] == "145.30"

    def test_stranger_forbidden(self, held_escrow):
        txn, _ = held_escrow
        client = APIClient()
        client.force_authenticate(user=UserFactory())

        response = client.get(detail_url(txn.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_not_found(self, buyer_client):
        response = buyer_client.get(detail_url(uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {"error": "Transaction not found"}


# =============================================================================
# Actions
# =============================================================================


@pytest.mark.django_db
class TestTransactionActions:
    def test_seller_marks_shipped(self, seller_client, held_escrow):
        txn, _ = held_escrow

        response = seller_client.post(
            action_url(txn),
            {"action": "mark_shipped", "tracking_number": "JD000222", "carrier": "DPD"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["hold_status"] == TransactionHoldStatus.SHIPPED
        assert response.data["shipping_carrier"] == "DPD"

    def test_ship_without_tracking_number(self, seller_client, held_escrow):
        txn, _ = held_escrow

        response = seller_client.post(action_url(txn), {"action": "mark_shipped"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error"] == "Tracking number is required"

    def test_buyer_cannot_ship(self, buyer_client, held_escrow):
        txn, _ = held_escrow

        response = buyer_client.post(
            action_url(txn),
            {"action": "mark_shipped", "tracking_number": "JD000222"},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "ESCROW_FORBIDDEN"

    def test_buyer_confirms(self, buyer_client, delivered_escrow, product_status_calls):
        txn, _ = delivered_escrow

        response = buyer_client.post(
            action_url(txn), {"action": "confirm_delivery"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["hold_status"] == TransactionHoldStatus.CONFIRMED
        assert response.data["payment_hold"]["status"] == HoldStatus.RELEASED
        assert response.data["payment_hold"]["payout_scheduled_at"] is not None

    def test_buyer_disputes(self, buyer_client, delivered_escrow, product_status_calls):
        txn, _ = delivered_escrow

        response = buyer_client.post(
            action_url(txn),
            {"action": "confirm_delivery", "satisfied": False, "notes": "Wrong club"},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["hold_status"] == TransactionHoldStatus.DISPUTED
        assert response.data["dispute_reason"] == "Wrong club"

    def test_confirm_from_wrong_state(self, buyer_client, held_escrow):
        txn, _ = held_escrow

        response = buyer_client.post(
            action_url(txn), {"action": "confirm_delivery"}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_STATE_TRANSITION"

    def test_release_too_early(self, seller_client, make_escrow):
        txn, _ = make_escrow(
            TransactionHoldStatus.DELIVERED,
            delivered_at=timezone.now() - timedelta(days=4, hours=1),
        )

        response = seller_client.post(
            action_url(txn), {"action": "request_release"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "RELEASE_TOO_EARLY"
        assert response.data["details"]["days_remaining"] == 3

    def test_unknown_action(self, seller_client, held_escrow):
        txn, _ = held_escrow

        response = seller_client.post(action_url(txn), {"action": "refund"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "action" in response.data

    def test_unknown_transaction(self, seller_client):
        response = seller_client.post(
            reverse("escrow:transaction-action", kwargs={"transaction_id": uuid.uuid4()}),
            {"action": "mark_delivered"},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


# =============================================================================
# Payout Account & Cron
# =============================================================================


@pytest.mark.django_db
class TestPayoutAccountVerify:
    def test_valid_stripe_account(self, seller_client, seller_account):
        account = AccountResult(
            id=seller_account.stripe_account_id,
            payouts_enabled=True,
            charges_enabled=True,
            details_submitted=True,
        )
        with patch.object(StripeAdapter, "retrieve_account", return_value=account):
            response = seller_client.post(reverse("escrow:payout-account-verify"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data == {"valid": True, "method": "stripe", "error": None}

    def test_no_destination(self, seller_client, seller_account):
        SellerAccount.objects.filter(id=seller_account.id).update(stripe_account_id="")

        response = seller_client.post(reverse("escrow:payout-account-verify"))

        assert response.data["valid"] is False
        assert response.data["method"] is None

    def test_paypal_email_format(self, seller_client, seller_account):
        SellerAccount.objects.filter(id=seller_account.id).update(
            stripe_account_id="", paypal_email="not-an-email"
        )

        response = seller_client.post(reverse("escrow:payout-account-verify"))

        assert response.data == {
            "valid": False,
            "method": "paypal",
            "error": "Invalid PayPal email address",
        }

    def test_no_seller_account(self, buyer_client):
        response = buyer_client.post(reverse("escrow:payout-account-verify"))

        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestPayoutCron:
    @pytest.fixture(autouse=True)
    def cron_secret(self, settings):
        settings.PAYOUT_CRON_SECRET = "cron-s3cret"

    def test_runs_sweep_with_secret(self, api_client):
        response = api_client.post(
            reverse("escrow:cron-payouts"),
            HTTP_AUTHORIZATION="Bearer cron-s3cret",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["processed"] == 0
        assert response.data["results"] == []

    @pytest.mark.parametrize("header", [None, "Bearer wrong", "cron-s3cret", "Bearer "])
    def test_rejects_bad_secret(self, api_client, header):
        kwargs = {"HTTP_AUTHORIZATION": header} if header is not None else {}

        response = api_client.post(reverse("escrow:cron-payouts"), **kwargs)

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data == {"error": "Unauthorized"}

    def test_unset_secret_rejects_everything(self, api_client, settings):
        settings.PAYOUT_CRON_SECRET = ""

        response = api_client.post(
            reverse("escrow:cron-payouts"),
            HTTP_AUTHORIZATION="Bearer ",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_pays_due_holds(self, api_client, due_escrow, sent_notifications):
        _, hold = due_escrow
        transfer = {
            "id": "tr_cron",
            "amount_pence": 14530,
            "currency": "gbp",
            "destination_account": "acct_test",
        }
        with patch.object(
            StripeAdapter, "create_transfer", return_value=TransferResult(**transfer)
        ):
            response = api_client.post(
                reverse("escrow:cron-payouts"),
                HTTP_AUTHORIZATION="Bearer cron-s3cret",
            )

        assert response.data["successful"] == 1
        assert response.data["results"][0]["transfer_id"] == "tr_cron"
