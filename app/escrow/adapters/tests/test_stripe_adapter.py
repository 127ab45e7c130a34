"""
Tests for the Stripe adapter.

Tests cover:
- Idempotency key generation
- Transfer creation and parameter mapping
- Stripe error translation to escrow exceptions
- Connect account lookup
- Webhook signature verification
"""

import uuid
from unittest.mock import MagicMock, patch

import pytest
import stripe

from escrow.adapters import AccountResult, IdempotencyKeyGenerator, StripeAdapter
from escrow.exceptions import (
    StripeAPIUnavailableError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


@pytest.fixture
def mock_transfer_create():
    with patch("stripe.Transfer.create") as mock_create:
        transfer = MagicMock()
        transfer.id = "tr_test_123"
        transfer.amount = 14530
        transfer.currency = "gbp"
        transfer.destination = "acct_seller"
        transfer.metadata = {"hold_id": "h1"}
        transfer.to_dict.return_value = {"id": "tr_test_123", "object": "transfer"}
        mock_create.return_value = transfer
        yield mock_create


def _create_transfer(**overrides):
    params = {
        "amount_pence": 14530,
        "destination_account": "acct_seller",
        "idempotency_key": "payout:h1:1:abcd1234",
    }
    params.update(overrides)
    return StripeAdapter.create_transfer(**params)


# =============================================================================
# Idempotency Keys
# =============================================================================


class TestIdempotencyKeyGenerator:
    def test_generate_key_format(self):
        entity_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate("payout", entity_id, 2)

        operation, entity, attempt, short_hash = key.split(":")
        assert operation == "payout"
        assert entity == str(entity_id)
        assert attempt == "2"
        assert len(short_hash) == 8

    def test_same_inputs_produce_same_key(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "payout", entity_id, 1
        ) == IdempotencyKeyGenerator.generate("payout", str(entity_id), 1)

    def test_different_attempts_produce_different_keys(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate(
            "payout", entity_id, 1
        ) != IdempotencyKeyGenerator.generate("payout", entity_id, 2)


# =============================================================================
# Transfers
# =============================================================================


class TestCreateTransfer:
    def test_create_transfer_success(self, mock_transfer_create):
        result = _create_transfer(
            description="Payout for Driver",
            metadata={"hold_id": "h1"},
            transfer_group="hold_h1",
        )

        assert result.id == "tr_test_123"
        assert result.amount_pence == 14530
        assert result.destination_account == "acct_seller"
        assert result.metadata == {"hold_id": "h1"}
        assert result.raw_response["object"] == "transfer"
        mock_transfer_create.assert_called_once_with(
            idempotency_key="payout:h1:1:abcd1234",
            amount=14530,
            currency="gbp",
            destination="acct_seller",
            metadata={"hold_id": "h1"},
            description="Payout for Driver",
            transfer_group="hold_h1",
        )

    def test_optional_fields_are_omitted(self, mock_transfer_create):
        _create_transfer()

        kwargs = mock_transfer_create.call_args.kwargs
        assert "description" not in kwargs
        assert "transfer_group" not in kwargs
        assert kwargs["metadata"] == {}


class TestErrorTranslation:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (stripe.RateLimitError("Too many requests"), StripeRateLimitError),
            (
                stripe.APIConnectionError("Request timed out after 10s"),
                StripeTimeoutError,
            ),
            (stripe.APIConnectionError("Connection reset"), StripeAPIUnavailableError),
            (stripe.APIError("Something went wrong"), StripeAPIUnavailableError),
            (stripe.AuthenticationError("Invalid API Key"), StripeInvalidRequestError),
            (ValueError("unexpected"), StripeAPIUnavailableError),
        ],
    )
    def test_errors_map_to_escrow_exceptions(self, mock_transfer_create, error, expected):
        mock_transfer_create.side_effect = error

        with pytest.raises(expected):
            _create_transfer()

    def test_invalid_destination_account(self, mock_transfer_create):
        mock_transfer_create.side_effect = stripe.InvalidRequestError(
            "No such destination account: 'acct_gone'",
            param="destination",
            code="resource_missing",
        )

        with pytest.raises(StripeInvalidAccountError) as exc_info:
            _create_transfer()

        assert exc_info.value.requires_seller_action
        assert exc_info.value.provider_code == "resource_missing"

    def test_insufficient_platform_balance(self, mock_transfer_create):
        mock_transfer_create.side_effect = stripe.InvalidRequestError(
            "Insufficient funds in Stripe balance",
            param=None,
            code="balance_insufficient",
        )

        with pytest.raises(StripeInsufficientFundsError) as exc_info:
            _create_transfer()

        assert not exc_info.value.is_retryable

    def test_other_invalid_request(self, mock_transfer_create):
        mock_transfer_create.side_effect = stripe.InvalidRequestError(
            "Invalid currency: xyz",
            param="currency",
            code="parameter_invalid",
        )

        with pytest.raises(StripeInvalidRequestError):
            _create_transfer(currency="xyz")

    def test_timeout_is_retryable(self, mock_transfer_create):
        mock_transfer_create.side_effect = stripe.APIConnectionError("Read timed out")

        with pytest.raises(StripeTimeoutError) as exc_info:
            _create_transfer()

        assert exc_info.value.is_retryable
        assert exc_info.value.error_code == "STRIPE_TIMEOUT"


# =============================================================================
# Accounts
# =============================================================================


class TestRetrieveAccount:
    def test_retrieve_account(self):
        account = MagicMock()
        account.id = "acct_seller"
        account.get.side_effect = {
            "payouts_enabled": True,
            "charges_enabled": True,
            "details_submitted": False,
        }.get

        with patch("stripe.Account.retrieve", return_value=account) as mock_retrieve:
            result = StripeAdapter.retrieve_account("acct_seller")

        mock_retrieve.assert_called_once_with("acct_seller")
        assert result == AccountResult(
            id="acct_seller",
            payouts_enabled=True,
            charges_enabled=True,
            details_submitted=False,
        )

    def test_missing_account(self):
        with patch(
            "stripe.Account.retrieve",
            side_effect=stripe.InvalidRequestError(
                "No such account: 'acct_gone'", param="account", code="resource_missing"
            ),
        ):
            with pytest.raises(StripeInvalidAccountError):
                StripeAdapter.retrieve_account("acct_gone")


# =============================================================================
# Webhooks
# =============================================================================


class TestVerifyWebhookSignature:
    def test_valid_signature(self):
        event = MagicMock()
        event.to_dict.return_value = {"id": "evt_1", "type": "checkout.session.completed"}

        with patch("stripe.Webhook.construct_event", return_value=event) as mock_construct:
            result = StripeAdapter.verify_webhook_signature(b"{}", "t=1,v1=abc")

        assert result["id"] == "evt_1"
        assert mock_construct.call_args.args[:2] == (b"{}", "t=1,v1=abc")

    def test_invalid_signature(self):
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError(
                "Unable to verify webhook signature", sig_header="bad"
            ),
        ):
            with pytest.raises(StripeInvalidRequestError) as exc_info:
                StripeAdapter.verify_webhook_signature(b"{}", "bad")

        assert exc_info.value.provider_code == "signature_verification_failed"
