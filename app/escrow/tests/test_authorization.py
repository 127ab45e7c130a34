"""
Tests for escrow actor checks.
"""

import pytest

from escrow.authorization import SYSTEM_ACTOR, Actor, Role, require_actor, role_of, roles_of
from escrow.exceptions import EscrowAuthorizationError
from escrow.tests.factories import TransactionFactory


@pytest.fixture
def txn(db, seller, buyer):
    return TransactionFactory(seller=seller, buyer_email=buyer.email)


class TestRoles:
    def test_seller_matched_by_user_id(self, txn, seller_actor):
        assert roles_of(seller_actor, txn) == {Role.SELLER}

    def test_buyer_matched_by_email(self, txn, buyer_actor):
        assert roles_of(buyer_actor, txn) == {Role.BUYER}

    def test_buyer_email_must_match_exactly(self, txn, buyer):
        actor = Actor(user_id=buyer.pk, email=buyer.email.upper())

        assert roles_of(actor, txn) == set()

    def test_system(self, txn):
        assert roles_of(SYSTEM_ACTOR, txn) == {Role.SYSTEM}

    def test_stranger_has_no_role(self, txn, stranger_actor):
        assert role_of(stranger_actor, txn) is None

    def test_seller_wins_display_role_when_both(self, db, seller):
        txn = TransactionFactory(seller=seller, buyer_email=seller.email)

        assert role_of(Actor.for_user(seller), txn) == Role.SELLER


class TestRequireActor:
    def test_returns_matched_role(self, txn, seller_actor):
        assert require_actor(seller_actor, Role.SELLER, txn) == Role.SELLER

    def test_accepts_any_of_allowed_roles(self, txn):
        assert require_actor(SYSTEM_ACTOR, [Role.SELLER, Role.SYSTEM], txn) == Role.SYSTEM

    def test_rejects_wrong_role(self, txn, buyer_actor):
        with pytest.raises(EscrowAuthorizationError) as exc_info:
            require_actor(
                buyer_actor, Role.SELLER, txn,
                message="Only seller can mark item as shipped",
            )

        assert exc_info.value.message == "Only seller can mark item as shipped"
        assert exc_info.value.http_status == 403

    def test_actor_without_email_is_never_buyer(self, db, seller):
        txn = TransactionFactory(seller=seller, buyer_email="")
        actor = Actor(user_id=999999, email=None)

        with pytest.raises(EscrowAuthorizationError):
            require_actor(actor, Role.BUYER, txn)
