"""
Actor checks for escrow transitions.

Every transition names the roles allowed to perform it and calls
require_actor() before touching state. A mismatch raises
EscrowAuthorizationError; it is never a silent no-op.

Roles:
    seller: actor.user_id equals transaction.seller_id
    buyer:  actor.email equals transaction.buyer_email (exact match)
    system: Celery sweeps and admin actions (Actor.system())

Usage:
    from escrow.authorization import Actor, Role, require_actor

    actor = Actor.for_user(request.user)
    require_actor(
        actor, Role.SELLER, txn,
        message="Only seller can mark item as shipped",
    )
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.db import models

from escrow.exceptions import EscrowAuthorizationError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from escrow.models import Transaction

logger = logging.getLogger(__name__)


class Role(models.TextChoices):
    BUYER = "buyer", "Buyer"
    SELLER = "seller", "Seller"
    SYSTEM = "system", "System"


@dataclass(frozen=True)
class Actor:
    """
    The party performing an escrow operation.

    Attributes:
        user_id: Authenticated user's id (None for the system)
        email: Authenticated user's email (None for the system)
        is_system: True for scheduled jobs and operator actions
    """

    user_id: int | None = None
    email: str | None = None
    is_system: bool = False

    @classmethod
    def for_user(cls, user) -> Actor:
        return cls(user_id=user.pk, email=user.email or None)

    @classmethod
    def system(cls) -> Actor:
        return cls(is_system=True)

    @property
    def label(self) -> str:
        if self.is_system:
            return Role.SYSTEM
        return f"user:{self.user_id}"


SYSTEM_ACTOR = Actor.system()


def roles_of(actor: Actor, transaction: Transaction) -> set[str]:
    """Return every role the actor holds on the transaction."""
    if actor.is_system:
        return {Role.SYSTEM}

    roles: set[str] = set()
    if actor.user_id is not None and actor.user_id == transaction.seller_id:
        roles.add(Role.SELLER)
    if actor.email and actor.email == transaction.buyer_email:
        roles.add(Role.BUYER)
    return roles


def role_of(actor: Actor, transaction: Transaction) -> str | None:
    """
    Single role for display purposes (seller wins if both match).
    """
    roles = roles_of(actor, transaction)
    for role in (Role.SELLER, Role.BUYER, Role.SYSTEM):
        if role in roles:
            return role
    return None


def require_actor(
    actor: Actor,
    allowed: str | Iterable[str],
    transaction: Transaction,
    message: str | None = None,
) -> str:
    """
    Ensure the actor holds one of the allowed roles on the transaction.

    Args:
        actor: Who is performing the operation
        allowed: A role or roles permitted to perform it
        transaction: Transaction being acted on
        message: Error message for a rejected actor

    Returns:
        The matched role

    Raises:
        EscrowAuthorizationError: Actor holds none of the allowed roles
    """
    allowed_roles = {allowed} if isinstance(allowed, str) else set(allowed)
    matched = roles_of(actor, transaction) & allowed_roles

    if not matched:
        logger.warning(
            "Escrow actor rejected",
            extra={
                "transaction_id": str(transaction.id),
                "actor": actor.label,
                "allowed_roles": sorted(allowed_roles),
            },
        )
        raise EscrowAuthorizationError(
            message or "You are not allowed to perform this action",
            details={
                "transaction_id": str(transaction.id),
                "allowed_roles": sorted(allowed_roles),
            },
        )

    # Deterministic pick when the actor is both buyer and seller
    return next(r for r in (Role.SYSTEM, Role.SELLER, Role.BUYER) if r in matched)


__all__ = [
    "Actor",
    "Role",
    "SYSTEM_ACTOR",
    "require_actor",
    "role_of",
    "roles_of",
]
