"""
Audit trail writer.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from escrow.models import Activity

if TYPE_CHECKING:
    from escrow.authorization import Actor
    from escrow.models import Transaction

logger = logging.getLogger(__name__)


def record_activity(
    transaction: Transaction,
    activity_type: str,
    description: str,
    actor: Actor | None = None,
    metadata: dict[str, Any] | None = None,
) -> Activity:
    """Append one Activity row for a transaction."""
    activity = Activity.objects.create(
        transaction=transaction,
        user_id=actor.user_id if actor is not None else None,
        type=activity_type,
        description=description,
        metadata=metadata or {},
    )
    logger.debug(
        "Activity recorded",
        extra={"transaction_id": str(transaction.id), "type": activity_type},
    )
    return activity


__all__ = ["record_activity"]
