"""
Product status flips sent to the catalog subsystem.

The escrow engine does not own products. It tells the catalog when a
product is reserved by a capture ("pending"), sold on release ("sold"),
or back on sale ("active"). The default handler emits a Django signal the
catalog app can receive; deployments can point
ESCROW_PRODUCT_STATUS_HANDLER at another class implementing
ProductStatusHandler.

Usage:
    from escrow.catalog import ProductStatus, set_product_status

    set_product_status(txn.product_id, ProductStatus.SOLD)

    # In the catalog app
    from django.dispatch import receiver
    from escrow.catalog import product_status_changed

    @receiver(product_status_changed)
    def on_product_status_changed(sender, product_id, status, **kwargs):
        Product.objects.filter(id=product_id).update(status=status)
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from django.conf import settings
from django.db import models
from django.dispatch import Signal
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

# Sent with product_id and status keyword arguments
product_status_changed = Signal()


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    PENDING = "pending", "Pending"
    SOLD = "sold", "Sold"


@runtime_checkable
class ProductStatusHandler(Protocol):
    """Anything that can flip a catalog product's status."""

    def set_status(self, product_id: str, status: str) -> None: ...


class SignalProductStatusHandler:
    """Default handler: broadcast the change as a Django signal."""

    def set_status(self, product_id: str, status: str) -> None:
        product_status_changed.send(
            sender=self.__class__,
            product_id=product_id,
            status=status,
        )


def get_product_status_handler() -> ProductStatusHandler:
    handler_path = getattr(
        settings,
        "ESCROW_PRODUCT_STATUS_HANDLER",
        "escrow.catalog.SignalProductStatusHandler",
    )
    return import_string(handler_path)()


def set_product_status(product_id: str, status: str) -> bool:
    """
    Flip a product's status in the catalog.

    The catalog is an external collaborator: a failure here is logged and
    reported as False but never undoes the escrow transition that caused it.
    """
    try:
        get_product_status_handler().set_status(product_id, status)
    except Exception:
        logger.error(
            "Failed to update product status",
            extra={"product_id": product_id, "status": status},
            exc_info=True,
        )
        return False

    logger.info(
        "Product status updated",
        extra={"product_id": product_id, "status": status},
    )
    return True


__all__ = [
    "ProductStatus",
    "ProductStatusHandler",
    "SignalProductStatusHandler",
    "product_status_changed",
    "set_product_status",
]
