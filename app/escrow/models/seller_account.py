"""
SellerAccount model: seller tier and payout destinations.

The account system that owns sellers writes these rows; the escrow engine
only reads them to freeze the tier at capture and to pick a payout rail.

Usage:
    account = SellerAccount.for_user(txn.seller)
    if account and account.stripe_account_id:
        ...
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from escrow.state_machines import SellerTier


class SellerAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    Payout configuration for a seller.

    Fields:
        user: The seller
        display_name: Name used in notification emails
        tier: Subscription tier; drives the commission rate at capture
        stripe_account_id: Stripe Connect account (acct_xxx), preferred rail
        paypal_email: PayPal receiver email, used when no Stripe account
    """

    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="seller_account",
    )

    display_name = models.CharField(max_length=150, blank=True, default="")

    tier = models.CharField(
        max_length=20,
        choices=SellerTier.choices,
        default=SellerTier.FREE,
    )

    stripe_account_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Stripe Connect account id (acct_xxx)",
    )

    paypal_email = models.EmailField(blank=True, default="")

    class Meta:
        verbose_name = "Seller Account"
        verbose_name_plural = "Seller Accounts"

    def __str__(self) -> str:
        return f"SellerAccount({self.user_id}, {self.tier})"

    @classmethod
    def for_user(cls, user) -> SellerAccount | None:
        return cls.objects.filter(user=user).first()

    @property
    def name(self) -> str:
        return self.display_name or self.user.get_full_name() or "Seller"

    @property
    def has_payout_destination(self) -> bool:
        return bool(self.stripe_account_id or self.paypal_email)
