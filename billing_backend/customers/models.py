# customers/models.py

"""
CUSTOMER LOYALTY LEDGER

One row per phone number. Rows are created lazily by bill post-processing
the first time a completed bill carries that phone number.

Ledger fields (reward_points, reward_progress_amount, is_offer_eligible,
total_offers_redeemed) are written only by billing.services.rewards under a
row lock. Random-offer assignment fields are written by the campaign draw
and flipped to redeemed by bill post-processing.
"""

import uuid
from decimal import Decimal

from django.db import models


class Customer(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    phone = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=255, blank=True, default="")

    company = models.ForeignKey(
        "branches.Company",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customers",
    )
    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="customers",
        help_text="Branch where the customer was first seen",
    )

    # -----------------------------
    # Credit points ledger
    # -----------------------------
    reward_points = models.PositiveIntegerField(default=0)
    reward_progress_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Spend carried towards the next points step",
    )
    is_offer_eligible = models.BooleanField(default=False)
    total_offers_redeemed = models.PositiveIntegerField(default=0)

    # -----------------------------
    # Random campaign assignment
    # -----------------------------
    random_offer_assigned = models.BooleanField(default=False)
    random_offer_redeemed = models.BooleanField(default=False)
    random_offer_product = models.ForeignKey(
        "products.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    random_offer_campaign_code = models.CharField(max_length=64, null=True, blank=True)
    random_offer_assigned_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["random_offer_assigned"], name="customer_random_offer_idx"),
        ]

    def __str__(self):
        return f"{self.name or 'Customer'} ({self.phone})"

    def has_pending_random_offer(self, campaign_code: str) -> bool:
        return bool(
            self.random_offer_assigned
            and not self.random_offer_redeemed
            and self.random_offer_product_id
            and self.random_offer_campaign_code == campaign_code
        )
