# offers/models.py

"""
CUSTOMER REWARD SETTINGS (SINGLETON DOCUMENT)

One row (pk=1) holds every offer family's configuration AND its usage
counters. Many writers touch it concurrently (every completed bill bumps
counters, managers edit rules, the campaign draw rewrites winners), so
writes never go through save():

- read the row + version
- merge on a fresh copy
- UPDATE ... WHERE version = <read version>, bumping version

See offers.services.concurrency.

Rule rows are JSON lists; offers.services.settings_repository is the only
reader and normalizes whatever it finds.
"""

from decimal import Decimal

from django.db import models

SINGLETON_PK = 1


class CustomerRewardSettings(models.Model):
    id = models.PositiveSmallIntegerField(primary_key=True, default=SINGLETON_PK, editable=False)

    # -----------------------------
    # Credit points
    # -----------------------------
    enabled = models.BooleanField(default=True)
    spend_amount_per_step = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("1000.00"))
    points_per_step = models.PositiveIntegerField(default=10)
    points_needed_for_offer = models.PositiveIntegerField(default=50)
    offer_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("50.00"))
    reset_on_redeem = models.BooleanField(default=True)

    # -----------------------------
    # Buy X get Y free
    # -----------------------------
    enable_product_to_product_offer = models.BooleanField(default=False)
    product_to_product_offers = models.JSONField(default=list, blank=True)

    # -----------------------------
    # Per-product price discount
    # -----------------------------
    enable_product_price_offer = models.BooleanField(default=False)
    product_price_offers = models.JSONField(default=list, blank=True)

    # -----------------------------
    # Random customer campaign
    # -----------------------------
    enable_random_customer_product_offer = models.BooleanField(default=False)
    random_customer_offer_products = models.JSONField(default=list, blank=True)
    random_customer_offer_campaign_code = models.CharField(max_length=64, default="campaign-1")
    random_customer_offer_assigned_count = models.PositiveIntegerField(default=0)
    random_customer_offer_redeemed_count = models.PositiveIntegerField(default=0)
    random_customer_offer_last_assigned_at = models.DateTimeField(null=True, blank=True)

    # -----------------------------
    # Whole-bill percentage
    # -----------------------------
    enable_total_percentage_offer = models.BooleanField(default=False)
    total_percentage_offer_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("5.00"))
    total_percentage_offer_max_offer_count = models.PositiveIntegerField(default=0)
    total_percentage_offer_max_customer_count = models.PositiveIntegerField(default=0)
    total_percentage_offer_given_count = models.PositiveIntegerField(default=0)
    total_percentage_offer_customer_count = models.PositiveIntegerField(default=0)
    total_percentage_offer_customers = models.JSONField(default=list, blank=True)

    version = models.PositiveIntegerField(default=0)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "customer reward settings"
        verbose_name_plural = "customer reward settings"

    def __str__(self):
        return f"Customer reward settings (v{self.version})"
