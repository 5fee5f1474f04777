# offers/migrations/0001_initial.py

from decimal import Decimal

from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="CustomerRewardSettings",
            fields=[
                ("id", models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False)),
                ("enabled", models.BooleanField(default=True)),
                ("spend_amount_per_step", models.DecimalField(decimal_places=2, default=Decimal("1000.00"), max_digits=12)),
                ("points_per_step", models.PositiveIntegerField(default=10)),
                ("points_needed_for_offer", models.PositiveIntegerField(default=50)),
                ("offer_amount", models.DecimalField(decimal_places=2, default=Decimal("50.00"), max_digits=12)),
                ("reset_on_redeem", models.BooleanField(default=True)),
                ("enable_product_to_product_offer", models.BooleanField(default=False)),
                ("product_to_product_offers", models.JSONField(blank=True, default=list)),
                ("enable_product_price_offer", models.BooleanField(default=False)),
                ("product_price_offers", models.JSONField(blank=True, default=list)),
                ("enable_random_customer_product_offer", models.BooleanField(default=False)),
                ("random_customer_offer_products", models.JSONField(blank=True, default=list)),
                ("random_customer_offer_campaign_code", models.CharField(default="campaign-1", max_length=64)),
                ("random_customer_offer_assigned_count", models.PositiveIntegerField(default=0)),
                ("random_customer_offer_redeemed_count", models.PositiveIntegerField(default=0)),
                ("random_customer_offer_last_assigned_at", models.DateTimeField(blank=True, null=True)),
                ("enable_total_percentage_offer", models.BooleanField(default=False)),
                ("total_percentage_offer_percent", models.DecimalField(decimal_places=2, default=Decimal("5.00"), max_digits=5)),
                ("total_percentage_offer_max_offer_count", models.PositiveIntegerField(default=0)),
                ("total_percentage_offer_max_customer_count", models.PositiveIntegerField(default=0)),
                ("total_percentage_offer_given_count", models.PositiveIntegerField(default=0)),
                ("total_percentage_offer_customer_count", models.PositiveIntegerField(default=0)),
                ("total_percentage_offer_customers", models.JSONField(blank=True, default=list)),
                ("version", models.PositiveIntegerField(default=0)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "customer reward settings",
                "verbose_name_plural": "customer reward settings",
            },
        ),
    ]
