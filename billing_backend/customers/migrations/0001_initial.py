# customers/migrations/0001_initial.py

import uuid
from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("branches", "0001_initial"),
        ("products", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Customer",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("phone", models.CharField(max_length=32, unique=True)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("reward_points", models.PositiveIntegerField(default=0)),
                (
                    "reward_progress_amount",
                    models.DecimalField(
                        decimal_places=2,
                        default=Decimal("0.00"),
                        help_text="Spend carried towards the next points step",
                        max_digits=12,
                    ),
                ),
                ("is_offer_eligible", models.BooleanField(default=False)),
                ("total_offers_redeemed", models.PositiveIntegerField(default=0)),
                ("random_offer_assigned", models.BooleanField(default=False)),
                ("random_offer_redeemed", models.BooleanField(default=False)),
                ("random_offer_campaign_code", models.CharField(blank=True, max_length=64, null=True)),
                ("random_offer_assigned_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "branch",
                    models.ForeignKey(
                        blank=True,
                        help_text="Branch where the customer was first seen",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="customers",
                        to="branches.branch",
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="customers",
                        to="branches.company",
                    ),
                ),
                (
                    "random_offer_product",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="products.product",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [models.Index(fields=["random_offer_assigned"], name="customer_random_offer_idx")],
            },
        ),
    ]
