# billing/migrations/0001_initial.py

import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        ("branches", "0001_initial"),
        ("customers", "0001_initial"),
        ("products", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Bill",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ordered", "Ordered"),
                            ("prepared", "Prepared"),
                            ("delivered", "Delivered"),
                            ("completed", "Completed"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="ordered",
                        max_length=16,
                    ),
                ),
                ("invoice_number", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("kot_number", models.CharField(blank=True, max_length=64, null=True, unique=True)),
                ("customer_phone", models.CharField(blank=True, default="", max_length=32)),
                ("customer_name", models.CharField(blank=True, default="", max_length=255)),
                (
                    "apply_customer_offer",
                    models.BooleanField(default=False, help_text="Redeem credit points on this bill when eligible"),
                ),
                ("gross_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("customer_offer_applied", models.BooleanField(default=False)),
                ("customer_offer_discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total_percentage_offer_applied", models.BooleanField(default=False)),
                (
                    "total_percentage_offer_discount",
                    models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12),
                ),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("customer_reward_processed", models.BooleanField(default=False)),
                ("offer_counters_processed", models.BooleanField(default=False)),
                ("reward_points_earned", models.PositiveIntegerField(default=0)),
                ("payment_method", models.CharField(blank=True, default="cash", max_length=32)),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "branch",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bills",
                        to="branches.branch",
                    ),
                ),
                (
                    "company",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bills",
                        to="branches.company",
                    ),
                ),
                (
                    "created_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bills",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="bills",
                        to="customers.customer",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["branch", "created_at"], name="bill_branch_created_idx"),
                    models.Index(fields=["status"], name="bill_status_idx"),
                    models.Index(fields=["customer", "status", "created_at"], name="bill_customer_history_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=3, max_digits=12)),
                ("unit_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("effective_unit_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ordered", "Ordered"),
                            ("prepared", "Prepared"),
                            ("delivered", "Delivered"),
                            ("cancelled", "Cancelled"),
                        ],
                        default="ordered",
                        max_length=16,
                    ),
                ),
                ("notes", models.CharField(blank=True, default="", max_length=255)),
                ("position", models.PositiveIntegerField(default=0)),
                ("is_offer_free_item", models.BooleanField(default=False)),
                ("offer_rule_key", models.CharField(blank=True, default="", max_length=255)),
                ("is_price_offer_applied", models.BooleanField(default=False)),
                ("price_offer_rule_key", models.CharField(blank=True, default="", max_length=255)),
                ("price_offer_discount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("is_random_customer_offer_item", models.BooleanField(default=False)),
                ("random_offer_campaign_code", models.CharField(blank=True, default="", max_length=64)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "bill",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="items",
                        to="billing.bill",
                    ),
                ),
                (
                    "product",
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
                "ordering": ["position", "created_at"],
            },
        ),
    ]
