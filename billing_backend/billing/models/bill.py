# billing/models/bill.py

import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

User = settings.AUTH_USER_MODEL


class Bill(models.Model):
    """
    A customer order / bill at one branch.

    LIFECYCLE:
    - ordered -> prepared -> delivered -> completed (forward only)
    - cancelled from any non-terminal state
    - completed / cancelled are terminal

    MONEY (all 2dp, derived server-side on every save by the pricing service):
    - gross_amount = sum of item subtotals
    - customer_offer_discount: credit points redemption
    - total_percentage_offer_discount: whole-bill percentage offer
    - total_amount = max(0, gross - both discounts)

    POST-COMPLETION FLAGS:
    - customer_reward_processed / offer_counters_processed flip to True
      exactly once, via flag-only queryset updates
    - a False flag on a completed bill means the side effect is still owed
      (see manage.py backfill_bill_post_processing)
    """

    STATUS_ORDERED = "ordered"
    STATUS_PREPARED = "prepared"
    STATUS_DELIVERED = "delivered"
    STATUS_COMPLETED = "completed"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_ORDERED, "Ordered"),
        (STATUS_PREPARED, "Prepared"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_COMPLETED, "Completed"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # Kitchen order ticket numbering applies while the order is in flight.
    KOT_STATUSES = (STATUS_ORDERED, STATUS_PREPARED, STATUS_DELIVERED)

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.PROTECT,
        related_name="bills",
    )
    company = models.ForeignKey(
        "branches.Company",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bills",
    )
    created_by = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bills",
    )

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ORDERED)

    invoice_number = models.CharField(max_length=64, unique=True, null=True, blank=True)
    kot_number = models.CharField(max_length=64, unique=True, null=True, blank=True)

    # -----------------------------
    # Customer
    # -----------------------------
    customer_phone = models.CharField(max_length=32, blank=True, default="")
    customer_name = models.CharField(max_length=255, blank=True, default="")
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="bills",
    )
    apply_customer_offer = models.BooleanField(
        default=False,
        help_text="Redeem credit points on this bill when eligible",
    )

    # -----------------------------
    # Money
    # -----------------------------
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    customer_offer_applied = models.BooleanField(default=False)
    customer_offer_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total_percentage_offer_applied = models.BooleanField(default=False)
    total_percentage_offer_discount = models.DecimalField(
        max_digits=12, decimal_places=2, default=Decimal("0.00")
    )
    total_amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # -----------------------------
    # Post-completion bookkeeping
    # -----------------------------
    customer_reward_processed = models.BooleanField(default=False)
    offer_counters_processed = models.BooleanField(default=False)
    reward_points_earned = models.PositiveIntegerField(default=0)

    payment_method = models.CharField(max_length=32, blank=True, default="cash")
    notes = models.TextField(blank=True, default="")

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["branch", "created_at"], name="bill_branch_created_idx"),
            models.Index(fields=["status"], name="bill_status_idx"),
            models.Index(fields=["customer", "status", "created_at"], name="bill_customer_history_idx"),
        ]

    def __str__(self):
        return f"{self.invoice_number or self.kot_number or self.id} | {self.total_amount}"
