# billing/models/bill_item.py

"""
BILL ITEM

One line of a bill. Every row has exactly one provenance:
- manual: entered by staff
- free offer (is_offer_free_item): generated by a buy-X-get-Y rule
- random offer (is_random_customer_offer_item): the customer's campaign prize

Generated rows are recomputed by offer resolution on every save of a
non-completed bill and may be replaced wholesale.
"""

import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone

from .bill import Bill


class BillItem(models.Model):
    STATUS_ORDERED = "ordered"
    STATUS_PREPARED = "prepared"
    STATUS_DELIVERED = "delivered"
    STATUS_CANCELLED = "cancelled"

    STATUS_CHOICES = [
        (STATUS_ORDERED, "Ordered"),
        (STATUS_PREPARED, "Prepared"),
        (STATUS_DELIVERED, "Delivered"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="items")

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    name = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=12, decimal_places=3)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    effective_unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(max_length=16, choices=STATUS_CHOICES, default=STATUS_ORDERED)
    notes = models.CharField(max_length=255, blank=True, default="")
    position = models.PositiveIntegerField(default=0)

    # Free item provenance
    is_offer_free_item = models.BooleanField(default=False)
    offer_rule_key = models.CharField(max_length=255, blank=True, default="")

    # Price offer provenance
    is_price_offer_applied = models.BooleanField(default=False)
    price_offer_rule_key = models.CharField(max_length=255, blank=True, default="")
    price_offer_discount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    # Random campaign provenance
    is_random_customer_offer_item = models.BooleanField(default=False)
    random_offer_campaign_code = models.CharField(max_length=64, blank=True, default="")

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["position", "created_at"]

    def __str__(self):
        return f"{self.name} x {self.quantity}"

    @property
    def is_generated(self) -> bool:
        return self.is_offer_free_item or self.is_random_customer_offer_item
