# products/models/product.py

import uuid
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models


class Product(models.Model):
    """
    Represents a sellable menu / shelf product.

    PRICING MODEL:
    - price is the default unit price copied onto a bill line when the
      caller does not send one
    - offers never change this price; they only change the bill line's
      effective_unit_price
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    company = models.ForeignKey(
        "branches.Company",
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name="products",
    )

    name = models.CharField(max_length=255, db_index=True)

    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def clean(self):
        if self.price is None or Decimal(self.price) < 0:
            raise ValidationError("Price cannot be negative")
