# branches/models.py

import uuid
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from django.conf import settings
from django.db import models
from django.db.models import Q


class Company(models.Model):
    """
    Owning business. Bills and customers roll up to a company through
    the branch that created them.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name


class Branch(models.Model):
    """
    Represents a physical outlet.

    Guarantees:
    - name drives the invoice / KOT prefix (first three letters)
    - timezone decides the branch-local calendar day used in numbering
    - code is optional, but if provided it must be unique
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    company = models.ForeignKey(
        Company,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="branches",
    )

    name = models.CharField(max_length=255)

    code = models.CharField(
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="Unique branch code (optional). If set, must be unique.",
    )

    timezone = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="IANA timezone for invoice dates. Empty uses the server TIME_ZONE.",
    )

    address = models.TextField(blank=True)
    phone = models.CharField(max_length=50, blank=True)

    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "branches"
        constraints = [
            models.UniqueConstraint(
                fields=["code"],
                condition=Q(code__isnull=False) & ~Q(code=""),
                name="uniq_branch_code_when_present",
            ),
        ]

    def get_zoneinfo(self) -> ZoneInfo:
        name = (self.timezone or "").strip() or settings.TIME_ZONE
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return ZoneInfo(settings.TIME_ZONE)

    def __str__(self):
        c = (self.code or "").strip()
        if c:
            return f"{self.name} ({c})"
        return self.name
