# customers/services.py

"""
Customer lookup / upsert by phone number.

Phone numbers are compared after trimming whitespace only; formatting is
the caller's responsibility.
"""

from __future__ import annotations

import logging

from django.db import transaction

from customers.models import Customer

logger = logging.getLogger(__name__)


def normalize_phone(phone) -> str:
    return str(phone or "").strip()


def find_customer(phone, *, lock: bool = False) -> Customer | None:
    phone = normalize_phone(phone)
    if not phone:
        return None

    qs = Customer.objects.all()
    if lock:
        qs = qs.select_for_update()
    return qs.filter(phone=phone).first()


@transaction.atomic
def upsert_customer(*, phone, name: str = "", branch=None) -> tuple[Customer, bool]:
    """
    Get or create the customer for `phone`, refreshing the display name.

    Returns (customer, created).
    """
    phone = normalize_phone(phone)
    if not phone:
        raise ValueError("phone is required")

    name = (name or "").strip()

    customer, created = Customer.objects.select_for_update().get_or_create(
        phone=phone,
        defaults={
            "name": name,
            "branch": branch,
            "company_id": getattr(branch, "company_id", None),
        },
    )

    if not created and name and customer.name != name:
        customer.name = name
        customer.save(update_fields=["name", "updated_at"])

    if created:
        logger.info(
            "Customer created",
            extra={"customer_id": str(customer.pk), "branch_id": str(getattr(branch, "pk", "") or "")},
        )

    return customer, created
