# billing/services/sequence.py

"""
======================================================
PATH: billing/services/sequence.py
======================================================
INVOICE / KOT NUMBER GENERATOR

Formats (branch-local calendar day):
    invoice:  ABC-20250101-004      (3-digit suffix)
    KOT:      ABC-20250101-KOT-07   (2-digit suffix, separate sequence)

ABC = first three letters of the branch name, uppercased ("UNK" if the
name has no letters).

Rules:
- next = highest existing suffix for the same prefix + 1 (gaps tolerated)
- a bill in ordered/prepared/delivered gets a KOT number
- a bill reaching completed gets an invoice number
- numbers are never rewritten once assigned
- unique constraints back both fields; an insert collision regenerates
  (bounded by BILLING_SEQUENCE_MAX_ATTEMPTS)
======================================================
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime
from typing import Callable

from django.conf import settings as django_settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from billing.models import Bill
from billing.services.exceptions import SequenceAllocationError

logger = logging.getLogger(__name__)

INVOICE_WIDTH = 3
KOT_WIDTH = 2
UNKNOWN_BRANCH_CODE = "UNK"


def branch_code(branch) -> str:
    name = getattr(branch, "name", "") or ""
    letters = "".join(ch for ch in name if ch.isascii() and ch.isalpha())
    return letters[:3].upper() or UNKNOWN_BRANCH_CODE


def branch_local_date(branch, at: datetime | None = None) -> date:
    at = at or timezone.now()
    if timezone.is_naive(at):
        at = timezone.make_aware(at)
    return timezone.localtime(at, branch.get_zoneinfo()).date()


def invoice_prefix(branch, day: date) -> str:
    return f"{branch_code(branch)}-{day:%Y%m%d}-"


def kot_prefix(branch, day: date) -> str:
    return f"{branch_code(branch)}-{day:%Y%m%d}-KOT-"


def _highest_suffix(field: str, prefix: str) -> int:
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    values = Bill.objects.filter(**{f"{field}__startswith": prefix}).values_list(field, flat=True)
    for value in values:
        match = pattern.match(value or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def next_invoice_number(branch, day: date | None = None) -> str:
    prefix = invoice_prefix(branch, day or branch_local_date(branch))
    return f"{prefix}{_highest_suffix('invoice_number', prefix) + 1:0{INVOICE_WIDTH}d}"


def next_kot_number(branch, day: date | None = None) -> str:
    prefix = kot_prefix(branch, day or branch_local_date(branch))
    return f"{prefix}{_highest_suffix('kot_number', prefix) + 1:0{KOT_WIDTH}d}"


def assign_numbers(bill: Bill) -> list[str]:
    """Fill whichever number the bill's status calls for. Returns fields assigned."""
    assigned = []

    if bill.status in Bill.KOT_STATUSES and not bill.kot_number:
        bill.kot_number = next_kot_number(bill.branch)
        assigned.append("kot_number")

    if bill.status == Bill.STATUS_COMPLETED and not bill.invoice_number:
        bill.invoice_number = next_invoice_number(bill.branch)
        assigned.append("invoice_number")

    return assigned


def save_with_numbers(bill: Bill, save: Callable[[], None], *, max_attempts: int | None = None) -> None:
    """
    Assign numbers and run `save` in a savepoint, regenerating on collision.

    Collisions only happen when two requests compute the same "next" number
    concurrently; the loser re-reads the max and tries again.
    """
    if max_attempts is None:
        max_attempts = getattr(django_settings, "BILLING_SEQUENCE_MAX_ATTEMPTS", 5)
    max_attempts = max(1, int(max_attempts))

    assigned = assign_numbers(bill)

    for attempt in range(1, max_attempts + 1):
        try:
            with transaction.atomic():
                save()
            return
        except IntegrityError as exc:
            if not assigned:
                raise
            if attempt >= max_attempts:
                raise SequenceAllocationError(
                    f"Could not allocate a unique bill number after {max_attempts} attempts"
                ) from exc

            logger.warning(
                "Bill number collision; regenerating",
                extra={"attempt": attempt, "fields": assigned},
            )
            for field in assigned:
                setattr(bill, field, None)
            assigned = assign_numbers(bill)
