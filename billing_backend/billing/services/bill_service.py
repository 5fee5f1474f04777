# billing/services/bill_service.py

"""
======================================================
PATH: billing/services/bill_service.py
======================================================
BILL SERVICE (APPLICATION SERVICE)

Every create / update / item-status change runs the same pipeline inside
one DB transaction:

    validate input -> status transitions -> offer resolution -> pricing
    -> numbers + persist (bill row, item rows)

and, when the bill has just become `completed`, schedules the
post-completion processor with transaction.on_commit so side effects only
run for durably completed bills.

Hard rules:
- Nothing is written when validation fails.
- Item rows of a completed bill are frozen: later saves may only touch
  notes / payment_method.
- Generated rows (free / random offer) are owned by offer resolution;
  callers may only move their status.
- Existing bills are locked (select_for_update) for the whole pipeline.
======================================================
"""

from __future__ import annotations

import logging
import uuid
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from django.db import transaction
from django.utils import timezone

from billing.models import Bill, BillItem
from billing.services.exceptions import (
    BillItemNotFoundError,
    BillNotFoundError,
    BillValidationError,
    BranchAccessError,
)
from billing.services.item_lifecycle import (
    ITEM_STATUSES,
    validate_bill_transition,
    validate_item_transition,
)
from billing.services.line_items import LineItem, copy_line_to_row, line_from_row
from billing.services.money import money_str, round2
from billing.services.offer_resolution import resolve_offers
from billing.services.post_completion import process_completed_bill
from billing.services.pricing import price_bill
from billing.services.sequence import save_with_numbers
from customers.services import find_customer, normalize_phone
from offers.services.settings_repository import load_reward_settings
from permissions.roles import can_act_on_branch
from products.services import load_catalog

logger = logging.getLogger(__name__)

QTY_PLACES = Decimal("0.001")

_UNSET = object()


# ============================================================
# INPUT NORMALIZATION
# ============================================================


def _quantity(value, *, label: str) -> Decimal:
    try:
        qty = Decimal(str(value)).quantize(QTY_PLACES, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError, TypeError):
        raise BillValidationError(f"Invalid quantity for {label}")

    if not qty.is_finite() or qty <= 0:
        raise BillValidationError(f"Quantity must be greater than zero for {label}")
    return qty


def _unit_price(value, *, label: str) -> Decimal:
    try:
        price = round2(Decimal(str(value)))
    except (InvalidOperation, ValueError, TypeError):
        raise BillValidationError(f"Invalid unit price for {label}")

    if price < 0:
        raise BillValidationError(f"Unit price cannot be negative for {label}")
    return price


def _item_status(value) -> str:
    status = (value or BillItem.STATUS_ORDERED).strip().lower()
    if status not in ITEM_STATUSES:
        raise BillValidationError(f"Unknown item status '{value}'")
    return status


def _as_id(value) -> str | None:
    if value in (None, ""):
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        raise BillValidationError(f"Invalid id '{value}'")


def build_lines(raw_items, *, existing_rows: dict[str, BillItem] | None = None) -> list[LineItem]:
    """
    Turn request items into lines.

    Manual lines come from the request. Existing generated rows always
    survive (offer resolution decides their fate); a request entry that
    names a generated row may only change its status.
    """
    existing_rows = existing_rows or {}

    if not isinstance(raw_items, (list, tuple)):
        raise BillValidationError("items must be a list")

    product_ids = [row.product_id for row in existing_rows.values() if row.product_id]
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise BillValidationError("Each item must be an object")
        product_ids.append(raw.get("product_id") or raw.get("product"))
    catalog = load_catalog(product_ids)

    generated = {
        item_id: line_from_row(row)
        for item_id, row in existing_rows.items()
        if row.is_offer_free_item or row.is_random_customer_offer_item
    }

    lines: list[LineItem] = []
    seen: set[str] = set()

    for index, raw in enumerate(raw_items, start=1):
        label = f"item #{index}"
        item_id = _as_id(raw.get("id"))

        if item_id and item_id in seen:
            raise BillValidationError(f"Duplicate item id in {label}")
        if item_id:
            seen.add(item_id)

        if item_id and item_id in generated:
            line = generated[item_id]
            if raw.get("status"):
                new_status = _item_status(raw.get("status"))
                validate_item_transition(from_status=line.status, to_status=new_status, item_name=line.name)
                line.status = new_status
            continue

        if item_id and item_id not in existing_rows:
            raise BillValidationError(f"Unknown item id for {label}")

        previous = existing_rows.get(item_id) if item_id else None

        raw_product = raw.get("product_id") or raw.get("product") or (previous.product_id if previous else None)
        if not raw_product:
            raise BillValidationError(f"product_id is required for {label}")
        product = catalog.get(_as_id(raw_product))
        if product is None:
            raise BillValidationError(f"Product not found for {label}")

        status = _item_status(raw.get("status") or (previous.status if previous else None))
        if previous is not None:
            validate_item_transition(from_status=previous.status, to_status=status, item_name=previous.name)

        if raw.get("unit_price") not in (None, ""):
            unit_price = _unit_price(raw.get("unit_price"), label=label)
        elif previous is not None and str(previous.product_id) == str(product.id):
            unit_price = round2(previous.unit_price)
        else:
            unit_price = round2(product.price)

        lines.append(
            LineItem(
                item_id=item_id,
                product_id=str(product.id),
                name=(raw.get("name") or "").strip() or product.name,
                quantity=_quantity(
                    raw.get("quantity") if raw.get("quantity") is not None else getattr(previous, "quantity", None),
                    label=label,
                ),
                unit_price=unit_price,
                status=status,
                notes=(raw.get("notes") or "").strip(),
            )
        )

    return lines + list(generated.values())


# ============================================================
# PIPELINE
# ============================================================


def _persist_items(bill: Bill, lines: list[LineItem]):
    existing = {str(row.id): row for row in bill.items.all()} if bill.pk else {}
    keep_ids = set()

    for position, line in enumerate(lines):
        row = existing.get(line.item_id) if line.item_id else None
        if row is None:
            row = BillItem(bill=bill)
        copy_line_to_row(line, row, position=position)
        row.save()
        keep_ids.add(str(row.id))
        line.item_id = str(row.id)

    stale = [item_id for item_id in existing if item_id not in keep_ids]
    if stale:
        BillItem.objects.filter(bill=bill, id__in=stale).delete()


def _run_pipeline(bill: Bill, lines: list[LineItem], *, previous_status: str | None) -> Bill:
    settings = load_reward_settings()
    completing = bill.status == Bill.STATUS_COMPLETED and previous_status != Bill.STATUS_COMPLETED

    customer = find_customer(bill.customer_phone, lock=completing)

    lines = resolve_offers(
        lines,
        bill_status=bill.status,
        settings=settings,
        customer=customer,
    )

    pricing = price_bill(
        lines,
        status=bill.status,
        settings=settings,
        customer=customer,
        apply_customer_offer=bill.apply_customer_offer,
        customer_offer_already_applied=bill.customer_offer_applied,
        previous_customer_offer_discount=bill.customer_offer_discount,
        total_percentage_already_applied=bill.total_percentage_offer_applied,
        customer_reward_processed=bill.customer_reward_processed,
        bill_id=bill.pk if previous_status is not None else None,
    )

    bill.gross_amount = pricing.gross_amount
    bill.customer_offer_applied = pricing.customer_offer_applied
    bill.customer_offer_discount = pricing.customer_offer_discount
    bill.total_percentage_offer_applied = pricing.total_percentage_offer_applied
    bill.total_percentage_offer_discount = pricing.total_percentage_offer_discount
    bill.total_amount = pricing.total_amount

    if completing and not bill.completed_at:
        bill.completed_at = timezone.now()

    def _save():
        bill.save()
        _persist_items(bill, lines)

    save_with_numbers(bill, _save)

    if completing:
        bill_id = bill.pk
        transaction.on_commit(lambda: process_completed_bill(bill_id))
        logger.info(
            "Bill completed",
            extra={
                "bill_id": str(bill_id),
                "invoice_number": bill.invoice_number,
                "total_amount": money_str(bill.total_amount),
            },
        )

    return bill


def _check_branch(actor, branch):
    if actor is not None and not can_act_on_branch(actor, branch):
        raise BranchAccessError("You cannot act on bills of this branch")


def _lock_bill(bill_id, actor=None) -> Bill:
    bill = Bill.objects.select_for_update().select_related("branch").filter(pk=bill_id).first()
    if bill is None:
        raise BillNotFoundError(f"Bill {bill_id} not found")
    _check_branch(actor, bill.branch)
    return bill


def _bill_status(value) -> str:
    return (value or "").strip().lower()


# ============================================================
# PUBLIC API
# ============================================================


@transaction.atomic
def create_bill(
    *,
    branch,
    items,
    actor=None,
    status: str = Bill.STATUS_ORDERED,
    customer_phone: str = "",
    customer_name: str = "",
    apply_customer_offer: bool = False,
    payment_method: str = "cash",
    notes: str = "",
) -> Bill:
    if branch is None:
        raise BillValidationError("branch is required")
    _check_branch(actor, branch)

    status = _bill_status(status) or Bill.STATUS_ORDERED
    validate_bill_transition(from_status=Bill.STATUS_ORDERED, to_status=status)

    lines = build_lines(items)
    if not lines:
        raise BillValidationError("A bill needs at least one item")

    bill = Bill(
        branch=branch,
        company_id=branch.company_id,
        created_by=actor if getattr(actor, "is_authenticated", False) else None,
        status=status,
        customer_phone=normalize_phone(customer_phone),
        customer_name=(customer_name or "").strip(),
        apply_customer_offer=bool(apply_customer_offer),
        payment_method=(payment_method or "cash").strip().lower(),
        notes=notes or "",
    )

    return _run_pipeline(bill, lines, previous_status=None)


@transaction.atomic
def update_bill(
    *,
    bill_id,
    actor=None,
    items=_UNSET,
    status=_UNSET,
    customer_phone=_UNSET,
    customer_name=_UNSET,
    apply_customer_offer=_UNSET,
    payment_method=_UNSET,
    notes=_UNSET,
) -> Bill:
    bill = _lock_bill(bill_id, actor)
    previous_status = bill.status

    if payment_method is not _UNSET:
        bill.payment_method = (payment_method or "cash").strip().lower()
    if notes is not _UNSET:
        bill.notes = notes or ""

    if previous_status == Bill.STATUS_COMPLETED:
        touched = [
            name
            for name, value in (
                ("items", items),
                ("customer_phone", customer_phone),
                ("customer_name", customer_name),
                ("apply_customer_offer", apply_customer_offer),
            )
            if value is not _UNSET
        ]
        if touched:
            raise BillValidationError(f"Completed bills are read-only ({', '.join(touched)})")
        if status is not _UNSET:
            validate_bill_transition(from_status=previous_status, to_status=_bill_status(status))
        bill.save(update_fields=["payment_method", "notes", "updated_at"])
        return bill

    if status is not _UNSET:
        new_status = _bill_status(status)
        validate_bill_transition(from_status=previous_status, to_status=new_status)
        bill.status = new_status

    if customer_phone is not _UNSET:
        bill.customer_phone = normalize_phone(customer_phone)
    if customer_name is not _UNSET:
        bill.customer_name = (customer_name or "").strip()
    if apply_customer_offer is not _UNSET:
        bill.apply_customer_offer = bool(apply_customer_offer)

    existing_rows = {str(row.id): row for row in bill.items.all()}

    if items is _UNSET:
        lines = [line_from_row(row) for row in existing_rows.values()]
    else:
        lines = build_lines(items, existing_rows=existing_rows)
        if not any(not line.is_generated for line in lines):
            raise BillValidationError("A bill needs at least one item")

    return _run_pipeline(bill, lines, previous_status=previous_status)


@transaction.atomic
def update_item_status(*, bill_id, item_id, status, actor=None) -> Bill:
    bill = _lock_bill(bill_id, actor)

    if bill.status == Bill.STATUS_COMPLETED:
        raise BillValidationError("Completed bills are read-only")

    rows = {str(row.id): row for row in bill.items.all()}
    key = _as_id(item_id)
    if key not in rows:
        raise BillItemNotFoundError(f"Item {item_id} not found on bill {bill_id}")

    new_status = _item_status(status)
    row = rows[key]
    validate_item_transition(from_status=row.status, to_status=new_status, item_name=row.name)

    if row.status == new_status:
        return bill

    lines = []
    for row_id, existing in rows.items():
        line = line_from_row(existing)
        if row_id == key:
            line.status = new_status
        lines.append(line)

    logger.info(
        "Bill item status changed",
        extra={"bill_id": str(bill.pk), "item_id": key, "from": row.status, "to": new_status},
    )

    return _run_pipeline(bill, lines, previous_status=bill.status)
