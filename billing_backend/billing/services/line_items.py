# billing/services/line_items.py

"""
In-memory bill lines.

Offer resolution and pricing work on LineItem lists, not on BillItem rows,
so a whole request can be evaluated (and rejected) before anything is
written. bill_service converts back to rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from billing.models import BillItem
from billing.services.money import ZERO, round2, to_decimal


@dataclass
class LineItem:
    product_id: str | None
    name: str
    quantity: Decimal
    unit_price: Decimal = ZERO
    status: str = BillItem.STATUS_ORDERED
    notes: str = ""
    item_id: str | None = None

    effective_unit_price: Decimal = ZERO
    subtotal: Decimal = ZERO

    is_offer_free_item: bool = False
    offer_rule_key: str = ""

    is_price_offer_applied: bool = False
    price_offer_rule_key: str = ""
    price_offer_discount: Decimal = ZERO

    is_random_customer_offer_item: bool = False
    random_offer_campaign_code: str = ""

    @property
    def is_generated(self) -> bool:
        return self.is_offer_free_item or self.is_random_customer_offer_item

    @property
    def is_cancelled(self) -> bool:
        return self.status == BillItem.STATUS_CANCELLED

    def clear_price_offer(self):
        self.is_price_offer_applied = False
        self.price_offer_rule_key = ""
        self.price_offer_discount = ZERO

    def compute_subtotal(self) -> Decimal:
        self.subtotal = round2(to_decimal(self.quantity) * to_decimal(self.effective_unit_price))
        return self.subtotal


def line_from_row(row: BillItem) -> LineItem:
    return LineItem(
        item_id=str(row.id),
        product_id=str(row.product_id) if row.product_id else None,
        name=row.name,
        quantity=to_decimal(row.quantity),
        unit_price=round2(row.unit_price),
        status=row.status,
        notes=row.notes or "",
        effective_unit_price=round2(row.effective_unit_price),
        subtotal=round2(row.subtotal),
        is_offer_free_item=row.is_offer_free_item,
        offer_rule_key=row.offer_rule_key or "",
        is_price_offer_applied=row.is_price_offer_applied,
        price_offer_rule_key=row.price_offer_rule_key or "",
        price_offer_discount=round2(row.price_offer_discount),
        is_random_customer_offer_item=row.is_random_customer_offer_item,
        random_offer_campaign_code=row.random_offer_campaign_code or "",
    )


LINE_FIELDS = (
    "name",
    "quantity",
    "unit_price",
    "effective_unit_price",
    "subtotal",
    "status",
    "notes",
    "is_offer_free_item",
    "offer_rule_key",
    "is_price_offer_applied",
    "price_offer_rule_key",
    "price_offer_discount",
    "is_random_customer_offer_item",
    "random_offer_campaign_code",
)


def copy_line_to_row(line: LineItem, row: BillItem, *, position: int) -> BillItem:
    for name in LINE_FIELDS:
        setattr(row, name, getattr(line, name))
    row.product_id = line.product_id
    row.position = position
    return row
