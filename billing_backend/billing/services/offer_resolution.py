# billing/services/offer_resolution.py

"""
======================================================
PATH: billing/services/offer_resolution.py
======================================================
OFFER RESOLUTION ENGINE

Input:  the bill's current lines, its effective status, the resolved
        customer (optional), loaded settings, a product catalog.
Output: the replacement line list. Pure: no database writes.

Passes, in order:
1. Free items (buy X get Y): one generated line per triggered rule,
   keyed by rule_key "id:buy_product:free_product".
2. Random customer offer: one zero-price line when the customer holds an
   unredeemed prize for the active campaign.
3. Per-product price offers on manual lines; generated lines are always
   priced at zero.

A cancelled bill skips passes 1 and 2 (lines are left exactly as they
were) but still runs pass 3.
======================================================
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import replace
from decimal import ROUND_FLOOR, Decimal
from typing import Iterable

from billing.models import Bill
from billing.services.line_items import LineItem
from billing.services.money import ZERO, round2
from offers.services.settings_repository import RewardSettings
from products.services import load_catalog

logger = logging.getLogger(__name__)

RANDOM_OFFER_NOTE = "Random customer offer"


def _qty_label(value: Decimal) -> str:
    value = Decimal(value)
    if value == value.to_integral_value():
        return str(int(value))
    return str(value.normalize())


def catalog_for(lines: Iterable[LineItem], settings: RewardSettings, customer=None) -> dict:
    """Every product the passes may need to name or price."""
    ids = {line.product_id for line in lines if line.product_id}
    for rule in settings.product_to_product_offers:
        ids.add(rule.buy_product)
        ids.add(rule.free_product)
    if customer is not None and customer.random_offer_product_id:
        ids.add(str(customer.random_offer_product_id))
    return load_catalog(ids)


# ============================================================
# PASS 1: FREE ITEMS
# ============================================================


def purchased_quantities(lines: Iterable[LineItem]) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for line in lines:
        if line.is_generated or line.is_cancelled or not line.product_id:
            continue
        totals[line.product_id] += Decimal(line.quantity)
    return totals


def apply_free_item_rules(
    lines: list[LineItem],
    *,
    settings: RewardSettings,
    customer_id: str | None,
    catalog: dict,
) -> list[LineItem]:
    kept = [line for line in lines if not line.is_offer_free_item]

    if not settings.enable_product_to_product_offer:
        return kept

    existing: dict[str, LineItem] = {}
    for line in lines:
        if line.is_offer_free_item and line.offer_rule_key not in existing:
            existing[line.offer_rule_key] = line

    purchased = purchased_quantities(kept)
    free_lines: list[LineItem] = []

    for rule in settings.product_to_product_offers:
        key = rule.rule_key
        if not rule.enabled or key in {line.offer_rule_key for line in free_lines}:
            continue
        if not rule.is_usable_for(customer_id):
            continue

        free_product = catalog.get(rule.free_product)
        if free_product is None:
            logger.debug("Free offer product missing from catalog", extra={"rule_key": key})
            continue

        trigger_count = (purchased.get(rule.buy_product, ZERO) / rule.buy_quantity).to_integral_value(
            rounding=ROUND_FLOOR
        )
        free_quantity = trigger_count * rule.free_quantity
        if free_quantity <= 0:
            continue

        buy_product = catalog.get(rule.buy_product)
        buy_name = buy_product.name if buy_product is not None else "offer item"

        line = existing.get(key) or LineItem(product_id=rule.free_product, name="", quantity=ZERO)
        line.product_id = rule.free_product
        line.name = free_product.name
        line.quantity = free_quantity
        line.unit_price = round2(free_product.price)
        line.notes = (
            f"Free: buy {_qty_label(rule.buy_quantity)} {buy_name}, "
            f"get {_qty_label(rule.free_quantity)} {free_product.name}"
        )
        line.is_offer_free_item = True
        line.offer_rule_key = key
        line.is_random_customer_offer_item = False
        line.random_offer_campaign_code = ""
        free_lines.append(line)

    return kept + free_lines


# ============================================================
# PASS 2: RANDOM CUSTOMER OFFER
# ============================================================


def apply_random_customer_offer(
    lines: list[LineItem],
    *,
    settings: RewardSettings,
    customer,
    catalog: dict,
) -> list[LineItem]:
    kept = [line for line in lines if not line.is_random_customer_offer_item]
    existing = next((line for line in lines if line.is_random_customer_offer_item), None)

    if not settings.enable_random_customer_product_offer or customer is None:
        return kept

    campaign_code = settings.random_customer_offer_campaign_code
    if not customer.has_pending_random_offer(campaign_code):
        return kept

    product_id = str(customer.random_offer_product_id)
    has_rule = any(
        row.enabled and row.product == product_id
        for row in settings.random_customer_offer_products
    )
    product = catalog.get(product_id)
    if not has_rule or product is None:
        return kept

    if existing is not None and existing.product_id == product_id:
        line = existing
    else:
        line = LineItem(product_id=product_id, name="", quantity=ZERO)

    line.name = product.name
    line.quantity = Decimal("1")
    line.unit_price = round2(product.price)
    line.notes = RANDOM_OFFER_NOTE
    line.is_random_customer_offer_item = True
    line.random_offer_campaign_code = campaign_code
    line.is_offer_free_item = False
    line.offer_rule_key = ""

    return kept + [line]


# ============================================================
# PASS 3: PRICE OFFERS
# ============================================================


def apply_price_offers(
    lines: list[LineItem],
    *,
    settings: RewardSettings,
    customer_id: str | None,
) -> list[LineItem]:
    for line in lines:
        line.unit_price = round2(line.unit_price)

        if line.is_generated:
            line.effective_unit_price = ZERO
            line.clear_price_offer()
            continue

        rule = None
        if settings.enable_product_price_offer and line.product_id:
            rule = settings.price_rule_for_product(line.product_id)

        if rule is None or not rule.is_usable_for(customer_id):
            line.effective_unit_price = line.unit_price
            line.clear_price_offer()
            continue

        discount = round2(min(line.unit_price, rule.discount_amount))
        line.effective_unit_price = max(ZERO, round2(line.unit_price - discount))
        line.is_price_offer_applied = True
        line.price_offer_rule_key = rule.rule_key
        line.price_offer_discount = discount

    return lines


# ============================================================
# ENTRY POINT
# ============================================================


def resolve_offers(
    lines: Iterable[LineItem],
    *,
    bill_status: str,
    settings: RewardSettings,
    customer=None,
    catalog: dict | None = None,
) -> list[LineItem]:
    lines = [replace(line) for line in lines]
    customer_id = str(customer.id) if customer is not None else None

    if catalog is None:
        catalog = catalog_for(lines, settings, customer)

    if bill_status != Bill.STATUS_CANCELLED:
        lines = apply_free_item_rules(
            lines,
            settings=settings,
            customer_id=customer_id,
            catalog=catalog,
        )
        lines = apply_random_customer_offer(
            lines,
            settings=settings,
            customer=customer,
            catalog=catalog,
        )

    return apply_price_offers(lines, settings=settings, customer_id=customer_id)
