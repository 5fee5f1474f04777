# offers/services/settings_repository.py

"""
======================================================
PATH: offers/services/settings_repository.py
======================================================
REWARD / OFFER SETTINGS REPOSITORY

Single reader of the CustomerRewardSettings document.

Rules:
- Persisted data is never trusted: every read goes through
  normalize_reward_settings(), which fills defaults, drops unusable rows
  and clamps counters.
- Callers receive frozen dataclasses. Changing settings means building a
  new RewardSettings (dataclasses.replace) and writing it back through
  offers.services.concurrency.update_settings_document().
- Reads never fail the caller: a missing row or a database error yields
  the defaults (the error is logged).

Relation values may be stored as a plain id, {"id": ...} or
{"value": ...}; all are unwrapped to a string id.
======================================================
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from django.db import DatabaseError
from django.utils.dateparse import parse_datetime

from billing.services.money import to_decimal, to_non_negative, to_positive
from offers.models import SINGLETON_PK, CustomerRewardSettings

logger = logging.getLogger(__name__)

DEFAULT_CAMPAIGN_CODE = "campaign-1"


# ============================================================
# RULE TYPES
# ============================================================


@dataclass(frozen=True)
class ProductToProductOfferRule:
    """Buy `buy_quantity` of `buy_product`, get `free_quantity` of `free_product` free."""

    id: str
    buy_product: str
    free_product: str
    enabled: bool = True
    buy_quantity: Decimal = Decimal("1")
    free_quantity: Decimal = Decimal("1")
    max_offer_count: int = 0
    max_customer_count: int = 0
    offer_given_count: int = 0
    offer_customer_count: int = 0
    offer_customers: tuple[str, ...] = ()

    @property
    def rule_key(self) -> str:
        return f"{self.id}:{self.buy_product}:{self.free_product}"

    def is_usable_for(self, customer_id: str | None) -> bool:
        return is_rule_usable(
            max_offer_count=self.max_offer_count,
            offer_given_count=self.offer_given_count,
            max_customer_count=self.max_customer_count,
            offer_customer_count=self.offer_customer_count,
            offer_customers=self.offer_customers,
            customer_id=customer_id,
        )


@dataclass(frozen=True)
class ProductPriceOfferRule:
    """Flat per-unit discount on one product."""

    id: str
    product: str
    enabled: bool = True
    discount_amount: Decimal = Decimal("1")
    max_offer_count: int = 0
    max_customer_count: int = 0
    offer_given_count: int = 0
    offer_customer_count: int = 0
    offer_customers: tuple[str, ...] = ()

    @property
    def rule_key(self) -> str:
        return f"{self.id}:{self.product}"

    def is_usable_for(self, customer_id: str | None) -> bool:
        return is_rule_usable(
            max_offer_count=self.max_offer_count,
            offer_given_count=self.offer_given_count,
            max_customer_count=self.max_customer_count,
            offer_customer_count=self.offer_customer_count,
            offer_customers=self.offer_customers,
            customer_id=customer_id,
        )


@dataclass(frozen=True)
class RandomCustomerOfferProductRule:
    """One product handed to `winner_count` randomly drawn customers."""

    id: str
    product: str
    enabled: bool = True
    winner_count: int = 1
    assigned_count: int = 0
    redeemed_count: int = 0
    selected_customers: tuple[str, ...] = ()


@dataclass(frozen=True)
class RewardSettings:
    enabled: bool = True
    spend_amount_per_step: Decimal = Decimal("1000")
    points_per_step: int = 10
    points_needed_for_offer: int = 50
    offer_amount: Decimal = Decimal("50")
    reset_on_redeem: bool = True

    enable_product_to_product_offer: bool = False
    product_to_product_offers: tuple[ProductToProductOfferRule, ...] = ()

    enable_product_price_offer: bool = False
    product_price_offers: tuple[ProductPriceOfferRule, ...] = ()

    enable_random_customer_product_offer: bool = False
    random_customer_offer_products: tuple[RandomCustomerOfferProductRule, ...] = ()
    random_customer_offer_campaign_code: str = DEFAULT_CAMPAIGN_CODE
    random_customer_offer_assigned_count: int = 0
    random_customer_offer_redeemed_count: int = 0
    random_customer_offer_last_assigned_at: datetime | None = None

    enable_total_percentage_offer: bool = False
    total_percentage_offer_percent: Decimal = Decimal("5")
    total_percentage_offer_max_offer_count: int = 0
    total_percentage_offer_max_customer_count: int = 0
    total_percentage_offer_given_count: int = 0
    total_percentage_offer_customer_count: int = 0
    total_percentage_offer_customers: tuple[str, ...] = ()

    def total_percentage_offer_usable_for(self, customer_id: str | None) -> bool:
        return is_rule_usable(
            max_offer_count=self.total_percentage_offer_max_offer_count,
            offer_given_count=self.total_percentage_offer_given_count,
            max_customer_count=self.total_percentage_offer_max_customer_count,
            offer_customer_count=self.total_percentage_offer_customer_count,
            offer_customers=self.total_percentage_offer_customers,
            customer_id=customer_id,
        )

    def price_rule_for_product(self, product_id: str) -> ProductPriceOfferRule | None:
        """First enabled price rule for the product (first match wins)."""
        for rule in self.product_price_offers:
            if rule.enabled and rule.product == product_id:
                return rule
        return None


DEFAULT_REWARD_SETTINGS = RewardSettings()


# ============================================================
# ELIGIBILITY GATE
# ============================================================


def is_rule_usable(
    *,
    max_offer_count: int,
    offer_given_count: int,
    max_customer_count: int,
    offer_customer_count: int,
    offer_customers: Iterable[str],
    customer_id: str | None,
) -> bool:
    """
    A limit of 0 means unlimited.

    Customer caps let known participants keep using the rule; an unknown
    customer (walk-in, no phone) never passes a customer-capped rule.
    """
    if max_offer_count > 0 and offer_given_count >= max_offer_count:
        return False

    if max_customer_count == 0:
        return True

    if not customer_id:
        return False

    if customer_id in offer_customers:
        return True

    return offer_customer_count < max_customer_count


def with_usage(rule, *, increment: int, customer_id: str | None):
    """Return a copy of a counted rule with `increment` uses by `customer_id` merged in."""
    customers = tuple(rule.offer_customers)
    customer_count = rule.offer_customer_count

    if customer_id and customer_id not in customers:
        customers = customers + (customer_id,)
        customer_count += 1

    return replace(
        rule,
        offer_given_count=rule.offer_given_count + max(0, int(increment)),
        offer_customer_count=customer_count,
        offer_customers=customers,
    )


# ============================================================
# NORMALIZATION
# ============================================================


def relation_id(value) -> str | None:
    if isinstance(value, bool):
        return None

    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
        try:
            return str(uuid.UUID(value))
        except ValueError:
            return value

    if isinstance(value, int):
        return str(value)

    if isinstance(value, dict):
        inner = value.get("id")
        if isinstance(inner, (str, int, uuid.UUID)) and not isinstance(inner, bool):
            return relation_id(inner)
        if "value" in value:
            return relation_id(value.get("value"))

    if isinstance(value, uuid.UUID):
        return str(value)

    return None


def _relation_ids(value) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()

    out = []
    for entry in value:
        rid = relation_id(entry)
        if rid and rid not in out:
            out.append(rid)
    return tuple(out)


def _bool(value, default: bool) -> bool:
    return value if isinstance(value, bool) else default


def _count(value) -> int:
    if isinstance(value, bool):
        return 0
    return int(to_non_negative(value, 0))


def _positive_int(value, fallback: int) -> int:
    if isinstance(value, bool):
        return fallback
    result = int(to_positive(value, fallback))
    return result if result > 0 else fallback


def _rows(value) -> list[dict]:
    if not isinstance(value, (list, tuple)):
        return []
    return [row if isinstance(row, dict) else {} for row in value]


def _row_id(raw: dict, fallback: str) -> str:
    rid = raw.get("id")
    if isinstance(rid, str) and rid.strip():
        return rid.strip()
    return fallback


def _normalize_product_to_product(value) -> tuple[ProductToProductOfferRule, ...]:
    rules = []
    for index, raw in enumerate(_rows(value), start=1):
        buy_product = relation_id(raw.get("buy_product"))
        free_product = relation_id(raw.get("free_product"))
        if not buy_product or not free_product:
            continue

        rules.append(
            ProductToProductOfferRule(
                id=_row_id(raw, f"rule-{index}"),
                enabled=_bool(raw.get("enabled"), True),
                buy_product=buy_product,
                buy_quantity=to_positive(raw.get("buy_quantity"), 1),
                free_product=free_product,
                free_quantity=to_positive(raw.get("free_quantity"), 1),
                max_offer_count=_count(raw.get("max_offer_count")),
                max_customer_count=_count(raw.get("max_customer_count")),
                offer_given_count=_count(raw.get("offer_given_count")),
                offer_customer_count=_count(raw.get("offer_customer_count")),
                offer_customers=_relation_ids(raw.get("offer_customers")),
            )
        )
    return tuple(rules)


def _normalize_product_price(value) -> tuple[ProductPriceOfferRule, ...]:
    rules = []
    for index, raw in enumerate(_rows(value), start=1):
        product = relation_id(raw.get("product"))
        if not product:
            continue

        rules.append(
            ProductPriceOfferRule(
                id=_row_id(raw, f"price-rule-{index}"),
                enabled=_bool(raw.get("enabled"), True),
                product=product,
                discount_amount=to_positive(raw.get("discount_amount"), 1),
                max_offer_count=_count(raw.get("max_offer_count")),
                max_customer_count=_count(raw.get("max_customer_count")),
                offer_given_count=_count(raw.get("offer_given_count")),
                offer_customer_count=_count(raw.get("offer_customer_count")),
                offer_customers=_relation_ids(raw.get("offer_customers")),
            )
        )
    return tuple(rules)


def _normalize_random_products(value) -> tuple[RandomCustomerOfferProductRule, ...]:
    rows = []
    for index, raw in enumerate(_rows(value), start=1):
        product = relation_id(raw.get("product"))
        if not product:
            continue

        rows.append(
            RandomCustomerOfferProductRule(
                id=_row_id(raw, f"random-product-{index}"),
                enabled=_bool(raw.get("enabled"), True),
                product=product,
                winner_count=_positive_int(raw.get("winner_count"), 1),
                assigned_count=_count(raw.get("assigned_count")),
                redeemed_count=_count(raw.get("redeemed_count")),
                selected_customers=_relation_ids(raw.get("selected_customers")),
            )
        )
    return tuple(rows)


def _datetime_or_none(value) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value.strip():
        return parse_datetime(value.strip())
    return None


def normalize_reward_settings(raw) -> RewardSettings:
    """Build a RewardSettings from any mapping (row dump, API payload, garbage)."""
    raw = raw if isinstance(raw, dict) else {}
    d = DEFAULT_REWARD_SETTINGS

    campaign_code = raw.get("random_customer_offer_campaign_code")
    if not isinstance(campaign_code, str) or not campaign_code.strip():
        campaign_code = DEFAULT_CAMPAIGN_CODE

    return RewardSettings(
        enabled=_bool(raw.get("enabled"), d.enabled),
        spend_amount_per_step=to_positive(raw.get("spend_amount_per_step"), d.spend_amount_per_step),
        points_per_step=_positive_int(raw.get("points_per_step"), d.points_per_step),
        points_needed_for_offer=_positive_int(raw.get("points_needed_for_offer"), d.points_needed_for_offer),
        offer_amount=to_positive(raw.get("offer_amount"), d.offer_amount),
        reset_on_redeem=_bool(raw.get("reset_on_redeem"), d.reset_on_redeem),
        enable_product_to_product_offer=_bool(
            raw.get("enable_product_to_product_offer"), d.enable_product_to_product_offer
        ),
        product_to_product_offers=_normalize_product_to_product(raw.get("product_to_product_offers")),
        enable_product_price_offer=_bool(raw.get("enable_product_price_offer"), d.enable_product_price_offer),
        product_price_offers=_normalize_product_price(raw.get("product_price_offers")),
        enable_random_customer_product_offer=_bool(
            raw.get("enable_random_customer_product_offer"), d.enable_random_customer_product_offer
        ),
        random_customer_offer_products=_normalize_random_products(raw.get("random_customer_offer_products")),
        random_customer_offer_campaign_code=campaign_code.strip(),
        random_customer_offer_assigned_count=_count(raw.get("random_customer_offer_assigned_count")),
        random_customer_offer_redeemed_count=_count(raw.get("random_customer_offer_redeemed_count")),
        random_customer_offer_last_assigned_at=_datetime_or_none(
            raw.get("random_customer_offer_last_assigned_at")
        ),
        enable_total_percentage_offer=_bool(
            raw.get("enable_total_percentage_offer"), d.enable_total_percentage_offer
        ),
        total_percentage_offer_percent=to_positive(
            raw.get("total_percentage_offer_percent"), d.total_percentage_offer_percent
        ),
        total_percentage_offer_max_offer_count=_count(raw.get("total_percentage_offer_max_offer_count")),
        total_percentage_offer_max_customer_count=_count(raw.get("total_percentage_offer_max_customer_count")),
        total_percentage_offer_given_count=_count(raw.get("total_percentage_offer_given_count")),
        total_percentage_offer_customer_count=_count(raw.get("total_percentage_offer_customer_count")),
        total_percentage_offer_customers=_relation_ids(raw.get("total_percentage_offer_customers")),
    )


# ============================================================
# ROW <-> DOCUMENT
# ============================================================

DOCUMENT_FIELDS = (
    "enabled",
    "spend_amount_per_step",
    "points_per_step",
    "points_needed_for_offer",
    "offer_amount",
    "reset_on_redeem",
    "enable_product_to_product_offer",
    "product_to_product_offers",
    "enable_product_price_offer",
    "product_price_offers",
    "enable_random_customer_product_offer",
    "random_customer_offer_products",
    "random_customer_offer_campaign_code",
    "random_customer_offer_assigned_count",
    "random_customer_offer_redeemed_count",
    "random_customer_offer_last_assigned_at",
    "enable_total_percentage_offer",
    "total_percentage_offer_percent",
    "total_percentage_offer_max_offer_count",
    "total_percentage_offer_max_customer_count",
    "total_percentage_offer_given_count",
    "total_percentage_offer_customer_count",
    "total_percentage_offer_customers",
)


def row_to_raw(row: CustomerRewardSettings) -> dict:
    return {name: getattr(row, name) for name in DOCUMENT_FIELDS}


def _json_number(value: Decimal):
    value = to_decimal(value)
    if value == value.to_integral_value():
        return int(value)
    return str(value.normalize())


def _rule_to_json(rule) -> dict:
    out = {}
    for f in fields(rule):
        name, value = f.name, getattr(rule, f.name)
        if isinstance(value, Decimal):
            out[name] = _json_number(value)
        elif isinstance(value, tuple):
            out[name] = list(value)
        else:
            out[name] = value
    return out


def settings_to_document(settings: RewardSettings) -> dict:
    """Model field values for a RewardSettings (JSON lists made JSON-safe)."""
    doc = {}
    for name in DOCUMENT_FIELDS:
        value = getattr(settings, name)
        if name in (
            "product_to_product_offers",
            "product_price_offers",
            "random_customer_offer_products",
        ):
            value = [_rule_to_json(rule) for rule in value]
        elif isinstance(value, tuple):
            value = list(value)
        doc[name] = value
    return doc


# ============================================================
# LOADING
# ============================================================


def load_reward_settings() -> RewardSettings:
    try:
        row = CustomerRewardSettings.objects.filter(pk=SINGLETON_PK).first()
    except DatabaseError:
        logger.exception("Failed to read customer reward settings; falling back to defaults")
        return DEFAULT_REWARD_SETTINGS

    if row is None:
        return DEFAULT_REWARD_SETTINGS

    return normalize_reward_settings(row_to_raw(row))
