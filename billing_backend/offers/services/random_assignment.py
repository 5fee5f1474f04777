# offers/services/random_assignment.py

"""
RANDOM CUSTOMER CAMPAIGN DRAW

Hands each enabled random-offer product to `winner_count` customers drawn
without replacement from the whole customer base.

A draw:
- clears every previous assignment (customers of earlier draws lose
  unredeemed offers)
- assigns winners for the active campaign code
- rewrites the rows' selected_customers / assigned_count / redeemed_count
  and the campaign totals in the settings document (optimistic retry)

With the family disabled (or no enabled rows) the draw only clears.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace

from django.db import transaction
from django.utils import timezone

from customers.models import Customer
from offers.services.concurrency import update_settings_with_retry
from offers.services.settings_repository import RewardSettings, load_reward_settings
from products.services import load_catalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DrawResult:
    campaign_code: str
    assigned_count: int
    cleared_count: int
    winners_by_rule: dict


def config_signature(settings: RewardSettings) -> str:
    """Changes whenever a redraw is due (family toggle, rows, winner counts, campaign)."""
    rows = sorted(
        f"{row.id}:{row.product}:{row.winner_count}"
        for row in settings.random_customer_offer_products
        if row.enabled
    )
    return "|".join(
        [
            str(settings.enable_random_customer_product_offer),
            settings.random_customer_offer_campaign_code,
            *rows,
        ]
    )


def _clear_assignments() -> int:
    return Customer.objects.filter(random_offer_assigned=True).update(
        random_offer_assigned=False,
        random_offer_redeemed=False,
        random_offer_product=None,
        random_offer_campaign_code=None,
        random_offer_assigned_at=None,
    )


@transaction.atomic
def draw_random_offer_winners(*, rng: random.Random | None = None) -> DrawResult:
    rng = rng or random.SystemRandom()
    settings = load_reward_settings()

    catalog = load_catalog(row.product for row in settings.random_customer_offer_products)
    active_rows = [
        row
        for row in settings.random_customer_offer_products
        if row.enabled and row.product in catalog
    ]
    campaign_code = settings.random_customer_offer_campaign_code

    cleared = _clear_assignments()

    if not settings.enable_random_customer_product_offer or not active_rows:

        def _reset(current: RewardSettings) -> RewardSettings:
            return replace(
                current,
                random_customer_offer_products=tuple(
                    replace(row, selected_customers=(), assigned_count=0, redeemed_count=0)
                    for row in current.random_customer_offer_products
                ),
                random_customer_offer_assigned_count=0,
                random_customer_offer_redeemed_count=0,
                random_customer_offer_last_assigned_at=None,
            )

        update_settings_with_retry(_reset)
        logger.info(
            "Random offer campaign cleared",
            extra={"campaign_code": campaign_code, "cleared": cleared},
        )
        return DrawResult(
            campaign_code=campaign_code,
            assigned_count=0,
            cleared_count=cleared,
            winners_by_rule={},
        )

    pool = [str(pk) for pk in Customer.objects.values_list("id", flat=True)]
    rng.shuffle(pool)

    winners_by_rule: dict[str, list[str]] = {}
    for row in active_rows:
        count = min(row.winner_count, len(pool))
        winners_by_rule[row.id], pool = pool[:count], pool[count:]

    assigned_at = timezone.now()
    product_by_rule = {row.id: row.product for row in active_rows}

    for rule_id, customer_ids in winners_by_rule.items():
        if not customer_ids:
            continue
        Customer.objects.filter(id__in=customer_ids).update(
            random_offer_assigned=True,
            random_offer_redeemed=False,
            random_offer_product_id=product_by_rule[rule_id],
            random_offer_campaign_code=campaign_code,
            random_offer_assigned_at=assigned_at,
        )

    assigned_total = sum(len(ids) for ids in winners_by_rule.values())

    def _write_winners(current: RewardSettings) -> RewardSettings:
        rows = []
        for row in current.random_customer_offer_products:
            selected = tuple(winners_by_rule.get(row.id, ()))
            rows.append(
                replace(
                    row,
                    selected_customers=selected,
                    assigned_count=len(selected),
                    redeemed_count=0,
                )
            )
        return replace(
            current,
            random_customer_offer_products=tuple(rows),
            random_customer_offer_assigned_count=assigned_total,
            random_customer_offer_redeemed_count=0,
            random_customer_offer_last_assigned_at=assigned_at,
        )

    update_settings_with_retry(_write_winners)

    logger.info(
        "Random offer campaign drawn",
        extra={
            "campaign_code": campaign_code,
            "assigned": assigned_total,
            "cleared": cleared,
        },
    )

    return DrawResult(
        campaign_code=campaign_code,
        assigned_count=assigned_total,
        cleared_count=cleared,
        winners_by_rule={key: list(value) for key, value in winners_by_rule.items()},
    )
