# billing/services/pricing.py

"""
PRICING AGGREGATOR

    subtotal     = round2(quantity * effective_unit_price)   (per line)
    gross        = round2(sum(subtotal))
    credit       = credit-points redemption          (completed bills only)
    after_credit = gross - credit
    percentage   = whole-bill percentage offer       (completed bills only)
    total        = max(0, after_credit - percentage)

Re-saving a bill that already carries a bill-level offer keeps applying it,
so repeated saves before post-processing are stable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal

from billing.models import Bill
from billing.services.line_items import LineItem
from billing.services.money import ZERO, round2, to_decimal
from billing.services.rewards import reconcile_customer_points
from offers.services.settings_repository import RewardSettings

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class PricingResult:
    gross_amount: Decimal
    customer_offer_applied: bool = False
    customer_offer_discount: Decimal = ZERO
    total_percentage_offer_applied: bool = False
    total_percentage_offer_discount: Decimal = ZERO
    total_amount: Decimal = ZERO


def gross_amount_for(lines: list[LineItem]) -> Decimal:
    return round2(sum((line.compute_subtotal() for line in lines), ZERO))


def percentage_discount(amount, percent) -> Decimal:
    amount = round2(amount)
    return min(amount, round2(amount * to_decimal(percent) / HUNDRED))


def _credit_offer(
    *,
    gross: Decimal,
    settings: RewardSettings,
    customer,
    apply_customer_offer: bool,
    already_applied: bool,
    previous_discount,
    reward_processed: bool,
    bill_id,
) -> tuple[bool, Decimal]:
    if already_applied:
        return True, min(gross, round2(previous_discount))

    if not apply_customer_offer or reward_processed:
        return False, ZERO

    if not settings.enabled or customer is None:
        return False, ZERO

    points = int(customer.reward_points or 0)
    if points < settings.points_needed_for_offer:
        # stored ledger may have drifted; rebuild it before refusing
        points = reconcile_customer_points(customer, settings, exclude_bill_id=bill_id).points

    if points < settings.points_needed_for_offer:
        logger.info(
            "Customer offer requested but not enough points",
            extra={
                "customer_id": str(customer.pk),
                "points": points,
                "needed": settings.points_needed_for_offer,
            },
        )
        return False, ZERO

    return True, min(round2(settings.offer_amount), gross)


def price_bill(
    lines: list[LineItem],
    *,
    status: str,
    settings: RewardSettings,
    customer=None,
    apply_customer_offer: bool = False,
    customer_offer_already_applied: bool = False,
    previous_customer_offer_discount=ZERO,
    total_percentage_already_applied: bool = False,
    customer_reward_processed: bool = False,
    bill_id=None,
) -> PricingResult:
    gross = gross_amount_for(lines)

    if status != Bill.STATUS_COMPLETED:
        return PricingResult(gross_amount=gross, total_amount=gross)

    credit_applied, credit = _credit_offer(
        gross=gross,
        settings=settings,
        customer=customer,
        apply_customer_offer=apply_customer_offer,
        already_applied=customer_offer_already_applied,
        previous_discount=previous_customer_offer_discount,
        reward_processed=customer_reward_processed,
        bill_id=bill_id,
    )
    after_credit = round2(gross - credit)

    customer_id = str(customer.pk) if customer is not None else None
    pct_applied = total_percentage_already_applied or (
        settings.enable_total_percentage_offer
        and settings.total_percentage_offer_usable_for(customer_id)
    )
    pct = percentage_discount(after_credit, settings.total_percentage_offer_percent) if pct_applied else ZERO

    return PricingResult(
        gross_amount=gross,
        customer_offer_applied=credit_applied,
        customer_offer_discount=credit,
        total_percentage_offer_applied=bool(pct_applied),
        total_percentage_offer_discount=pct,
        total_amount=max(ZERO, round2(after_credit - pct)),
    )
