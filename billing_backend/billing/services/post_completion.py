# billing/services/post_completion.py

"""
======================================================
PATH: billing/services/post_completion.py
======================================================
POST-COMPLETION PROCESSOR (IDEMPOTENT)

Runs once a bill's transition into `completed` has committed
(bill_service schedules it with transaction.on_commit).

Sub-tasks (independent; a failure is logged and does not block the rest):
1. customer sync          upsert customer by phone, link bill
2. random offer redeem    flip the customer's prize to redeemed, bump the
                          campaign row's redeemed_count in settings
3. offer counters         merge per-rule usage into the settings document
4. reward accrual         update the customer's points ledger

Idempotency:
- 3 and 4 are guarded by Bill.offer_counters_processed /
  Bill.customer_reward_processed. Each claims its flag with a flag-only
  queryset update in the same transaction as its effect, so a rollback
  leaves the flag False (retryable) and a commit sets it exactly once.
- 2 is guarded by Customer.random_offer_redeemed + campaign code equality.
- Flag writes never call Bill.save(), so nothing re-enters this module.

Settings writes go through the optimistic retry wrapper; customer ledger
writes hold a row lock for the duration of the sub-task transaction.
======================================================
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field, replace
from decimal import ROUND_FLOOR, Decimal

from django.conf import settings as django_settings
from django.db import transaction
from django.utils import timezone

from billing.models import Bill, BillItem
from billing.services.money import ZERO, to_decimal
from billing.services.rewards import apply_completed_bill, snapshot_of, write_snapshot
from customers.models import Customer
from customers.services import normalize_phone, upsert_customer
from offers.services.concurrency import update_settings_with_retry
from offers.services.settings_repository import RewardSettings, load_reward_settings, with_usage

logger = logging.getLogger(__name__)


@dataclass
class PostCompletionReport:
    bill_id: str
    skipped: str = ""
    customer_id: str | None = None
    customer_synced: bool = False
    random_offer_redeemed: bool = False
    offer_counters_merged: bool = False
    offer_counters_marked: bool = False
    reward_processed: bool = False
    reward_points_earned: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class OfferUsage:
    free: dict = field(default_factory=lambda: defaultdict(int))
    price: dict = field(default_factory=lambda: defaultdict(int))
    total_percentage: int = 0

    @property
    def has_activity(self) -> bool:
        return bool(self.free) or bool(self.price) or self.total_percentage > 0


# ============================================================
# USAGE TALLY
# ============================================================


def _floor_int(value) -> int:
    return int(to_decimal(value).to_integral_value(rounding=ROUND_FLOOR))


def tally_offer_usage(bill: Bill, items, settings: RewardSettings) -> OfferUsage:
    """
    Per-rule increments for one completed bill:
    - free item: max(1, floor(quantity / rule.free_quantity))
    - price offer: max(1, floor(quantity)); usage counts whole units, so a
      fractional line such as 0.5 kg counts once and 2.75 counts twice
    - total percentage: 1 when a non-zero discount was given
    """
    usage = OfferUsage()
    free_rules = {rule.rule_key: rule for rule in settings.product_to_product_offers}

    for item in items:
        if item.status == BillItem.STATUS_CANCELLED:
            continue

        if item.is_offer_free_item and item.offer_rule_key:
            rule = free_rules.get(item.offer_rule_key)
            free_quantity = rule.free_quantity if rule is not None else Decimal("1")
            usage.free[item.offer_rule_key] += max(1, _floor_int(Decimal(item.quantity) / free_quantity))
            continue

        if (
            item.is_price_offer_applied
            and item.price_offer_rule_key
            and not item.is_random_customer_offer_item
        ):
            usage.price[item.price_offer_rule_key] += max(1, _floor_int(item.quantity))

    if bill.total_percentage_offer_applied and to_decimal(bill.total_percentage_offer_discount) > ZERO:
        usage.total_percentage = 1

    return usage


def has_offer_counter_activity(bill: Bill, items=None) -> bool:
    items = list(bill.items.all()) if items is None else items
    return tally_offer_usage(bill, items, load_reward_settings()).has_activity


def merge_offer_usage(current: RewardSettings, usage: OfferUsage, customer_id: str | None) -> RewardSettings:
    return replace(
        current,
        product_to_product_offers=tuple(
            with_usage(rule, increment=usage.free[rule.rule_key], customer_id=customer_id)
            if rule.rule_key in usage.free
            else rule
            for rule in current.product_to_product_offers
        ),
        product_price_offers=tuple(
            with_usage(rule, increment=usage.price[rule.rule_key], customer_id=customer_id)
            if rule.rule_key in usage.price
            else rule
            for rule in current.product_price_offers
        ),
        **_merged_percentage_usage(current, usage, customer_id),
    )


def _merged_percentage_usage(current: RewardSettings, usage: OfferUsage, customer_id: str | None) -> dict:
    if not usage.total_percentage:
        return {}

    customers = tuple(current.total_percentage_offer_customers)
    customer_count = current.total_percentage_offer_customer_count
    if customer_id and customer_id not in customers:
        customers = customers + (customer_id,)
        customer_count += 1

    return {
        "total_percentage_offer_given_count": current.total_percentage_offer_given_count + usage.total_percentage,
        "total_percentage_offer_customer_count": customer_count,
        "total_percentage_offer_customers": customers,
    }


# ============================================================
# SUB-TASKS
# ============================================================


def sync_customer(bill: Bill) -> Customer | None:
    phone = normalize_phone(bill.customer_phone)
    if not phone:
        return bill.customer

    customer, _ = upsert_customer(phone=phone, name=bill.customer_name, branch=bill.branch)

    if bill.customer_id != customer.pk:
        if bill.customer_id is None:
            Bill.objects.filter(pk=bill.pk, customer__isnull=True).update(customer=customer)
            bill.customer = customer
        else:
            logger.warning(
                "Bill linked to a different customer than its phone number",
                extra={"bill_id": str(bill.pk), "customer_id": str(bill.customer_id)},
            )

    return customer


def redeem_random_offer(bill: Bill, items, customer: Customer | None, settings: RewardSettings) -> bool:
    prize = next((item for item in items if item.is_random_customer_offer_item), None)
    if prize is None or customer is None:
        return False

    campaign_code = prize.random_offer_campaign_code
    if campaign_code != settings.random_customer_offer_campaign_code:
        logger.info(
            "Random offer item belongs to a rotated campaign; not credited",
            extra={"bill_id": str(bill.pk), "campaign_code": campaign_code},
        )
        return False

    with transaction.atomic():
        locked = Customer.objects.select_for_update().get(pk=customer.pk)
        if not locked.has_pending_random_offer(campaign_code):
            return False

        Customer.objects.filter(pk=locked.pk).update(random_offer_redeemed=True, updated_at=timezone.now())

        customer_id = str(locked.pk)
        product_id = str(locked.random_offer_product_id)

        def _bump(current: RewardSettings) -> RewardSettings:
            if current.random_customer_offer_campaign_code != campaign_code:
                return current

            rows = list(current.random_customer_offer_products)
            target = next(
                (i for i, row in enumerate(rows) if customer_id in row.selected_customers),
                None,
            )
            if target is None:
                target = next((i for i, row in enumerate(rows) if row.product == product_id), None)
            if target is not None:
                rows[target] = replace(rows[target], redeemed_count=rows[target].redeemed_count + 1)

            return replace(
                current,
                random_customer_offer_products=tuple(rows),
                random_customer_offer_redeemed_count=current.random_customer_offer_redeemed_count + 1,
            )

        update_settings_with_retry(_bump)

    logger.info(
        "Random offer redeemed",
        extra={"bill_id": str(bill.pk), "customer_id": customer_id, "campaign_code": campaign_code},
    )
    return True


def process_offer_counters(bill: Bill, items, customer: Customer | None, *, merge: bool = True) -> tuple[bool, bool]:
    """
    Returns (flag claimed by this call, counters merged).

    merge=False only marks the flag when the bill shows no counter activity
    (repair runs that must not double count).
    """
    settings = load_reward_settings()
    usage = tally_offer_usage(bill, items, settings)
    customer_id = str(customer.pk) if customer is not None else None

    if usage.has_activity and not merge:
        return False, False

    with transaction.atomic():
        claimed = Bill.objects.filter(pk=bill.pk, offer_counters_processed=False).update(
            offer_counters_processed=True
        )
        if not claimed:
            return False, False

        if not usage.has_activity:
            return True, False

        update_settings_with_retry(lambda current: merge_offer_usage(current, usage, customer_id))

    logger.info(
        "Offer counters merged",
        extra={
            "bill_id": str(bill.pk),
            "free_rules": len(usage.free),
            "price_rules": len(usage.price),
            "total_percentage": usage.total_percentage,
        },
    )
    return True, True


def process_reward_accrual(bill: Bill, customer: Customer | None, settings: RewardSettings) -> int | None:
    """Returns points earned, or None when already processed."""
    with transaction.atomic():
        locked_bill = Bill.objects.select_for_update().get(pk=bill.pk)
        if locked_bill.customer_reward_processed:
            return None

        if not settings.enabled or customer is None:
            Bill.objects.filter(pk=bill.pk).update(customer_reward_processed=True, reward_points_earned=0)
            return 0

        locked_customer = Customer.objects.select_for_update().get(pk=customer.pk)
        snapshot, earned = apply_completed_bill(
            snapshot_of(locked_customer),
            gross_amount=locked_bill.gross_amount,
            redeemed=bool(locked_bill.customer_offer_applied),
            settings=settings,
        )
        write_snapshot(locked_customer, snapshot, settings)

        Bill.objects.filter(pk=bill.pk).update(customer_reward_processed=True, reward_points_earned=earned)

    logger.info(
        "Reward accrued",
        extra={
            "bill_id": str(bill.pk),
            "customer_id": str(customer.pk),
            "earned": earned,
            "points": snapshot.points,
        },
    )
    return earned


# ============================================================
# ENTRY POINT
# ============================================================


def process_completed_bill(
    bill_id,
    *,
    run_counters: bool = True,
    merge_counters: bool = True,
    run_rewards: bool = True,
) -> PostCompletionReport:
    report = PostCompletionReport(bill_id=str(bill_id))

    if not getattr(django_settings, "BILLING_POST_PROCESSING_ENABLED", True):
        report.skipped = "disabled"
        return report

    bill = Bill.objects.select_related("branch", "customer").filter(pk=bill_id).first()
    if bill is None:
        report.skipped = "not_found"
        return report

    if bill.status != Bill.STATUS_COMPLETED:
        report.skipped = "not_completed"
        return report

    items = list(bill.items.all())
    settings = load_reward_settings()

    # 1. customer sync
    customer = bill.customer
    customer_sync_failed = False
    try:
        customer = sync_customer(bill)
        report.customer_synced = customer is not None
    except Exception:
        customer_sync_failed = True
        report.errors.append("customer_sync")
        logger.exception("Customer sync failed", extra={"bill_id": str(bill.pk)})

    report.customer_id = str(customer.pk) if customer is not None else None

    # 2. random offer redemption
    try:
        report.random_offer_redeemed = redeem_random_offer(bill, items, customer, settings)
    except Exception:
        report.errors.append("random_offer")
        logger.exception("Random offer redemption failed", extra={"bill_id": str(bill.pk)})

    # 3. offer counters
    if run_counters and not bill.offer_counters_processed:
        try:
            claimed, merged = process_offer_counters(bill, items, customer, merge=merge_counters)
            report.offer_counters_marked = claimed
            report.offer_counters_merged = merged
        except Exception:
            report.errors.append("offer_counters")
            logger.exception("Offer counter processing failed", extra={"bill_id": str(bill.pk)})

    # 4. reward accrual
    if run_rewards and not bill.customer_reward_processed:
        if customer_sync_failed:
            report.errors.append("reward_accrual_skipped")
        else:
            try:
                earned = process_reward_accrual(bill, customer, settings)
                if earned is not None:
                    report.reward_processed = True
                    report.reward_points_earned = earned
            except Exception:
                report.errors.append("reward_accrual")
                logger.exception("Reward accrual failed", extra={"bill_id": str(bill.pk)})

    return report
