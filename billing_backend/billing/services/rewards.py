# billing/services/rewards.py

"""
======================================================
PATH: billing/services/rewards.py
======================================================
CREDIT POINTS LEDGER

Accrual rule (per completed bill, on gross_amount):
    total    = progress + gross
    steps    = floor(total / spend_amount_per_step)
    earned   = steps * points_per_step
    progress = total - steps * spend_amount_per_step

Redemption (bill had customer_offer_applied):
- reset_on_redeem: points and progress go to zero, nothing accrues
- otherwise: points_needed_for_offer is deducted (floored at 0), then the
  bill accrues normally (the deduction is an addition to the bare
  accrual rule)

The same rule drives live post-completion accrual, the in-request
reconciliation used by pricing, and the rebuild_customer_rewards command.

History replay only folds bills whose reward has been booked
(customer_reward_processed). A completed bill still waiting for
post-processing (or the backfill command) adds its own points later.
======================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal

from django.db.models import Q

from billing.models import Bill
from billing.services.money import ZERO, round2, to_decimal, to_positive
from offers.services.settings_repository import DEFAULT_REWARD_SETTINGS, RewardSettings

logger = logging.getLogger(__name__)

REPLAY_CHUNK_SIZE = 200


@dataclass(frozen=True)
class RewardSnapshot:
    points: int = 0
    progress: Decimal = ZERO
    total_offers_redeemed: int = 0

    def is_offer_eligible(self, settings: RewardSettings) -> bool:
        return self.points >= settings.points_needed_for_offer


def snapshot_of(customer) -> RewardSnapshot:
    return RewardSnapshot(
        points=int(customer.reward_points or 0),
        progress=round2(customer.reward_progress_amount),
        total_offers_redeemed=int(customer.total_offers_redeemed or 0),
    )


def calculate_points_for_spend(spend, spend_amount_per_step, points_per_step) -> tuple[int, Decimal]:
    """Returns (earned points, spend consumed by the completed steps)."""
    spend = max(ZERO, to_decimal(spend))
    step = to_positive(spend_amount_per_step, DEFAULT_REWARD_SETTINGS.spend_amount_per_step)
    per_step = int(to_positive(points_per_step, DEFAULT_REWARD_SETTINGS.points_per_step))

    steps = int((spend / step).to_integral_value(rounding=ROUND_FLOOR))
    return steps * per_step, round2(steps * step)


def accrue(*, points: int, progress, spend, settings: RewardSettings) -> tuple[int, Decimal, int]:
    """Returns (new points, new progress, points earned)."""
    total = round2(to_decimal(progress) + to_decimal(spend))
    earned, consumed = calculate_points_for_spend(
        total,
        settings.spend_amount_per_step,
        settings.points_per_step,
    )
    return int(points) + earned, round2(total - consumed), earned


def apply_completed_bill(
    snapshot: RewardSnapshot,
    *,
    gross_amount,
    redeemed: bool,
    settings: RewardSettings,
) -> tuple[RewardSnapshot, int]:
    """
    Fold one completed bill into a snapshot. Returns (snapshot, points earned).

    Redeeming without reset_on_redeem deducts points_needed_for_offer before
    accruing; the bare accrual rule never charges the redeemed points.
    """
    redeemed_total = snapshot.total_offers_redeemed + (1 if redeemed else 0)

    if redeemed and settings.reset_on_redeem:
        return RewardSnapshot(points=0, progress=ZERO, total_offers_redeemed=redeemed_total), 0

    points = snapshot.points
    if redeemed:
        points = max(0, points - settings.points_needed_for_offer)

    points, progress, earned = accrue(
        points=points,
        progress=snapshot.progress,
        spend=gross_amount,
        settings=settings,
    )
    return RewardSnapshot(points=points, progress=progress, total_offers_redeemed=redeemed_total), earned


# ============================================================
# HISTORY REPLAY
# ============================================================


def customer_history(customer, *, exclude_bill_id=None):
    """Reward-booked completed bills of a customer, oldest first (linked or matched by phone)."""
    match = Q(customer=customer)
    if customer.phone:
        match |= Q(customer__isnull=True, customer_phone=customer.phone)

    qs = Bill.objects.filter(match, status=Bill.STATUS_COMPLETED, customer_reward_processed=True)
    if exclude_bill_id is not None:
        qs = qs.exclude(pk=exclude_bill_id)

    return qs.order_by("created_at", "id").only("id", "gross_amount", "customer_offer_applied")


def replay_reward_history(customer, settings: RewardSettings, *, exclude_bill_id=None) -> RewardSnapshot:
    snapshot = RewardSnapshot()
    for bill in customer_history(customer, exclude_bill_id=exclude_bill_id).iterator(
        chunk_size=REPLAY_CHUNK_SIZE
    ):
        snapshot, _ = apply_completed_bill(
            snapshot,
            gross_amount=bill.gross_amount,
            redeemed=bool(bill.customer_offer_applied),
            settings=settings,
        )
    return snapshot


def write_snapshot(customer, snapshot: RewardSnapshot, settings: RewardSettings):
    customer.reward_points = snapshot.points
    customer.reward_progress_amount = snapshot.progress
    customer.total_offers_redeemed = snapshot.total_offers_redeemed
    customer.is_offer_eligible = snapshot.is_offer_eligible(settings)
    customer.save(
        update_fields=[
            "reward_points",
            "reward_progress_amount",
            "total_offers_redeemed",
            "is_offer_eligible",
            "updated_at",
        ]
    )


def reconcile_customer_points(customer, settings: RewardSettings, *, exclude_bill_id=None) -> RewardSnapshot:
    """Rebuild the stored ledger from history and persist it."""
    snapshot = replay_reward_history(customer, settings, exclude_bill_id=exclude_bill_id)

    if snapshot != snapshot_of(customer):
        logger.info(
            "Customer reward ledger reconciled from history",
            extra={
                "customer_id": str(customer.pk),
                "stored_points": customer.reward_points,
                "replayed_points": snapshot.points,
            },
        )

    write_snapshot(customer, snapshot, settings)
    return snapshot
