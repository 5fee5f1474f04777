# billing/tests/test_rewards.py

from decimal import Decimal

from django.test import SimpleTestCase

from billing.services.rewards import RewardSnapshot, apply_completed_bill, calculate_points_for_spend
from billing.tests.factories import settings_with


class PointsCalculationTests(SimpleTestCase):
    def test_whole_steps_earn_points(self):
        self.assertEqual(calculate_points_for_spend(Decimal("2500"), Decimal("1000"), 10), (20, Decimal("2000.00")))

    def test_invalid_step_falls_back_to_default(self):
        earned, _ = calculate_points_for_spend(Decimal("1000"), Decimal("0"), 10)
        self.assertEqual(earned, 10)


class CompletedBillLedgerTests(SimpleTestCase):
    def setUp(self):
        self.settings = settings_with(
            spend_amount_per_step=Decimal("100"),
            points_per_step=10,
            points_needed_for_offer=50,
        )

    def test_progress_carries_over(self):
        snapshot, earned = apply_completed_bill(
            RewardSnapshot(points=0, progress=Decimal("60")),
            gross_amount=Decimal("150"),
            redeemed=False,
            settings=self.settings,
        )
        self.assertEqual(earned, 20)
        self.assertEqual(snapshot.points, 20)
        self.assertEqual(snapshot.progress, Decimal("10.00"))

    def test_redeem_with_reset_zeroes_everything(self):
        snapshot, earned = apply_completed_bill(
            RewardSnapshot(points=60, progress=Decimal("40")),
            gross_amount=Decimal("200"),
            redeemed=True,
            settings=self.settings,
        )
        self.assertEqual(earned, 0)
        self.assertEqual(snapshot.points, 0)
        self.assertEqual(snapshot.progress, Decimal("0.00"))
        self.assertEqual(snapshot.total_offers_redeemed, 1)

    def test_redeem_without_reset_deducts_then_accrues(self):
        settings = settings_with(
            spend_amount_per_step=Decimal("100"),
            points_per_step=10,
            points_needed_for_offer=50,
            reset_on_redeem=False,
        )
        snapshot, earned = apply_completed_bill(
            RewardSnapshot(points=60),
            gross_amount=Decimal("200"),
            redeemed=True,
            settings=settings,
        )
        self.assertEqual(earned, 20)
        self.assertEqual(snapshot.points, 30)
