# billing/tests/test_commands.py

from decimal import Decimal
from io import StringIO

from django.core.management import call_command
from django.test import TestCase

from billing.models import Bill
from billing.services.bill_service import create_bill
from billing.services.rewards import replay_reward_history
from billing.tests.factories import make_branch, make_customer, make_product, save_reward_settings
from customers.models import Customer
from offers.services.settings_repository import load_reward_settings


class BackfillPostProcessingCommandTests(TestCase):
    def setUp(self):
        self.branch = make_branch("Abc Cafe")
        self.burger = make_product("Burger", "120.00")
        self.fries = make_product("Fries", "60.00")
        save_reward_settings(
            spend_amount_per_step=Decimal("100"),
            points_per_step=10,
            enable_product_to_product_offer=True,
            product_to_product_offers=[
                {
                    "id": "r1",
                    "buy_product": str(self.burger.id),
                    "free_product": str(self.fries.id),
                    "buy_quantity": 2,
                    "free_quantity": 1,
                }
            ],
        )

    def _completed(self, qty, phone="9000000001"):
        return create_bill(
            branch=self.branch,
            status="completed",
            items=[{"product_id": str(self.burger.id), "quantity": qty}],
            customer_phone=phone,
        )

    def _run(self, *args):
        out = StringIO()
        call_command("backfill_bill_post_processing", *args, stdout=out, stderr=StringIO())
        return out.getvalue()

    def test_dry_run_changes_nothing(self):
        bill = self._completed(1)

        output = self._run("--dry-run")

        self.assertIn("[DRY-RUN]", output)
        bill.refresh_from_db()
        self.assertFalse(bill.customer_reward_processed)
        self.assertFalse(Customer.objects.exists())

    def test_bill_without_counter_activity_is_fixed(self):
        bill = self._completed(1)

        output = self._run()

        self.assertIn(f"[OK] {bill.pk}", output)
        bill.refresh_from_db()
        self.assertTrue(bill.customer_reward_processed)
        self.assertTrue(bill.offer_counters_processed)

    def test_counter_activity_needs_force(self):
        bill = self._completed(4)

        output = self._run(str(bill.pk))

        self.assertIn("--force-counter-reprocess", output)
        bill.refresh_from_db()
        self.assertTrue(bill.customer_reward_processed)
        self.assertFalse(bill.offer_counters_processed)
        self.assertEqual(load_reward_settings().product_to_product_offers[0].offer_given_count, 0)

        output = self._run(str(bill.pk), "--force-counter-reprocess")

        self.assertIn(f"[OK] {bill.pk}", output)
        self.assertEqual(load_reward_settings().product_to_product_offers[0].offer_given_count, 2)

    def test_already_processed_bill_is_skipped(self):
        bill = self._completed(1)
        Bill.objects.filter(pk=bill.pk).update(customer_reward_processed=True, offer_counters_processed=True)

        output = self._run(str(bill.pk))
        self.assertIn("already processed", output)


class RebuildCustomerRewardsCommandTests(TestCase):
    def setUp(self):
        self.branch = make_branch("Abc Cafe")
        save_reward_settings(spend_amount_per_step=Decimal("100"), points_per_step=10)
        self.customer = make_customer(phone="9000000001", reward_points=999)
        Bill.objects.create(
            branch=self.branch,
            status=Bill.STATUS_COMPLETED,
            customer=self.customer,
            customer_phone="9000000001",
            gross_amount=Decimal("250.00"),
            customer_reward_processed=True,
        )

    def test_dry_run_reports_without_writing(self):
        out = StringIO()
        call_command("rebuild_customer_rewards", "--dry-run", stdout=out)

        self.assertIn("points 999 -> 20", out.getvalue())
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.reward_points, 999)

    def test_rebuild_writes_replayed_ledger(self):
        call_command("rebuild_customer_rewards", "--batch-size", "1", stdout=StringIO())

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.reward_points, 20)
        self.assertEqual(self.customer.reward_progress_amount, Decimal("50.00"))


class PendingBillReplayTests(TestCase):
    """
    A completed bill whose reward is not booked yet must not reach the
    customer's ledger twice: once through an in-request history replay and
    again when post-processing (here the backfill) books it.
    """

    def setUp(self):
        self.branch = make_branch("Abc Cafe")
        self.burger = make_product("Burger", "120.00")
        self.thali = make_product("Thali", "600.00")
        save_reward_settings(
            spend_amount_per_step=Decimal("100"),
            points_per_step=10,
            points_needed_for_offer=50,
            offer_amount=Decimal("50"),
        )
        # stored balance has drifted below the booked history (10 points)
        self.customer = make_customer(phone="9000000001", reward_points=0)
        Bill.objects.create(
            branch=self.branch,
            status=Bill.STATUS_COMPLETED,
            customer=self.customer,
            customer_phone="9000000001",
            gross_amount=Decimal("100.00"),
            customer_reward_processed=True,
            offer_counters_processed=True,
            reward_points_earned=10,
        )

    def _completed(self, product, **extra):
        return create_bill(
            branch=self.branch,
            status="completed",
            items=[{"product_id": str(product.id), "quantity": 1}],
            customer_phone="9000000001",
            **extra,
        )

    def test_replay_skips_pending_bill_and_backfill_books_it_once(self):
        pending = self._completed(self.thali)

        redeeming = self._completed(self.burger, apply_customer_offer=True)

        # only the booked 10 points are visible, so the offer is refused
        self.assertFalse(redeeming.customer_offer_applied)
        self.customer.refresh_from_db()
        self.assertEqual(self.customer.reward_points, 10)

        call_command("backfill_bill_post_processing", stdout=StringIO(), stderr=StringIO())

        pending.refresh_from_db()
        self.assertTrue(pending.customer_reward_processed)
        self.assertEqual(pending.reward_points_earned, 60)

        self.customer.refresh_from_db()
        self.assertEqual(self.customer.reward_points, 80)
        self.assertEqual(self.customer.reward_progress_amount, Decimal("20.00"))
        self.assertEqual(
            replay_reward_history(self.customer, load_reward_settings()).points,
            self.customer.reward_points,
        )
