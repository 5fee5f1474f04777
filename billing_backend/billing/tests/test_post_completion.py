# billing/tests/test_post_completion.py

from decimal import Decimal
from unittest import mock

from django.db import OperationalError, connection
from django.db.models import F
from django.test import TestCase, override_settings

from billing.models import Bill
from billing.services.bill_service import create_bill
from billing.services.post_completion import process_completed_bill
from billing.tests.factories import make_branch, make_customer, make_product, save_reward_settings
from customers.models import Customer
from offers.models import SINGLETON_PK, CustomerRewardSettings
from offers.services import concurrency
from offers.services.settings_repository import load_reward_settings


class PostCompletionTestCase(TestCase):
    def setUp(self):
        self.branch = make_branch("Abc Cafe")
        self.burger = make_product("Burger", "120.00")
        self.fries = make_product("Fries", "60.00")
        self.tea = make_product("Tea", "30.00")

    def complete(self, items, **extra):
        """Create a completed bill without running the on-commit hook."""
        return create_bill(branch=self.branch, status="completed", items=items, **extra)

    def item(self, product, qty):
        return {"product_id": str(product.id), "quantity": qty}


class IdempotencyTests(PostCompletionTestCase):
    def setUp(self):
        super().setUp()
        save_reward_settings(spend_amount_per_step=Decimal("100"), points_per_step=10)

    def test_second_run_changes_nothing(self):
        bill = self.complete([self.item(self.burger, 2)], customer_phone="9000000001")

        first = process_completed_bill(bill.pk)
        second = process_completed_bill(bill.pk)

        self.assertTrue(first.reward_processed)
        self.assertEqual(first.reward_points_earned, 20)
        self.assertFalse(second.reward_processed)
        self.assertFalse(second.offer_counters_marked)

        customer = Customer.objects.get(phone="9000000001")
        self.assertEqual(customer.reward_points, 20)
        self.assertEqual(customer.reward_progress_amount, Decimal("40.00"))

    def test_open_bill_is_skipped(self):
        bill = create_bill(branch=self.branch, items=[self.item(self.burger, 1)])
        report = process_completed_bill(bill.pk)
        self.assertEqual(report.skipped, "not_completed")

    @override_settings(BILLING_POST_PROCESSING_ENABLED=False)
    def test_disabled_processing_leaves_flags(self):
        bill = self.complete([self.item(self.burger, 1)])
        report = process_completed_bill(bill.pk)

        self.assertEqual(report.skipped, "disabled")
        bill.refresh_from_db()
        self.assertFalse(bill.customer_reward_processed)

    def test_walk_in_bill_marks_reward_processed(self):
        bill = self.complete([self.item(self.burger, 1)])
        process_completed_bill(bill.pk)

        bill.refresh_from_db()
        self.assertTrue(bill.customer_reward_processed)
        self.assertTrue(bill.offer_counters_processed)
        self.assertEqual(bill.reward_points_earned, 0)


class OfferCounterTests(PostCompletionTestCase):
    def setUp(self):
        super().setUp()
        save_reward_settings(
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
            enable_product_price_offer=True,
            product_price_offers=[
                {"id": "p1", "product": str(self.tea.id), "discount_amount": 5},
            ],
            enable_total_percentage_offer=True,
            total_percentage_offer_percent=10,
        )

    def test_usage_is_merged_once(self):
        bill = self.complete(
            [self.item(self.burger, 4), self.item(self.tea, 3)],
            customer_phone="9000000001",
        )

        report = process_completed_bill(bill.pk)
        process_completed_bill(bill.pk)

        self.assertTrue(report.offer_counters_merged)
        customer = Customer.objects.get(phone="9000000001")
        settings = load_reward_settings()

        free_rule = settings.product_to_product_offers[0]
        self.assertEqual(free_rule.offer_given_count, 2)
        self.assertEqual(free_rule.offer_customers, (str(customer.pk),))
        self.assertEqual(free_rule.offer_customer_count, 1)

        price_rule = settings.product_price_offers[0]
        self.assertEqual(price_rule.offer_given_count, 3)

        self.assertEqual(settings.total_percentage_offer_given_count, 1)
        self.assertEqual(settings.total_percentage_offer_customers, (str(customer.pk),))

    def test_fractional_price_offer_quantity_counts_whole_units(self):
        bill = self.complete([self.item(self.tea, "0.5"), self.item(self.tea, "2.75")])

        process_completed_bill(bill.pk)

        self.assertEqual(load_reward_settings().product_price_offers[0].offer_given_count, 3)

    def test_repair_run_without_merge_leaves_active_bill_pending(self):
        bill = self.complete([self.item(self.burger, 4)])

        report = process_completed_bill(bill.pk, merge_counters=False)

        self.assertFalse(report.offer_counters_marked)
        bill.refresh_from_db()
        self.assertFalse(bill.offer_counters_processed)
        self.assertEqual(load_reward_settings().product_to_product_offers[0].offer_given_count, 0)


class RandomOfferRedemptionTests(PostCompletionTestCase):
    def setUp(self):
        super().setUp()
        self.customer = make_customer(
            phone="9000000009",
            random_offer_assigned=True,
            random_offer_product=self.fries,
            random_offer_campaign_code="campaign-1",
        )
        save_reward_settings(
            enable_random_customer_product_offer=True,
            random_customer_offer_products=[
                {
                    "id": "x1",
                    "product": str(self.fries.id),
                    "winner_count": 1,
                    "assigned_count": 1,
                    "selected_customers": [str(self.customer.pk)],
                }
            ],
            random_customer_offer_assigned_count=1,
        )

    def test_prize_is_redeemed_once(self):
        bill = self.complete([self.item(self.tea, 1)], customer_phone="9000000009")
        self.assertTrue(bill.items.filter(is_random_customer_offer_item=True).exists())

        first = process_completed_bill(bill.pk)
        second = process_completed_bill(bill.pk)

        self.assertTrue(first.random_offer_redeemed)
        self.assertFalse(second.random_offer_redeemed)

        self.customer.refresh_from_db()
        self.assertTrue(self.customer.random_offer_redeemed)

        settings = load_reward_settings()
        self.assertEqual(settings.random_customer_offer_redeemed_count, 1)
        self.assertEqual(settings.random_customer_offer_products[0].redeemed_count, 1)

    def test_prize_not_offered_after_redemption(self):
        bill = self.complete([self.item(self.tea, 1)], customer_phone="9000000009")
        process_completed_bill(bill.pk)

        again = create_bill(branch=self.branch, items=[self.item(self.tea, 1)], customer_phone="9000000009")
        self.assertFalse(again.items.filter(is_random_customer_offer_item=True).exists())
        self.assertEqual(Bill.objects.count(), 2)


@mock.patch("offers.services.concurrency.time.sleep")
class ContendedCounterMergeTests(PostCompletionTestCase):
    """
    GUARANTEES:
    - N completions against one rule end at initial + N, even when other
      writers land between each read and write
    - a database-level conflict on the settings row is retried inside the
      bill's counter transaction
    """

    def setUp(self):
        super().setUp()
        save_reward_settings(
            enable_product_price_offer=True,
            product_price_offers=[
                {"id": "p1", "product": str(self.tea.id), "discount_amount": 5, "offer_given_count": 5},
            ],
        )

    def _settings_table_update(self, sql):
        return sql.lstrip().upper().startswith("UPDATE") and "offers_customerrewardsettings" in sql

    def test_interleaved_writers_do_not_lose_counts(self, sleep):
        read_settings = concurrency.normalize_reward_settings
        reads = []

        def racing_read(raw):
            reads.append(raw)
            if len(reads) % 2 == 1:
                # a concurrent writer commits between our read and our write
                CustomerRewardSettings.objects.filter(pk=SINGLETON_PK).update(
                    total_percentage_offer_given_count=F("total_percentage_offer_given_count") + 1,
                    version=F("version") + 1,
                )
            return read_settings(raw)

        with mock.patch("offers.services.concurrency.normalize_reward_settings", side_effect=racing_read):
            for _ in range(3):
                with self.captureOnCommitCallbacks(execute=True):
                    self.complete([self.item(self.tea, 1)], customer_phone="9000000001")

        settings = load_reward_settings()
        self.assertEqual(settings.product_price_offers[0].offer_given_count, 8)
        self.assertEqual(settings.total_percentage_offer_given_count, 3)
        self.assertEqual(sleep.call_count, 3)
        self.assertFalse(Bill.objects.filter(offer_counters_processed=False).exists())

    def test_deadlock_on_settings_write_is_retried(self, sleep):
        bill = self.complete([self.item(self.tea, 3)])
        failures = []

        def deadlock_once(execute, sql, params, many, context):
            if self._settings_table_update(sql) and not failures:
                failures.append(sql)
                raise OperationalError("deadlock detected")
            return execute(sql, params, many, context)

        with connection.execute_wrapper(deadlock_once):
            report = process_completed_bill(bill.pk)

        self.assertEqual(len(failures), 1)
        self.assertEqual(report.errors, [])
        self.assertTrue(report.offer_counters_merged)
        self.assertEqual(load_reward_settings().product_price_offers[0].offer_given_count, 8)
        sleep.assert_called_once()

        bill.refresh_from_db()
        self.assertTrue(bill.offer_counters_processed)
