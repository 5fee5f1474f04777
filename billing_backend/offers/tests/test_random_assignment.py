# offers/tests/test_random_assignment.py

import random

from django.test import TestCase

from billing.tests.factories import make_customer, make_product, save_reward_settings
from customers.models import Customer
from offers.services.random_assignment import config_signature, draw_random_offer_winners
from offers.services.settings_repository import load_reward_settings


class RandomDrawTests(TestCase):
    """
    GUARANTEES:
    - each customer wins at most one prize per campaign
    - winners are capped by winner_count and by the customer pool
    - a disabled family clears every assignment but keeps its rows
    """

    def setUp(self):
        self.cake = make_product("Cake", "80.00")
        self.shake = make_product("Shake", "90.00")
        self.customers = [make_customer(phone=f"90000000{i:02d}") for i in range(5)]

    def _configure(self, *, enabled=True, rows=None, campaign="spring"):
        save_reward_settings(
            enable_random_customer_product_offer=enabled,
            random_customer_offer_campaign_code=campaign,
            random_customer_offer_products=rows
            if rows is not None
            else [
                {"id": "cake", "product": str(self.cake.id), "winner_count": 2},
                {"id": "shake", "product": str(self.shake.id), "winner_count": 1},
            ],
        )

    def test_winners_are_distinct_and_recorded(self):
        self._configure()

        result = draw_random_offer_winners(rng=random.Random(7))

        self.assertEqual(result.assigned_count, 3)
        winners = result.winners_by_rule["cake"] + result.winners_by_rule["shake"]
        self.assertEqual(len(set(winners)), 3)

        assigned = Customer.objects.filter(random_offer_assigned=True)
        self.assertEqual(assigned.count(), 3)
        self.assertTrue(all(c.random_offer_campaign_code == "spring" for c in assigned))
        self.assertEqual(
            Customer.objects.filter(random_offer_product=self.cake).count(),
            2,
        )

        settings = load_reward_settings()
        self.assertEqual(settings.random_customer_offer_assigned_count, 3)
        self.assertIsNotNone(settings.random_customer_offer_last_assigned_at)
        cake_row = settings.random_customer_offer_products[0]
        self.assertEqual(cake_row.assigned_count, 2)
        self.assertEqual(set(cake_row.selected_customers), set(result.winners_by_rule["cake"]))

    def test_pool_smaller_than_winner_count(self):
        self._configure(rows=[{"id": "cake", "product": str(self.cake.id), "winner_count": 50}])

        result = draw_random_offer_winners(rng=random.Random(1))

        self.assertEqual(result.assigned_count, 5)

    def test_redraw_replaces_previous_winners(self):
        self._configure()
        draw_random_offer_winners(rng=random.Random(1))
        Customer.objects.filter(random_offer_assigned=True).update(random_offer_redeemed=True)

        result = draw_random_offer_winners(rng=random.Random(2))

        self.assertEqual(result.cleared_count, 3)
        self.assertEqual(Customer.objects.filter(random_offer_assigned=True).count(), 3)
        self.assertFalse(Customer.objects.filter(random_offer_redeemed=True).exists())

    def test_disabled_family_clears_assignments_and_keeps_rows(self):
        self._configure()
        draw_random_offer_winners(rng=random.Random(1))

        self._configure(enabled=False)
        result = draw_random_offer_winners()

        self.assertEqual(result.assigned_count, 0)
        self.assertFalse(Customer.objects.filter(random_offer_assigned=True).exists())

        settings = load_reward_settings()
        self.assertEqual(len(settings.random_customer_offer_products), 2)
        self.assertEqual(settings.random_customer_offer_assigned_count, 0)
        self.assertTrue(all(row.selected_customers == () for row in settings.random_customer_offer_products))

    def test_rows_for_missing_products_are_ignored(self):
        self._configure(rows=[{"id": "ghost", "product": "00000000-0000-0000-0000-000000000000", "winner_count": 2}])

        result = draw_random_offer_winners()

        self.assertEqual(result.assigned_count, 0)
        self.assertEqual(result.winners_by_rule, {})


class ConfigSignatureTests(TestCase):
    def test_signature_tracks_draw_inputs(self):
        cake = make_product("Cake", "80.00")
        save_reward_settings(
            enable_random_customer_product_offer=True,
            random_customer_offer_products=[{"id": "cake", "product": str(cake.id), "winner_count": 2}],
        )
        before = config_signature(load_reward_settings())

        save_reward_settings(
            enable_random_customer_product_offer=True,
            random_customer_offer_products=[{"id": "cake", "product": str(cake.id), "winner_count": 3}],
        )
        self.assertNotEqual(config_signature(load_reward_settings()), before)
