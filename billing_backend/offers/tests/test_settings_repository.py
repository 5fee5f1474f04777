# offers/tests/test_settings_repository.py

import uuid
from decimal import Decimal

from django.test import SimpleTestCase, TestCase

from billing.tests.factories import save_reward_settings
from offers.services.settings_repository import (
    DEFAULT_REWARD_SETTINGS,
    ProductPriceOfferRule,
    is_rule_usable,
    load_reward_settings,
    normalize_reward_settings,
    relation_id,
    settings_to_document,
    with_usage,
)


class RelationIdTests(SimpleTestCase):
    def test_unwraps_populated_relations(self):
        pid = uuid.uuid4()
        self.assertEqual(relation_id({"id": str(pid), "name": "Tea"}), str(pid))
        self.assertEqual(relation_id({"value": pid}), str(pid))
        self.assertEqual(relation_id(pid), str(pid))

    def test_uuid_strings_are_canonicalized(self):
        pid = uuid.uuid4()
        self.assertEqual(relation_id(str(pid).upper()), str(pid))

    def test_garbage_is_none(self):
        self.assertIsNone(relation_id(None))
        self.assertIsNone(relation_id(""))
        self.assertIsNone(relation_id(True))
        self.assertIsNone(relation_id(1.5))


class NormalizationTests(SimpleTestCase):
    """
    GUARANTEES:
    - any input yields a usable RewardSettings
    - invalid numbers fall back to defaults, counters to 0
    - rule rows without products are dropped
    """

    def test_empty_input_gives_defaults(self):
        self.assertEqual(normalize_reward_settings(None), DEFAULT_REWARD_SETTINGS)
        self.assertEqual(normalize_reward_settings({}), DEFAULT_REWARD_SETTINGS)

    def test_invalid_scalars_fall_back(self):
        settings = normalize_reward_settings(
            {
                "spend_amount_per_step": "-5",
                "points_per_step": "abc",
                "offer_amount": 0,
                "enabled": "yes",
                "random_customer_offer_campaign_code": "   ",
            }
        )
        self.assertEqual(settings.spend_amount_per_step, DEFAULT_REWARD_SETTINGS.spend_amount_per_step)
        self.assertEqual(settings.points_per_step, DEFAULT_REWARD_SETTINGS.points_per_step)
        self.assertEqual(settings.offer_amount, DEFAULT_REWARD_SETTINGS.offer_amount)
        self.assertTrue(settings.enabled)
        self.assertEqual(settings.random_customer_offer_campaign_code, "campaign-1")

    def test_rule_rows_are_normalized(self):
        buy, free = uuid.uuid4(), uuid.uuid4()
        settings = normalize_reward_settings(
            {
                "product_to_product_offers": [
                    {"buy_product": {"id": str(buy)}, "free_product": str(free), "buy_quantity": "0"},
                    {"buy_product": str(buy)},
                    "not a row",
                ]
            }
        )

        self.assertEqual(len(settings.product_to_product_offers), 1)
        rule = settings.product_to_product_offers[0]
        self.assertEqual(rule.id, "rule-1")
        self.assertEqual(rule.buy_quantity, Decimal("1"))
        self.assertEqual(rule.rule_key, f"rule-1:{buy}:{free}")

    def test_document_round_trip_is_json_safe(self):
        rule = ProductPriceOfferRule(id="p1", product="x", discount_amount=Decimal("2.50"))
        settings = normalize_reward_settings({"product_price_offers": [{"id": "p1", "product": "x", "discount_amount": "2.5"}]})

        doc = settings_to_document(settings)
        self.assertEqual(doc["product_price_offers"][0]["discount_amount"], "2.5")
        self.assertEqual(normalize_reward_settings(doc).product_price_offers[0], rule)


class UsageGateTests(SimpleTestCase):
    def _usable(self, **kwargs):
        base = dict(
            max_offer_count=0,
            offer_given_count=0,
            max_customer_count=0,
            offer_customer_count=0,
            offer_customers=(),
            customer_id="c1",
        )
        base.update(kwargs)
        return is_rule_usable(**base)

    def test_zero_limits_are_unlimited(self):
        self.assertTrue(self._usable(offer_given_count=10_000))

    def test_offer_cap(self):
        self.assertFalse(self._usable(max_offer_count=3, offer_given_count=3))

    def test_customer_cap_lets_known_customers_continue(self):
        self.assertTrue(
            self._usable(max_customer_count=1, offer_customer_count=1, offer_customers=("c1",))
        )
        self.assertFalse(
            self._usable(max_customer_count=1, offer_customer_count=1, offer_customers=("c2",))
        )

    def test_customer_cap_rejects_walk_in(self):
        self.assertFalse(self._usable(max_customer_count=5, customer_id=None))

    def test_with_usage_counts_new_customers_once(self):
        rule = ProductPriceOfferRule(id="p1", product="x")
        rule = with_usage(rule, increment=2, customer_id="c1")
        rule = with_usage(rule, increment=1, customer_id="c1")

        self.assertEqual(rule.offer_given_count, 3)
        self.assertEqual(rule.offer_customer_count, 1)
        self.assertEqual(rule.offer_customers, ("c1",))


class LoadSettingsTests(TestCase):
    def test_missing_row_gives_defaults(self):
        self.assertEqual(load_reward_settings(), DEFAULT_REWARD_SETTINGS)

    def test_stored_row_is_normalized(self):
        save_reward_settings(points_needed_for_offer=80, product_price_offers=[{"product": ""}])

        settings = load_reward_settings()
        self.assertEqual(settings.points_needed_for_offer, 80)
        self.assertEqual(settings.product_price_offers, ())
