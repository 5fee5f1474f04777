# billing/tests/test_offer_resolution.py

from decimal import Decimal

from django.test import TestCase

from billing.services.line_items import LineItem
from billing.services.offer_resolution import RANDOM_OFFER_NOTE, resolve_offers
from billing.tests.factories import make_customer, make_product, settings_with
from offers.services.settings_repository import (
    ProductPriceOfferRule,
    ProductToProductOfferRule,
    RandomCustomerOfferProductRule,
)


def manual(product, qty, *, status="ordered", price=None):
    return LineItem(
        product_id=str(product.id),
        name=product.name,
        quantity=Decimal(str(qty)),
        unit_price=Decimal(price or product.price),
        status=status,
    )


class FreeItemResolutionTests(TestCase):
    """
    GUARANTEES:
    - one generated line per triggered rule
    - quantity follows floor(purchased / buy_quantity) * free_quantity
    - generated lines are priced at zero
    """

    def setUp(self):
        self.burger = make_product("Burger", "120.00")
        self.fries = make_product("Fries", "60.00")
        self.rule = ProductToProductOfferRule(
            id="r1",
            buy_product=str(self.burger.id),
            free_product=str(self.fries.id),
            buy_quantity=Decimal("2"),
            free_quantity=Decimal("1"),
        )
        self.settings = settings_with(
            enable_product_to_product_offer=True,
            product_to_product_offers=(self.rule,),
        )

    def _free_lines(self, lines):
        return [line for line in lines if line.is_offer_free_item]

    def test_four_units_give_two_free(self):
        lines = resolve_offers([manual(self.burger, 4)], bill_status="ordered", settings=self.settings)

        free = self._free_lines(lines)
        self.assertEqual(len(free), 1)
        self.assertEqual(free[0].quantity, Decimal("2"))
        self.assertEqual(free[0].product_id, str(self.fries.id))
        self.assertEqual(free[0].offer_rule_key, self.rule.rule_key)
        self.assertEqual(free[0].effective_unit_price, Decimal("0.00"))
        self.assertEqual(free[0].compute_subtotal(), Decimal("0.00"))
        self.assertEqual(free[0].notes, "Free: buy 2 Burger, get 1 Fries")

    def test_reducing_purchase_recomputes_free_quantity(self):
        first = resolve_offers([manual(self.burger, 4)], bill_status="ordered", settings=self.settings)
        first[0].quantity = Decimal("3")
        first[1].item_id = "existing-row"

        second = resolve_offers(first, bill_status="ordered", settings=self.settings)

        free = self._free_lines(second)
        self.assertEqual(len(free), 1)
        self.assertEqual(free[0].quantity, Decimal("1"))
        self.assertEqual(free[0].item_id, "existing-row")

    def test_below_threshold_removes_free_line(self):
        first = resolve_offers([manual(self.burger, 2)], bill_status="ordered", settings=self.settings)
        first[0].quantity = Decimal("1")

        second = resolve_offers(first, bill_status="ordered", settings=self.settings)
        self.assertEqual(self._free_lines(second), [])

    def test_cancelled_lines_do_not_count(self):
        lines = [manual(self.burger, 2), manual(self.burger, 2, status="cancelled")]
        result = resolve_offers(lines, bill_status="ordered", settings=self.settings)
        self.assertEqual(self._free_lines(result)[0].quantity, Decimal("1"))

    def test_exhausted_rule_is_skipped(self):
        settings = settings_with(
            enable_product_to_product_offer=True,
            product_to_product_offers=(
                ProductToProductOfferRule(
                    id="r1",
                    buy_product=str(self.burger.id),
                    free_product=str(self.fries.id),
                    buy_quantity=Decimal("2"),
                    max_offer_count=3,
                    offer_given_count=3,
                ),
            ),
        )
        lines = resolve_offers([manual(self.burger, 4)], bill_status="ordered", settings=settings)
        self.assertEqual(self._free_lines(lines), [])

    def test_cancelled_bill_keeps_lines_as_they_were(self):
        first = resolve_offers([manual(self.burger, 4)], bill_status="ordered", settings=self.settings)
        first[0].quantity = Decimal("1")

        lines = resolve_offers(first, bill_status="cancelled", settings=self.settings)
        self.assertEqual(self._free_lines(lines)[0].quantity, Decimal("2"))


class PriceOfferResolutionTests(TestCase):
    def setUp(self):
        self.tea = make_product("Tea", "30.00")
        self.settings = settings_with(
            enable_product_price_offer=True,
            product_price_offers=(
                ProductPriceOfferRule(id="p1", product=str(self.tea.id), discount_amount=Decimal("5")),
            ),
        )

    def test_discount_applies_per_unit(self):
        lines = resolve_offers([manual(self.tea, 3)], bill_status="ordered", settings=self.settings)

        line = lines[0]
        self.assertTrue(line.is_price_offer_applied)
        self.assertEqual(line.effective_unit_price, Decimal("25.00"))
        self.assertEqual(line.price_offer_discount, Decimal("5.00"))
        self.assertEqual(line.compute_subtotal(), Decimal("75.00"))

    def test_discount_never_goes_below_zero(self):
        lines = resolve_offers(
            [manual(self.tea, 1, price="3.00")],
            bill_status="ordered",
            settings=self.settings,
        )
        self.assertEqual(lines[0].effective_unit_price, Decimal("0.00"))
        self.assertEqual(lines[0].price_offer_discount, Decimal("3.00"))

    def test_price_offers_still_apply_on_cancelled_bill(self):
        lines = resolve_offers([manual(self.tea, 1)], bill_status="cancelled", settings=self.settings)
        self.assertTrue(lines[0].is_price_offer_applied)

    def test_customer_capped_rule_skips_walk_in(self):
        settings = settings_with(
            enable_product_price_offer=True,
            product_price_offers=(
                ProductPriceOfferRule(
                    id="p1",
                    product=str(self.tea.id),
                    discount_amount=Decimal("5"),
                    max_customer_count=1,
                ),
            ),
        )
        lines = resolve_offers([manual(self.tea, 1)], bill_status="ordered", settings=settings)
        self.assertFalse(lines[0].is_price_offer_applied)
        self.assertEqual(lines[0].effective_unit_price, Decimal("30.00"))


class RandomOfferResolutionTests(TestCase):
    def setUp(self):
        self.cake = make_product("Cake", "80.00")
        self.tea = make_product("Tea", "30.00")
        self.customer = make_customer(
            random_offer_assigned=True,
            random_offer_product=self.cake,
            random_offer_campaign_code="campaign-1",
        )
        self.settings = settings_with(
            enable_random_customer_product_offer=True,
            random_customer_offer_products=(
                RandomCustomerOfferProductRule(id="x1", product=str(self.cake.id)),
            ),
        )

    def test_pending_prize_adds_one_free_line(self):
        lines = resolve_offers(
            [manual(self.tea, 1)],
            bill_status="ordered",
            settings=self.settings,
            customer=self.customer,
        )

        prize = [line for line in lines if line.is_random_customer_offer_item]
        self.assertEqual(len(prize), 1)
        self.assertEqual(prize[0].quantity, Decimal("1"))
        self.assertEqual(prize[0].notes, RANDOM_OFFER_NOTE)
        self.assertEqual(prize[0].random_offer_campaign_code, "campaign-1")
        self.assertEqual(prize[0].effective_unit_price, Decimal("0.00"))

    def test_redeemed_prize_is_not_added(self):
        self.customer.random_offer_redeemed = True
        lines = resolve_offers(
            [manual(self.tea, 1)],
            bill_status="ordered",
            settings=self.settings,
            customer=self.customer,
        )
        self.assertFalse(any(line.is_random_customer_offer_item for line in lines))

    def test_rotated_campaign_is_not_honoured(self):
        settings = settings_with(
            enable_random_customer_product_offer=True,
            random_customer_offer_campaign_code="campaign-2",
            random_customer_offer_products=self.settings.random_customer_offer_products,
        )
        lines = resolve_offers([manual(self.tea, 1)], bill_status="ordered", settings=settings, customer=self.customer)
        self.assertFalse(any(line.is_random_customer_offer_item for line in lines))
