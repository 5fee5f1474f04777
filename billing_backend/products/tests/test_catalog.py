# products/tests/test_catalog.py

import uuid

from django.test import TestCase

from billing.tests.factories import make_product
from products.services import load_catalog


class CatalogLookupTests(TestCase):
    def setUp(self):
        self.cake = make_product("Cake", "80.00")
        self.tea = make_product("Tea", "20.00")

    def test_loads_known_ids_keyed_by_string(self):
        catalog = load_catalog([self.cake.id, str(self.tea.id)])

        self.assertEqual(set(catalog), {str(self.cake.id), str(self.tea.id)})
        self.assertEqual(catalog[str(self.cake.id)].name, "Cake")

    def test_malformed_and_unknown_ids_are_ignored(self):
        catalog = load_catalog(["not-a-uuid", "", None, str(uuid.uuid4()), str(self.cake.id)])
        self.assertEqual(list(catalog), [str(self.cake.id)])

    def test_empty_input_skips_query(self):
        with self.assertNumQueries(0):
            self.assertEqual(load_catalog([]), {})
