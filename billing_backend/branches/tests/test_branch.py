# branches/tests/test_branch.py

from django.db import IntegrityError, transaction
from django.test import TestCase, override_settings

from billing.tests.factories import make_branch


@override_settings(TIME_ZONE="UTC")
class BranchTests(TestCase):
    def test_zoneinfo_uses_branch_timezone(self):
        branch = make_branch("Abc Cafe", timezone="Asia/Kolkata")
        self.assertEqual(branch.get_zoneinfo().key, "Asia/Kolkata")

    def test_zoneinfo_falls_back_to_server_timezone(self):
        self.assertEqual(make_branch("Abc Cafe").get_zoneinfo().key, "UTC")
        self.assertEqual(make_branch("Xyz Diner", timezone="Not/AZone").get_zoneinfo().key, "UTC")

    def test_code_unique_only_when_present(self):
        make_branch("Abc Cafe", code="")
        make_branch("Abc Annex", code="")
        make_branch("Abc Main", code="ABC1")

        with self.assertRaises(IntegrityError), transaction.atomic():
            make_branch("Abc Other", code="ABC1")

    def test_str_includes_code(self):
        self.assertEqual(str(make_branch("Abc Cafe", code="ABC1")), "Abc Cafe (ABC1)")
