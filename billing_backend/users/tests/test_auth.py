# users/tests/test_auth.py

from django.core.exceptions import ValidationError
from django.test import TestCase
from rest_framework.test import APIClient

from billing.tests.factories import make_branch, make_user


class AuthFlowTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.branch = make_branch("Abc Cafe")
        self.waiter = make_user("waiter@example.com", "waiter", branch=self.branch, password="s3cret-pass")

    def test_jwt_login_and_me(self):
        res = self.client.post(
            "/api/auth/jwt/create/",
            {"email": "waiter@example.com", "password": "s3cret-pass"},
            format="json",
        )
        self.assertEqual(res.status_code, 200)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {res.data['access']}")
        me = self.client.get("/api/auth/me/")

        self.assertEqual(me.status_code, 200)
        self.assertEqual(me.data["role"], "waiter")
        self.assertEqual(me.data["branch_id"], self.branch.id)
        self.assertIn("bills.create", me.data["capabilities"])
        self.assertNotIn("offers.manage", me.data["capabilities"])

    def test_branch_roles_require_a_branch(self):
        with self.assertRaises(ValidationError):
            make_user("lost@example.com", "waiter")

    def test_company_is_derived_from_branch(self):
        self.assertEqual(self.waiter.company_id, self.branch.company_id)
