# billing/tests/test_item_lifecycle.py

from django.test import SimpleTestCase

from billing.services.exceptions import BillValidationError, InvalidStatusTransitionError
from billing.services.item_lifecycle import (
    can_transition_bill,
    can_transition_item,
    validate_bill_transition,
    validate_item_transition,
)


class ItemLifecycleTests(SimpleTestCase):
    def test_forward_moves_are_allowed(self):
        self.assertTrue(can_transition_item(from_status="ordered", to_status="prepared"))
        self.assertTrue(can_transition_item(from_status="prepared", to_status="delivered"))
        self.assertTrue(can_transition_item(from_status="ordered", to_status="delivered"))

    def test_regression_is_rejected(self):
        with self.assertRaises(InvalidStatusTransitionError):
            validate_item_transition(from_status="delivered", to_status="prepared", item_name="Tea")

    def test_cancel_is_allowed_from_any_live_state(self):
        for status in ("ordered", "prepared", "delivered"):
            validate_item_transition(from_status=status, to_status="cancelled")

    def test_cancelled_item_is_terminal(self):
        self.assertFalse(can_transition_item(from_status="cancelled", to_status="ordered"))
        self.assertTrue(can_transition_item(from_status="cancelled", to_status="cancelled"))

    def test_unknown_status_is_a_validation_error(self):
        with self.assertRaises(BillValidationError):
            validate_item_transition(from_status="ordered", to_status="eaten")


class BillLifecycleTests(SimpleTestCase):
    def test_bill_may_skip_straight_to_completed(self):
        validate_bill_transition(from_status="ordered", to_status="completed")

    def test_terminal_bills_do_not_move(self):
        self.assertFalse(can_transition_bill(from_status="completed", to_status="cancelled"))
        self.assertFalse(can_transition_bill(from_status="cancelled", to_status="ordered"))

    def test_bill_regression_is_rejected(self):
        with self.assertRaises(InvalidStatusTransitionError):
            validate_bill_transition(from_status="delivered", to_status="ordered")
