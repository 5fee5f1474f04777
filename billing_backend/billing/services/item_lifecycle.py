"""
BILL / ITEM LIFECYCLE DOMAIN RULES

The ONLY allowed status transitions for bills and bill items.

DESIGN PRINCIPLES:
- No database writes
- No side effects
- Same-status writes are no-ops, never errors
"""

from billing.models import Bill, BillItem
from billing.services.exceptions import BillValidationError, InvalidStatusTransitionError

# ============================================================
# BILL STATES
# ============================================================

BILL_STATUSES = {choice for choice, _ in Bill.STATUS_CHOICES}

BILL_TERMINAL_STATES = {
    Bill.STATUS_COMPLETED,
    Bill.STATUS_CANCELLED,
}

BILL_ALLOWED_TRANSITIONS = {
    Bill.STATUS_ORDERED: {
        Bill.STATUS_PREPARED,
        Bill.STATUS_DELIVERED,
        Bill.STATUS_COMPLETED,
        Bill.STATUS_CANCELLED,
    },
    Bill.STATUS_PREPARED: {
        Bill.STATUS_DELIVERED,
        Bill.STATUS_COMPLETED,
        Bill.STATUS_CANCELLED,
    },
    Bill.STATUS_DELIVERED: {
        Bill.STATUS_COMPLETED,
        Bill.STATUS_CANCELLED,
    },
}


# ============================================================
# ITEM STATES
# ============================================================

ITEM_STATUSES = {choice for choice, _ in BillItem.STATUS_CHOICES}

ITEM_RANK = {
    BillItem.STATUS_ORDERED: 0,
    BillItem.STATUS_PREPARED: 1,
    BillItem.STATUS_DELIVERED: 2,
}


# ============================================================
# DOMAIN RULES
# ============================================================


def can_transition_bill(*, from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True

    if from_status in BILL_TERMINAL_STATES:
        return False

    return to_status in BILL_ALLOWED_TRANSITIONS.get(from_status, set())


def validate_bill_transition(*, from_status: str, to_status: str):
    if to_status not in BILL_STATUSES:
        raise BillValidationError(f"Unknown bill status '{to_status}'")

    if not can_transition_bill(from_status=from_status, to_status=to_status):
        raise InvalidStatusTransitionError(
            f"Bill cannot move from '{from_status}' to '{to_status}'"
        )


def can_transition_item(*, from_status: str, to_status: str) -> bool:
    if from_status == to_status:
        return True

    if from_status == BillItem.STATUS_CANCELLED:
        return False

    if to_status == BillItem.STATUS_CANCELLED:
        return True

    return ITEM_RANK[to_status] > ITEM_RANK[from_status]


def validate_item_transition(*, from_status: str, to_status: str, item_name: str = ""):
    if to_status not in ITEM_STATUSES:
        raise BillValidationError(f"Unknown item status '{to_status}'")

    if not can_transition_item(from_status=from_status, to_status=to_status):
        label = f" for '{item_name}'" if item_name else ""
        raise InvalidStatusTransitionError(
            f"Item status cannot move from '{from_status}' to '{to_status}'{label}"
        )
