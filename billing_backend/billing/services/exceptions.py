# billing/services/exceptions.py

"""
BILLING SERVICE ERRORS

Views map these onto HTTP:
- BillValidationError (incl. InvalidStatusTransitionError) -> 400
- BillNotFoundError / BillItemNotFoundError -> 404
- BranchAccessError -> 403
"""


class BillingError(Exception):
    """Base exception for billing engine failures."""


class BillValidationError(BillingError):
    """Raised when a bill request is malformed; nothing is persisted."""


class InvalidStatusTransitionError(BillValidationError):
    """Raised on a status regression or a move out of a terminal state."""


class BillNotFoundError(BillingError):
    pass


class BillItemNotFoundError(BillingError):
    pass


class BranchAccessError(BillingError):
    """Raised when the actor may not act on the bill's branch."""


class SequenceAllocationError(BillingError):
    """Raised when a unique invoice / KOT number could not be allocated."""
