"""
PATH: billing/models/__init__.py

Billing models export surface.
"""

from .bill import Bill
from .bill_item import BillItem

__all__ = [
    "Bill",
    "BillItem",
]
