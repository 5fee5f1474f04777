# offers/services/exceptions.py

"""
OFFERS SERVICE ERRORS
"""


class OfferSettingsError(Exception):
    """Base exception for reward/offer settings failures."""


class WriteConflictError(OfferSettingsError):
    """Raised when the settings document changed between read and write."""
