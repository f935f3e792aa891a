"""
Exception types shared by the pricing jobs and the API.

Unparseable prices and missing FX rates are not errors: they surface as None.
"""

from typing import Optional


class PricingError(Exception):
    """Base class for errors raised by tcg_pricing."""


class ConfigurationError(PricingError):
    """Required configuration is missing. Raised before any work starts."""


class SnapshotError(PricingError):
    """A snapshot run failed and its transaction was rolled back."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table
