"""Domain Exceptions"""
from typing import Optional

from domain.enums import VoucherFailure


class MarketplaceError(Exception):
    """Base class for booking marketplace errors"""


class ValidationError(MarketplaceError, ValueError):
    """Invalid or missing input; shown to the user inline"""


class VoucherError(ValidationError):
    """Voucher cannot be redeemed"""

    MESSAGES = {
        VoucherFailure.NOT_FOUND: "Voucher not found",
        VoucherFailure.INACTIVE: "Voucher is no longer active",
        VoucherFailure.EXPIRED: "Voucher has expired",
        VoucherFailure.EXHAUSTED: "Voucher has been fully redeemed",
        VoucherFailure.INVALID_FORMAT: "Voucher code must be 6 letters or digits",
    }

    def __init__(self, reason: VoucherFailure, code: Optional[str] = None):
        self.reason = reason
        self.code = code
        super().__init__(self.MESSAGES[reason])


class EnvelopeVersionError(ValidationError):
    """Payment metadata was written by an incompatible build"""


class AvailabilityConflictError(MarketplaceError):
    """Selected slot is no longer free"""


class ProviderError(MarketplaceError):
    """Payment provider call failed"""


class ProviderRejectedError(ProviderError):
    """Payment provider answered without a session token"""


class PersistenceError(MarketplaceError):
    """A write to the booking store failed"""


class DuplicateRecordError(PersistenceError):
    """Unique key already present"""

    def __init__(self, table: str, key: str):
        self.table = table
        self.key = key
        super().__init__(f"Duplicate {table} record for key {key}")


class NotificationError(MarketplaceError):
    """Notification could not be delivered"""


class InvalidSignatureError(MarketplaceError):
    """Provider notification signature does not match"""


class PaymentVerificationError(MarketplaceError):
    """Callback does not match an order this service opened"""
