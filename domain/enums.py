"""Domain Enums"""
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    LIVE = "live"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Statuses that hold a slot on the streamer's calendar
BLOCKING_STATUSES = (BookingStatus.PENDING, BookingStatus.ACCEPTED)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    CAPTURE = "capture"
    SETTLEMENT = "settlement"
    DENY = "deny"
    CANCEL = "cancel"
    EXPIRE = "expire"
    FAILURE = "failure"
    REFUND = "refund"


# Statuses the provider reports for money actually taken
CONFIRMED_PAYMENT_STATUSES = (PaymentStatus.SUCCESS, PaymentStatus.CAPTURE, PaymentStatus.SETTLEMENT)


class NotificationType(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CONFIRMATION = "confirmation"
    BOOKING_REQUEST = "booking_request"
    BOOKING_PAYMENT = "booking_payment"
    BOOKING_ACCEPTED = "booking_accepted"
    BOOKING_REJECTED = "booking_rejected"
    BOOKING_CANCELLED = "booking_cancelled"


class VoucherFailure(str, Enum):
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    EXHAUSTED = "exhausted"
    INVALID_FORMAT = "invalid_format"
