"""Domain Value Objects"""
import re
from pydantic import BaseModel, Field, validator
from pydantic import ValidationError as SchemaError
from datetime import date
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from domain.exceptions import EnvelopeVersionError, ValidationError as DomainValidationError

_TIME_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")


def parse_hour(value: str) -> int:
    """Parse an ``HH:MM`` wall-clock string into its whole hour (0-24)"""
    match = _TIME_PATTERN.match(value or "")
    if not match:
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if minute != 0:
        raise ValueError("Booking ranges must start and end on the hour")
    if hour > 24 or (hour == 24 and minute != 0):
        raise ValueError(f"Invalid time '{value}'")
    return hour


class TimeRange(BaseModel):
    """Value Object for one contiguous block of booked hours"""
    start: str
    end: str

    @validator('start', 'end')
    def on_the_hour(cls, v):
        parse_hour(v)
        return v

    @validator('end')
    def end_after_start(cls, v, values):
        if 'start' in values and parse_hour(v) <= parse_hour(values['start']):
            raise ValueError('End time must be after start time')
        return v

    @property
    def start_hour(self) -> int:
        return parse_hour(self.start)

    @property
    def end_hour(self) -> int:
        return parse_hour(self.end)

    def hours(self) -> int:
        """Duration in whole hours"""
        return self.end_hour - self.start_hour

    class Config:
        frozen = True


class DaySelection(BaseModel):
    """Value Object for the ranges picked on one calendar day"""
    date: date
    time_ranges: List[TimeRange] = []

    def hours(self) -> int:
        return sum(r.hours() for r in self.time_ranges)

    class Config:
        frozen = True


class PriceBreakdown(BaseModel):
    """Value Object for a computed price; shared by quote display and payment"""
    total_hours: int = 0
    adjusted_price: Decimal = Decimal(0)
    subtotal: Decimal = Decimal(0)
    tax: Decimal = Decimal(0)
    total: int = 0

    class Config:
        frozen = True


class SubAccount(BaseModel):
    """Platform login info the client hands to the streamer"""
    link: Optional[str] = None
    password: Optional[str] = None

    class Config:
        frozen = True


class VoucherReference(BaseModel):
    """Voucher applied to a payment, carried inside the metadata envelope"""
    id: UUID
    code: str
    discount_amount: int = Field(ge=0)

    class Config:
        frozen = True


class BookingSummary(BaseModel):
    """Minimal booking info returned after reconciliation"""
    id: UUID
    client_id: str
    client_first_name: str
    client_last_name: str


ENVELOPE_SCHEMA_VERSION = 1


class PaymentMetadataEnvelope(BaseModel):
    """
    Everything needed to rebuild bookings once the provider confirms payment.

    Sent out with the payment request and handed back on the success
    callback, so it must survive a JSON round trip unchanged.
    """
    schema_version: int = ENVELOPE_SCHEMA_VERSION
    streamer_id: int
    user_id: str
    first_name: str
    last_name: str = ""
    bookings: List[DaySelection]
    timezone: str = "UTC"
    platform: str
    special_request: Optional[str] = None
    sub_account: SubAccount = SubAccount()
    price: int = Field(ge=0)
    hours: int = Field(ge=0)
    total: int = Field(ge=0)
    final_price: int = Field(ge=0)
    voucher: Optional[VoucherReference] = None

    class Config:
        frozen = True

    @classmethod
    def from_payload(cls, payload: dict) -> "PaymentMetadataEnvelope":
        """Parse a payload, rejecting versions this build cannot read"""
        version = payload.get("schema_version", ENVELOPE_SCHEMA_VERSION)
        if not isinstance(version, int) or version < 1 or version > ENVELOPE_SCHEMA_VERSION:
            raise EnvelopeVersionError(
                f"Unsupported payment metadata version {version!r}; "
                f"this build reads up to version {ENVELOPE_SCHEMA_VERSION}"
            )
        try:
            return cls.model_validate(payload)
        except SchemaError as e:
            raise DomainValidationError(f"Invalid payment metadata: {e}")

    def range_count(self) -> int:
        return sum(len(day.time_ranges) for day in self.bookings)
