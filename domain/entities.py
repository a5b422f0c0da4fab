"""Domain Entities - Aggregates"""
import secrets
import string
from pydantic import BaseModel, Field, validator
from uuid import UUID, uuid4
from datetime import datetime, date, timezone
from typing import Optional, List, Dict, Any

from domain.enums import BookingStatus, PaymentStatus, NotificationType, VoucherFailure, BLOCKING_STATUSES
from domain.exceptions import ValidationError, VoucherError
from domain.pricing import calculate_price_breakdown
from domain.value_objects import (
    DaySelection, TimeRange, PriceBreakdown, SubAccount, VoucherReference, PaymentMetadataEnvelope, parse_hour
)

VOUCHER_CODE_LENGTH = 6


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def js_weekday(day: date) -> int:
    """Day of week with Sunday=0 ... Saturday=6, as stored in schedules"""
    return (day.weekday() + 1) % 7


class Streamer(BaseModel):
    """Host offering live-streaming sessions"""
    id: int
    user_id: str
    first_name: str
    last_name: str
    price: int = Field(ge=0)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class ScheduleSlot(BaseModel):
    """Recurring weekly availability window"""
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    is_available: bool = True

    @validator('end_time')
    def end_after_start(cls, v, values):
        if 'start_time' in values and parse_hour(v) <= parse_hour(values['start_time']):
            raise ValueError('Slot end time must be after start time')
        return v

    class Config:
        from_attributes = True


class ActiveSchedule(BaseModel):
    """Compiled weekly schedule: day of week -> list of {start, end} pairs"""
    streamer_id: int
    days: Dict[int, List[TimeRange]] = {}
    compiled_at: datetime = Field(default_factory=_utcnow)

    @staticmethod
    def compile(streamer_id: int, slots: List[ScheduleSlot]) -> "ActiveSchedule":
        """Build the lookup structure from the editable slot rows"""
        days: Dict[int, List[TimeRange]] = {}
        for slot in sorted(slots, key=lambda s: (s.day_of_week, parse_hour(s.start_time))):
            if not slot.is_available:
                continue
            days.setdefault(slot.day_of_week, []).append(
                TimeRange(start=slot.start_time, end=slot.end_time)
            )
        return ActiveSchedule(streamer_id=streamer_id, days=days)

    def slots_for(self, day: date) -> List[TimeRange]:
        return self.days.get(js_weekday(day), [])

    def covers(self, day: date, hour: int) -> bool:
        """Overlapping slots count as their union"""
        return any(r.start_hour <= hour < r.end_hour for r in self.slots_for(day))

    def hours_for(self, day: date) -> List[int]:
        hours = set()
        for r in self.slots_for(day):
            hours.update(range(r.start_hour, r.end_hour))
        return sorted(hours)


class DayOff(BaseModel):
    """Calendar date on which the streamer takes no bookings"""
    streamer_id: int
    day: date

    @property
    def key(self) -> str:
        return self.day.strftime("%Y-%m-%d")


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    id: UUID = Field(default_factory=uuid4)

    # References to other contexts
    streamer_id: int
    client_id: str
    client_first_name: str = ""
    client_last_name: str = ""

    # Schedule (UTC instants)
    start_time: datetime
    end_time: datetime
    timezone: str = "UTC"

    platform: str
    price: int = Field(ge=0)
    status: BookingStatus = BookingStatus.PENDING
    special_request: Optional[str] = None
    sub_acc_link: Optional[str] = None
    sub_acc_pass: Optional[str] = None
    payment_group_id: Optional[UUID] = None

    # Metadata
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True

    def holds_slot(self) -> bool:
        return self.status in BLOCKING_STATUSES

    def overlaps(self, other: "Booking") -> bool:
        return self.start_time < other.end_time and other.start_time < self.end_time

    def assign_payment_group(self, payment_id: UUID) -> None:
        self.payment_group_id = payment_id
        self.updated_at = _utcnow()


class Voucher(BaseModel):
    """Voucher Aggregate Root Entity"""
    id: UUID = Field(default_factory=uuid4)
    code: str
    description: str = ""
    discount_amount: int = Field(ge=0)
    total_quantity: int = Field(ge=0)
    remaining_quantity: int = Field(ge=0)
    is_active: bool = True
    expires_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        discount_amount: int,
        total_quantity: int,
        expires_at: datetime,
        description: str = "",
        code: Optional[str] = None
    ) -> "Voucher":
        """Create new voucher, generating a code when none is given"""
        code = Voucher.normalize_code(code) if code else Voucher._generate_code()
        if not Voucher.is_valid_code(code):
            raise VoucherError(VoucherFailure.INVALID_FORMAT, code)
        if discount_amount <= 0:
            raise ValidationError("Discount amount must be greater than 0")
        return Voucher(
            code=code,
            description=description,
            discount_amount=discount_amount,
            total_quantity=total_quantity,
            remaining_quantity=total_quantity,
            expires_at=expires_at
        )

    # ==================== QUERY METHODS ====================
    @staticmethod
    def normalize_code(code: str) -> str:
        return (code or "").strip().upper()

    @staticmethod
    def is_valid_code(code: str) -> bool:
        return len(code) == VOUCHER_CODE_LENGTH and code.isalnum() and code.isascii()

    def redeemability(self, now: Optional[datetime] = None) -> Optional[VoucherFailure]:
        """Reason the voucher cannot be redeemed, or None"""
        now = now or _utcnow()
        if not self.is_active:
            return VoucherFailure.INACTIVE
        if self.expires_at < now:
            return VoucherFailure.EXPIRED
        if self.remaining_quantity <= 0:
            return VoucherFailure.EXHAUSTED
        return None

    def discount_for(self, total: int) -> int:
        """Flat discount clamped to the total"""
        return max(0, min(self.discount_amount, total))

    def to_reference(self, total: int) -> VoucherReference:
        return VoucherReference(id=self.id, code=self.code, discount_amount=self.discount_for(total))

    @staticmethod
    def _generate_code() -> str:
        alphabet = string.ascii_uppercase + string.digits
        return ''.join(secrets.choice(alphabet) for _ in range(VOUCHER_CODE_LENGTH))


class VoucherUsage(BaseModel):
    """One redemption of a voucher; immutable once written"""
    id: UUID = Field(default_factory=uuid4)
    voucher_id: UUID
    booking_id: UUID
    user_id: str
    discount_applied: int
    original_price: int
    final_price: int
    used_at: datetime = Field(default_factory=_utcnow)

    class Config:
        frozen = True


class PaymentOrder(BaseModel):
    """Provider session opened for an envelope, waiting for its success callback"""
    order_id: str
    user_id: str
    amount: int
    metadata: PaymentMetadataEnvelope
    payment_token: Optional[str] = None
    payment_url: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)

    class Config:
        frozen = True

    def matches(self, envelope: PaymentMetadataEnvelope) -> bool:
        return envelope.model_dump(mode="json") == self.metadata.model_dump(mode="json")


class PaymentRecord(BaseModel):
    """One row per provider transaction"""
    id: UUID = Field(default_factory=uuid4)
    booking_id: UUID
    amount: int
    status: PaymentStatus = PaymentStatus.SUCCESS
    payment_method: str = "midtrans"
    transaction_id: str
    payment_token: Optional[str] = None
    payment_url: Optional[str] = None
    midtrans_response: Dict[str, Any] = {}
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    class Config:
        from_attributes = True

    def update_status(self, status: PaymentStatus, response: Dict[str, Any]) -> "PaymentStatusHistory":
        """Record a provider status change and return its history row"""
        history = PaymentStatusHistory(
            payment_id=self.id,
            old_status=self.status,
            new_status=status,
            midtrans_notification=response
        )
        self.status = status
        self.midtrans_response = response
        self.updated_at = _utcnow()
        return history


class PaymentStatusHistory(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    payment_id: UUID
    old_status: Optional[PaymentStatus] = None
    new_status: PaymentStatus
    midtrans_notification: Dict[str, Any] = {}
    created_at: datetime = Field(default_factory=_utcnow)


class Notification(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    user_id: str
    streamer_id: Optional[int] = None
    booking_id: Optional[UUID] = None
    message: str
    type: NotificationType = NotificationType.CONFIRMATION
    is_read: bool = False
    created_at: datetime = Field(default_factory=_utcnow)


class BookingDraft(BaseModel):
    """Client-side booking flow state, committed only through payment"""
    streamer_id: int
    hourly_price: int = Field(ge=0)
    platform: str = ""
    selections: List[DaySelection] = []
    voucher_code: Optional[str] = None
    special_request: Optional[str] = None
    sub_account: SubAccount = SubAccount()
    timezone: str = "UTC"

    # ==================== MODIFICATION METHODS ====================
    def add_range(self, day: date, time_range: TimeRange) -> "BookingDraft":
        """Return a new draft with the range added to its day"""
        selections = []
        placed = False
        for selection in self.selections:
            if selection.date == day:
                for existing in selection.time_ranges:
                    if time_range.start_hour < existing.end_hour and existing.start_hour < time_range.end_hour:
                        raise ValidationError("Time ranges on the same day must not overlap")
                ranges = sorted(selection.time_ranges + [time_range], key=lambda r: r.start_hour)
                selections.append(DaySelection(date=day, time_ranges=ranges))
                placed = True
            else:
                selections.append(selection)
        if not placed:
            selections.append(DaySelection(date=day, time_ranges=[time_range]))
        selections.sort(key=lambda s: s.date)
        return self.model_copy(update={"selections": selections})

    def remove_range(self, day: date, time_range: TimeRange) -> "BookingDraft":
        selections = []
        for selection in self.selections:
            if selection.date == day:
                ranges = [r for r in selection.time_ranges if r != time_range]
                if ranges:
                    selections.append(DaySelection(date=day, time_ranges=ranges))
            else:
                selections.append(selection)
        return self.model_copy(update={"selections": selections})

    def with_voucher(self, code: Optional[str]) -> "BookingDraft":
        return self.model_copy(update={"voucher_code": Voucher.normalize_code(code) if code else None})

    # ==================== QUERY METHODS ====================
    def total_hours(self) -> int:
        return sum(s.hours() for s in self.selections)

    def breakdown(self) -> PriceBreakdown:
        return calculate_price_breakdown(self.selections, self.hourly_price)

    def validate_for_payment(self) -> None:
        if not self.selections or self.total_hours() == 0:
            raise ValidationError("Select at least one time range")
        if not self.platform:
            raise ValidationError("Platform is required")
