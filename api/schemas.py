"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import Any, Dict, List, Optional

from domain.value_objects import DaySelection, PaymentMetadataEnvelope, SubAccount


# ============================================================================
# STREAMER & SCHEDULE SCHEMAS
# ============================================================================

class RegisterStreamerRequest(BaseModel):
    """Register streamer request DTO"""
    first_name: str
    last_name: str = ""
    price: int = Field(ge=0, description="Base hourly price in whole currency units")


class StreamerResponse(BaseModel):
    """Streamer response DTO"""
    id: int
    user_id: str
    first_name: str
    last_name: str
    price: int


class ScheduleSlotRequest(BaseModel):
    """Schedule slot request DTO"""
    day_of_week: int = Field(ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: str
    end_time: str
    is_available: bool = True


class SaveScheduleRequest(BaseModel):
    """Save schedule request DTO"""
    slots: List[ScheduleSlotRequest]


class TimeRangeResponse(BaseModel):
    start: str
    end: str


class ScheduleResponse(BaseModel):
    """Compiled schedule response DTO"""
    streamer_id: int
    days: Dict[int, List[TimeRangeResponse]]
    compiled_at: datetime


class DayOffRequest(BaseModel):
    """Day-off request DTO"""
    date: date


class DayOffResponse(BaseModel):
    streamer_id: int
    date: date


class AvailabilityResponse(BaseModel):
    """Available hours response DTO"""
    streamer_id: int
    date: date
    timezone: str
    available_hours: List[int]


# ============================================================================
# PRICING & VOUCHER SCHEMAS
# ============================================================================

class QuoteRequest(BaseModel):
    """Price quote request DTO"""
    streamer_id: int
    selections: List[DaySelection]
    voucher_code: Optional[str] = None


class QuoteResponse(BaseModel):
    """Price quote response DTO"""
    total_hours: int
    adjusted_price: Decimal
    subtotal: Decimal
    tax: Decimal
    total: int
    discount_amount: int = 0
    final_price: int
    voucher_code: Optional[str] = None


class ValidateVoucherRequest(BaseModel):
    """Validate voucher request DTO"""
    code: str
    total: int = Field(ge=0)


class ValidateVoucherResponse(BaseModel):
    """Validate voucher response DTO"""
    is_valid: bool
    code: Optional[str] = None
    discount_amount: Optional[int] = None
    final_price: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[str] = None


class CreateVoucherRequest(BaseModel):
    """Create voucher request DTO"""
    code: Optional[str] = Field(None, description="Generated when omitted")
    description: str = ""
    discount_amount: int = Field(gt=0)
    total_quantity: int = Field(ge=1)
    expires_at: datetime


class VoucherResponse(BaseModel):
    """Voucher response DTO"""
    id: UUID
    code: str
    description: str
    discount_amount: int
    total_quantity: int
    remaining_quantity: int
    is_active: bool
    expires_at: datetime


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================

class CreatePaymentRequest(BaseModel):
    """Create payment request DTO"""
    streamer_id: int
    selections: List[DaySelection]
    platform: str
    timezone: str = "UTC"
    voucher_code: Optional[str] = None
    special_request: Optional[str] = None
    sub_account: SubAccount = SubAccount()
    client_email: str
    client_phone: Optional[str] = None


class CreatePaymentResponse(BaseModel):
    """Create payment response DTO"""
    token: str
    redirect_url: Optional[str] = None
    order_id: str
    metadata: PaymentMetadataEnvelope


class PaymentCallbackRequest(BaseModel):
    """Payment success callback DTO: provider result plus the envelope"""
    result: Dict[str, Any]
    metadata: Dict[str, Any]


class BookingSummaryResponse(BaseModel):
    id: UUID
    client_id: str
    client_first_name: str
    client_last_name: str


class PaymentStatusResponse(BaseModel):
    """Payment status response DTO"""
    transaction_id: Optional[str] = None
    status: str
    processed: bool


class NotificationResponse(BaseModel):
    id: UUID
    message: str
    type: str
    is_read: bool
    booking_id: Optional[UUID] = None
    created_at: datetime


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class UserResponse(BaseModel):
    """User response DTO"""
    user_id: str
    email: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    role: str
