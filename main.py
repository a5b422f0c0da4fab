import logging
from datetime import date
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from api.schemas import (
    # Streamers & schedules
    RegisterStreamerRequest, StreamerResponse, SaveScheduleRequest, ScheduleResponse,
    TimeRangeResponse, DayOffRequest, DayOffResponse, AvailabilityResponse,
    # Pricing & vouchers
    QuoteRequest, QuoteResponse, ValidateVoucherRequest, ValidateVoucherResponse,
    CreateVoucherRequest, VoucherResponse,
    # Payments
    CreatePaymentRequest, CreatePaymentResponse, PaymentCallbackRequest,
    BookingSummaryResponse, PaymentStatusResponse, NotificationResponse,
    # Auth
    UserResponse
)

from api.dependencies import get_current_user
from domain.auth import CurrentUser

from application.realtime import BookingChangeNotifier
from application.reconciliation import BookingReconciler
from application.services import (
    StreamerService, ScheduleService, AvailabilityService, VoucherService,
    NotificationService, PaymentService, PaymentDetails
)
from domain.entities import BookingDraft, ScheduleSlot
from domain.enums import BookingStatus, PaymentStatus
from domain.exceptions import (
    AvailabilityConflictError, InvalidSignatureError, MarketplaceError, PaymentVerificationError,
    PersistenceError, ProviderError, ValidationError
)
from domain.repositories import PaymentGateway
from infrastructure.config import get_settings
from infrastructure.logging_config import configure_logging
from infrastructure.midtrans import MidtransSnapClient
from infrastructure.repositories.in_memory_repositories import (
    InMemoryStreamerRepository, InMemoryScheduleRepository, InMemoryBookingRepository,
    InMemoryPaymentOrderRepository, InMemoryPaymentRepository, InMemoryVoucherRepository,
    InMemoryNotificationRepository
)
from infrastructure.security import verify_midtrans_signature

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Streamer Booking API",
    description="Availability, pricing, vouchers and payment reconciliation for live-streaming bookings",
    version="1.0.0"
)

# Initialize repositories
streamer_repo = InMemoryStreamerRepository()
schedule_repo = InMemoryScheduleRepository()
booking_repo = InMemoryBookingRepository()
payment_order_repo = InMemoryPaymentOrderRepository()
payment_repo = InMemoryPaymentRepository()
voucher_repo = InMemoryVoucherRepository()
notification_repo = InMemoryNotificationRepository()
booking_changes = BookingChangeNotifier()

ADMIN_ROLES = ("admin", "service_role")

# Dependency injection
def get_payment_gateway() -> PaymentGateway:
    return MidtransSnapClient(settings)

def get_streamer_service() -> StreamerService:
    return StreamerService(streamer_repo)

def get_schedule_service() -> ScheduleService:
    return ScheduleService(schedule_repo, booking_changes)

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(schedule_repo, booking_repo, booking_changes)

def get_voucher_service() -> VoucherService:
    return VoucherService(voucher_repo)

def get_notification_service() -> NotificationService:
    return NotificationService(notification_repo, streamer_repo, settings.batch_chunk_size)

def get_payment_service(gateway: PaymentGateway = Depends(get_payment_gateway)) -> PaymentService:
    return PaymentService(
        gateway,
        payment_order_repo,
        payment_repo,
        booking_repo,
        get_voucher_service(),
        get_availability_service(),
        get_notification_service(),
        finish_url=settings.finish_url,
        signature_verifier=lambda payload: verify_midtrans_signature(payload, settings.midtrans_server_key)
    )

def get_reconciler() -> BookingReconciler:
    return BookingReconciler(
        booking_repo,
        payment_repo,
        payment_order_repo,
        get_voucher_service(),
        get_notification_service(),
        booking_changes,
        chunk_size=settings.batch_chunk_size
    )

# ============================================================================
# ERROR HANDLERS
# ============================================================================

@app.exception_handler(AvailabilityConflictError)
async def availability_conflict_handler(request: Request, exc: AvailabilityConflictError):
    return JSONResponse(status_code=409, content={"detail": str(exc), "refetch": True})

@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError):
    logger.error("Payment provider error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=502, content={"detail": "Payment provider unavailable, please try again"})

@app.exception_handler(InvalidSignatureError)
async def invalid_signature_handler(request: Request, exc: InvalidSignatureError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})

@app.exception_handler(PaymentVerificationError)
async def payment_verification_handler(request: Request, exc: PaymentVerificationError):
    return JSONResponse(status_code=403, content={"detail": str(exc)})

@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    logger.error("Persistence failure on %s: %s", request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Your payment was received but the booking could not be saved. Please contact support."}
    )

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(status_code=400, content={"detail": str(exc)})

@app.exception_handler(MarketplaceError)
async def marketplace_error_handler(request: Request, exc: MarketplaceError):
    logger.error("Unhandled marketplace error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": str(exc)})

# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/booking-status", tags=["Enum Reference"])
async def get_booking_statuses():
    """Get all BookingStatus enum values"""
    return {
        "values": [item.value for item in BookingStatus],
        "description": "Booking status values: pending, accepted, rejected, live, completed, cancelled"
    }

@app.get("/api/enums/payment-status", tags=["Enum Reference"])
async def get_payment_statuses():
    """Get all PaymentStatus enum values"""
    return {"values": [item.value for item in PaymentStatus]}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: CurrentUser = Depends(get_current_user)):
    return current_user

@app.get("/api/notifications", response_model=List[NotificationResponse], tags=["Auth"])
async def get_my_notifications(
    service: NotificationService = Depends(get_notification_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Notifications for the signed-in user"""
    notifications = await service.get_notifications(current_user.user_id)
    return [
        NotificationResponse(
            id=n.id,
            message=n.message,
            type=n.type.value,
            is_read=n.is_read,
            booking_id=n.booking_id,
            created_at=n.created_at
        )
        for n in notifications
    ]

# ============================================================================
# STREAMER & SCHEDULE ENDPOINTS
# ============================================================================

async def _require_owner(streamer_id: int, current_user: CurrentUser, service: StreamerService):
    streamer = await service.get_streamer(streamer_id)
    if not streamer:
        raise HTTPException(status_code=404, detail="Streamer not found")
    if streamer.user_id != current_user.user_id and current_user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Not the owner of this streamer profile")
    return streamer

@app.put("/api/streamers/{streamer_id}", response_model=StreamerResponse, tags=["Streamers"])
async def register_streamer(
    streamer_id: int,
    request: RegisterStreamerRequest,
    service: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create or update the signed-in user's streamer profile"""
    existing = await service.get_streamer(streamer_id)
    if existing and existing.user_id != current_user.user_id:
        raise HTTPException(status_code=403, detail="Not the owner of this streamer profile")
    streamer = await service.register_streamer(
        streamer_id=streamer_id,
        user_id=current_user.user_id,
        first_name=request.first_name,
        last_name=request.last_name,
        price=request.price
    )
    return StreamerResponse(**streamer.model_dump())

@app.get("/api/streamers/{streamer_id}", response_model=StreamerResponse, tags=["Streamers"])
async def get_streamer(streamer_id: int, service: StreamerService = Depends(get_streamer_service)):
    """Get streamer by ID"""
    streamer = await service.get_streamer(streamer_id)
    if not streamer:
        raise HTTPException(status_code=404, detail="Streamer not found")
    return StreamerResponse(**streamer.model_dump())

@app.put("/api/streamers/{streamer_id}/schedule", response_model=ScheduleResponse, tags=["Schedules"])
async def save_schedule(
    streamer_id: int,
    request: SaveScheduleRequest,
    service: ScheduleService = Depends(get_schedule_service),
    streamers: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Replace the weekly schedule"""
    await _require_owner(streamer_id, current_user, streamers)
    try:
        slots = [ScheduleSlot(**slot.model_dump()) for slot in request.slots]
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    schedule = await service.save_schedule(streamer_id, slots)
    return _schedule_to_response(schedule)

@app.get("/api/streamers/{streamer_id}/schedule", response_model=ScheduleResponse, tags=["Schedules"])
async def get_schedule(streamer_id: int, service: ScheduleService = Depends(get_schedule_service)):
    """Get the compiled weekly schedule"""
    schedule = await service.get_active_schedule(streamer_id)
    if not schedule:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return _schedule_to_response(schedule)

@app.post("/api/streamers/{streamer_id}/day-offs", response_model=DayOffResponse, status_code=201, tags=["Schedules"])
async def add_day_off(
    streamer_id: int,
    request: DayOffRequest,
    service: ScheduleService = Depends(get_schedule_service),
    streamers: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Mark a calendar date as unavailable"""
    await _require_owner(streamer_id, current_user, streamers)
    day_off = await service.add_day_off(streamer_id, request.date)
    return DayOffResponse(streamer_id=day_off.streamer_id, date=day_off.day)

@app.get("/api/streamers/{streamer_id}/day-offs", response_model=List[DayOffResponse], tags=["Schedules"])
async def get_day_offs(streamer_id: int, service: ScheduleService = Depends(get_schedule_service)):
    day_offs = await service.get_day_offs(streamer_id)
    return [DayOffResponse(streamer_id=d.streamer_id, date=d.day) for d in day_offs]

@app.delete("/api/streamers/{streamer_id}/day-offs/{day}", tags=["Schedules"])
async def remove_day_off(
    streamer_id: int,
    day: date,
    service: ScheduleService = Depends(get_schedule_service),
    streamers: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    await _require_owner(streamer_id, current_user, streamers)
    if not await service.remove_day_off(streamer_id, day):
        raise HTTPException(status_code=404, detail="Day-off not found")
    return {"success": True}

@app.get("/api/streamers/{streamer_id}/availability", response_model=AvailabilityResponse, tags=["Availability"])
async def get_availability(
    streamer_id: int,
    date: date,
    timezone: Optional[str] = None,
    service: AvailabilityService = Depends(get_availability_service)
):
    """Bookable hours on a date, in the viewer's timezone"""
    timezone = timezone or settings.display_timezone
    hours = await service.get_available_hours(streamer_id, date, timezone)
    return AvailabilityResponse(streamer_id=streamer_id, date=date, timezone=timezone, available_hours=hours)

# ============================================================================
# PRICING & VOUCHER ENDPOINTS
# ============================================================================

@app.post("/api/bookings/quote", response_model=QuoteResponse, tags=["Pricing"])
async def quote_booking(
    request: QuoteRequest,
    service: PaymentService = Depends(get_payment_service),
    streamers: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Price breakdown for a selection, with an optional voucher"""
    streamer = await streamers.get_streamer(request.streamer_id)
    if not streamer:
        raise HTTPException(status_code=404, detail="Streamer not found")
    draft = BookingDraft(
        streamer_id=streamer.id,
        hourly_price=streamer.price,
        selections=request.selections
    ).with_voucher(request.voucher_code)
    quote = await service.quote(draft)
    return QuoteResponse(
        **quote.breakdown.model_dump(),
        discount_amount=quote.discount_amount,
        final_price=quote.final_price,
        voucher_code=quote.voucher.code if quote.voucher else None
    )

@app.post("/api/vouchers/validate", response_model=ValidateVoucherResponse, tags=["Vouchers"])
async def validate_voucher(
    request: ValidateVoucherRequest,
    service: VoucherService = Depends(get_voucher_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Check a code against a total; never redeems"""
    result = await service.validate_voucher(request.code, request.total)
    return ValidateVoucherResponse(
        is_valid=result.is_valid,
        code=result.voucher.code if result.voucher else None,
        discount_amount=result.discount_amount,
        final_price=result.final_price,
        error=result.error,
        reason=result.reason.value if result.reason else None
    )

@app.post("/api/vouchers", response_model=VoucherResponse, status_code=201, tags=["Vouchers"])
async def create_voucher(
    request: CreateVoucherRequest,
    service: VoucherService = Depends(get_voucher_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Create voucher (admin only)"""
    if current_user.role not in ADMIN_ROLES:
        raise HTTPException(status_code=403, detail="Admin access required")
    voucher = await service.create_voucher(
        discount_amount=request.discount_amount,
        total_quantity=request.total_quantity,
        expires_at=request.expires_at,
        description=request.description,
        code=request.code
    )
    return VoucherResponse(**voucher.model_dump())

# ============================================================================
# PAYMENT ENDPOINTS
# ============================================================================

@app.post("/api/payments/create", response_model=CreatePaymentResponse, tags=["Payments"])
async def create_payment(
    request: CreatePaymentRequest,
    service: PaymentService = Depends(get_payment_service),
    streamers: StreamerService = Depends(get_streamer_service),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Open a payment session; bookings are only written on the success callback"""
    streamer = await streamers.get_streamer(request.streamer_id)
    if not streamer:
        raise HTTPException(status_code=404, detail="Streamer not found")
    draft = BookingDraft(
        streamer_id=streamer.id,
        hourly_price=streamer.price,
        platform=request.platform,
        selections=request.selections,
        special_request=request.special_request,
        sub_account=request.sub_account,
        timezone=request.timezone
    ).with_voucher(request.voucher_code)
    envelope = await service.build_envelope(
        draft, current_user.user_id, current_user.first_name, current_user.last_name
    )
    session = await service.create_payment(PaymentDetails(
        client_name=current_user.full_name or current_user.email or current_user.user_id,
        client_email=request.client_email,
        client_phone=request.client_phone,
        metadata=envelope
    ))
    return CreatePaymentResponse(**session.model_dump())

@app.post("/api/payments/callback", response_model=List[BookingSummaryResponse], status_code=201, tags=["Payments"])
async def payment_callback(
    request: PaymentCallbackRequest,
    reconciler: BookingReconciler = Depends(get_reconciler),
    current_user: CurrentUser = Depends(get_current_user)
):
    """Record bookings for a successful payment"""
    if request.metadata.get("user_id") != current_user.user_id:
        raise HTTPException(status_code=403, detail="Payment belongs to another user")
    summaries = await reconciler.create_booking_after_payment(request.result, request.metadata)
    return [BookingSummaryResponse(**s.model_dump()) for s in summaries]

@app.post("/api/payments/webhook", response_model=PaymentStatusResponse, tags=["Payments"])
async def payment_webhook(payload: dict, service: PaymentService = Depends(get_payment_service)):
    """Provider HTTP notification"""
    payment = await service.update_payment_status(payload)
    return PaymentStatusResponse(
        transaction_id=payload.get("order_id"),
        status=payload.get("transaction_status", ""),
        processed=payment is not None
    )

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _schedule_to_response(schedule) -> ScheduleResponse:
    """Convert ActiveSchedule entity to ScheduleResponse"""
    return ScheduleResponse(
        streamer_id=schedule.streamer_id,
        days={
            day: [TimeRangeResponse(start=r.start, end=r.end) for r in ranges]
            for day, ranges in schedule.days.items()
        },
        compiled_at=schedule.compiled_at
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
