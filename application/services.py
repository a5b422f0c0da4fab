"""Application Services - Business use cases"""
import logging
import secrets
import string
import time
from datetime import date, datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from pydantic import BaseModel

from application.realtime import BookingChangeNotifier
from domain.availability import available_hours, is_slot_available
from domain.entities import (
    ActiveSchedule, Booking, BookingDraft, DayOff, Notification, PaymentOrder, PaymentRecord,
    ScheduleSlot, Streamer, Voucher, VoucherUsage
)
from domain.enums import NotificationType, PaymentStatus, VoucherFailure
from domain.exceptions import (
    AvailabilityConflictError, InvalidSignatureError, NotificationError, ProviderRejectedError,
    ValidationError, VoucherError
)
from domain.pricing import apply_discount
from domain.repositories import (
    BookingRepository, NotificationRepository, PaymentGateway, PaymentOrderRepository, PaymentRepository,
    ScheduleRepository, StreamerRepository, VoucherRepository
)
from domain.timezones import format_local
from domain.value_objects import (
    DaySelection, PaymentMetadataEnvelope, PriceBreakdown, VoucherReference
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CHUNK_SIZE = 10


def chunked(items: List[T], size: int) -> Iterable[List[T]]:
    """Fixed-size batches, last one possibly shorter"""
    if size < 1:
        raise ValueError("Chunk size must be at least 1")
    for i in range(0, len(items), size):
        yield items[i:i + size]


# ============================================================================
# STREAMERS
# ============================================================================

class StreamerService:
    """Service for streamer profiles"""

    def __init__(self, repository: StreamerRepository):
        self.repository = repository

    async def register_streamer(
        self,
        streamer_id: int,
        user_id: str,
        first_name: str,
        last_name: str,
        price: int
    ) -> Streamer:
        streamer = Streamer(
            id=streamer_id,
            user_id=user_id,
            first_name=first_name,
            last_name=last_name,
            price=price
        )
        return await self.repository.save(streamer)

    async def get_streamer(self, streamer_id: int) -> Optional[Streamer]:
        return await self.repository.find_by_id(streamer_id)


# ============================================================================
# SCHEDULE
# ============================================================================

class ScheduleService:
    """Service for editing a streamer's weekly schedule and day-offs"""

    def __init__(self, repository: ScheduleRepository, notifier: Optional[BookingChangeNotifier] = None):
        self.repository = repository
        self.notifier = notifier

    async def save_schedule(self, streamer_id: int, slots: List[ScheduleSlot]) -> ActiveSchedule:
        """Replace the slots and compile the active schedule from them"""
        await self.repository.replace_slots(streamer_id, slots)
        schedule = ActiveSchedule.compile(streamer_id, slots)
        await self.repository.save_active_schedule(schedule)
        logger.info("Saved schedule for streamer %s with %d slots", streamer_id, len(slots))
        await self._changed(streamer_id)
        return schedule

    async def get_active_schedule(self, streamer_id: int) -> Optional[ActiveSchedule]:
        return await self.repository.find_active_schedule(streamer_id)

    async def add_day_off(self, streamer_id: int, day: date) -> DayOff:
        day_off = await self.repository.add_day_off(DayOff(streamer_id=streamer_id, day=day))
        await self._changed(streamer_id)
        return day_off

    async def remove_day_off(self, streamer_id: int, day: date) -> bool:
        removed = await self.repository.remove_day_off(streamer_id, day)
        if removed:
            await self._changed(streamer_id)
        return removed

    async def get_day_offs(self, streamer_id: int) -> List[DayOff]:
        return await self.repository.find_day_offs(streamer_id)

    async def _changed(self, streamer_id: int) -> None:
        if self.notifier:
            await self.notifier.publish(streamer_id)


# ============================================================================
# AVAILABILITY
# ============================================================================

class AvailabilitySnapshot(BaseModel):
    """Everything the evaluator needs for one streamer"""
    streamer_id: int
    schedule: Optional[ActiveSchedule] = None
    day_offs: List[DayOff] = []
    bookings: List[Booking] = []

    def is_available(self, day: date, hour: int, tz_name: str = "UTC") -> bool:
        return is_slot_available(day, hour, self.schedule, self.day_offs, self.bookings, tz_name)

    def hours(self, day: date, tz_name: str = "UTC") -> List[int]:
        return available_hours(day, self.schedule, self.day_offs, self.bookings, tz_name)


class AvailabilityService:
    """Service for bookable-hour queries"""

    def __init__(
        self,
        schedule_repo: ScheduleRepository,
        booking_repo: BookingRepository,
        notifier: Optional[BookingChangeNotifier] = None
    ):
        self.schedule_repo = schedule_repo
        self.booking_repo = booking_repo
        self.notifier = notifier

    async def load_snapshot(self, streamer_id: int) -> AvailabilitySnapshot:
        return AvailabilitySnapshot(
            streamer_id=streamer_id,
            schedule=await self.schedule_repo.find_active_schedule(streamer_id),
            day_offs=await self.schedule_repo.find_day_offs(streamer_id),
            bookings=await self.booking_repo.find_active_by_streamer(streamer_id),
        )

    async def is_slot_available(self, streamer_id: int, day: date, hour: int, tz_name: str = "UTC") -> bool:
        snapshot = await self.load_snapshot(streamer_id)
        return snapshot.is_available(day, hour, tz_name)

    async def get_available_hours(self, streamer_id: int, day: date, tz_name: str = "UTC") -> List[int]:
        snapshot = await self.load_snapshot(streamer_id)
        return snapshot.hours(day, tz_name)

    async def ensure_available(self, streamer_id: int, selections: List[DaySelection], tz_name: str = "UTC") -> None:
        """Raise AvailabilityConflictError if any selected hour is taken"""
        snapshot = await self.load_snapshot(streamer_id)
        for selection in selections:
            for time_range in selection.time_ranges:
                for hour in range(time_range.start_hour, time_range.end_hour):
                    if not snapshot.is_available(selection.date, hour, tz_name):
                        raise AvailabilityConflictError(
                            f"{selection.date.isoformat()} {hour:02d}:00 is no longer available"
                        )

    def watch(
        self,
        streamer_id: int,
        on_update: Callable[[AvailabilitySnapshot], Awaitable[None]]
    ) -> Callable[[], None]:
        """Re-fetch and hand a fresh snapshot to ``on_update`` on every change"""
        if self.notifier is None:
            raise RuntimeError("AvailabilityService has no change notifier")

        async def refresh(changed_streamer_id: int) -> None:
            await on_update(await self.load_snapshot(changed_streamer_id))

        return self.notifier.subscribe(streamer_id, refresh)


# ============================================================================
# VOUCHERS
# ============================================================================

class VoucherValidationResult(BaseModel):
    is_valid: bool
    voucher: Optional[Voucher] = None
    discount_amount: Optional[int] = None
    final_price: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[VoucherFailure] = None


class VoucherService:
    """Service for Voucher business use cases"""

    def __init__(self, repository: VoucherRepository):
        self.repository = repository

    async def create_voucher(
        self,
        discount_amount: int,
        total_quantity: int,
        expires_at: datetime,
        description: str = "",
        code: Optional[str] = None
    ) -> Voucher:
        voucher = Voucher.create(
            discount_amount=discount_amount,
            total_quantity=total_quantity,
            expires_at=expires_at,
            description=description,
            code=code
        )
        return await self.repository.save(voucher)

    async def resolve(self, code: str) -> Voucher:
        """Redeemable voucher for a code, or VoucherError"""
        normalized = Voucher.normalize_code(code)
        if not Voucher.is_valid_code(normalized):
            raise VoucherError(VoucherFailure.INVALID_FORMAT, normalized)
        voucher = await self.repository.find_by_code(normalized)
        if voucher is None:
            raise VoucherError(VoucherFailure.NOT_FOUND, normalized)
        failure = voucher.redeemability()
        if failure is not None:
            raise VoucherError(failure, normalized)
        return voucher

    async def validate_voucher(self, code: str, total: int) -> VoucherValidationResult:
        """Read-only check; safe to call on every keystroke"""
        try:
            voucher = await self.resolve(code)
        except VoucherError as e:
            return VoucherValidationResult(is_valid=False, error=str(e), reason=e.reason)

        discount = voucher.discount_for(total)
        return VoucherValidationResult(
            is_valid=True,
            voucher=voucher,
            discount_amount=discount,
            final_price=apply_discount(total, discount)
        )

    async def redeem(
        self,
        reference: VoucherReference,
        booking_id,
        user_id: str,
        original_price: int,
        final_price: int
    ) -> VoucherUsage:
        """Write the usage row, then take one unit off the voucher"""
        usage = await self.repository.insert_usage(VoucherUsage(
            voucher_id=reference.id,
            booking_id=booking_id,
            user_id=user_id,
            discount_applied=reference.discount_amount,
            original_price=original_price,
            final_price=final_price
        ))
        voucher = await self.repository.decrement_quantity(reference.id)
        logger.info("Voucher %s redeemed, %d left", voucher.code, voucher.remaining_quantity)
        return usage


# ============================================================================
# NOTIFICATIONS
# ============================================================================

class NotificationService:
    """Builds and stores user notifications; delivery never fails the caller"""

    def __init__(
        self,
        repository: NotificationRepository,
        streamer_repo: StreamerRepository,
        chunk_size: int = DEFAULT_CHUNK_SIZE
    ):
        self.repository = repository
        self.streamer_repo = streamer_repo
        self.chunk_size = chunk_size

    async def _streamer(self, streamer_id: int) -> Streamer:
        streamer = await self.streamer_repo.find_by_id(streamer_id)
        if streamer is None:
            raise NotificationError(f"Streamer {streamer_id} not found")
        return streamer

    def booking_confirmed_messages(
        self,
        booking: Booking,
        streamer: Streamer,
        tz_name: str
    ) -> List[Notification]:
        start = format_local(booking.start_time, tz_name)
        end = format_local(booking.end_time, tz_name)
        hours = int((booking.end_time - booking.start_time).total_seconds() // 3600)
        client_name = f"{booking.client_first_name} {booking.client_last_name}".strip()
        return [
            Notification(
                user_id=booking.client_id,
                streamer_id=streamer.id,
                booking_id=booking.id,
                type=NotificationType.CONFIRMATION,
                message=(
                    f"Payment confirmed for your booking with {streamer.full_name} on {start}. "
                    f"Waiting for the streamer to accept."
                )
            ),
            Notification(
                user_id=streamer.user_id,
                streamer_id=streamer.id,
                booking_id=booking.id,
                type=NotificationType.CONFIRMATION,
                message=(
                    f"New booking request from {client_name} for {start} - {end} "
                    f"({hours} hours). Payment confirmed."
                )
            ),
        ]

    def payment_received_messages(
        self,
        booking: Booking,
        streamer: Streamer,
        tz_name: str
    ) -> List[Notification]:
        start = format_local(booking.start_time, tz_name)
        client_name = f"{booking.client_first_name} {booking.client_last_name}".strip()
        return [
            Notification(
                user_id=booking.client_id,
                streamer_id=streamer.id,
                booking_id=booking.id,
                type=NotificationType.BOOKING_PAYMENT,
                message=f"Payment for your booking with {streamer.full_name} on {start} has been confirmed."
            ),
            Notification(
                user_id=streamer.user_id,
                streamer_id=streamer.id,
                booking_id=booking.id,
                type=NotificationType.BOOKING_PAYMENT,
                message=f"Payment from {client_name} for the session on {start} has been received."
            ),
        ]

    async def send(self, notifications: List[Notification]) -> int:
        """Insert in batches; returns how many were stored"""
        stored = 0
        for batch in chunked(notifications, self.chunk_size):
            await self.repository.insert_many(batch)
            stored += len(batch)
        return stored

    async def notify_quietly(
        self,
        bookings: List[Booking],
        streamer_id: int,
        tz_name: str,
        kind: NotificationType = NotificationType.CONFIRMATION
    ) -> int:
        """Fire-and-forget: errors are logged and swallowed"""
        try:
            streamer = await self._streamer(streamer_id)
            build = (
                self.payment_received_messages
                if kind == NotificationType.BOOKING_PAYMENT
                else self.booking_confirmed_messages
            )
            notifications: List[Notification] = []
            for booking in bookings:
                notifications.extend(build(booking, streamer, tz_name))
            return await self.send(notifications)
        except Exception:
            logger.exception("Failed to create notifications for streamer %s", streamer_id)
            return 0

    async def get_notifications(self, user_id: str) -> List[Notification]:
        return await self.repository.find_by_user(user_id)


# ============================================================================
# PAYMENTS
# ============================================================================

class PriceQuote(BaseModel):
    """Price breakdown plus optional voucher effect"""
    breakdown: PriceBreakdown
    discount_amount: int = 0
    final_price: int
    voucher: Optional[VoucherReference] = None


class PaymentDetails(BaseModel):
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    metadata: PaymentMetadataEnvelope


class PaymentSession(BaseModel):
    token: str
    redirect_url: Optional[str] = None
    order_id: str
    metadata: PaymentMetadataEnvelope


_ORDER_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def generate_order_id() -> str:
    """BOOKING-{epoch millis}-{random}"""
    suffix = ''.join(secrets.choice(_ORDER_SUFFIX_ALPHABET) for _ in range(6))
    return f"BOOKING-{int(time.time() * 1000)}-{suffix}"


class PaymentService:
    """Service for pricing, payment creation and provider status updates"""

    def __init__(
        self,
        gateway: PaymentGateway,
        order_repo: PaymentOrderRepository,
        payment_repo: PaymentRepository,
        booking_repo: BookingRepository,
        voucher_service: VoucherService,
        availability_service: AvailabilityService,
        notification_service: Optional[NotificationService] = None,
        finish_url: str = "http://localhost:3000/client-bookings",
        signature_verifier: Optional[Callable[[Dict[str, Any]], bool]] = None
    ):
        self.gateway = gateway
        self.order_repo = order_repo
        self.payment_repo = payment_repo
        self.booking_repo = booking_repo
        self.voucher_service = voucher_service
        self.availability_service = availability_service
        self.notification_service = notification_service
        self.finish_url = finish_url
        self.signature_verifier = signature_verifier

    async def quote(self, draft: BookingDraft) -> PriceQuote:
        """Price a draft; the same numbers go into the payment envelope"""
        breakdown = draft.breakdown()
        if not draft.voucher_code:
            return PriceQuote(breakdown=breakdown, final_price=breakdown.total)

        voucher = await self.voucher_service.resolve(draft.voucher_code)
        reference = voucher.to_reference(breakdown.total)
        return PriceQuote(
            breakdown=breakdown,
            discount_amount=reference.discount_amount,
            final_price=apply_discount(breakdown.total, reference.discount_amount),
            voucher=reference
        )

    async def build_envelope(
        self,
        draft: BookingDraft,
        user_id: str,
        first_name: str,
        last_name: str = ""
    ) -> PaymentMetadataEnvelope:
        draft.validate_for_payment()
        quote = await self.quote(draft)
        return PaymentMetadataEnvelope(
            streamer_id=draft.streamer_id,
            user_id=user_id,
            first_name=first_name,
            last_name=last_name,
            bookings=draft.selections,
            timezone=draft.timezone,
            platform=draft.platform,
            special_request=draft.special_request,
            sub_account=draft.sub_account,
            price=draft.hourly_price,
            hours=quote.breakdown.total_hours,
            total=quote.breakdown.total,
            final_price=quote.final_price,
            voucher=quote.voucher
        )

    async def create_payment(self, details: PaymentDetails) -> PaymentSession:
        """Open a provider session and remember its envelope under the order id"""
        metadata = details.metadata
        if not metadata.bookings or metadata.range_count() == 0:
            raise ValidationError("Select at least one time range")

        await self.availability_service.ensure_available(
            metadata.streamer_id, metadata.bookings, metadata.timezone
        )

        order_id = generate_order_id()
        transaction = {
            "transaction_details": {
                "order_id": order_id,
                "gross_amount": metadata.final_price,
            },
            "customer_details": {
                "first_name": details.client_name,
                "email": details.client_email,
                "phone": details.client_phone or "",
            },
            "credit_card": {"secure": True},
            "callbacks": {"finish": self.finish_url},
        }
        logger.info("Creating payment %s for %s (amount %s)", order_id, metadata.user_id, metadata.final_price)

        response = await self.gateway.create_transaction(transaction)
        token = (response or {}).get("token")
        if not token:
            logger.error("No token in provider response for %s: %r", order_id, response)
            raise ProviderRejectedError("Failed to generate payment token")

        order = await self.order_repo.save(PaymentOrder(
            order_id=order_id,
            user_id=metadata.user_id,
            amount=metadata.final_price,
            metadata=metadata,
            payment_token=token,
            payment_url=response.get("redirect_url")
        ))
        return PaymentSession(
            token=token,
            redirect_url=order.payment_url,
            order_id=order_id,
            metadata=metadata
        )

    async def update_payment_status(self, notification: Dict[str, Any]) -> Optional[PaymentRecord]:
        """Apply an asynchronous provider status notification"""
        order_id = notification.get("order_id")
        raw_status = notification.get("transaction_status")
        if not order_id or not raw_status:
            raise ValidationError("Invalid payment notification payload")
        if self.signature_verifier is not None and not self.signature_verifier(notification):
            logger.warning("Rejected notification for %s: bad signature", order_id)
            raise InvalidSignatureError("Invalid notification signature")
        try:
            status = PaymentStatus(raw_status)
        except ValueError:
            raise ValidationError(f"Unknown transaction status '{raw_status}'")

        payment = await self.payment_repo.find_by_transaction_id(order_id)
        if payment is None:
            logger.warning("Status %s for unknown order %s", status.value, order_id)
            return None

        history = payment.update_status(status, notification)
        await self.payment_repo.update(payment)
        await self.payment_repo.add_status_history(history)
        logger.info("Payment %s moved %s -> %s", order_id, history.old_status, status.value)

        if status == PaymentStatus.SETTLEMENT and self.notification_service:
            bookings = await self.booking_repo.find_by_payment_group(payment.id)
            if bookings:
                await self.notification_service.notify_quietly(
                    bookings, bookings[0].streamer_id, bookings[0].timezone, NotificationType.BOOKING_PAYMENT
                )
        return payment

