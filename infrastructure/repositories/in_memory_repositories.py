"""In-Memory Repository Implementations"""
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from domain.repositories import (
    StreamerRepository, ScheduleRepository, BookingRepository, PaymentOrderRepository, PaymentRepository,
    VoucherRepository, NotificationRepository
)
from domain.entities import (
    Streamer, ScheduleSlot, ActiveSchedule, DayOff, Booking, Voucher, VoucherUsage,
    PaymentOrder, PaymentRecord, PaymentStatusHistory, Notification
)
from domain.exceptions import AvailabilityConflictError, DuplicateRecordError, PersistenceError


class InMemoryStreamerRepository(StreamerRepository):
    """In-memory implementation of StreamerRepository"""

    def __init__(self):
        self._storage: Dict[int, Streamer] = {}

    async def save(self, streamer: Streamer) -> Streamer:
        self._storage[streamer.id] = streamer
        return streamer

    async def find_by_id(self, streamer_id: int) -> Optional[Streamer]:
        return self._storage.get(streamer_id)


class InMemoryScheduleRepository(ScheduleRepository):
    """In-memory implementation of ScheduleRepository"""

    def __init__(self):
        self._slots: Dict[int, List[ScheduleSlot]] = {}
        self._active: Dict[int, ActiveSchedule] = {}
        self._day_offs: Dict[tuple, DayOff] = {}

    async def replace_slots(self, streamer_id: int, slots: List[ScheduleSlot]) -> List[ScheduleSlot]:
        self._slots[streamer_id] = list(slots)
        return self._slots[streamer_id]

    async def save_active_schedule(self, schedule: ActiveSchedule) -> ActiveSchedule:
        self._active[schedule.streamer_id] = schedule
        return schedule

    async def find_active_schedule(self, streamer_id: int) -> Optional[ActiveSchedule]:
        return self._active.get(streamer_id)

    async def add_day_off(self, day_off: DayOff) -> DayOff:
        self._day_offs[(day_off.streamer_id, day_off.day)] = day_off
        return day_off

    async def remove_day_off(self, streamer_id: int, day: date) -> bool:
        return self._day_offs.pop((streamer_id, day), None) is not None

    async def find_day_offs(self, streamer_id: int) -> List[DayOff]:
        return sorted(
            (d for (s_id, _), d in self._day_offs.items() if s_id == streamer_id),
            key=lambda d: d.day
        )


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of BookingRepository.

    Rejects a batch containing a booking that overlaps a pending or accepted
    booking of the same streamer, the way a unique constraint would.
    """

    def __init__(self):
        self._storage: Dict[UUID, Booking] = {}

    def _conflicts(self, booking: Booking, others: List[Booking]) -> bool:
        return any(
            other.streamer_id == booking.streamer_id and other.holds_slot() and other.overlaps(booking)
            for other in others
        )

    async def insert_many(self, bookings: List[Booking]) -> List[Booking]:
        accepted: List[Booking] = []
        existing = list(self._storage.values())
        for booking in bookings:
            if booking.id in self._storage:
                raise DuplicateRecordError("bookings", str(booking.id))
            if booking.holds_slot() and self._conflicts(booking, existing + accepted):
                raise AvailabilityConflictError(
                    f"Streamer {booking.streamer_id} is already booked between "
                    f"{booking.start_time.isoformat()} and {booking.end_time.isoformat()}"
                )
            accepted.append(booking)
        for booking in accepted:
            self._storage[booking.id] = booking
        return accepted

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        return self._storage.get(booking_id)

    async def find_active_by_streamer(
        self,
        streamer_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Booking]:
        results = []
        for booking in self._storage.values():
            if booking.streamer_id != streamer_id or not booking.holds_slot():
                continue
            if start is not None and booking.end_time <= start:
                continue
            if end is not None and booking.start_time >= end:
                continue
            results.append(booking)
        return sorted(results, key=lambda b: b.start_time)

    async def find_by_payment_group(self, payment_group_id: UUID) -> List[Booking]:
        return sorted(
            (b for b in self._storage.values() if b.payment_group_id == payment_group_id),
            key=lambda b: b.start_time
        )

    async def set_payment_group(self, booking_ids: List[UUID], payment_group_id: UUID) -> int:
        missing = [str(i) for i in booking_ids if i not in self._storage]
        if missing:
            raise PersistenceError(f"Bookings not found: {', '.join(missing)}")
        for booking_id in booking_ids:
            self._storage[booking_id].assign_payment_group(payment_group_id)
        return len(booking_ids)


class InMemoryPaymentOrderRepository(PaymentOrderRepository):
    """In-memory implementation of PaymentOrderRepository"""

    def __init__(self):
        self._storage: Dict[str, PaymentOrder] = {}

    async def save(self, order: PaymentOrder) -> PaymentOrder:
        if order.order_id in self._storage:
            raise DuplicateRecordError("payment_orders", order.order_id)
        self._storage[order.order_id] = order
        return order

    async def find_by_order_id(self, order_id: str) -> Optional[PaymentOrder]:
        return self._storage.get(order_id)


class InMemoryPaymentRepository(PaymentRepository):
    """In-memory implementation of PaymentRepository"""

    def __init__(self):
        self._storage: Dict[UUID, PaymentRecord] = {}
        self._by_transaction: Dict[str, UUID] = {}
        self._history: List[PaymentStatusHistory] = []

    async def insert(self, payment: PaymentRecord) -> PaymentRecord:
        if payment.transaction_id in self._by_transaction:
            raise DuplicateRecordError("payments", payment.transaction_id)
        self._storage[payment.id] = payment
        self._by_transaction[payment.transaction_id] = payment.id
        return payment

    async def find_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        payment_id = self._by_transaction.get(transaction_id)
        return self._storage.get(payment_id) if payment_id else None

    async def update(self, payment: PaymentRecord) -> PaymentRecord:
        if payment.id in self._storage:
            self._storage[payment.id] = payment
            return payment
        raise PersistenceError("Payment not found")

    async def add_status_history(self, history: PaymentStatusHistory) -> PaymentStatusHistory:
        self._history.append(history)
        return history

    async def find_status_history(self, payment_id: UUID) -> List[PaymentStatusHistory]:
        return [h for h in self._history if h.payment_id == payment_id]


class InMemoryVoucherRepository(VoucherRepository):
    """In-memory implementation of VoucherRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Voucher] = {}
        self._usage: List[VoucherUsage] = []

    async def save(self, voucher: Voucher) -> Voucher:
        for existing in self._storage.values():
            if existing.code == voucher.code and existing.id != voucher.id:
                raise DuplicateRecordError("vouchers", voucher.code)
        self._storage[voucher.id] = voucher
        return voucher

    async def find_by_code(self, code: str) -> Optional[Voucher]:
        for voucher in self._storage.values():
            if voucher.code == code:
                return voucher
        return None

    async def find_by_id(self, voucher_id: UUID) -> Optional[Voucher]:
        return self._storage.get(voucher_id)

    async def decrement_quantity(self, voucher_id: UUID) -> Voucher:
        # No await between check and write, so concurrent tasks cannot interleave
        voucher = self._storage.get(voucher_id)
        if voucher is None:
            raise PersistenceError(f"Voucher {voucher_id} not found")
        if voucher.remaining_quantity <= 0:
            raise PersistenceError(f"Voucher {voucher.code} has no remaining quantity")
        voucher.remaining_quantity -= 1
        return voucher

    async def insert_usage(self, usage: VoucherUsage) -> VoucherUsage:
        self._usage.append(usage)
        return usage

    async def find_usage_by_voucher(self, voucher_id: UUID) -> List[VoucherUsage]:
        return [u for u in self._usage if u.voucher_id == voucher_id]


class InMemoryNotificationRepository(NotificationRepository):
    """In-memory implementation of NotificationRepository"""

    def __init__(self):
        self._storage: List[Notification] = []

    async def insert_many(self, notifications: List[Notification]) -> List[Notification]:
        self._storage.extend(notifications)
        return notifications

    async def find_by_user(self, user_id: str) -> List[Notification]:
        return [n for n in self._storage if n.user_id == user_id]
