"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List, Dict, Any
from uuid import UUID
from datetime import date, datetime

from domain.entities import (
    Streamer, ScheduleSlot, ActiveSchedule, DayOff, Booking, Voucher, VoucherUsage,
    PaymentOrder, PaymentRecord, PaymentStatusHistory, Notification
)


class StreamerRepository(ABC):
    """Repository interface for Streamer profiles"""

    @abstractmethod
    async def save(self, streamer: Streamer) -> Streamer:
        """Save streamer"""
        pass

    @abstractmethod
    async def find_by_id(self, streamer_id: int) -> Optional[Streamer]:
        """Find streamer by ID"""
        pass


class ScheduleRepository(ABC):
    """Repository interface for weekly schedules and day-offs"""

    @abstractmethod
    async def replace_slots(self, streamer_id: int, slots: List[ScheduleSlot]) -> List[ScheduleSlot]:
        """Replace all editable slots of a streamer"""
        pass

    @abstractmethod
    async def save_active_schedule(self, schedule: ActiveSchedule) -> ActiveSchedule:
        """Insert or update the compiled schedule"""
        pass

    @abstractmethod
    async def find_active_schedule(self, streamer_id: int) -> Optional[ActiveSchedule]:
        """Find the compiled schedule"""
        pass

    @abstractmethod
    async def add_day_off(self, day_off: DayOff) -> DayOff:
        """Add a day-off"""
        pass

    @abstractmethod
    async def remove_day_off(self, streamer_id: int, day: date) -> bool:
        """Remove a day-off"""
        pass

    @abstractmethod
    async def find_day_offs(self, streamer_id: int) -> List[DayOff]:
        """Find all day-offs of a streamer"""
        pass


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate"""

    @abstractmethod
    async def insert_many(self, bookings: List[Booking]) -> List[Booking]:
        """Insert one batch of bookings"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_active_by_streamer(
        self,
        streamer_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> List[Booking]:
        """Find pending and accepted bookings of a streamer, optionally within a window"""
        pass

    @abstractmethod
    async def find_by_payment_group(self, payment_group_id: UUID) -> List[Booking]:
        """Find bookings paid together"""
        pass

    @abstractmethod
    async def set_payment_group(self, booking_ids: List[UUID], payment_group_id: UUID) -> int:
        """Back-fill the payment group of one batch; returns rows updated"""
        pass


class PaymentOrderRepository(ABC):
    """Repository interface for opened provider sessions; unique on order_id"""

    @abstractmethod
    async def save(self, order: PaymentOrder) -> PaymentOrder:
        """Save order, raising DuplicateRecordError on a repeated order_id"""
        pass

    @abstractmethod
    async def find_by_order_id(self, order_id: str) -> Optional[PaymentOrder]:
        """Find order by its provider order ID"""
        pass


class PaymentRepository(ABC):
    """Repository interface for payments; unique on transaction_id"""

    @abstractmethod
    async def insert(self, payment: PaymentRecord) -> PaymentRecord:
        """Insert payment, raising DuplicateRecordError on a repeated transaction"""
        pass

    @abstractmethod
    async def find_by_transaction_id(self, transaction_id: str) -> Optional[PaymentRecord]:
        """Find payment by provider transaction ID"""
        pass

    @abstractmethod
    async def update(self, payment: PaymentRecord) -> PaymentRecord:
        """Update payment"""
        pass

    @abstractmethod
    async def add_status_history(self, history: PaymentStatusHistory) -> PaymentStatusHistory:
        """Append a status history row"""
        pass

    @abstractmethod
    async def find_status_history(self, payment_id: UUID) -> List[PaymentStatusHistory]:
        """Status history of a payment, oldest first"""
        pass


class VoucherRepository(ABC):
    """Repository interface for Voucher Aggregate"""

    @abstractmethod
    async def save(self, voucher: Voucher) -> Voucher:
        """Save voucher"""
        pass

    @abstractmethod
    async def find_by_code(self, code: str) -> Optional[Voucher]:
        """Find voucher by its uppercase code"""
        pass

    @abstractmethod
    async def find_by_id(self, voucher_id: UUID) -> Optional[Voucher]:
        """Find voucher by ID"""
        pass

    @abstractmethod
    async def decrement_quantity(self, voucher_id: UUID) -> Voucher:
        """Atomically take one unit off remaining_quantity"""
        pass

    @abstractmethod
    async def insert_usage(self, usage: VoucherUsage) -> VoucherUsage:
        """Record one redemption"""
        pass

    @abstractmethod
    async def find_usage_by_voucher(self, voucher_id: UUID) -> List[VoucherUsage]:
        """Find redemptions of a voucher"""
        pass


class NotificationRepository(ABC):
    """Repository interface for user notifications"""

    @abstractmethod
    async def insert_many(self, notifications: List[Notification]) -> List[Notification]:
        """Insert one batch of notifications"""
        pass

    @abstractmethod
    async def find_by_user(self, user_id: str) -> List[Notification]:
        """Find notifications for a user"""
        pass


class PaymentGateway(ABC):
    """Interface to the external payment provider"""

    @abstractmethod
    async def create_transaction(self, transaction: Dict[str, Any]) -> Dict[str, Any]:
        """Open a payment session; the response carries a token and redirect URL"""
        pass
