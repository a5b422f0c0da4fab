"""Turns a confirmed payment plus its metadata envelope into persisted bookings"""
import logging
import time
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Union

from application.realtime import BookingChangeNotifier
from application.services import DEFAULT_CHUNK_SIZE, NotificationService, VoucherService, chunked
from domain.entities import Booking, PaymentRecord
from domain.enums import CONFIRMED_PAYMENT_STATUSES, BookingStatus, PaymentStatus
from domain.exceptions import MarketplaceError, PaymentVerificationError, PersistenceError, ValidationError
from domain.repositories import BookingRepository, PaymentOrderRepository, PaymentRepository
from domain.timezones import to_utc
from domain.value_objects import BookingSummary, PaymentMetadataEnvelope

logger = logging.getLogger(__name__)


def split_price(final_price: int, envelope: PaymentMetadataEnvelope) -> List[int]:
    """
    Per-range prices: even split across days, then across the ranges of a day.

    Rounded down per row; the leftover goes on the first row so the rows
    always add up to ``final_price``.
    """
    day_count = len(envelope.bookings)
    prices: List[int] = []
    for day in envelope.bookings:
        range_count = len(day.time_ranges)
        for _ in day.time_ranges:
            prices.append(final_price // day_count // range_count)
    if prices:
        prices[0] += final_price - sum(prices)
    return prices


def transaction_id_of(provider_result: Dict[str, Any]) -> Optional[str]:
    return (provider_result or {}).get("order_id") or (provider_result or {}).get("transaction_id")


class BookingReconciler:
    """Runs once per successful provider callback"""

    def __init__(
        self,
        booking_repo: BookingRepository,
        payment_repo: PaymentRepository,
        order_repo: PaymentOrderRepository,
        voucher_service: VoucherService,
        notification_service: Optional[NotificationService] = None,
        notifier: Optional[BookingChangeNotifier] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        server_offset: Optional[int] = None
    ):
        self.booking_repo = booking_repo
        self.payment_repo = payment_repo
        self.order_repo = order_repo
        self.voucher_service = voucher_service
        self.notification_service = notification_service
        self.notifier = notifier
        self.chunk_size = chunk_size
        self.server_offset = server_offset
        self._started = 0.0

    def _log(self, message: str, *args) -> None:
        elapsed = (time.monotonic() - self._started) * 1000
        logger.info("[+%.0fms] " + message, elapsed, *args)

    async def create_booking_after_payment(
        self,
        provider_result: Dict[str, Any],
        metadata: Union[PaymentMetadataEnvelope, Dict[str, Any]]
    ) -> List[BookingSummary]:
        self._started = time.monotonic()
        envelope = (
            metadata if isinstance(metadata, PaymentMetadataEnvelope)
            else PaymentMetadataEnvelope.from_payload(metadata)
        )

        # 1. transaction id
        transaction_id = transaction_id_of(provider_result)
        if not transaction_id:
            raise ValidationError("Payment result has no transaction id")
        self._log("Reconciling transaction %s for user %s", transaction_id, envelope.user_id)
        envelope = await self._verify(transaction_id, provider_result, envelope)

        existing = await self.payment_repo.find_by_transaction_id(transaction_id)
        if existing is not None:
            logger.warning("Transaction %s already processed, returning stored bookings", transaction_id)
            return [self._summary(b) for b in await self.booking_repo.find_by_payment_group(existing.id)]

        try:
            return await self._reconcile(transaction_id, provider_result, envelope)
        except MarketplaceError:
            raise
        except Exception as e:
            logger.exception("Reconciliation of %s failed", transaction_id)
            raise PersistenceError(f"Failed to record bookings for transaction {transaction_id}") from e

    async def _reconcile(
        self,
        transaction_id: str,
        provider_result: Dict[str, Any],
        envelope: PaymentMetadataEnvelope
    ) -> List[BookingSummary]:
        # 2. booking rows in UTC
        bookings = self._build_bookings(envelope)
        if not bookings:
            raise ValidationError("Payment metadata contains no time ranges")
        self._log("Built %d booking rows", len(bookings))

        # 3. insert in chunks
        inserted: List[Booking] = []
        for index, batch in enumerate(chunked(bookings, self.chunk_size)):
            try:
                inserted.extend(await self.booking_repo.insert_many(batch))
            except MarketplaceError:
                logger.error(
                    "Booking chunk %d of transaction %s failed after %d rows were stored",
                    index, transaction_id, len(inserted)
                )
                raise
            self._log("Inserted booking chunk %d (%d rows)", index, len(batch))

        # 4. payment record
        payment = await self.payment_repo.insert(PaymentRecord(
            booking_id=inserted[0].id,
            amount=envelope.final_price,
            status=self._provider_status(provider_result),
            transaction_id=transaction_id,
            payment_token=provider_result.get("token"),
            payment_url=provider_result.get("redirect_url") or provider_result.get("pdf_url"),
            midtrans_response=provider_result
        ))
        self._log("Inserted payment %s", payment.id)

        # 5. back-fill payment group
        for index, batch in enumerate(chunked([b.id for b in inserted], self.chunk_size)):
            await self.booking_repo.set_payment_group(batch, payment.id)
            self._log("Linked booking chunk %d to payment", index)
        for booking in inserted:
            booking.payment_group_id = payment.id

        # 6. voucher
        if envelope.voucher is not None:
            await self.voucher_service.redeem(
                envelope.voucher,
                booking_id=inserted[0].id,
                user_id=envelope.user_id,
                original_price=envelope.total,
                final_price=envelope.final_price
            )
            self._log("Redeemed voucher %s", envelope.voucher.code)

        # 7. notifications, never fatal
        if self.notification_service is not None:
            sent = await self.notification_service.notify_quietly(
                inserted, envelope.streamer_id, envelope.timezone
            )
            self._log("Stored %d notifications", sent)

        if self.notifier is not None:
            await self.notifier.publish(envelope.streamer_id)

        # 8. summaries
        self._log("Transaction %s reconciled into %d bookings", transaction_id, len(inserted))
        return [self._summary(b) for b in inserted]

    def _build_bookings(self, envelope: PaymentMetadataEnvelope) -> List[Booking]:
        prices = iter(split_price(envelope.final_price, envelope))
        rows = []
        for day in envelope.bookings:
            date_str = day.date.isoformat()
            for time_range in day.time_ranges:
                rows.append(Booking(
                    streamer_id=envelope.streamer_id,
                    client_id=envelope.user_id,
                    client_first_name=envelope.first_name,
                    client_last_name=envelope.last_name,
                    start_time=to_utc(date_str, time_range.start, envelope.timezone, self.server_offset),
                    end_time=to_utc(date_str, time_range.end, envelope.timezone, self.server_offset),
                    timezone=envelope.timezone,
                    platform=envelope.platform,
                    price=next(prices),
                    status=BookingStatus.PENDING,
                    special_request=envelope.special_request,
                    sub_acc_link=envelope.sub_account.link,
                    sub_acc_pass=envelope.sub_account.password
                ))
        return rows

    async def _verify(
        self,
        order_id: str,
        provider_result: Dict[str, Any],
        envelope: PaymentMetadataEnvelope
    ) -> PaymentMetadataEnvelope:
        """Match the callback against the order opened by create_payment"""
        order = await self.order_repo.find_by_order_id(order_id)
        if order is None:
            logger.warning("Callback for unknown order %s", order_id)
            raise PaymentVerificationError(f"No payment was opened for order {order_id}")
        if not order.matches(envelope):
            logger.warning("Callback for %s carries altered payment metadata", order_id)
            raise PaymentVerificationError("Payment metadata does not match the order")

        status = self._provider_status(provider_result)
        if status not in CONFIRMED_PAYMENT_STATUSES:
            raise PaymentVerificationError(f"Payment {order_id} is not confirmed")

        gross_amount = provider_result.get("gross_amount")
        if gross_amount is not None and self._whole_amount(gross_amount) != order.amount:
            logger.warning("Callback for %s reports %s, order amount is %s", order_id, gross_amount, order.amount)
            raise PaymentVerificationError("Paid amount does not match the order")
        return order.metadata

    @staticmethod
    def _provider_status(provider_result: Dict[str, Any]) -> Optional[PaymentStatus]:
        try:
            return PaymentStatus(provider_result.get("transaction_status"))
        except ValueError:
            return None

    @staticmethod
    def _whole_amount(value: Any) -> Optional[int]:
        try:
            return int(Decimal(str(value)))
        except (InvalidOperation, ValueError, OverflowError):
            return None

    @staticmethod
    def _summary(booking: Booking) -> BookingSummary:
        return BookingSummary(
            id=booking.id,
            client_id=booking.client_id,
            client_first_name=booking.client_first_name,
            client_last_name=booking.client_last_name
        )
