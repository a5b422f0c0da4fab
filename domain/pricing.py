"""Booking price calculation"""
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from domain.value_objects import DaySelection, PriceBreakdown

PLATFORM_FEE_RATE = Decimal("0.30")
TAX_RATE = Decimal("0.11")


def adjusted_hourly_rate(price: int) -> Decimal:
    """Hourly price including the platform fee"""
    return Decimal(price) * (1 + PLATFORM_FEE_RATE)


def round_currency(amount: Decimal) -> int:
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def calculate_price_breakdown(selections: Iterable[DaySelection], price: int) -> PriceBreakdown:
    """
    Price every selected range at the marked-up hourly rate.

    Ranges are priced one by one so that ranges of different lengths add up
    exactly; tax applies to the subtotal and only the grand total is rounded.
    """
    rate = adjusted_hourly_rate(price)
    total_hours = 0
    subtotal = Decimal(0)
    for selection in selections:
        for time_range in selection.time_ranges:
            hours = time_range.hours()
            total_hours += hours
            subtotal += rate * hours

    if total_hours == 0:
        return PriceBreakdown()

    tax = subtotal * TAX_RATE
    return PriceBreakdown(
        total_hours=total_hours,
        adjusted_price=rate,
        subtotal=subtotal,
        tax=tax,
        total=round_currency(subtotal + tax)
    )


def apply_discount(total: int, discount: int) -> int:
    """Final price after a flat discount; never below zero"""
    return max(0, total - max(0, min(discount, total)))
