from dataclasses import dataclass
from datetime import datetime

from app.core.config import settings


@dataclass
class PriceQuote:
    """Server-side price for a booking interval"""
    hourly_rate_cents: int
    duration_hours: float
    price_cents: int

    @property
    def amount(self) -> float:
        """Price in currency units"""
        return self.price_cents / 100


def calculate_duration_hours(start_at: datetime, end_at: datetime) -> float:
    """Duration of [start_at, end_at) in hours"""
    return (end_at - start_at).total_seconds() / 3600


def quote_booking_price(hourly_rate_cents: int, start_at: datetime, end_at: datetime) -> PriceQuote:
    """Calculate booking price from the tutor's current hourly rate"""
    duration_hours = calculate_duration_hours(start_at, end_at)
    return PriceQuote(
        hourly_rate_cents=hourly_rate_cents,
        duration_hours=duration_hours,
        price_cents=int(round(hourly_rate_cents * duration_hours)),
    )


def price_matches(quote: PriceQuote, expected_price: float, tolerance: float = None) -> bool:
    """Whether a client-displayed price still agrees with the server quote"""
    if tolerance is None:
        tolerance = settings.PRICE_TOLERANCE
    actual = quote.hourly_rate_cents * quote.duration_hours / 100
    return abs(actual - expected_price) <= tolerance


def format_price(price_cents: int) -> str:
    return f"${price_cents / 100:.2f}"
