"""Column codecs shared by the stores.

Decimals are stored as TEXT, instants as unix milliseconds, calendar
dates as ISO strings.
"""

from datetime import date, datetime, timezone
from decimal import Decimal


def to_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def from_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def opt_from_ms(value: int | None) -> datetime | None:
    return from_ms(value) if value is not None else None


def opt_to_ms(value: datetime | None) -> int | None:
    return to_ms(value) if value is not None else None


def dec(value: str) -> Decimal:
    return Decimal(value)


def opt_dec(value: str | None) -> Decimal | None:
    return Decimal(value) if value is not None else None


def opt_str(value: Decimal | None) -> str | None:
    return str(value) if value is not None else None


def to_iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


def from_iso(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def day_start(value: date) -> datetime:
    """Midnight UTC at the start of a calendar date."""
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
