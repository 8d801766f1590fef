"""Calendar period helpers shared by every analytics pass.

All bucketing happens in UTC. Period keys are fixed-width and zero padded so
that sorting them as strings matches chronological order:

- daily: ``YYYY-MM-DD``
- weekly: ``YYYY-MM-DD`` of the Sunday starting the week
- monthly: ``YYYY-MM``
- quarterly: ``YYYY-Q{1-4}``
- yearly: ``YYYY``
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from .errors import DataValidationError

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# fromisoformat before Python 3.11 accepts only 3 or 6 fractional digits.
_FRACTION_RE = re.compile(r"\.(\d+)")


class Granularity(str, Enum):
    """Bucket width for time-based aggregation."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value: "str | Granularity") -> "Granularity":
        """Return the granularity named by ``value``.

        Raises:
            DataValidationError: If ``value`` names no known granularity.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            choices = ", ".join(item.value for item in cls)
            raise DataValidationError(
                f"Invalid period '{value}': expected one of {choices}."
            ) from exc


FORECAST_GRANULARITIES = (Granularity.MONTHLY, Granularity.QUARTERLY, Granularity.YEARLY)

_MONTHS_PER_STEP = {
    Granularity.MONTHLY: 1,
    Granularity.QUARTERLY: 3,
    Granularity.YEARLY: 12,
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _quarter(value: datetime) -> int:
    return (value.month - 1) // 3 + 1


def period_key(timestamp: datetime, granularity: Granularity) -> str:
    """Return the canonical key of the bucket containing ``timestamp``."""
    granularity = Granularity.parse(granularity)
    value = _as_utc(timestamp)

    if granularity is Granularity.DAILY:
        return f"{value.year:04d}-{value.month:02d}-{value.day:02d}"
    if granularity is Granularity.WEEKLY:
        # Python weeks start on Monday (0); shift so Sunday is day 0.
        sunday = value - timedelta(days=(value.weekday() + 1) % 7)
        return f"{sunday.year:04d}-{sunday.month:02d}-{sunday.day:02d}"
    if granularity is Granularity.MONTHLY:
        return f"{value.year:04d}-{value.month:02d}"
    if granularity is Granularity.QUARTERLY:
        return f"{value.year:04d}-Q{_quarter(value)}"
    if granularity is Granularity.YEARLY:
        return f"{value.year:04d}"

    raise DataValidationError(f"Unsupported granularity: {granularity!r}")


def period_start(timestamp: datetime, granularity: Granularity) -> datetime:
    """Return midnight UTC at the start of the bucket containing ``timestamp``."""
    granularity = Granularity.parse(granularity)
    value = _as_utc(timestamp).replace(hour=0, minute=0, second=0, microsecond=0)

    if granularity is Granularity.DAILY:
        return value
    if granularity is Granularity.WEEKLY:
        return value - timedelta(days=(value.weekday() + 1) % 7)
    if granularity is Granularity.MONTHLY:
        return value.replace(day=1)
    if granularity is Granularity.QUARTERLY:
        return value.replace(month=(_quarter(value) - 1) * 3 + 1, day=1)
    if granularity is Granularity.YEARLY:
        return value.replace(month=1, day=1)

    raise DataValidationError(f"Unsupported granularity: {granularity!r}")


def shift_months(value: datetime, months: int) -> datetime:
    """Move ``value`` by whole calendar months, clamping the day to the target month."""
    month_index = value.year * 12 + (value.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def advance_period(start: datetime, granularity: Granularity, count: int = 1) -> datetime:
    """Return the start of the bucket ``count`` steps after the bucket starting at ``start``."""
    granularity = Granularity.parse(granularity)
    if granularity is Granularity.DAILY:
        return start + timedelta(days=count)
    if granularity is Granularity.WEEKLY:
        return start + timedelta(weeks=count)
    return shift_months(start, _MONTHS_PER_STEP[granularity] * count)


def period_label(timestamp: datetime, granularity: Granularity) -> str:
    """Return a human-readable label such as ``January 2024`` or ``Q1 2024``."""
    granularity = Granularity.parse(granularity)
    value = _as_utc(timestamp)

    if granularity is Granularity.MONTHLY:
        return f"{calendar.month_name[value.month]} {value.year}"
    if granularity is Granularity.QUARTERLY:
        return f"Q{_quarter(value)} {value.year}"
    return period_key(value, granularity)


def parse_date(value: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` calendar date as midnight UTC.

    Raises:
        DataValidationError: If ``value`` is not a valid calendar date.
    """
    try:
        parsed = datetime.strptime(value.strip(), "%Y-%m-%d")
    except (AttributeError, ValueError) as exc:
        raise DataValidationError(
            f"Invalid date '{value}': expected format YYYY-MM-DD."
        ) from exc
    return parsed.replace(tzinfo=timezone.utc)


def format_date(value: datetime) -> str:
    """Format a datetime as its UTC calendar date ``YYYY-MM-DD``."""
    return period_key(value, Granularity.DAILY)


def _pad_fraction(match: "re.Match[str]") -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse HubSpot timestamps (ISO-8601 or epoch milliseconds) into aware UTC datetimes.

    Returns ``None`` for missing or unparseable values.
    """
    if not value:
        return None

    text = value.strip()
    if text.isdigit():
        return EPOCH + timedelta(milliseconds=int(text))

    normalized = text[:-1] + "+00:00" if text.endswith("Z") else text
    normalized = _FRACTION_RE.sub(_pad_fraction, normalized, count=1)
    try:
        parsed = datetime.fromisoformat(normalized)
    except ValueError:
        return None
    return _as_utc(parsed)


def to_epoch_millis(value: datetime) -> int:
    """Return milliseconds since the Unix epoch, as HubSpot date filters expect."""
    return (_as_utc(value) - EPOCH) // timedelta(milliseconds=1)
