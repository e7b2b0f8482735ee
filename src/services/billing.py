# src/services/billing.py
"""
Bimonthly billing periods and commission arithmetic.

Every month is split into two UTC periods: the 1st-15th and the 16th through
the last calendar day. Sessions are counted against the half-open range
``[start_at, end_exclusive)``.
"""
import calendar
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from src.services.scheduling import to_utc

# Payment is due this many days after the period's last day.
PAYMENT_GRACE_DAYS = 4

COUNTED_SESSION_STATUSES = ("scheduled", "completed")


@dataclass(frozen=True)
class BillingPeriod:
    start: date
    end: date

    @property
    def start_at(self) -> datetime:
        """Naive UTC midnight of the first day (matches stored timestamps)."""
        return datetime(self.start.year, self.start.month, self.start.day)

    @property
    def end_exclusive(self) -> datetime:
        """Naive UTC midnight of the day after the last day."""
        nxt = self.end + timedelta(days=1)
        return datetime(nxt.year, nxt.month, nxt.day)

    @property
    def due_date(self) -> date:
        return self.end + timedelta(days=PAYMENT_GRACE_DAYS)

    def contains(self, when: datetime) -> bool:
        utc = to_utc(when)
        if utc is None:
            return False
        naive = utc.replace(tzinfo=None)
        return self.start_at <= naive < self.end_exclusive

    def to_dict(self) -> dict:
        return {
            "period_start": self.start.isoformat(),
            "period_end": self.end.isoformat(),
            "due_date": self.due_date.isoformat(),
        }


def period_for(value: Any) -> BillingPeriod:
    """Return the billing period that contains ``value``.

    ``value`` may be a datetime, a date or an ISO-8601 string. Raises
    ``ValueError`` when it can't be interpreted as an instant.
    """
    if isinstance(value, date) and not isinstance(value, datetime):
        day = value
    else:
        when = to_utc(value)
        if when is None:
            raise ValueError("Invalid session_date")
        day = when.date()

    if day.day <= 15:
        return BillingPeriod(date(day.year, day.month, 1), date(day.year, day.month, 15))

    last_day = calendar.monthrange(day.year, day.month)[1]
    return BillingPeriod(
        date(day.year, day.month, 16), date(day.year, day.month, last_day)
    )


def current_period(now: Optional[datetime] = None) -> BillingPeriod:
    return period_for(now or datetime.now(timezone.utc))


def commission_rate(therapist: Any, default_rate: float) -> float:
    """Per-session commission: the therapist override when set, else the default."""
    override = getattr(therapist, "commission_per_session", None)
    if override is not None:
        return float(override)
    return float(default_rate)


def commission_amount(sessions_count: int, rate: float) -> float:
    return round(float(sessions_count) * float(rate), 2)


def month_bounds(month: str):
    """Parse ``YYYY-MM`` into (first day, first day of next month)."""
    try:
        year_str, month_str = month.split("-")
        year, mon = int(year_str), int(month_str)
        first = date(year, mon, 1)
    except (ValueError, AttributeError):
        raise ValueError("month must be formatted as YYYY-MM")
    if mon == 12:
        return first, date(year + 1, 1, 1)
    return first, date(year, mon + 1, 1)
