"""
billing_kernel.domain.periods -- Period boundary calculator.

Pure functions.  ZERO I/O.

Maps (anchor date, recurrence pattern, fiscal-year start month) to the
calendar bucket containing the anchor.  Quarter, half-year and year buckets
are aligned to the fiscal-year start month, not to January.

Invariants enforced:
    - Calendar truncation: start is the first day of the bucket, end is the
      day before the next bucket starts.
    - Buckets tile the calendar: next_period_bounds(b).start == b.end + 1 day.
    - Unknown patterns are treated as monthly (RecurrencePattern.parse).
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import Iterator

from billing_kernel.domain.types import PeriodBounds, RecurrencePattern


def _validate_fiscal_month(fiscal_year_start_month: int) -> None:
    if not 1 <= fiscal_year_start_month <= 12:
        raise ValueError(
            f"fiscal_year_start_month must be 1..12, got {fiscal_year_start_month}"
        )


def last_day_of_month(year: int, month: int) -> date:
    return date(year, month, calendar.monthrange(year, month)[1])


def add_months(day: date, months: int) -> date:
    """Shift by whole months, clamping the day to the target month's length."""
    index = day.year * 12 + (day.month - 1) + months
    year, month = divmod(index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def period_bounds(
    anchor: date,
    pattern: RecurrencePattern | str | None,
    fiscal_year_start_month: int = 1,
) -> PeriodBounds:
    """Return the bucket of ``pattern`` that contains ``anchor``.

    Examples (fiscal year starting April)::

        period_bounds(date(2025, 8, 14), "quarterly", 4)
            -> PeriodBounds(2025-07-01, 2025-09-30)
        period_bounds(date(2025, 2, 3), "yearly", 4)
            -> PeriodBounds(2024-04-01, 2025-03-31)

    Raises:
        ValueError: if fiscal_year_start_month is outside 1..12.
    """
    _validate_fiscal_month(fiscal_year_start_month)
    span = RecurrencePattern.parse(pattern).months

    month_index = anchor.year * 12 + (anchor.month - 1)
    start_index = month_index - ((month_index - (fiscal_year_start_month - 1)) % span)
    end_index = start_index + span - 1

    start = date(start_index // 12, start_index % 12 + 1, 1)
    end = last_day_of_month(end_index // 12, end_index % 12 + 1)
    return PeriodBounds(start=start, end=end)


def next_period_bounds(
    bounds: PeriodBounds,
    pattern: RecurrencePattern | str | None,
    fiscal_year_start_month: int = 1,
) -> PeriodBounds:
    """The bucket that starts the day after ``bounds.end``."""
    return period_bounds(bounds.end + timedelta(days=1), pattern, fiscal_year_start_month)


def months_in(bounds: PeriodBounds) -> Iterator[tuple[int, int]]:
    """Yield (year, month) for every calendar month touched by ``bounds``."""
    year, month = bounds.start.year, bounds.start.month
    while date(year, month, 1) <= bounds.end:
        yield year, month
        year, month = (year + 1, 1) if month == 12 else (year, month + 1)


def fiscal_year_of(day: date, fiscal_year_start_month: int = 1) -> int:
    """Calendar year in which the fiscal year containing ``day`` starts."""
    _validate_fiscal_month(fiscal_year_start_month)
    return day.year if day.month >= fiscal_year_start_month else day.year - 1


def bucket_number(
    day: date,
    pattern: RecurrencePattern | str | None,
    fiscal_year_start_month: int = 1,
) -> int:
    """1-based position of the bucket containing ``day`` within its fiscal year."""
    span = RecurrencePattern.parse(pattern).months
    return ((day.month - fiscal_year_start_month) % 12) // span + 1


def period_name(
    bounds: PeriodBounds,
    pattern: RecurrencePattern | str | None,
    fiscal_year_start_month: int = 1,
) -> str:
    """Human-readable label for a period.

    monthly "August 2025", quarterly "Q2 FY2025", half_yearly "H1 FY2025",
    yearly "FY 2025" (January fiscal year) or "FY 2025-2026".
    """
    resolved = RecurrencePattern.parse(pattern)
    start = bounds.start

    if resolved is RecurrencePattern.MONTHLY:
        return f"{calendar.month_name[start.month]} {start.year}"

    fy = fiscal_year_of(start, fiscal_year_start_month)
    if resolved is RecurrencePattern.YEARLY:
        if fiscal_year_start_month == 1:
            return f"FY {fy}"
        return f"FY {fy}-{fy + 1}"

    n = bucket_number(start, resolved, fiscal_year_start_month)
    prefix = "Q" if resolved is RecurrencePattern.QUARTERLY else "H"
    return f"{prefix}{n} FY{fy}"
