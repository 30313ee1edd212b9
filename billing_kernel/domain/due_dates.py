"""
billing_kernel.domain.due_dates -- Task due-date resolver.

Pure functions.  ZERO I/O.

Precedence, highest first:
    1. exact_due_date on the rule -- absolute, the period is ignored.
    2. Offset rule applied to the anchor period end:
         days          period_end + N days
         months        period_end + N months (day clamped to month length)
         day_of_month  day max(N, 1) of period_end's month, clamped to its
                       last day
    3. period_end.

Deterministic for identical inputs, so re-materializing a period always
produces the same (template, due_date) keys.
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from billing_kernel.domain.periods import add_months, last_day_of_month
from billing_kernel.domain.types import DueDateRule, DueOffsetType


def resolve_due_date(rule: DueDateRule, period_end: date) -> date:
    """Resolve the due date of one task slot anchored at ``period_end``."""
    if rule.exact_due_date is not None:
        return rule.exact_due_date

    if rule.offset_type is not None and rule.offset_value is not None:
        value = int(rule.offset_value)
        if rule.offset_type is DueOffsetType.DAYS:
            return period_end + timedelta(days=value)
        if rule.offset_type is DueOffsetType.MONTHS:
            return add_months(period_end, value)
        if rule.offset_type is DueOffsetType.DAY_OF_MONTH:
            month_end = last_day_of_month(period_end.year, period_end.month)
            day = min(max(value, 1), month_end.day)
            return date(period_end.year, period_end.month, day)

    return period_end


def effective_rule(template: Any, override: Any | None = None) -> DueDateRule:
    """Merge a per-work override over a template, field by field.

    Both arguments only need ``exact_due_date``, ``due_offset_type`` and
    ``due_offset_value`` attributes; a non-None override value wins.
    """

    def pick(field_name: str) -> Any:
        if override is not None:
            value = getattr(override, field_name, None)
            if value is not None:
                return value
        return getattr(template, field_name, None)

    return DueDateRule(
        exact_due_date=pick("exact_due_date"),
        offset_type=DueOffsetType.parse(pick("due_offset_type")),
        offset_value=pick("due_offset_value"),
    )
