"""
billing_kernel.domain.recurrence -- Backfill candidate and task-slot planning.

Pure functions.  ZERO I/O.  The backfill service and the materializer hold
the session; every decision about WHICH periods and WHICH task slots exist
is made here.

Invariants enforced:
    - Bounded iteration: enumerate_candidate_periods() never walks more than
      ``limit`` buckets and raises BackfillLimitExceededError instead of
      silently truncating.
    - Candidates start at the bucket containing the work start date and stop
      at the first bucket whose start is after ``today``.
    - Task-driven eligibility: a candidate qualifies only once the earliest
      first-task due date is strictly before ``today``.
    - Nested granularities: monthly templates fan out per month inside
      quarterly / half-yearly / yearly periods; quarterly templates fan out
      per fiscal quarter inside half-yearly / yearly periods.  Any other
      mismatch yields no slots.
"""

from __future__ import annotations

import calendar
from datetime import date
from typing import Iterable
from uuid import UUID

from billing_kernel.domain.due_dates import resolve_due_date
from billing_kernel.domain.periods import (
    bucket_number,
    last_day_of_month,
    months_in,
    next_period_bounds,
    period_bounds,
)
from billing_kernel.domain.types import (
    BackfillPolicy,
    DueDateRule,
    PeriodBounds,
    RecurrencePattern,
    TaskSlot,
)
from billing_kernel.exceptions import BackfillLimitExceededError

DEFAULT_MAX_PERIODS = 200


def enumerate_candidate_periods(
    start_date: date,
    pattern: RecurrencePattern | str | None,
    today: date,
    fiscal_year_start_month: int = 1,
    limit: int = DEFAULT_MAX_PERIODS,
    work_id: UUID | None = None,
) -> list[PeriodBounds]:
    """All buckets from the one containing ``start_date`` up to ``today``.

    Raises:
        ValueError: if limit is not positive.
        BackfillLimitExceededError: if more than ``limit`` candidates exist.
    """
    if limit <= 0:
        raise ValueError(f"limit must be positive, got {limit}")

    candidates: list[PeriodBounds] = []
    bounds = period_bounds(start_date, pattern, fiscal_year_start_month)
    while bounds.start <= today:
        if len(candidates) >= limit:
            raise BackfillLimitExceededError(work_id, limit, len(candidates))
        candidates.append(bounds)
        bounds = next_period_bounds(bounds, pattern, fiscal_year_start_month)
    return candidates


def effective_granularity(
    work_pattern: RecurrencePattern | str | None,
    template_granularity: RecurrencePattern | str | None = None,
    override_granularity: RecurrencePattern | str | None = None,
) -> RecurrencePattern:
    """Override, then template, then the work's own pattern."""
    for value in (override_granularity, template_granularity):
        if value:
            return RecurrencePattern.parse(value)
    return RecurrencePattern.parse(work_pattern)


def plan_task_slots(
    template_granularity: RecurrencePattern,
    work_pattern: RecurrencePattern,
    bounds: PeriodBounds,
    fiscal_year_start_month: int = 1,
) -> tuple[TaskSlot, ...]:
    """Task slots one template contributes to one period."""
    if template_granularity is work_pattern:
        return (TaskSlot(anchor_end=bounds.end),)

    if template_granularity is RecurrencePattern.MONTHLY:
        return tuple(
            TaskSlot(
                anchor_end=last_day_of_month(year, month),
                title_suffix=calendar.month_name[month],
            )
            for year, month in months_in(bounds)
        )

    if template_granularity is RecurrencePattern.QUARTERLY and work_pattern in (
        RecurrencePattern.HALF_YEARLY,
        RecurrencePattern.YEARLY,
    ):
        slots = []
        quarter = period_bounds(bounds.start, RecurrencePattern.QUARTERLY, fiscal_year_start_month)
        while quarter.start <= bounds.end:
            n = bucket_number(quarter.start, RecurrencePattern.QUARTERLY, fiscal_year_start_month)
            slots.append(TaskSlot(anchor_end=quarter.end, title_suffix=f"Q{n}"))
            quarter = next_period_bounds(quarter, RecurrencePattern.QUARTERLY, fiscal_year_start_month)
        return tuple(slots)

    return ()


def slot_due_dates(
    rule: DueDateRule,
    template_granularity: RecurrencePattern,
    work_pattern: RecurrencePattern,
    bounds: PeriodBounds,
    fiscal_year_start_month: int = 1,
    not_before: date | None = None,
) -> list[tuple[TaskSlot, date]]:
    """Slots with resolved due dates, dropping those due before ``not_before``."""
    planned = []
    for slot in plan_task_slots(template_granularity, work_pattern, bounds, fiscal_year_start_month):
        due = resolve_due_date(rule, slot.anchor_end)
        if not_before is not None and due < not_before:
            continue
        planned.append((slot, due))
    return planned


def leaf_granularity(granularities: Iterable[RecurrencePattern]) -> RecurrencePattern | None:
    """The finest granularity present, or None for an empty input."""
    return min(granularities, key=lambda g: g.months, default=None)


def first_task_due_date(
    templates: Iterable[tuple[DueDateRule, RecurrencePattern]],
    work_pattern: RecurrencePattern,
    bounds: PeriodBounds,
    fiscal_year_start_month: int = 1,
    not_before: date | None = None,
) -> date | None:
    """Earliest due date among the period's first tasks.

    First tasks are the templates at the leaf granularity, e.g. monthly
    templates inside a quarterly period.  Returns None when no template
    produces a slot.
    """
    templates = list(templates)
    leaf = leaf_granularity(g for _, g in templates)
    if leaf is None:
        return None

    due_dates = [
        due
        for rule, granularity in templates
        if granularity is leaf
        for _, due in slot_due_dates(
            rule, granularity, work_pattern, bounds, fiscal_year_start_month, not_before
        )
    ]
    return min(due_dates, default=None)


def should_materialize(
    policy: BackfillPolicy,
    bounds: PeriodBounds,
    today: date,
    first_due: date | None = None,
) -> bool:
    """Eligibility decision for one candidate period."""
    if bounds.start > today:
        return False
    if policy is BackfillPolicy.ALWAYS_MATERIALIZE:
        return True
    return first_due is not None and first_due < today
