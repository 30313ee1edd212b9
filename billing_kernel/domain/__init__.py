"""
Pure domain layer.

This package contains enums, immutable value objects and the recurrence,
due-date, pricing and state-transition rules, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (except SystemClock)
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.due_dates import effective_rule, resolve_due_date
from billing_kernel.domain.periods import next_period_bounds, period_bounds, period_name
from billing_kernel.domain.pricing import InvoiceAmounts, compute_amounts, resolve_price
from billing_kernel.domain.transitions import (
    CompletionEffect,
    LedgerEffect,
    derive_completion,
    invoice_transition_effects,
)
from billing_kernel.domain.types import (
    BackfillPolicy,
    BillingStatus,
    DueDateRule,
    DueOffsetType,
    InvoiceStatus,
    PeriodBounds,
    PeriodStatus,
    RecurrencePattern,
    TaskStatus,
    WorkStatus,
)

__all__ = [
    "BackfillPolicy",
    "BillingStatus",
    "Clock",
    "CompletionEffect",
    "DeterministicClock",
    "DueDateRule",
    "DueOffsetType",
    "InvoiceAmounts",
    "InvoiceStatus",
    "LedgerEffect",
    "PeriodBounds",
    "PeriodStatus",
    "RecurrencePattern",
    "SystemClock",
    "TaskStatus",
    "WorkStatus",
    "compute_amounts",
    "derive_completion",
    "effective_rule",
    "invoice_transition_effects",
    "next_period_bounds",
    "period_bounds",
    "period_name",
    "resolve_due_date",
    "resolve_price",
]
