"""
billing_kernel.domain.types -- Enums and frozen dataclasses for recurring billing.

ZERO I/O.  Status enums are ``str, Enum`` so they compare equal to the raw
strings stored in ``String(20)`` columns.

Invariants enforced:
    - All DTOs are frozen dataclasses (immutable).
    - ``PeriodBounds`` always satisfies start <= end.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from billing_kernel.logging_config import get_logger

logger = get_logger("domain.types")


# =============================================================================
# Recurrence enums
# =============================================================================


class RecurrencePattern(str, Enum):
    """Calendar bucket size for a recurring work or a task template."""

    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    HALF_YEARLY = "half_yearly"
    YEARLY = "yearly"

    @property
    def months(self) -> int:
        return _PATTERN_MONTHS[self]

    @classmethod
    def parse(cls, value: str | RecurrencePattern | None) -> RecurrencePattern:
        """Parse a stored pattern.  Unknown or empty values fall back to MONTHLY."""
        if isinstance(value, RecurrencePattern):
            return value
        normalized = (value or "").strip().lower().replace("-", "_")
        if normalized == "halfyearly":
            return cls.HALF_YEARLY
        try:
            return cls(normalized)
        except ValueError:
            logger.debug(
                "recurrence_pattern_fallback",
                extra={"pattern": value, "fallback": cls.MONTHLY.value},
            )
            return cls.MONTHLY


_PATTERN_MONTHS = {
    RecurrencePattern.MONTHLY: 1,
    RecurrencePattern.QUARTERLY: 3,
    RecurrencePattern.HALF_YEARLY: 6,
    RecurrencePattern.YEARLY: 12,
}


class BackfillPolicy(str, Enum):
    """Which candidate periods the backfill engine materializes."""

    ALWAYS_MATERIALIZE = "always_materialize"  # Every period with start <= today
    TASK_DRIVEN = "task_driven"  # Only once the first-task due date has elapsed


class DueOffsetType(str, Enum):
    """Offset rule applied to a period end to obtain a task due date."""

    DAYS = "days"
    MONTHS = "months"
    DAY_OF_MONTH = "day_of_month"

    @classmethod
    def parse(cls, value: str | DueOffsetType | None) -> DueOffsetType | None:
        """Parse an offset type; singular forms are accepted, unknown -> None."""
        if value is None or isinstance(value, DueOffsetType):
            return value
        normalized = value.strip().lower()
        aliases = {"day": cls.DAYS, "month": cls.MONTHS}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            return None


# =============================================================================
# Status enums
# =============================================================================


class WorkStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class PeriodStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class BillingStatus(str, Enum):
    NOT_BILLED = "not_billed"
    BILLED = "billed"


class InvoiceStatus(str, Enum):
    """Invoice lifecycle.

    draft -> {sent, pending, overdue} -> paid.  cancelled is reachable from
    any non-paid state and every state may return to draft.
    """

    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"
    OVERDUE = "overdue"
    PAID = "paid"
    CANCELLED = "cancelled"

    @property
    def is_unposted(self) -> bool:
        """Draft and cancelled invoices carry no ledger rows."""
        return self in (InvoiceStatus.DRAFT, InvoiceStatus.CANCELLED)


class ReceiptAccountPreference(str, Enum):
    """Which company default account receives customer payments."""

    CASH = "cash"
    BANK = "bank"


class VoucherType(str, Enum):
    RECEIPT = "receipt"


# =============================================================================
# Value objects
# =============================================================================


@dataclass(frozen=True)
class PeriodBounds:
    """Inclusive [start, end] of one calendar period."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValueError(f"Period start {self.start} is after end {self.end}")

    def contains(self, day: date) -> bool:
        return self.start <= day <= self.end


@dataclass(frozen=True)
class DueDateRule:
    """The due-date fields of a task template after per-work overrides."""

    exact_due_date: date | None = None
    offset_type: DueOffsetType | None = None
    offset_value: int | None = None


@dataclass(frozen=True)
class TaskSlot:
    """One task instance to materialize inside a period.

    ``anchor_end`` is the end date the due-date rule is applied to; the
    period end for same-granularity templates, otherwise the end of the
    month or quarter the slot covers.
    """

    anchor_end: date
    title_suffix: str | None = None
