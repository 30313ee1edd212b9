"""
RecurringPeriod and PeriodTask -- materialized calendar periods of a
recurring work and the task instances inside them.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.types import PeriodBounds, PeriodStatus, TaskStatus


class RecurringPeriod(TrackedBase):
    """
    One calendar period instance of a recurring work.

    Contract:
        Created by the materializer; counters and status are maintained by
        the completion aggregator; billing fields by the invoice generator.

    Guarantees:
        - Unique per (work_id, period_start, period_end): regenerating is a
          no-op, never a duplicate.
        - all_tasks_completed == (total_tasks > 0 and
          completed_tasks == total_tasks) after every aggregation.
        - ``invoice_id`` carries no FK: invoices reference periods, and the
          back-reference would make the two tables mutually dependent.
    """

    __tablename__ = "recurring_periods"

    __table_args__ = (
        UniqueConstraint(
            "work_id", "period_start", "period_end", name="uq_recurring_period_bounds"
        ),
        Index("idx_recurring_period_work", "work_id", "period_start"),
    )

    work_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("works.id", ondelete="CASCADE"), nullable=False
    )

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    period_name: Mapped[str] = mapped_column(String(50), nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=PeriodStatus.PENDING.value, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    total_tasks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_tasks: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    all_tasks_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Period-specific price override
    billing_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    is_billed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    invoice_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    tasks_generated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<RecurringPeriod {self.period_name}: {self.completed_tasks}/{self.total_tasks}>"

    @property
    def bounds(self) -> PeriodBounds:
        return PeriodBounds(start=self.period_start, end=self.period_end)


class PeriodTask(TrackedBase):
    """
    A task instance inside a recurring period.

    Guarantees:
        - Unique per (period_id, template_id, due_date), so repeated
          backfill runs never instantiate a template twice for the same slot.
    """

    __tablename__ = "period_tasks"

    __table_args__ = (
        UniqueConstraint("period_id", "template_id", "due_date", name="uq_period_task_slot"),
        Index("idx_period_task_period", "period_id", "status"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("recurring_periods.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("service_task_templates.id"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=TaskStatus.PENDING.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    estimated_hours: Mapped[Decimal | None] = mapped_column(Numeric(9, 2), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    assigned_to_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<PeriodTask {self.title} due {self.due_date}: {self.status}>"
