"""
Work -- a billable engagement, its non-recurring task set and its per-work
task template overrides.
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
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.types import (
    BillingStatus,
    RecurrencePattern,
    TaskStatus,
    WorkStatus,
)
from billing_kernel.models.catalog import Customer, Service


class Work(TrackedBase):
    """
    A billable engagement for one customer and one service.

    Contract:
        Created by external CRUD.  The billing kernel mutates only
        ``status``, ``completion_date`` and ``billing_status``.

    Guarantees:
        - ``fiscal_year_start_month`` is 1..12 (enforced by the backfill
          domain functions, which raise ValueError otherwise).
    """

    __tablename__ = "works"

    __table_args__ = (
        Index("idx_work_recurring", "is_recurring", "status"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False
    )
    service_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("services.id"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    recurrence_pattern: Mapped[str | None] = mapped_column(String(20), nullable=True)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    fiscal_year_start_month: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    auto_bill: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    billing_amount: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)
    billing_status: Mapped[str] = mapped_column(
        String(20), default=BillingStatus.NOT_BILLED.value, nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20), default=WorkStatus.PENDING.value, nullable=False
    )
    completion_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    customer: Mapped[Customer] = relationship(lazy="joined")
    service: Mapped[Service] = relationship(lazy="joined")

    def __repr__(self) -> str:
        return f"<Work {self.title}: {self.status}>"

    @property
    def pattern(self) -> RecurrencePattern:
        return RecurrencePattern.parse(self.recurrence_pattern)


class WorkTaskConfig(TrackedBase):
    """
    Per-work override of a service task template.

    Any non-null field replaces the template's value when the template is
    materialized for this work.
    """

    __tablename__ = "work_task_configs"

    __table_args__ = (
        UniqueConstraint("work_id", "template_id", name="uq_work_task_config"),
    )

    work_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("works.id", ondelete="CASCADE"), nullable=False
    )
    template_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("service_task_templates.id", ondelete="CASCADE"), nullable=False
    )

    recurrence_granularity: Mapped[str | None] = mapped_column(String(20), nullable=True)
    exact_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_offset_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    due_offset_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_to_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)


class WorkTask(TrackedBase):
    """Task of a non-recurring work; drives that work's completion."""

    __tablename__ = "work_tasks"

    __table_args__ = (Index("idx_work_task_work", "work_id", "status"),)

    work_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("works.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), default=TaskStatus.PENDING.value, nullable=False
    )
    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
