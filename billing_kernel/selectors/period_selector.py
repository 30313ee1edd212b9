"""
Module: billing_kernel.selectors.period_selector
Responsibility: Read-only queries over recurring periods and their tasks,
    for display and for the recurrence scheduler's work list.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import select

from billing_kernel.domain.types import WorkStatus
from billing_kernel.models.period import PeriodTask, RecurringPeriod
from billing_kernel.models.work import Work
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class PeriodSummary:
    period_id: UUID
    work_id: UUID
    period_name: str
    period_start: date
    period_end: date
    due_date: date
    status: str
    total_tasks: int
    completed_tasks: int
    all_tasks_completed: bool
    is_billed: bool
    invoice_id: UUID | None


@dataclass(frozen=True)
class PeriodTaskSummary:
    task_id: UUID
    template_id: UUID
    title: str
    due_date: date
    status: str
    priority: str


class PeriodSelector(BaseSelector[RecurringPeriod]):
    """Selector for recurring periods and period tasks."""

    def periods_for_work(self, work_id: UUID) -> list[PeriodSummary]:
        periods = self.session.execute(
            select(RecurringPeriod)
            .where(RecurringPeriod.work_id == work_id)
            .order_by(RecurringPeriod.period_start)
        ).scalars().all()
        return [
            PeriodSummary(
                period_id=p.id,
                work_id=p.work_id,
                period_name=p.period_name,
                period_start=p.period_start,
                period_end=p.period_end,
                due_date=p.due_date,
                status=p.status,
                total_tasks=p.total_tasks,
                completed_tasks=p.completed_tasks,
                all_tasks_completed=p.all_tasks_completed,
                is_billed=p.is_billed,
                invoice_id=p.invoice_id,
            )
            for p in periods
        ]

    def tasks_for_period(self, period_id: UUID) -> list[PeriodTaskSummary]:
        tasks = self.session.execute(
            select(PeriodTask)
            .where(PeriodTask.period_id == period_id)
            .order_by(PeriodTask.sort_order, PeriodTask.due_date, PeriodTask.title)
        ).scalars().all()
        return [
            PeriodTaskSummary(
                task_id=t.id,
                template_id=t.template_id,
                title=t.title,
                due_date=t.due_date,
                status=t.status,
                priority=t.priority,
            )
            for t in tasks
        ]

    def recurring_work_ids(self, include_completed: bool = True) -> list[UUID]:
        """Ids of recurring works with a start date, oldest start first."""
        query = (
            select(Work.id)
            .where(Work.is_recurring.is_(True), Work.start_date.is_not(None))
            .order_by(Work.start_date, Work.id)
        )
        if not include_completed:
            query = query.where(Work.status != WorkStatus.COMPLETED.value)
        return list(self.session.execute(query).scalars().all())
