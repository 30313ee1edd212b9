"""
CompletionAggregator -- rolls task status changes up to periods and works.

Responsibility:
    After a PeriodTask or WorkTask status change, recount the owning
    aggregate, flip its status when it crosses the all-complete boundary,
    and report which (work, period) keys became eligible for invoicing.

Architecture position:
    Kernel > Services.  Called by ``billing_services.cascade``; the status
    decision itself is ``billing_kernel.domain.transitions.derive_completion``.

Invariants enforced:
    - Counters are recomputed from rows on every call, never incremented.
    - all_tasks_completed == (total > 0 and completed == total).
    - OLD vs NEW: a change that does not move a task across the completed
      boundary cannot fire COMPLETED twice; effects fire on transitions only.
    - A recurring work is complete when it has at least one period and
      every period is all-complete.  completion_date is set on the way in
      and cleared on the way out.
    - Invoice eligibility is additionally gated on period.invoice_generated
      (recurring) or work.billing_status (non-recurring).

Failure modes:
    - ValueError from derive_completion() if the stored counters are
      inconsistent; cannot happen when counts come from the rows.
"""

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.domain.transitions import (
    CompletionEffect,
    CompletionTransition,
    derive_completion,
)
from billing_kernel.domain.types import BillingStatus, PeriodStatus, TaskStatus
from billing_kernel.logging_config import get_logger
from billing_kernel.models.period import PeriodTask, RecurringPeriod
from billing_kernel.models.work import Work, WorkTask
from billing_kernel.services.base import BaseService

logger = get_logger("services.completion")

InvoiceKey = tuple[UUID, UUID | None]


@dataclass
class AggregationResult:
    work_id: UUID | None = None
    period_id: UUID | None = None
    period_effect: CompletionEffect = CompletionEffect.NONE
    work_effect: CompletionEffect = CompletionEffect.NONE
    invoice_keys: list[InvoiceKey] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return (
            self.period_effect is not CompletionEffect.NONE
            or self.work_effect is not CompletionEffect.NONE
        )


class CompletionAggregator(BaseService[RecurringPeriod]):
    """
    Task-to-aggregate completion roll-up.

    Non-goals:
        - Generating invoices; it only reports eligible keys.
    """

    def _stamp_task(self, task: PeriodTask | WorkTask, old_status: str) -> None:
        if task.status == TaskStatus.COMPLETED.value:
            task.completed_at = self.clock.now()
        elif old_status == TaskStatus.COMPLETED.value:
            task.completed_at = None

    def on_period_task_status_changed(
        self,
        task: PeriodTask,
        old_status: str,
        actor_id: UUID,
    ) -> AggregationResult:
        if old_status == task.status:
            return AggregationResult()

        self._stamp_task(task, old_status)
        task.updated_by_id = actor_id
        self.session.flush()

        period = self.session.get(RecurringPeriod, task.period_id)
        work = self.session.get(Work, period.work_id)

        period_transition = self.refresh_period(period, actor_id)
        work_transition = self.refresh_recurring_work(work, actor_id)

        result = AggregationResult(
            work_id=work.id,
            period_id=period.id,
            period_effect=period_transition.effect,
            work_effect=work_transition.effect,
        )
        if period_transition.effect is CompletionEffect.COMPLETED and not period.invoice_generated:
            result.invoice_keys.append((work.id, period.id))

        logger.info(
            "period_task_status_aggregated",
            extra={
                "task_id": str(task.id),
                "period_id": str(period.id),
                "old_status": old_status,
                "new_status": task.status,
                "completed_tasks": period.completed_tasks,
                "total_tasks": period.total_tasks,
                "period_effect": period_transition.effect.value,
                "work_effect": work_transition.effect.value,
            },
        )
        return result

    def on_work_task_status_changed(
        self,
        task: WorkTask,
        old_status: str,
        actor_id: UUID,
    ) -> AggregationResult:
        if old_status == task.status:
            return AggregationResult()

        self._stamp_task(task, old_status)
        task.updated_by_id = actor_id
        self.session.flush()

        work = self.session.get(Work, task.work_id)
        total, completed = self.session.execute(
            select(
                func.count(WorkTask.id),
                func.count(WorkTask.id).filter(WorkTask.status == TaskStatus.COMPLETED.value),
            ).where(WorkTask.work_id == work.id)
        ).one()

        transition = derive_completion(work.status, int(total), int(completed))
        self._apply_work_transition(work, transition, actor_id)

        result = AggregationResult(work_id=work.id, work_effect=transition.effect)
        if (
            transition.effect is CompletionEffect.COMPLETED
            and not work.is_recurring
            and work.billing_status != BillingStatus.BILLED.value
        ):
            result.invoice_keys.append((work.id, None))

        logger.info(
            "work_task_status_aggregated",
            extra={
                "task_id": str(task.id),
                "work_id": str(work.id),
                "old_status": old_status,
                "new_status": task.status,
                "work_effect": transition.effect.value,
            },
        )
        return result

    def refresh_period(self, period: RecurringPeriod, actor_id: UUID) -> CompletionTransition:
        """Recount the period's tasks and apply any status transition."""
        total, completed = self.session.execute(
            select(
                func.count(PeriodTask.id),
                func.count(PeriodTask.id).filter(
                    PeriodTask.status == TaskStatus.COMPLETED.value
                ),
            ).where(PeriodTask.period_id == period.id)
        ).one()

        transition = derive_completion(
            period.status,
            int(total),
            int(completed),
            completed_status=PeriodStatus.COMPLETED.value,
            reopened_status=PeriodStatus.PENDING.value,
        )
        period.total_tasks = int(total)
        period.completed_tasks = int(completed)
        period.all_tasks_completed = transition.all_tasks_completed
        if transition.changed:
            period.status = transition.new_status
            period.completed_at = (
                self.clock.now() if transition.effect is CompletionEffect.COMPLETED else None
            )
            period.updated_by_id = actor_id
            logger.info(
                "period_completion_changed",
                extra={
                    "period_id": str(period.id),
                    "work_id": str(period.work_id),
                    "effect": transition.effect.value,
                },
            )
        self.session.flush()
        return transition

    def refresh_recurring_work(self, work: Work, actor_id: UUID) -> CompletionTransition:
        """A recurring work is complete when all of its periods are."""
        total, complete = self.session.execute(
            select(
                func.count(RecurringPeriod.id),
                func.count(RecurringPeriod.id).filter(
                    RecurringPeriod.all_tasks_completed.is_(True)
                ),
            ).where(RecurringPeriod.work_id == work.id)
        ).one()

        transition = derive_completion(work.status, int(total), int(complete))
        self._apply_work_transition(work, transition, actor_id)
        return transition

    def _apply_work_transition(
        self,
        work: Work,
        transition: CompletionTransition,
        actor_id: UUID,
    ) -> None:
        if not transition.changed:
            return
        work.status = transition.new_status
        if transition.effect is CompletionEffect.COMPLETED:
            work.completion_date = self.clock.now()
        else:
            work.completion_date = None
        work.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "work_completion_changed",
            extra={
                "work_id": str(work.id),
                "effect": transition.effect.value,
                "status": work.status,
            },
        )
