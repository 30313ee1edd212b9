"""
PeriodMaterializer -- creates a recurring period and its task instances.

Responsibility:
    For one (work, period bounds) pair, insert the RecurringPeriod if it is
    absent and instantiate every applicable service task template into it,
    honouring per-work overrides, nested granularities and due-date rules.

Architecture position:
    Kernel > Services.  Called by RecurrenceBackfillService.  All slot and
    due-date decisions are delegated to ``billing_kernel.domain.recurrence``
    and ``billing_kernel.domain.due_dates``.

Invariants enforced:
    - One period per (work_id, period_start, period_end).
    - One task per (period_id, template_id, due_date): existence check
      first, unique constraint as backstop.  Re-running is a no-op.
    - After every run the period's counters are recomputed from its rows:
      total_tasks, completed_tasks, all_tasks_completed and due_date (the
      latest task due date, or period_end when the period has no tasks).

Failure modes:
    - Templates whose granularity cannot nest inside the work's pattern
      (coarser, or half-yearly inside yearly) produce no tasks and log
      ``template_granularity_unsupported``.
    - Flushes may raise IntegrityError under a concurrent writer; the
      caller's SAVEPOINT rolls the whole period back.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.domain.due_dates import effective_rule
from billing_kernel.domain.periods import period_name
from billing_kernel.domain.recurrence import effective_granularity, plan_task_slots, slot_due_dates
from billing_kernel.domain.types import (
    DueDateRule,
    PeriodBounds,
    PeriodStatus,
    RecurrencePattern,
    TaskStatus,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.catalog import ServiceTaskTemplate
from billing_kernel.models.period import PeriodTask, RecurringPeriod
from billing_kernel.models.work import Work, WorkTaskConfig
from billing_kernel.services.base import BaseService
from billing_kernel.services.completion_service import CompletionAggregator

logger = get_logger("services.materializer")


@dataclass(frozen=True)
class TemplatePlan:
    """A template with its per-work override already merged."""

    template: ServiceTaskTemplate
    override: WorkTaskConfig | None
    granularity: RecurrencePattern
    rule: DueDateRule

    def applies_to(self, bounds: PeriodBounds) -> bool:
        start = self.template.start_date
        return start is None or start <= bounds.end


@dataclass
class MaterializeResult:
    period: RecurringPeriod
    period_created: bool = False
    tasks_created: int = 0


class PeriodMaterializer(BaseService[RecurringPeriod]):
    """
    Period and task instantiation.

    Contract:
        ``materialize()`` is idempotent for identical inputs.

    Non-goals:
        - Deciding WHETHER a period should exist; that is the backfill
          policy's job.
        - Removing tasks of templates that were later deactivated.
    """

    def template_plans(self, work: Work) -> list[TemplatePlan]:
        """Active templates of the work's service, ordered by (sort_order, title)."""
        templates = self.session.execute(
            select(ServiceTaskTemplate)
            .where(
                ServiceTaskTemplate.service_id == work.service_id,
                ServiceTaskTemplate.is_active.is_(True),
            )
            .order_by(ServiceTaskTemplate.sort_order, ServiceTaskTemplate.title)
        ).scalars().all()

        overrides = {
            config.template_id: config
            for config in self.session.execute(
                select(WorkTaskConfig).where(WorkTaskConfig.work_id == work.id)
            ).scalars()
        }

        plans = []
        for template in templates:
            override = overrides.get(template.id)
            plans.append(
                TemplatePlan(
                    template=template,
                    override=override,
                    granularity=effective_granularity(
                        work.recurrence_pattern,
                        template.recurrence_granularity,
                        override.recurrence_granularity if override else None,
                    ),
                    rule=effective_rule(template, override),
                )
            )
        return plans

    def find_period(self, work_id: UUID, bounds: PeriodBounds) -> RecurringPeriod | None:
        return self.session.execute(
            select(RecurringPeriod).where(
                RecurringPeriod.work_id == work_id,
                RecurringPeriod.period_start == bounds.start,
                RecurringPeriod.period_end == bounds.end,
            )
        ).scalar_one_or_none()

    def materialize(
        self,
        work: Work,
        bounds: PeriodBounds,
        actor_id: UUID,
        plans: list[TemplatePlan] | None = None,
    ) -> MaterializeResult:
        """
        Ensure the period exists and every applicable task slot is filled.

        Args:
            work: The recurring work.
            bounds: Period bounds, normally from ``period_bounds()``.
            actor_id: Recorded as ``created_by_id`` on new rows.
            plans: Pre-computed template plans; loaded when omitted.
        """
        pattern = work.pattern
        fy = work.fiscal_year_start_month

        period = self.find_period(work.id, bounds)
        created = period is None
        if created:
            period = RecurringPeriod(
                work_id=work.id,
                period_start=bounds.start,
                period_end=bounds.end,
                period_name=period_name(bounds, pattern, fy),
                due_date=bounds.end,
                status=PeriodStatus.PENDING.value,
                total_tasks=0,
                completed_tasks=0,
                all_tasks_completed=False,
                created_by_id=actor_id,
            )
            self.session.add(period)
            self.session.flush()
            logger.info(
                "period_created",
                extra={
                    "work_id": str(work.id),
                    "period_id": str(period.id),
                    "period_name": period.period_name,
                    "period_start": bounds.start,
                    "period_end": bounds.end,
                },
            )

        result = MaterializeResult(period=period, period_created=created)

        if plans is None:
            plans = self.template_plans(work)

        existing = self._existing_slot_keys(period.id)
        for plan in plans:
            if not plan.applies_to(bounds):
                continue
            if not plan_task_slots(plan.granularity, pattern, bounds, fy):
                logger.warning(
                    "template_granularity_unsupported",
                    extra={
                        "work_id": str(work.id),
                        "template_id": str(plan.template.id),
                        "template_granularity": plan.granularity.value,
                        "work_pattern": pattern.value,
                    },
                )
                continue

            slots = slot_due_dates(
                plan.rule, plan.granularity, pattern, bounds, fy, not_before=work.start_date
            )
            for slot, due in slots:
                key = (plan.template.id, due)
                if key in existing:
                    continue
                task = self._build_task(period, plan, slot.title_suffix, due, actor_id)
                self.session.add(task)
                existing.add(key)
                result.tasks_created += 1
                logger.debug(
                    "period_task_created",
                    extra={
                        "period_id": str(period.id),
                        "template_id": str(plan.template.id),
                        "title": task.title,
                        "due_date": due,
                    },
                )

        if result.tasks_created:
            period.tasks_generated_at = self.clock.now()
        self.session.flush()
        self.refresh_counters(period, actor_id)
        return result

    def _existing_slot_keys(self, period_id: UUID) -> set[tuple[UUID, date]]:
        rows = self.session.execute(
            select(PeriodTask.template_id, PeriodTask.due_date).where(
                PeriodTask.period_id == period_id
            )
        ).all()
        return {(template_id, due) for template_id, due in rows}

    @staticmethod
    def _build_task(
        period: RecurringPeriod,
        plan: TemplatePlan,
        suffix: str | None,
        due: date,
        actor_id: UUID,
    ) -> PeriodTask:
        template = plan.template
        title = f"{template.title} - {suffix}" if suffix else template.title
        return PeriodTask(
            period_id=period.id,
            template_id=template.id,
            title=title,
            description=template.description,
            due_date=due,
            status=TaskStatus.PENDING.value,
            priority=template.priority,
            estimated_hours=template.estimated_hours,
            sort_order=template.sort_order,
            assigned_to_id=plan.override.assigned_to_id if plan.override else None,
            created_by_id=actor_id,
        )

    def refresh_counters(self, period: RecurringPeriod, actor_id: UUID) -> None:
        """Recompute counters, status and due date from the period's task rows."""
        CompletionAggregator(self.session, self.clock).refresh_period(period, actor_id)
        latest_due = self.session.execute(
            select(func.max(PeriodTask.due_date)).where(PeriodTask.period_id == period.id)
        ).scalar_one()
        period.due_date = latest_due or period.period_end
        self.session.flush()
