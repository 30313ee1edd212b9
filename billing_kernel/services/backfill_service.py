"""
RecurrenceBackfillService -- generates every due period of a recurring work.

Responsibility:
    Walks the calendar buckets from the work's start date up to "today",
    decides per bucket whether it should exist under the active
    BackfillPolicy, and hands eligible buckets to the PeriodMaterializer.

Architecture position:
    Kernel > Services.  Called by ``billing_services.cascade`` on work
    creation and by the recurrence scheduler on every tick.

Invariants enforced:
    - Bounded iteration: candidates are enumerated up front by
      ``enumerate_candidate_periods()``; when more than ``max_periods``
      exist, BackfillLimitExceededError is raised before anything is
      written.
    - Idempotency: existing periods are never duplicated.  Their tasks are
      topped up, so a template added later reaches old periods too.
    - TASK_DRIVEN: a missing period is created only once its first-task
      due date is strictly before today.

Failure modes:
    - BackfillLimitExceededError propagates to the caller.  It is never
      swallowed here.
    - ValueError for an invalid fiscal_year_start_month on the work.

Audit relevance:
    Every run logs ``backfill_completed`` with the per-outcome counts, so a
    missing period can be traced to the policy decision that deferred it.
"""

from dataclasses import dataclass
from datetime import date
from uuid import UUID

from billing_kernel.domain.recurrence import (
    DEFAULT_MAX_PERIODS,
    enumerate_candidate_periods,
    first_task_due_date,
    should_materialize,
)
from billing_kernel.domain.types import BackfillPolicy
from billing_kernel.logging_config import get_logger
from billing_kernel.models.work import Work
from billing_kernel.services.base import BaseService
from billing_kernel.services.materializer import PeriodMaterializer

logger = get_logger("services.backfill")


@dataclass
class BackfillResult:
    work_id: UUID
    candidates_examined: int = 0
    periods_created: int = 0
    periods_existing: int = 0
    periods_deferred: int = 0
    tasks_created: int = 0


class RecurrenceBackfillService(BaseService[Work]):
    """
    Period backfill for recurring works.

    Contract:
        ``backfill()`` may be called any number of times for the same work
        and day; only the first call writes.
    """

    def __init__(self, session, clock, materializer: PeriodMaterializer | None = None):
        super().__init__(session, clock)
        self._materializer = materializer or PeriodMaterializer(session, clock)

    def backfill(
        self,
        work: Work,
        actor_id: UUID,
        today: date | None = None,
        policy: BackfillPolicy | str = BackfillPolicy.TASK_DRIVEN,
        max_periods: int = DEFAULT_MAX_PERIODS,
    ) -> BackfillResult:
        """
        Create every due, missing period of ``work``.

        Args:
            work: The work; non-recurring works and works without a start
                date yield an empty result.
            actor_id: Recorded on created rows.
            today: Evaluation date; defaults to ``clock.today()``.
            policy: Eligibility policy for missing periods.
            max_periods: Candidate cap for this run.

        Raises:
            BackfillLimitExceededError: more than ``max_periods`` candidates.
        """
        result = BackfillResult(work_id=work.id)
        if not work.is_recurring or work.start_date is None:
            logger.debug(
                "backfill_skipped",
                extra={"work_id": str(work.id), "is_recurring": work.is_recurring},
            )
            return result

        policy = BackfillPolicy(policy)
        today = today or self.clock.today()
        pattern = work.pattern
        fy = work.fiscal_year_start_month

        candidates = enumerate_candidate_periods(
            work.start_date, pattern, today, fy, limit=max_periods, work_id=work.id
        )
        plans = self._materializer.template_plans(work)

        for bounds in candidates:
            result.candidates_examined += 1
            applicable = [plan for plan in plans if plan.applies_to(bounds)]

            if self._materializer.find_period(work.id, bounds) is not None:
                result.periods_existing += 1
                outcome = self._materializer.materialize(work, bounds, actor_id, applicable)
                result.tasks_created += outcome.tasks_created
                continue

            first_due = None
            if policy is BackfillPolicy.TASK_DRIVEN:
                first_due = first_task_due_date(
                    ((plan.rule, plan.granularity) for plan in applicable),
                    pattern,
                    bounds,
                    fy,
                    not_before=work.start_date,
                )
            if not should_materialize(policy, bounds, today, first_due):
                result.periods_deferred += 1
                logger.debug(
                    "period_deferred",
                    extra={
                        "work_id": str(work.id),
                        "period_start": bounds.start,
                        "first_task_due": first_due,
                    },
                )
                continue

            outcome = self._materializer.materialize(work, bounds, actor_id, applicable)
            result.periods_created += int(outcome.period_created)
            result.tasks_created += outcome.tasks_created

        logger.info(
            "backfill_completed",
            extra={
                "work_id": str(work.id),
                "policy": policy.value,
                "candidates_examined": result.candidates_examined,
                "periods_created": result.periods_created,
                "periods_existing": result.periods_existing,
                "periods_deferred": result.periods_deferred,
                "tasks_created": result.tasks_created,
            },
        )
        return result
