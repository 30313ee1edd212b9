"""
BillingCascade -- the ordered pipeline that reacts to billing events.

Responsibility:
    Turns each external event (work created, task status changed, invoice
    status changed, invoice deleted) into the explicit sequence of kernel
    calls it implies:

        period generation -> task materialization -> completion roll-up
            -> invoice generation -> ledger posting

Architecture position:
    Services.  Composes the flush-only kernel services with configuration
    from ``billing_config`` and an injected Clock.

Invariants enforced:
    - Step isolation: every downstream step runs inside
      ``session.begin_nested()``.  A failing step is rolled back to its
      savepoint, logged with ``cascade_step_failed`` and the cascade
      carries on, so the caller's own write survives.
    - BackfillLimitExceededError and InvalidInvoiceTransitionError are the
      only exceptions that propagate; both are rolled back to the step's
      savepoint first.
    - The cascade never commits.  The caller owns the transaction.

Failure modes:
    - See the per-service modules; configuration-missing cases surface as
      warnings and a partial result, never as exceptions.

Audit relevance:
    ``CascadeResult.steps_failed`` plus the ``cascade_step_failed`` log
    record (with traceback) identify any side effect that did not happen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import BackfillLimitExceededError, InvalidInvoiceTransitionError
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.period import PeriodTask, RecurringPeriod
from billing_kernel.models.work import Work, WorkTask
from billing_kernel.services.backfill_service import BackfillResult, RecurrenceBackfillService
from billing_kernel.services.completion_service import AggregationResult, CompletionAggregator
from billing_kernel.services.invoice_generator import InvoiceGenerator
from billing_kernel.services.ledger_posting_service import (
    LedgerPostingResult,
    LedgerPostingService,
)
from billing_kernel.services.numbering import NumberingService

logger = get_logger("services.cascade")

_PROPAGATING = (BackfillLimitExceededError, InvalidInvoiceTransitionError)


@dataclass
class CascadeResult:
    steps_run: list[str] = field(default_factory=list)
    steps_failed: list[str] = field(default_factory=list)
    backfill: BackfillResult | None = None
    aggregation: AggregationResult | None = None
    invoices: list[Invoice] = field(default_factory=list)
    postings: list[LedgerPostingResult] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.steps_failed


class BillingCascade:
    """
    Event entry points for the billing kernel.

    Contract:
        Callers persist their own change first (new work, new task status,
        new invoice status), then call the matching ``on_*`` method with
        the previous status.  They commit afterwards.

    Non-goals:
        - Does NOT detect changes itself; old status is passed explicitly.
        - Does NOT commit or roll back the outer transaction.
    """

    def __init__(
        self,
        session: Session,
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
    ):
        self._session = session
        self._config = config or BillingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()

        numbering = NumberingService(session)
        self._backfill = RecurrenceBackfillService(session, self._clock)
        self._aggregator = CompletionAggregator(session, self._clock)
        self._invoices = InvoiceGenerator(session, self._clock, numbering)
        self._ledger = LedgerPostingService(session, self._clock, numbering)

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def on_work_created(self, work: Work) -> CascadeResult:
        logger.info(
            "work_created",
            extra={"work_id": str(work.id), "is_recurring": work.is_recurring},
        )
        return self.reevaluate_work(work)

    def reevaluate_work(self, work: Work) -> CascadeResult:
        """Backfill missing periods, then re-derive the work's completion."""
        result = CascadeResult()
        backfill = self._config.backfill
        with LogContext.bind(work_id=work.id, actor_id=self._actor_id):
            result.backfill = self._run_step(
                "backfill",
                result,
                self._backfill.backfill,
                work,
                actor_id=self._actor_id,
                today=self._clock.today(),
                policy=backfill.policy,
                max_periods=backfill.max_periods_per_run,
            )
            # New periods, or tasks topped up into existing ones, can move
            # the work across the all-complete boundary in either direction.
            if result.backfill is not None and (
                result.backfill.periods_created or result.backfill.tasks_created
            ):
                self._run_step(
                    "aggregate",
                    result,
                    self._aggregator.refresh_recurring_work,
                    work,
                    self._actor_id,
                )
        return result

    def on_period_task_status_changed(self, task: PeriodTask, old_status: str) -> CascadeResult:
        result = CascadeResult()
        with LogContext.bind(actor_id=self._actor_id):
            result.aggregation = self._run_step(
                "aggregate",
                result,
                self._aggregator.on_period_task_status_changed,
                task,
                old_status,
                self._actor_id,
            )
            if result.aggregation is not None:
                self._bill(result.aggregation.invoice_keys, result)
        return result

    def on_work_task_status_changed(self, task: WorkTask, old_status: str) -> CascadeResult:
        result = CascadeResult()
        with LogContext.bind(work_id=task.work_id, actor_id=self._actor_id):
            result.aggregation = self._run_step(
                "aggregate",
                result,
                self._aggregator.on_work_task_status_changed,
                task,
                old_status,
                self._actor_id,
            )
            if result.aggregation is not None:
                self._bill(result.aggregation.invoice_keys, result)
        return result

    def on_invoice_status_changed(self, invoice: Invoice, old_status: str | None) -> CascadeResult:
        """
        Raises:
            InvalidInvoiceTransitionError: paid -> cancelled.
        """
        result = CascadeResult()
        with LogContext.bind(invoice_id=invoice.id, work_id=invoice.work_id, actor_id=self._actor_id):
            posting = self._post(invoice, old_status, result)
            if posting is not None:
                result.postings.append(posting)
        return result

    def delete_invoice(self, invoice: Invoice) -> CascadeResult:
        """
        Delete an invoice together with everything derived from it.

        Receipts and ledger rows are removed first, then the invoice, and
        its period and work are released so the next completion bills them
        again.  Both run in one step, so a failure leaves the invoice and
        its postings untouched.
        """
        result = CascadeResult()
        with LogContext.bind(invoice_id=invoice.id, work_id=invoice.work_id, actor_id=self._actor_id):
            posting = self._run_step("delete_invoice", result, self._delete_invoice, invoice)
            if posting is not None:
                result.postings.append(posting)
        return result

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _delete_invoice(self, invoice: Invoice) -> LedgerPostingResult:
        posting = self._ledger.remove_postings(invoice, self._actor_id)
        self._invoices.delete(invoice, self._actor_id)
        return posting

    def _bill(self, keys: list[tuple[UUID, UUID | None]], result: CascadeResult) -> None:
        invoicing = self._config.invoicing
        numbering = self._config.numbering
        for work_id, period_id in keys:
            work = self._session.get(Work, work_id)
            period = self._session.get(RecurringPeriod, period_id) if period_id else None
            with LogContext.bind(work_id=work_id):
                invoice = self._run_step(
                    "invoice",
                    result,
                    self._invoices.generate,
                    work,
                    period,
                    self._actor_id,
                    today=self._clock.today(),
                    payment_terms_days=invoicing.payment_terms_days,
                    number_prefix=numbering.invoice_prefix,
                    number_width=numbering.invoice_width,
                    number_start=numbering.invoice_start,
                )
                if invoice is None:
                    continue
                result.invoices.append(invoice)
                posting = self._post(invoice, None, result)
                if posting is not None:
                    result.postings.append(posting)

    def _post(
        self,
        invoice: Invoice,
        old_status: str | None,
        result: CascadeResult,
    ) -> LedgerPostingResult | None:
        numbering = self._config.numbering
        return self._run_step(
            "ledger",
            result,
            self._ledger.apply_status_change,
            invoice,
            old_status,
            self._actor_id,
            receipt_prefix=numbering.receipt_prefix,
            receipt_width=numbering.receipt_width,
        )

    def _run_step(
        self,
        name: str,
        result: CascadeResult,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Run one step inside a SAVEPOINT; returns None if it failed."""
        result.steps_run.append(name)
        savepoint = self._session.begin_nested()
        try:
            value = fn(*args, **kwargs)
            savepoint.commit()
            return value
        except _PROPAGATING:
            savepoint.rollback()
            result.steps_failed.append(name)
            raise
        except Exception:
            savepoint.rollback()
            result.steps_failed.append(name)
            logger.exception("cascade_step_failed", extra={"step": name})
            return None
