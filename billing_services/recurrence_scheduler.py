"""
RecurrenceScheduler -- in-process polling re-evaluation of recurring works.

Contract:
    On every tick, opens a session, runs ``BillingCascade.reevaluate_work``
    for each recurring work with a start date, and commits.  Periods that
    became due since the last tick (a new month, or a first-task due date
    that has now passed) are created this way.

Architecture: billing_services.  Uses PeriodSelector for the work list and
    the cascade for all writes.

Invariants enforced:
    - All dates come from the injected Clock.
    - Per-work isolation: the cascade's SAVEPOINT rolls back a failing
      work (including one whose backfill cap tripped); the remaining
      works are still evaluated and committed.
    - Graceful shutdown: the stop signal is checked between works.
"""

from __future__ import annotations

import threading
from typing import Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.logging_config import get_logger
from billing_kernel.models.work import Work
from billing_kernel.selectors.period_selector import PeriodSelector
from billing_services.cascade import BillingCascade

logger = get_logger("services.recurrence_scheduler")


class RecurrenceScheduler:
    """Polling scheduler for period backfill.

    Contract:
        - ``tick()`` re-evaluates every recurring work once.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (no leader election); run one
          instance per database.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        config: BillingConfig | None = None,
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 3600,
    ):
        self._session_factory = session_factory
        self._config = config or BillingConfig.with_defaults()
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._tick_interval = tick_interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> int:
        """Re-evaluate all recurring works (public for testing).

        Returns the number of periods created.
        """
        session = self._session_factory()
        try:
            created = self._reevaluate_all(session)
            session.commit()
            return created
        except Exception:
            session.rollback()
            logger.exception("scheduler_tick_failed")
            return 0
        finally:
            session.close()

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="recurrence-scheduler",
            daemon=True,
        )
        self._thread.start()
        logger.info("scheduler_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish.

        Args:
            timeout: Max seconds to wait for the thread to finish.
        """
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("scheduler_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("scheduler_tick_exception")
            self._stop_event.wait(timeout=self._tick_interval)

    def _reevaluate_all(self, session: Session) -> int:
        cascade = BillingCascade(session, self._config, self._clock, self._actor_id)
        created = 0
        for work_id in PeriodSelector(session).recurring_work_ids():
            if self._stop_event.is_set():
                break
            work = session.get(Work, work_id)
            try:
                result = cascade.reevaluate_work(work)
            except Exception:
                logger.exception(
                    "recurrence_reevaluation_failed",
                    extra={"work_id": str(work_id)},
                )
                continue
            if result.backfill is not None:
                created += result.backfill.periods_created

        logger.info(
            "scheduler_tick_completed",
            extra={"periods_created": created, "today": self._clock.today()},
        )
        return created
