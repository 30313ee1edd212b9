"""
BaseService -- abstract base for all billing kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service in the kernel.  Services receive a SQLAlchemy
    ``Session`` and persist through ``session.flush()``, never
    ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell around the pure domain layer.

Invariants enforced:
    - Transaction boundaries: services flush within the caller's
      transaction and never commit or roll back themselves.  The cascade
      wraps each call in a SAVEPOINT; the outermost caller owns commit.

Failure modes:
    - A subclass that commits breaks the per-step SAVEPOINT isolation of
      ``billing_services.cascade``.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from billing_kernel.db.base import Base
from billing_kernel.domain.clock import Clock

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Contract:
        Accepts a ``Session`` and a ``Clock`` from the caller.  Time is never
        read from the system inside a service.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide read-only query methods; those belong in
          ``billing_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock):
        self.session = session
        self.clock = clock
