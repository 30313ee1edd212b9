"""
billing_kernel.domain.transitions -- Pure state-transition functions.

ZERO I/O.  Services compare OLD vs NEW through these functions and only
perform side effects for the effects returned, which keeps recomputation
from re-firing on the aggregator's own writes.

Completion:
    all_tasks_completed = total > 0 and completed == total.
    COMPLETED fires only on the transition into that condition, REOPENED
    only on the transition out of it.

Invoice ledger state machine:

    | old -> new                          | effects                          |
    |-------------------------------------|----------------------------------|
    | old == new                          | ()                               |
    | any -> draft / cancelled            | DELETE_RECEIPT, REVERSE_INVOICE  |
    | paid -> sent / pending / overdue    | DELETE_RECEIPT, POST_INVOICE     |
    | any -> sent / pending / overdue     | POST_INVOICE                     |
    | any -> paid                         | POST_INVOICE, CREATE_RECEIPT     |

    paid -> cancelled is rejected; a paid invoice must be reopened first.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from billing_kernel.domain.types import InvoiceStatus, WorkStatus
from billing_kernel.exceptions import InvalidInvoiceTransitionError


class CompletionEffect(str, Enum):
    NONE = "none"
    COMPLETED = "completed"
    REOPENED = "reopened"


class LedgerEffect(str, Enum):
    POST_INVOICE = "post_invoice"
    REVERSE_INVOICE = "reverse_invoice"
    CREATE_RECEIPT = "create_receipt"
    DELETE_RECEIPT = "delete_receipt"


@dataclass(frozen=True)
class CompletionTransition:
    """Outcome of recomputing an aggregate's completion."""

    new_status: str
    all_tasks_completed: bool
    effect: CompletionEffect

    @property
    def changed(self) -> bool:
        return self.effect is not CompletionEffect.NONE


def is_all_complete(total: int, completed: int) -> bool:
    return total > 0 and completed == total


def derive_completion(
    old_status: str,
    total: int,
    completed: int,
    completed_status: str = WorkStatus.COMPLETED.value,
    reopened_status: str = WorkStatus.IN_PROGRESS.value,
) -> CompletionTransition:
    """Derive the new status of a period or work from its task counters.

    ``completed_status`` / ``reopened_status`` let the same rule serve
    periods (completed / pending) and works (completed / in_progress).
    A status that is neither completed nor being reopened is left alone.
    """
    if completed < 0 or total < 0 or completed > total:
        raise ValueError(f"Invalid task counters: completed={completed}, total={total}")

    all_done = is_all_complete(total, completed)
    was_complete = old_status == completed_status

    if all_done and not was_complete:
        return CompletionTransition(completed_status, True, CompletionEffect.COMPLETED)
    if was_complete and not all_done:
        return CompletionTransition(reopened_status, False, CompletionEffect.REOPENED)
    return CompletionTransition(old_status, all_done, CompletionEffect.NONE)


def invoice_transition_effects(
    old_status: InvoiceStatus | str | None,
    new_status: InvoiceStatus | str,
) -> tuple[LedgerEffect, ...]:
    """Ledger effects of one invoice status change, in execution order.

    ``old_status`` is None for a freshly created invoice.

    Raises:
        InvalidInvoiceTransitionError: paid -> cancelled.
        ValueError: unknown status strings.
    """
    new = InvoiceStatus(new_status)
    old = InvoiceStatus(old_status) if old_status is not None else None

    if old is new:
        return ()

    if old is InvoiceStatus.PAID and new is InvoiceStatus.CANCELLED:
        raise InvalidInvoiceTransitionError(old.value, new.value)

    if new.is_unposted:
        return (LedgerEffect.DELETE_RECEIPT, LedgerEffect.REVERSE_INVOICE)

    effects: list[LedgerEffect] = []
    if old is InvoiceStatus.PAID:
        effects.append(LedgerEffect.DELETE_RECEIPT)
    effects.append(LedgerEffect.POST_INVOICE)
    if new is InvoiceStatus.PAID:
        effects.append(LedgerEffect.CREATE_RECEIPT)
    return tuple(effects)
