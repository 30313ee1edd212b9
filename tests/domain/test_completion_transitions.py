"""
Tests for billing_kernel.domain.transitions.

Completion derivation must only report a transition when the
all-tasks-completed condition actually flips.  The invoice ledger state
machine must return the right effects in execution order.
"""

import pytest

from billing_kernel.domain.transitions import (
    CompletionEffect,
    LedgerEffect,
    derive_completion,
    invoice_transition_effects,
    is_all_complete,
)
from billing_kernel.domain.types import InvoiceStatus
from billing_kernel.exceptions import InvalidInvoiceTransitionError

PERIOD = {"completed_status": "completed", "reopened_status": "pending"}


# =============================================================================
# Completion
# =============================================================================


class TestIsAllComplete:
    def test_empty_is_never_complete(self):
        assert not is_all_complete(0, 0)

    def test_all_done(self):
        assert is_all_complete(3, 3)

    def test_partial(self):
        assert not is_all_complete(3, 2)


class TestDeriveCompletion:
    def test_transition_into_completed(self):
        transition = derive_completion("pending", 3, 3, **PERIOD)
        assert transition.effect is CompletionEffect.COMPLETED
        assert transition.new_status == "completed"
        assert transition.all_tasks_completed
        assert transition.changed

    def test_already_completed_is_no_op(self):
        transition = derive_completion("completed", 3, 3, **PERIOD)
        assert transition.effect is CompletionEffect.NONE
        assert not transition.changed

    def test_reopen(self):
        transition = derive_completion("completed", 3, 2, **PERIOD)
        assert transition.effect is CompletionEffect.REOPENED
        assert transition.new_status == "pending"
        assert not transition.all_tasks_completed

    def test_partial_progress_keeps_status(self):
        transition = derive_completion("pending", 3, 1, **PERIOD)
        assert transition.effect is CompletionEffect.NONE
        assert transition.new_status == "pending"

    def test_no_tasks_never_completes(self):
        transition = derive_completion("pending", 0, 0, **PERIOD)
        assert transition.effect is CompletionEffect.NONE
        assert not transition.all_tasks_completed

    def test_work_defaults(self):
        assert derive_completion("in_progress", 2, 2).new_status == "completed"
        assert derive_completion("completed", 2, 1).new_status == "in_progress"

    def test_unrelated_status_left_alone(self):
        transition = derive_completion("pending", 2, 1)
        assert transition.new_status == "pending"
        assert not transition.changed

    @pytest.mark.parametrize("total, completed", [(2, 3), (-1, 0), (2, -1)])
    def test_invalid_counters_rejected(self, total, completed):
        with pytest.raises(ValueError):
            derive_completion("pending", total, completed)


# =============================================================================
# Invoice ledger state machine
# =============================================================================


class TestInvoiceTransitionEffects:
    def test_new_draft_has_no_ledger_rows(self):
        assert invoice_transition_effects(None, "draft") == (
            LedgerEffect.DELETE_RECEIPT,
            LedgerEffect.REVERSE_INVOICE,
        )

    def test_same_status_is_no_op(self):
        assert invoice_transition_effects("sent", "sent") == ()
        assert invoice_transition_effects("paid", InvoiceStatus.PAID) == ()

    @pytest.mark.parametrize("new", ["sent", "pending", "overdue"])
    def test_draft_to_posted_state(self, new):
        assert invoice_transition_effects("draft", new) == (LedgerEffect.POST_INVOICE,)

    def test_draft_to_paid(self):
        assert invoice_transition_effects("draft", "paid") == (
            LedgerEffect.POST_INVOICE,
            LedgerEffect.CREATE_RECEIPT,
        )

    def test_sent_to_paid(self):
        assert invoice_transition_effects("sent", "paid") == (
            LedgerEffect.POST_INVOICE,
            LedgerEffect.CREATE_RECEIPT,
        )

    def test_paid_back_to_sent(self):
        assert invoice_transition_effects("paid", "sent") == (
            LedgerEffect.DELETE_RECEIPT,
            LedgerEffect.POST_INVOICE,
        )

    @pytest.mark.parametrize("old", ["sent", "pending", "overdue", "paid"])
    def test_back_to_draft(self, old):
        assert invoice_transition_effects(old, "draft") == (
            LedgerEffect.DELETE_RECEIPT,
            LedgerEffect.REVERSE_INVOICE,
        )

    def test_sent_to_cancelled(self):
        assert invoice_transition_effects("sent", "cancelled") == (
            LedgerEffect.DELETE_RECEIPT,
            LedgerEffect.REVERSE_INVOICE,
        )

    def test_paid_to_cancelled_rejected(self):
        with pytest.raises(InvalidInvoiceTransitionError) as exc_info:
            invoice_transition_effects("paid", "cancelled")
        assert exc_info.value.from_status == "paid"
        assert exc_info.value.to_status == "cancelled"

    def test_unknown_status_rejected(self):
        with pytest.raises(ValueError):
            invoice_transition_effects("draft", "archived")
