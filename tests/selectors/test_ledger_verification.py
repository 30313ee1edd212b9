"""
Tests for LedgerSelector verification queries.
"""

from decimal import Decimal

import pytest

from billing_kernel.exceptions import PartialPostingError
from billing_kernel.models import LedgerTransaction
from billing_kernel.services.ledger_posting_service import LedgerPostingService


@pytest.fixture
def paid_invoice(session, deterministic_clock, draft_invoice, test_actor_id):
    draft_invoice.status = "paid"
    LedgerPostingService(session, deterministic_clock).apply_status_change(
        draft_invoice, "draft", test_actor_id
    )
    return draft_invoice


class TestPostingTotals:
    def test_empty(self, ledger_selector, draft_invoice):
        totals = ledger_selector.invoice_posting_totals(draft_invoice.id)
        assert totals.is_empty
        assert not totals.is_balanced
        assert totals.debit_total == Decimal("0")

    def test_assert_balanced_accepts_empty(self, ledger_selector, draft_invoice):
        assert ledger_selector.assert_invoice_balanced(draft_invoice.id).is_empty

    def test_assert_balanced_rejects_one_sided(
        self, session, ledger_selector, draft_invoice, billing_setup, test_actor_id
    ):
        session.add(
            LedgerTransaction(
                account_id=billing_setup["accounts"]["consulting"].id,
                transaction_date=draft_invoice.invoice_date,
                debit=Decimal("0"),
                credit=Decimal("1000"),
                invoice_id=draft_invoice.id,
                created_by_id=test_actor_id,
            )
        )
        session.flush()

        with pytest.raises(PartialPostingError) as exc_info:
            ledger_selector.assert_invoice_balanced(draft_invoice.id)
        assert exc_info.value.row_count == 1
        assert ledger_selector.unbalanced_invoices() == [draft_invoice.id]

    def test_paid_invoice_is_balanced(self, ledger_selector, paid_invoice):
        assert ledger_selector.assert_invoice_balanced(paid_invoice.id).is_balanced
        assert ledger_selector.invoice_posting_is_valid(paid_invoice)
        assert ledger_selector.unbalanced_invoices() == []

    def test_duplicated_pair_is_rejected(
        self, session, ledger_selector, paid_invoice, billing_setup, test_actor_id
    ):
        accounts = billing_setup["accounts"]
        session.add_all(
            [
                LedgerTransaction(
                    account_id=accounts["receivable"].id,
                    transaction_date=paid_invoice.invoice_date,
                    debit=Decimal("1000"),
                    credit=Decimal("0"),
                    invoice_id=paid_invoice.id,
                    created_by_id=test_actor_id,
                ),
                LedgerTransaction(
                    account_id=accounts["consulting"].id,
                    transaction_date=paid_invoice.invoice_date,
                    debit=Decimal("0"),
                    credit=Decimal("1000"),
                    invoice_id=paid_invoice.id,
                    created_by_id=test_actor_id,
                ),
            ]
        )
        session.flush()

        # Still balanced in total, but not a valid posting
        assert ledger_selector.invoice_posting_totals(paid_invoice.id).is_balanced
        assert not ledger_selector.invoice_posting_is_valid(paid_invoice)
        with pytest.raises(PartialPostingError) as exc_info:
            ledger_selector.assert_invoice_balanced(paid_invoice.id)
        assert exc_info.value.row_count == 4
        assert ledger_selector.unbalanced_invoices() == [paid_invoice.id]

    def test_pair_on_wrong_income_account_is_rejected(
        self, session, ledger_selector, draft_invoice, billing_setup, test_actor_id
    ):
        accounts = billing_setup["accounts"]
        for account, debit, credit in (
            (accounts["receivable"], Decimal("1000"), Decimal("0")),
            (accounts["income"], Decimal("0"), Decimal("1000")),
        ):
            session.add(
                LedgerTransaction(
                    account_id=account.id,
                    transaction_date=draft_invoice.invoice_date,
                    debit=debit,
                    credit=credit,
                    invoice_id=draft_invoice.id,
                    created_by_id=test_actor_id,
                )
            )
        session.flush()

        assert not ledger_selector.invoice_posting_is_valid(draft_invoice)
        assert ledger_selector.unbalanced_invoices() == [draft_invoice.id]


class TestBalances:
    def test_receivable_cleared_after_payment(self, ledger_selector, paid_invoice, billing_setup):
        accounts = billing_setup["accounts"]
        receivable = ledger_selector.account_balance(accounts["receivable"].id)
        assert receivable.row_count == 2
        assert receivable.balance == Decimal("0")

        cash = ledger_selector.account_balance(accounts["cash"].id)
        assert cash.balance == Decimal("1000")

    def test_trial_balance_nets_to_zero(self, ledger_selector, paid_invoice):
        rows = ledger_selector.trial_balance()
        assert [r.account_code for r in rows] == ["1000", "1100", "4100"]
        assert sum(r.debit_total for r in rows) == sum(r.credit_total for r in rows)

    def test_receipts_for_invoice(self, ledger_selector, paid_invoice):
        receipts = ledger_selector.receipts_for_invoice(paid_invoice.id)
        assert len(receipts) == 1
        receipt = receipts[0]
        assert receipt.voucher_number == "RV-00001"
        assert receipt.entry_count == 2
        assert receipt.entries_debit_total == receipt.entries_credit_total == Decimal("1000")
        assert ledger_selector.voucher_totals(receipt.voucher_id).is_balanced
