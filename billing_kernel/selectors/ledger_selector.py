"""
Module: billing_kernel.selectors.ledger_selector
Responsibility: Read-only ledger queries used to verify the double-entry
    invariants of invoice and receipt postings: per-invoice and per-voucher
    totals, account balances, and a trial balance.
Architecture position: Kernel > Selectors.  May import from models/,
    exceptions and selectors/base.py.

Invariants enforced:
    - Double-entry balance verification: for every invoice, the union of its
      ledger rows has debit total == credit total.
    - A valid invoice posting is exactly two rows: a debit-only row on the
      invoice's customer account and a credit-only row on its income
      account, both equal to total_amount.  Duplicated pairs balance but are
      still invalid.
    - No stored balances: every figure is summed from LedgerTransaction rows
      at query time.

Failure modes:
    - assert_invoice_balanced() raises PartialPostingError for any posting
      that is not the exact two-row pair.
    - Returns zero totals when no rows exist.

Audit relevance:
    Reports built on the ledger (trial balance, receivables) rely on every
    invoice posting being balanced; this selector is how tests and operators
    check that.
"""

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.exceptions import PartialPostingError
from billing_kernel.models.accounts import LedgerAccount
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.ledger import LedgerTransaction, Voucher
from billing_kernel.selectors.base import BaseSelector

ZERO = Decimal("0")


def _is_invoice_pair(rows, customer_account_id, income_account_id, amount) -> bool:
    """Exactly one Dr customer row and one Cr income row, both for ``amount``."""
    if len(rows) != 2 or customer_account_id is None or income_account_id is None:
        return False
    debits = [r for r in rows if r.debit > ZERO and r.credit == ZERO]
    credits = [r for r in rows if r.credit > ZERO and r.debit == ZERO]
    if len(debits) != 1 or len(credits) != 1:
        return False
    debit, credit = debits[0], credits[0]
    return (
        debit.account_id == customer_account_id
        and credit.account_id == income_account_id
        and debit.debit == amount
        and credit.credit == amount
    )


@dataclass(frozen=True)
class PostingTotals:
    """Debit / credit totals over a set of ledger rows."""

    debit_total: Decimal
    credit_total: Decimal
    row_count: int

    @property
    def is_balanced(self) -> bool:
        """Both sides present and equal."""
        return (
            self.row_count > 0
            and self.debit_total == self.credit_total
            and self.debit_total > ZERO
        )

    @property
    def is_empty(self) -> bool:
        return self.row_count == 0


@dataclass(frozen=True)
class TrialBalanceRow:
    account_id: UUID
    account_code: str
    account_name: str
    debit_total: Decimal
    credit_total: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class AccountBalance:
    account_id: UUID
    debit_total: Decimal
    credit_total: Decimal
    row_count: int

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.debit_total - self.credit_total


@dataclass(frozen=True)
class ReceiptSummary:
    voucher_id: UUID
    voucher_number: str
    total_amount: Decimal
    entry_count: int
    entries_debit_total: Decimal
    entries_credit_total: Decimal


class LedgerSelector(BaseSelector[LedgerTransaction]):
    """
    Selector for ledger verification queries.

    Guarantees:
        - All totals are Decimal (never float) and default to zero.
    """

    def _totals(self, *criteria) -> PostingTotals:
        row = self.session.execute(
            select(
                func.coalesce(func.sum(LedgerTransaction.debit), ZERO),
                func.coalesce(func.sum(LedgerTransaction.credit), ZERO),
                func.count(LedgerTransaction.id),
            ).where(*criteria)
        ).one()
        return PostingTotals(
            debit_total=Decimal(row[0]),
            credit_total=Decimal(row[1]),
            row_count=int(row[2]),
        )

    def invoice_posting_totals(self, invoice_id: UUID) -> PostingTotals:
        """Totals over the invoice's own posting (receipt rows excluded)."""
        return self._totals(LedgerTransaction.invoice_id == invoice_id)

    def voucher_totals(self, voucher_id: UUID) -> PostingTotals:
        return self._totals(LedgerTransaction.voucher_id == voucher_id)

    def receipt_posting_totals(self, invoice_id: UUID) -> PostingTotals:
        """Totals over the ledger rows of every receipt voucher of the invoice."""
        voucher_ids = select(Voucher.id).where(Voucher.invoice_id == invoice_id)
        return self._totals(LedgerTransaction.voucher_id.in_(voucher_ids))

    def total_debits_credits(self) -> PostingTotals:
        return self._totals()

    def invoice_posting_is_valid(self, invoice: Invoice) -> bool:
        """True when the invoice's rows are exactly its two-row posting."""
        rows = self.session.execute(
            select(
                LedgerTransaction.account_id,
                LedgerTransaction.debit,
                LedgerTransaction.credit,
            ).where(LedgerTransaction.invoice_id == invoice.id)
        ).all()
        return _is_invoice_pair(
            rows, invoice.customer_account_id, invoice.income_account_id, invoice.total_amount
        )

    def assert_invoice_balanced(self, invoice_id: UUID) -> PostingTotals:
        """Strict check: no rows, or exactly the invoice's two-row posting.

        Raises:
            PartialPostingError: if rows exist but are one-sided, unbalanced,
                duplicated or on the wrong accounts.
        """
        totals = self.invoice_posting_totals(invoice_id)
        if totals.is_empty:
            return totals
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None or not self.invoice_posting_is_valid(invoice):
            raise PartialPostingError(
                invoice_id,
                debits=str(totals.debit_total),
                credits=str(totals.credit_total),
                row_count=totals.row_count,
            )
        return totals

    def unbalanced_invoices(self) -> list[UUID]:
        """Invoice ids whose posting rows are not the exact two-row pair."""
        rows = self.session.execute(
            select(
                LedgerTransaction.invoice_id,
                LedgerTransaction.account_id,
                LedgerTransaction.debit,
                LedgerTransaction.credit,
                Invoice.customer_account_id,
                Invoice.income_account_id,
                Invoice.total_amount,
            )
            .join(Invoice, LedgerTransaction.invoice_id == Invoice.id)
            .order_by(Invoice.invoice_number)
        ).all()

        by_invoice: dict[UUID, list] = {}
        for row in rows:
            by_invoice.setdefault(row.invoice_id, []).append(row)
        return [
            invoice_id
            for invoice_id, group in by_invoice.items()
            if not _is_invoice_pair(
                group,
                group[0].customer_account_id,
                group[0].income_account_id,
                group[0].total_amount,
            )
        ]

    def receipts_for_invoice(self, invoice_id: UUID) -> list[ReceiptSummary]:
        vouchers = self.session.execute(
            select(Voucher)
            .where(Voucher.invoice_id == invoice_id)
            .order_by(Voucher.voucher_number)
        ).scalars().all()
        return [
            ReceiptSummary(
                voucher_id=v.id,
                voucher_number=v.voucher_number,
                total_amount=v.total_amount,
                entry_count=len(v.entries),
                entries_debit_total=sum((e.debit_amount for e in v.entries), ZERO),
                entries_credit_total=sum((e.credit_amount for e in v.entries), ZERO),
            )
            for v in vouchers
        ]

    def account_balance(self, account_id: UUID) -> AccountBalance:
        totals = self._totals(LedgerTransaction.account_id == account_id)
        return AccountBalance(
            account_id=account_id,
            debit_total=totals.debit_total,
            credit_total=totals.credit_total,
            row_count=totals.row_count,
        )

    def trial_balance(self) -> list[TrialBalanceRow]:
        """
        Per-account totals, ordered by account code.

        Sum of all debit_totals MUST equal sum of all credit_totals.
        """
        results = self.session.execute(
            select(
                LedgerTransaction.account_id,
                LedgerAccount.code,
                LedgerAccount.name,
                func.sum(LedgerTransaction.debit).label("debit_total"),
                func.sum(LedgerTransaction.credit).label("credit_total"),
            )
            .join(LedgerAccount, LedgerTransaction.account_id == LedgerAccount.id)
            .group_by(LedgerTransaction.account_id, LedgerAccount.code, LedgerAccount.name)
            .order_by(LedgerAccount.code)
        ).all()

        return [
            TrialBalanceRow(
                account_id=row.account_id,
                account_code=row.code,
                account_name=row.name,
                debit_total=Decimal(row.debit_total or ZERO),
                credit_total=Decimal(row.credit_total or ZERO),
            )
            for row in results
        ]
