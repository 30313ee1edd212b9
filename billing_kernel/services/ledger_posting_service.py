"""
LedgerPostingService -- keeps an invoice's ledger rows in step with its status.

Responsibility:
    Executes the ledger effects of one invoice status change: post the
    receivable/income pair, reverse it, create the receipt voucher on
    payment, and remove it when the invoice leaves ``paid``.  Before an
    invoice is deleted, ``remove_postings()`` clears everything it produced.

Architecture position:
    Kernel > Services.  Called by ``billing_services.cascade`` on every
    invoice status change and after invoice generation.  Which effects run
    is decided by ``billing_kernel.domain.transitions.invoice_transition_effects``.

Invariants enforced:
    - Balanced posting: an invoice's own rows are exactly one debit to the
      customer account and one credit to the income account, both equal to
      total_amount, or no rows at all.
    - Idempotent posting: an existing posting that is exactly the two-row
      pair (Dr customer, Cr income, both total_amount) is left alone.
    - Healing: any other set of rows for the invoice (one-sided,
      unbalanced, duplicated, stale amount or account) is deleted and
      reposted.
    - A receipt voucher exists exactly while the invoice is paid.  Its
      entries and ledger rows are removed with it, leaving no residue.
    - paid_amount + balance_amount == total_amount.

Failure modes:
    - Unmapped income or customer account: ``invoice_posting_skipped``
      warning, no rows.
    - Missing company settings or cash/bank default:
      ``receipt_skipped`` warning, no voucher.
    - paid -> cancelled: InvalidInvoiceTransitionError propagates.

Audit relevance:
    Each effect logs an event (``invoice_posted``, ``invoice_reversed``,
    ``partial_posting_healed``, ``receipt_created``, ``receipt_deleted``)
    carrying the invoice id and the amounts moved.
"""

from dataclasses import dataclass, field
from datetime import date
from uuid import UUID

from sqlalchemy import delete, select

from billing_kernel.db.types import ZERO
from billing_kernel.domain.transitions import LedgerEffect, invoice_transition_effects
from billing_kernel.domain.types import VoucherType
from billing_kernel.exceptions import CompanySettingsMissingError, UnmappedAccountError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.catalog import Customer
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.ledger import LedgerTransaction, Voucher, VoucherEntry
from billing_kernel.selectors.ledger_selector import LedgerSelector
from billing_kernel.services.base import BaseService
from billing_kernel.services.numbering import (
    DEFAULT_RECEIPT_PREFIX,
    DEFAULT_WIDTH,
    NumberingService,
)
from billing_kernel.services.settings import get_company_settings

logger = get_logger("services.ledger_posting")


@dataclass
class LedgerPostingResult:
    invoice_id: UUID
    effects: list[LedgerEffect] = field(default_factory=list)
    rows_created: int = 0
    rows_deleted: int = 0
    vouchers_created: int = 0
    vouchers_deleted: int = 0
    skipped: list[str] = field(default_factory=list)


class LedgerPostingService(BaseService[LedgerTransaction]):
    """
    Invoice ledger state machine executor.

    Contract:
        ``apply_status_change()`` is called AFTER ``invoice.status`` holds
        the new value, with the previous status passed explicitly.

    Non-goals:
        - Partial payments.  A paid invoice is paid in full.
        - Reporting beyond the verification queries in LedgerSelector.
    """

    def __init__(self, session, clock, numbering: NumberingService | None = None):
        super().__init__(session, clock)
        self._numbering = numbering or NumberingService(session)
        self._ledger = LedgerSelector(session)

    def apply_status_change(
        self,
        invoice: Invoice,
        old_status: str | None,
        actor_id: UUID,
        receipt_prefix: str = DEFAULT_RECEIPT_PREFIX,
        receipt_width: int = DEFAULT_WIDTH,
    ) -> LedgerPostingResult:
        """
        Run every ledger effect of ``old_status -> invoice.status`` in order.

        Raises:
            InvalidInvoiceTransitionError: paid -> cancelled.
        """
        effects = invoice_transition_effects(old_status, invoice.status)
        result = LedgerPostingResult(invoice_id=invoice.id)

        for effect in effects:
            try:
                if effect is LedgerEffect.POST_INVOICE:
                    self._post_invoice(invoice, actor_id, result)
                elif effect is LedgerEffect.REVERSE_INVOICE:
                    self._reverse_invoice(invoice, result)
                elif effect is LedgerEffect.CREATE_RECEIPT:
                    self._create_receipt(invoice, actor_id, receipt_prefix, receipt_width, result)
                elif effect is LedgerEffect.DELETE_RECEIPT:
                    self._delete_receipt(invoice, actor_id, result)
            except UnmappedAccountError as e:
                event = (
                    "invoice_posting_skipped"
                    if effect is LedgerEffect.POST_INVOICE
                    else "receipt_skipped"
                )
                logger.warning(
                    event,
                    extra={
                        "invoice_id": str(invoice.id),
                        "error_code": e.code,
                        "account_role": e.role,
                    },
                )
                result.skipped.append(effect.value)
                continue
            except CompanySettingsMissingError as e:
                logger.warning(
                    "receipt_skipped",
                    extra={"invoice_id": str(invoice.id), "error_code": e.code},
                )
                result.skipped.append(effect.value)
                continue
            result.effects.append(effect)

        self.session.flush()
        return result

    def remove_postings(self, invoice: Invoice, actor_id: UUID) -> LedgerPostingResult:
        """
        Delete every receipt voucher and ledger row derived from ``invoice``.

        Runs from any status and leaves no residue; called before the invoice
        itself is deleted, since both tables reference it.
        """
        result = LedgerPostingResult(invoice_id=invoice.id)
        self._delete_receipt(invoice, actor_id, result)
        result.effects.append(LedgerEffect.DELETE_RECEIPT)
        self._reverse_invoice(invoice, result)
        result.effects.append(LedgerEffect.REVERSE_INVOICE)
        self.session.flush()
        return result

    # ------------------------------------------------------------------
    # Invoice posting
    # ------------------------------------------------------------------

    def _post_invoice(self, invoice: Invoice, actor_id: UUID, result: LedgerPostingResult) -> None:
        if invoice.customer_account_id is None:
            raise UnmappedAccountError("customer", invoice.id)
        if invoice.income_account_id is None:
            raise UnmappedAccountError("income", invoice.id)

        self.session.flush()
        if self._ledger.invoice_posting_is_valid(invoice):
            logger.debug("invoice_already_posted", extra={"invoice_id": str(invoice.id)})
            return

        totals = self._ledger.invoice_posting_totals(invoice.id)
        if not totals.is_empty:
            logger.warning(
                "partial_posting_healed",
                extra={
                    "invoice_id": str(invoice.id),
                    "debit_total": totals.debit_total,
                    "credit_total": totals.credit_total,
                    "row_count": totals.row_count,
                },
            )
            result.rows_deleted += self._delete_invoice_rows(invoice.id)

        number = invoice.invoice_number
        self.session.add_all(
            [
                LedgerTransaction(
                    account_id=invoice.customer_account_id,
                    transaction_date=invoice.invoice_date,
                    debit=invoice.total_amount,
                    credit=ZERO,
                    narration=f"Invoice {number} - Customer receivable",
                    invoice_id=invoice.id,
                    created_by_id=actor_id,
                ),
                LedgerTransaction(
                    account_id=invoice.income_account_id,
                    transaction_date=invoice.invoice_date,
                    debit=ZERO,
                    credit=invoice.total_amount,
                    narration=f"Invoice {number} - Service income",
                    invoice_id=invoice.id,
                    created_by_id=actor_id,
                ),
            ]
        )
        self.session.flush()
        result.rows_created += 2
        logger.info(
            "invoice_posted",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": number,
                "amount": invoice.total_amount,
            },
        )

    def _reverse_invoice(self, invoice: Invoice, result: LedgerPostingResult) -> None:
        deleted = self._delete_invoice_rows(invoice.id)
        result.rows_deleted += deleted
        if deleted:
            logger.info(
                "invoice_reversed",
                extra={"invoice_id": str(invoice.id), "rows_deleted": deleted},
            )

    def _delete_invoice_rows(self, invoice_id: UUID) -> int:
        outcome = self.session.execute(
            delete(LedgerTransaction).where(LedgerTransaction.invoice_id == invoice_id)
        )
        return outcome.rowcount or 0

    # ------------------------------------------------------------------
    # Receipts
    # ------------------------------------------------------------------

    def _receipt_vouchers(self, invoice_id: UUID) -> list[Voucher]:
        return list(
            self.session.execute(
                select(Voucher).where(
                    Voucher.invoice_id == invoice_id,
                    Voucher.voucher_type == VoucherType.RECEIPT.value,
                )
            ).scalars()
        )

    def _create_receipt(
        self,
        invoice: Invoice,
        actor_id: UUID,
        prefix: str,
        width: int,
        result: LedgerPostingResult,
    ) -> None:
        invoice.paid_amount = invoice.total_amount
        invoice.balance_amount = ZERO
        invoice.updated_by_id = actor_id

        if self._receipt_vouchers(invoice.id):
            logger.debug("receipt_already_exists", extra={"invoice_id": str(invoice.id)})
            return

        receipt_account_id = get_company_settings(self.session).receipt_account_id
        if receipt_account_id is None:
            raise UnmappedAccountError("receipt", invoice.id)

        customer = self.session.get(Customer, invoice.customer_id)
        customer_account_id = customer.ledger_account_id
        if customer_account_id is None:
            customer_account_id = invoice.customer_account_id
            if customer_account_id is None:
                raise UnmappedAccountError("customer", invoice.id)
            customer.ledger_account_id = customer_account_id
            customer.updated_by_id = actor_id
            logger.info(
                "customer_account_backfilled",
                extra={"customer_id": str(customer.id), "account_id": str(customer_account_id)},
            )

        voucher_date = self.clock.today()
        amount = invoice.total_amount
        line_narration = f"Payment received for Invoice {invoice.invoice_number}"

        voucher = Voucher(
            voucher_type=VoucherType.RECEIPT.value,
            voucher_number=self._numbering.next_voucher_number(prefix, width),
            voucher_date=voucher_date,
            total_amount=amount,
            narration=f"Receipt from {customer.name}",
            status="posted",
            invoice_id=invoice.id,
            customer_id=customer.id,
            created_by_id=actor_id,
        )
        voucher.entries.extend(
            [
                VoucherEntry(
                    account_id=receipt_account_id,
                    debit_amount=amount,
                    credit_amount=ZERO,
                    narration=line_narration,
                    created_by_id=actor_id,
                ),
                VoucherEntry(
                    account_id=customer_account_id,
                    debit_amount=ZERO,
                    credit_amount=amount,
                    narration=line_narration,
                    created_by_id=actor_id,
                ),
            ]
        )
        self.session.add(voucher)
        self.session.flush()

        self.session.add_all(
            [
                self._receipt_row(voucher, receipt_account_id, amount, ZERO, voucher_date, line_narration, actor_id),
                self._receipt_row(voucher, customer_account_id, ZERO, amount, voucher_date, line_narration, actor_id),
            ]
        )
        self.session.flush()
        result.vouchers_created += 1
        result.rows_created += 2
        logger.info(
            "receipt_created",
            extra={
                "invoice_id": str(invoice.id),
                "voucher_id": str(voucher.id),
                "voucher_number": voucher.voucher_number,
                "amount": amount,
            },
        )

    @staticmethod
    def _receipt_row(
        voucher: Voucher,
        account_id: UUID,
        debit,
        credit,
        transaction_date: date,
        narration: str,
        actor_id: UUID,
    ) -> LedgerTransaction:
        return LedgerTransaction(
            account_id=account_id,
            transaction_date=transaction_date,
            debit=debit,
            credit=credit,
            narration=narration,
            voucher_id=voucher.id,
            created_by_id=actor_id,
        )

    def _delete_receipt(self, invoice: Invoice, actor_id: UUID, result: LedgerPostingResult) -> None:
        invoice.paid_amount = ZERO
        invoice.balance_amount = invoice.total_amount
        invoice.updated_by_id = actor_id

        for voucher in self._receipt_vouchers(invoice.id):
            outcome = self.session.execute(
                delete(LedgerTransaction).where(LedgerTransaction.voucher_id == voucher.id)
            )
            result.rows_deleted += outcome.rowcount or 0
            result.vouchers_deleted += 1
            logger.info(
                "receipt_deleted",
                extra={
                    "invoice_id": str(invoice.id),
                    "voucher_id": str(voucher.id),
                    "voucher_number": voucher.voucher_number,
                },
            )
            self.session.delete(voucher)
        self.session.flush()
