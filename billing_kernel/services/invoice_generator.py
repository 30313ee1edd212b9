"""
InvoiceGenerator -- builds the draft invoice for a completed period or work.

Responsibility:
    Resolve price, tax and ledger accounts for one (work, period) key and
    create a draft Invoice with a single InvoiceItem, then mark the period
    and work as billed.

Architecture position:
    Kernel > Services.  Called by ``billing_services.cascade`` for each
    invoice-eligible key reported by the CompletionAggregator.  Pricing
    rules live in ``billing_kernel.domain.pricing``.

Invariants enforced:
    - At most one invoice per (work_id, period_id).
    - Invoices are always created as ``draft``; posting happens on the
      first transition out of draft.
    - total_amount == subtotal + tax_amount, tax rounded half-up to cents.
    - balance_amount == total_amount and paid_amount == 0 on creation.
    - Deleting an invoice releases its key: the period and work can be
      invoiced again on their next completion.

Failure modes:
    - No positive price: warning ``invoice_price_unresolved``, no invoice.
    - Invoice already exists: debug ``invoice_already_exists``, no-op.
    - Unmapped income or customer account: the invoice is still created
      and ``invoice_accounts_unmapped`` is logged; posting will skip it.

Audit relevance:
    ``invoice_generated`` records number, key and amounts for every
    invoice the kernel creates.
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from billing_kernel.db.types import ZERO
from billing_kernel.domain.pricing import compute_amounts, resolve_income_account, resolve_price
from billing_kernel.domain.types import BillingStatus, InvoiceStatus
from billing_kernel.exceptions import (
    CompanySettingsMissingError,
    InvoiceAlreadyExistsError,
    InvoicePriceUnresolvedError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.catalog import CustomerServicePrice
from billing_kernel.models.invoice import Invoice, InvoiceItem
from billing_kernel.models.period import RecurringPeriod
from billing_kernel.models.work import Work
from billing_kernel.services.base import BaseService
from billing_kernel.services.numbering import (
    DEFAULT_INVOICE_PREFIX,
    DEFAULT_WIDTH,
    NumberingService,
)
from billing_kernel.services.settings import get_company_settings

logger = get_logger("services.invoice_generator")

DEFAULT_PAYMENT_TERMS_DAYS = 30


class InvoiceGenerator(BaseService[Invoice]):
    """
    Draft invoice creation.

    Non-goals:
        - Multi-line invoices, discounts or multi-jurisdiction tax.
        - Sending or posting the invoice.
    """

    def __init__(self, session, clock, numbering: NumberingService | None = None):
        super().__init__(session, clock)
        self._numbering = numbering or NumberingService(session)

    def generate(
        self,
        work: Work,
        period: RecurringPeriod | None,
        actor_id: UUID,
        today: date | None = None,
        payment_terms_days: int = DEFAULT_PAYMENT_TERMS_DAYS,
        number_prefix: str = DEFAULT_INVOICE_PREFIX,
        number_width: int = DEFAULT_WIDTH,
        number_start: int = 1,
    ) -> Invoice | None:
        """
        Create the draft invoice for ``(work, period)``.

        ``period`` is None for non-recurring works.  Returns None whenever
        no invoice was created (auto-billing off, duplicate, unresolved
        price).
        """
        period_id = period.id if period is not None else None
        if not work.auto_bill:
            logger.debug(
                "invoice_generation_skipped",
                extra={"work_id": str(work.id), "reason": "auto_bill_disabled"},
            )
            return None

        try:
            self._ensure_no_invoice(work, period)
            subtotal = self._resolve_amount(work, period)
        except InvoiceAlreadyExistsError as e:
            logger.debug(
                "invoice_already_exists",
                extra={"work_id": e.work_id, "period_id": e.period_id, "invoice_id": e.invoice_id},
            )
            return None
        except InvoicePriceUnresolvedError as e:
            logger.warning(
                "invoice_price_unresolved",
                extra={"work_id": e.work_id, "period_id": e.period_id, "error_code": e.code},
            )
            return None

        service = work.service
        amounts = compute_amounts(subtotal, service.tax_rate)

        try:
            company_income_id = get_company_settings(self.session).default_income_ledger_id
        except CompanySettingsMissingError:
            company_income_id = None
        income_account_id = resolve_income_account(service.income_account_id, company_income_id)
        customer_account_id = work.customer.ledger_account_id

        today = today or self.clock.today()
        invoice = Invoice(
            invoice_number=self._numbering.next_invoice_number(
                number_prefix, number_width, number_start
            ),
            customer_id=work.customer_id,
            work_id=work.id,
            period_id=period_id,
            invoice_date=today,
            due_date=today + timedelta(days=payment_terms_days),
            subtotal=amounts.subtotal,
            tax_amount=amounts.tax_amount,
            total_amount=amounts.total_amount,
            paid_amount=ZERO,
            balance_amount=amounts.total_amount,
            status=InvoiceStatus.DRAFT.value,
            income_account_id=income_account_id,
            customer_account_id=customer_account_id,
            created_by_id=actor_id,
        )
        invoice.items.append(
            InvoiceItem(
                service_id=service.id,
                description=self._describe(work, period),
                quantity=Decimal("1"),
                unit_price=amounts.subtotal,
                amount=amounts.subtotal,
                tax_rate=amounts.tax_rate,
                created_by_id=actor_id,
            )
        )
        self.session.add(invoice)
        self.session.flush()

        if period is not None:
            period.invoice_id = invoice.id
            period.is_billed = True
            period.invoice_generated = True
            period.updated_by_id = actor_id
        work.billing_status = BillingStatus.BILLED.value
        work.updated_by_id = actor_id
        self.session.flush()

        if not invoice.is_fully_mapped:
            logger.warning(
                "invoice_accounts_unmapped",
                extra={
                    "invoice_id": str(invoice.id),
                    "income_account_mapped": income_account_id is not None,
                    "customer_account_mapped": customer_account_id is not None,
                },
            )
        logger.info(
            "invoice_generated",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "work_id": str(work.id),
                "period_id": str(period_id) if period_id else None,
                "subtotal": amounts.subtotal,
                "tax_amount": amounts.tax_amount,
                "total_amount": amounts.total_amount,
            },
        )
        return invoice

    def delete(self, invoice: Invoice, actor_id: UUID) -> None:
        """
        Delete ``invoice`` and release its (work, period) key for re-billing.

        The period loses its invoice link and billed flags, and the work
        returns to ``not_billed`` once it has no other invoice.  Ledger rows
        and receipts must already be gone (``LedgerPostingService.remove_postings``).
        """
        period = (
            self.session.get(RecurringPeriod, invoice.period_id)
            if invoice.period_id is not None
            else None
        )
        work = self.session.get(Work, invoice.work_id)

        if period is not None:
            period.invoice_id = None
            period.is_billed = False
            period.invoice_generated = False
            period.updated_by_id = actor_id

        others = self.session.execute(
            select(func.count(Invoice.id)).where(
                Invoice.work_id == invoice.work_id, Invoice.id != invoice.id
            )
        ).scalar_one()
        if not others:
            work.billing_status = BillingStatus.NOT_BILLED.value
            work.updated_by_id = actor_id

        invoice_id, invoice_number = invoice.id, invoice.invoice_number
        self.session.delete(invoice)
        self.session.flush()
        logger.info(
            "invoice_deleted",
            extra={
                "invoice_id": str(invoice_id),
                "invoice_number": invoice_number,
                "work_id": str(work.id),
                "period_id": str(period.id) if period is not None else None,
                "billing_status": work.billing_status,
            },
        )

    def _ensure_no_invoice(self, work: Work, period: RecurringPeriod | None) -> None:
        query = select(Invoice.id).where(Invoice.work_id == work.id)
        if period is None:
            query = query.where(Invoice.period_id.is_(None))
        else:
            query = query.where(Invoice.period_id == period.id)
        existing = self.session.execute(query.limit(1)).scalar_one_or_none()
        if existing is not None:
            raise InvoiceAlreadyExistsError(
                work.id, period.id if period is not None else None, existing
            )

    def _resolve_amount(self, work: Work, period: RecurringPeriod | None) -> Decimal:
        negotiated = self.session.execute(
            select(CustomerServicePrice.price).where(
                CustomerServicePrice.customer_id == work.customer_id,
                CustomerServicePrice.service_id == work.service_id,
            )
        ).scalar_one_or_none()

        price = resolve_price(
            period_override=period.billing_amount if period is not None else None,
            work_amount=work.billing_amount,
            negotiated_price=negotiated,
            service_default=work.service.default_price,
        )
        if price is None or price <= ZERO:
            raise InvoicePriceUnresolvedError(work.id, period.id if period is not None else None)
        return price

    @staticmethod
    def _describe(work: Work, period: RecurringPeriod | None) -> str:
        description = f"{work.service.name} - {work.title}"
        if period is not None:
            description += f" ({period.period_name})"
        return description
