"""
Tests for InvoiceGenerator.

Validates amounts, price precedence, account resolution, the
one-invoice-per-key rule and the billed markers on period and work.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from billing_kernel.domain.periods import period_bounds
from billing_kernel.models import Invoice
from billing_kernel.services.invoice_generator import InvoiceGenerator
from billing_kernel.services.materializer import PeriodMaterializer

TODAY = date(2025, 10, 15)


@pytest.fixture
def generator(session, deterministic_clock):
    return InvoiceGenerator(session, deterministic_clock)


def _invoice_count(session, work_id) -> int:
    return session.execute(
        select(func.count(Invoice.id)).where(Invoice.work_id == work_id)
    ).scalar_one()


# =============================================================================
# Draft invoice contents
# =============================================================================


class TestDraftInvoice:
    def test_header(self, draft_invoice, monthly_work, august_period):
        assert draft_invoice.invoice_number == "INV-00001"
        assert draft_invoice.status == "draft"
        assert draft_invoice.customer_id == monthly_work.customer_id
        assert draft_invoice.work_id == monthly_work.id
        assert draft_invoice.period_id == august_period.id
        assert draft_invoice.invoice_date == TODAY
        assert draft_invoice.due_date == date(2025, 11, 14)

    def test_amounts(self, draft_invoice):
        assert draft_invoice.subtotal == Decimal("1000")
        assert draft_invoice.tax_amount == Decimal("0")
        assert draft_invoice.total_amount == Decimal("1000")
        assert draft_invoice.paid_amount == Decimal("0")
        assert draft_invoice.balance_amount == Decimal("1000")

    def test_single_line_item(self, draft_invoice, billing_setup):
        assert len(draft_invoice.items) == 1
        item = draft_invoice.items[0]
        assert item.description == "GST Filing - Monthly compliance (August 2025)"
        assert item.service_id == billing_setup["service"].id
        assert item.quantity == Decimal("1")
        assert item.amount == Decimal("1000")

    def test_accounts(self, draft_invoice, billing_setup):
        accounts = billing_setup["accounts"]
        assert draft_invoice.income_account_id == accounts["consulting"].id
        assert draft_invoice.customer_account_id == accounts["receivable"].id
        assert draft_invoice.is_fully_mapped

    def test_marks_period_and_work(self, draft_invoice, august_period, monthly_work):
        assert august_period.invoice_id == draft_invoice.id
        assert august_period.is_billed
        assert august_period.invoice_generated
        assert monthly_work.billing_status == "billed"

    def test_payment_terms(self, generator, monthly_work, august_period, test_actor_id):
        invoice = generator.generate(
            monthly_work, august_period, test_actor_id, today=TODAY, payment_terms_days=15
        )
        assert invoice.due_date == date(2025, 10, 30)

    def test_custom_number_format(self, generator, monthly_work, august_period, test_actor_id):
        invoice = generator.generate(
            monthly_work, august_period, test_actor_id, today=TODAY,
            number_prefix="GST/", number_width=3, number_start=100,
        )
        assert invoice.invoice_number == "GST/100"


class TestTax:
    def test_service_tax_rate(
        self, generator, billing_setup, create_service, create_work, test_actor_id
    ):
        service = create_service(
            name="Audit", tax_rate=Decimal("5"), income_account=billing_setup["accounts"]["income"]
        )
        work = create_work(billing_setup["customer"], service, is_recurring=False)

        invoice = generator.generate(work, None, test_actor_id, today=TODAY)

        assert invoice.tax_amount == Decimal("50")
        assert invoice.total_amount == Decimal("1050")
        assert invoice.balance_amount == Decimal("1050")
        assert invoice.items[0].tax_rate == Decimal("5")


# =============================================================================
# Price precedence
# =============================================================================


class TestPricePrecedence:
    def test_negotiated_price_beats_service_default(
        self, generator, billing_setup, create_price, monthly_work, august_period, test_actor_id
    ):
        create_price(billing_setup["customer"], billing_setup["service"], Decimal("800"))
        invoice = generator.generate(monthly_work, august_period, test_actor_id, today=TODAY)
        assert invoice.subtotal == Decimal("800")

    def test_work_amount_beats_negotiated_price(
        self, generator, billing_setup, create_price, monthly_work, august_period, test_actor_id
    ):
        create_price(billing_setup["customer"], billing_setup["service"], Decimal("800"))
        monthly_work.billing_amount = Decimal("900")
        invoice = generator.generate(monthly_work, august_period, test_actor_id, today=TODAY)
        assert invoice.subtotal == Decimal("900")

    def test_period_override_wins(self, generator, monthly_work, august_period, test_actor_id):
        monthly_work.billing_amount = Decimal("900")
        august_period.billing_amount = Decimal("750")
        invoice = generator.generate(monthly_work, august_period, test_actor_id, today=TODAY)
        assert invoice.subtotal == Decimal("750")

    def test_no_price_skips(
        self, session, generator, billing_setup, create_service, create_work,
        captured_logs, test_actor_id,
    ):
        service = create_service(name="Pro bono", default_price=None)
        work = create_work(billing_setup["customer"], service, is_recurring=False)

        assert generator.generate(work, None, test_actor_id, today=TODAY) is None
        assert _invoice_count(session, work.id) == 0
        assert work.billing_status == "not_billed"
        assert any(r["message"] == "invoice_price_unresolved" for r in captured_logs())

    def test_zero_price_skips(self, session, generator, monthly_work, august_period, test_actor_id):
        monthly_work.billing_amount = Decimal("0")
        assert generator.generate(monthly_work, august_period, test_actor_id, today=TODAY) is None
        assert not august_period.invoice_generated


# =============================================================================
# Guards
# =============================================================================


class TestGenerationGuards:
    def test_one_invoice_per_period(
        self, session, generator, draft_invoice, monthly_work, august_period, test_actor_id
    ):
        assert generator.generate(monthly_work, august_period, test_actor_id, today=TODAY) is None
        assert _invoice_count(session, monthly_work.id) == 1

    def test_one_invoice_per_non_recurring_work(
        self, session, generator, billing_setup, create_work, test_actor_id
    ):
        work = create_work(
            billing_setup["customer"], billing_setup["service"], title="One-off", is_recurring=False
        )
        first = generator.generate(work, None, test_actor_id, today=TODAY)
        second = generator.generate(work, None, test_actor_id, today=TODAY)

        assert first is not None
        assert first.period_id is None
        assert first.items[0].description == "GST Filing - One-off"
        assert second is None
        assert _invoice_count(session, work.id) == 1

    def test_auto_bill_disabled(
        self, session, generator, billing_setup, create_work, test_actor_id
    ):
        work = create_work(
            billing_setup["customer"], billing_setup["service"], is_recurring=False, auto_bill=False
        )
        assert generator.generate(work, None, test_actor_id, today=TODAY) is None
        assert _invoice_count(session, work.id) == 0


class TestAccountResolution:
    def test_company_default_income(
        self, generator, billing_setup, create_service, create_work, test_actor_id
    ):
        service = create_service(name="Bookkeeping")
        work = create_work(billing_setup["customer"], service, is_recurring=False)

        invoice = generator.generate(work, None, test_actor_id, today=TODAY)

        assert invoice.income_account_id == billing_setup["accounts"]["income"].id

    def test_unmapped_accounts_still_invoice(
        self, generator, create_customer, create_service, create_work, captured_logs, test_actor_id
    ):
        # No company settings, no service mapping, no customer account
        work = create_work(create_customer(), create_service(), is_recurring=False)

        invoice = generator.generate(work, None, test_actor_id, today=TODAY)

        assert invoice is not None
        assert invoice.income_account_id is None
        assert invoice.customer_account_id is None
        assert not invoice.is_fully_mapped
        assert any(r["message"] == "invoice_accounts_unmapped" for r in captured_logs())


class TestInvoiceDeletion:
    def test_delete_releases_period_and_work(
        self, session, generator, draft_invoice, august_period, monthly_work, test_actor_id
    ):
        generator.delete(draft_invoice, test_actor_id)

        assert _invoice_count(session, monthly_work.id) == 0
        assert august_period.invoice_id is None
        assert not august_period.is_billed
        assert not august_period.invoice_generated
        assert monthly_work.billing_status == "not_billed"

    def test_work_stays_billed_while_other_invoices_remain(
        self, session, deterministic_clock, generator, draft_invoice, monthly_work, test_actor_id
    ):
        september = PeriodMaterializer(session, deterministic_clock).materialize(
            monthly_work, period_bounds(date(2025, 9, 1), "monthly"), test_actor_id
        ).period
        generator.generate(monthly_work, september, test_actor_id, today=TODAY)

        generator.delete(draft_invoice, test_actor_id)

        assert _invoice_count(session, monthly_work.id) == 1
        assert monthly_work.billing_status == "billed"

    def test_period_can_be_invoiced_again(
        self, session, generator, draft_invoice, august_period, monthly_work, test_actor_id
    ):
        generator.delete(draft_invoice, test_actor_id)

        again = generator.generate(monthly_work, august_period, test_actor_id, today=TODAY)

        assert again is not None
        assert august_period.invoice_id == again.id
        assert _invoice_count(session, monthly_work.id) == 1
