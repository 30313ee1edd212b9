"""
Tests for NumberingService.
"""

from datetime import date
from decimal import Decimal

import pytest

from billing_kernel.models import Invoice, Voucher
from billing_kernel.services.numbering import NumberingService, format_number


@pytest.fixture
def numbering(session):
    return NumberingService(session)


@pytest.fixture
def add_invoice(session, monthly_work, test_actor_id):
    def _add(number: str, period_id=None) -> Invoice:
        invoice = Invoice(
            invoice_number=number,
            customer_id=monthly_work.customer_id,
            work_id=monthly_work.id,
            period_id=period_id,
            invoice_date=date(2025, 10, 15),
            due_date=date(2025, 11, 14),
            subtotal=Decimal("100"),
            tax_amount=Decimal("0"),
            total_amount=Decimal("100"),
            paid_amount=Decimal("0"),
            balance_amount=Decimal("100"),
            created_by_id=test_actor_id,
        )
        session.add(invoice)
        session.flush()
        return invoice

    return _add


@pytest.fixture
def add_voucher(session, test_actor_id):
    def _add(number: str) -> Voucher:
        voucher = Voucher(
            voucher_number=number,
            voucher_date=date(2025, 10, 15),
            total_amount=Decimal("100"),
            created_by_id=test_actor_id,
        )
        session.add(voucher)
        session.flush()
        return voucher

    return _add


class TestFormatNumber:
    def test_zero_padded(self):
        assert format_number("INV-", 42) == "INV-00042"

    def test_custom_width(self):
        assert format_number("RV-", 7, width=3) == "RV-007"

    def test_overflowing_width(self):
        assert format_number("INV-", 123456) == "INV-123456"


class TestInvoiceNumbers:
    def test_first_invoice(self, numbering):
        assert numbering.next_invoice_number() == "INV-00001"

    def test_counts_existing(self, numbering, add_invoice):
        add_invoice("INV-00001")
        assert numbering.next_invoice_number() == "INV-00002"

    def test_skips_taken_numbers(self, numbering, add_invoice):
        add_invoice("INV-00002")
        assert numbering.next_invoice_number() == "INV-00003"

    def test_custom_start_and_prefix(self, numbering):
        assert numbering.next_invoice_number(prefix="BILL/", width=4, start=1001) == "BILL/1001"


class TestVoucherNumbers:
    def test_first_voucher(self, numbering):
        assert numbering.next_voucher_number() == "RV-00001"

    def test_max_plus_one(self, numbering, add_voucher):
        add_voucher("RV-00007")
        add_voucher("RV-00003")
        assert numbering.next_voucher_number() == "RV-00008"

    def test_other_prefixes_ignored(self, numbering, add_voucher):
        add_voucher("JV-00050")
        add_voucher("RV-ADJ")
        assert numbering.next_voucher_number() == "RV-00001"
