"""ORM models for the billing kernel."""

from billing_kernel.models.accounts import CompanySettings, LedgerAccount
from billing_kernel.models.catalog import (
    Customer,
    CustomerServicePrice,
    Service,
    ServiceTaskTemplate,
)
from billing_kernel.models.invoice import Invoice, InvoiceItem
from billing_kernel.models.ledger import LedgerTransaction, Voucher, VoucherEntry
from billing_kernel.models.period import PeriodTask, RecurringPeriod
from billing_kernel.models.work import Work, WorkTask, WorkTaskConfig

__all__ = [
    "CompanySettings",
    "Customer",
    "CustomerServicePrice",
    "Invoice",
    "InvoiceItem",
    "LedgerAccount",
    "LedgerTransaction",
    "PeriodTask",
    "RecurringPeriod",
    "Service",
    "ServiceTaskTemplate",
    "Voucher",
    "VoucherEntry",
    "Work",
    "WorkTask",
    "WorkTaskConfig",
]
