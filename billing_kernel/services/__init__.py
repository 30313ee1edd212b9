"""Write-side services of the billing kernel.  All are flush-only."""

from billing_kernel.services.backfill_service import BackfillResult, RecurrenceBackfillService
from billing_kernel.services.completion_service import AggregationResult, CompletionAggregator
from billing_kernel.services.invoice_generator import InvoiceGenerator
from billing_kernel.services.ledger_posting_service import (
    LedgerPostingResult,
    LedgerPostingService,
)
from billing_kernel.services.materializer import MaterializeResult, PeriodMaterializer
from billing_kernel.services.numbering import NumberingService
from billing_kernel.services.settings import get_company_settings

__all__ = [
    "AggregationResult",
    "BackfillResult",
    "CompletionAggregator",
    "InvoiceGenerator",
    "LedgerPostingResult",
    "LedgerPostingService",
    "MaterializeResult",
    "NumberingService",
    "PeriodMaterializer",
    "RecurrenceBackfillService",
    "get_company_settings",
]
