"""Selectors for the billing kernel (read side)."""

from billing_kernel.selectors.ledger_selector import (
    AccountBalance,
    LedgerSelector,
    PostingTotals,
    ReceiptSummary,
    TrialBalanceRow,
)
from billing_kernel.selectors.period_selector import (
    PeriodSelector,
    PeriodSummary,
    PeriodTaskSummary,
)

__all__ = [
    "AccountBalance",
    "LedgerSelector",
    "PeriodSelector",
    "PeriodSummary",
    "PeriodTaskSummary",
    "PostingTotals",
    "ReceiptSummary",
    "TrialBalanceRow",
]
