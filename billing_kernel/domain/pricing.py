"""
billing_kernel.domain.pricing -- Invoice amount, tax and account resolution.

Pure functions.  ZERO I/O.

Precedence rules (highest first):
    price           period override -> work.billing_amount ->
                    negotiated customer price -> service default price
    income account  service mapping -> company default -> None
    tax             service.tax_rate percent, 0 when unset; never hardcoded
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from billing_kernel.db.types import ZERO, round_money, to_decimal


@dataclass(frozen=True)
class InvoiceAmounts:
    subtotal: Decimal
    tax_rate: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def resolve_price(
    period_override: Decimal | None = None,
    work_amount: Decimal | None = None,
    negotiated_price: Decimal | None = None,
    service_default: Decimal | None = None,
) -> Decimal | None:
    """First non-None price in precedence order; None if nothing is set."""
    for candidate in (period_override, work_amount, negotiated_price, service_default):
        value = to_decimal(candidate)
        if value is not None:
            return value
    return None


def compute_amounts(subtotal: Decimal, tax_rate: Decimal | None) -> InvoiceAmounts:
    """Tax is ``subtotal * rate / 100`` rounded half-up to 2 places.

    >>> compute_amounts(Decimal("1000"), Decimal("5")).total_amount
    Decimal('1050.00')
    """
    rate = to_decimal(tax_rate) or ZERO
    if rate < ZERO:
        raise ValueError(f"tax_rate cannot be negative, got {rate}")
    net = round_money(to_decimal(subtotal))
    tax = round_money(net * rate / Decimal("100"))
    return InvoiceAmounts(
        subtotal=net,
        tax_rate=rate,
        tax_amount=tax,
        total_amount=net + tax,
    )


def resolve_income_account(
    service_account_id: UUID | None,
    company_default_id: UUID | None,
) -> UUID | None:
    return service_account_id or company_default_id
