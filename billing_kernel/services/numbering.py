"""
NumberingService -- human-readable document numbers for invoices and receipts.

Responsibility:
    Allocates ``invoice_number`` and ``voucher_number`` values as a prefix
    followed by a zero-padded integer.

Architecture position:
    Kernel > Services.  Called by InvoiceGenerator and LedgerPostingService.

Invariants enforced:
    - Uniqueness: an allocated number is never one already stored.  The
      unique constraints on both columns are the backstop.
    - Invoice numbers are ``start + count(invoices)``, skipping forward
      past numbers already taken.
    - Receipt numbers are ``max(existing sequence) + 1`` over vouchers of
      the same prefix.

Failure modes:
    - Two concurrent transactions can compute the same number; the second
      flush fails with IntegrityError and the caller's SAVEPOINT rolls back.
"""

import re

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.ledger import Voucher

logger = get_logger("services.numbering")

DEFAULT_INVOICE_PREFIX = "INV-"
DEFAULT_RECEIPT_PREFIX = "RV-"
DEFAULT_WIDTH = 5


def format_number(prefix: str, value: int, width: int = DEFAULT_WIDTH) -> str:
    """
    >>> format_number("INV-", 42)
    'INV-00042'
    """
    return f"{prefix}{value:0{width}d}"


class NumberingService:
    """
    Document number allocation.

    Non-goals:
        - Gap-free numbering.  Deleted invoices leave their numbers unused.
    """

    def __init__(self, session: Session):
        self._session = session

    def _invoice_number_taken(self, number: str) -> bool:
        return self._session.execute(
            select(Invoice.id).where(Invoice.invoice_number == number)
        ).first() is not None

    def next_invoice_number(
        self,
        prefix: str = DEFAULT_INVOICE_PREFIX,
        width: int = DEFAULT_WIDTH,
        start: int = 1,
    ) -> str:
        count = self._session.execute(select(func.count(Invoice.id))).scalar_one()
        value = start + int(count)
        number = format_number(prefix, value, width)
        while self._invoice_number_taken(number):
            value += 1
            number = format_number(prefix, value, width)
        logger.debug("invoice_number_allocated", extra={"invoice_number": number})
        return number

    def next_voucher_number(
        self,
        prefix: str = DEFAULT_RECEIPT_PREFIX,
        width: int = DEFAULT_WIDTH,
    ) -> str:
        existing = self._session.execute(
            select(Voucher.voucher_number).where(Voucher.voucher_number.startswith(prefix))
        ).scalars().all()

        pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
        highest = 0
        for voucher_number in existing:
            match = pattern.match(voucher_number)
            if match:
                highest = max(highest, int(match.group(1)))

        number = format_number(prefix, highest + 1, width)
        logger.debug("voucher_number_allocated", extra={"voucher_number": number})
        return number
