"""
Typed exception hierarchy for the billing kernel.

Every error the kernel raises is a typed class with a machine-readable
``code`` class attribute and its context stored as attributes, so callers
catch by type and log structured data instead of parsing messages.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- RecurrenceError
    |   +-- BackfillLimitExceededError
    |
    +-- BillingError
    |   +-- InvoiceAlreadyExistsError
    |   +-- InvoicePriceUnresolvedError
    |
    +-- PostingError
    |   +-- InvalidInvoiceTransitionError
    |   +-- PartialPostingError
    |   +-- UnmappedAccountError
    |
    +-- ConfigurationError
        +-- CompanySettingsMissingError

===============================================================================
ERROR CODES
===============================================================================

Category        | Code                          | Handling at the cascade boundary
----------------|-------------------------------|----------------------------------
Recurrence      | BACKFILL_LIMIT_EXCEEDED       | Propagates. Misconfigured recurrence
                |                               | data must reach an operator.
----------------|-------------------------------|----------------------------------
Billing         | INVOICE_ALREADY_EXISTS        | Duplicate-prevented. Silent no-op.
                | INVOICE_PRICE_UNRESOLVED      | Configuration-missing. Warning.
----------------|-------------------------------|----------------------------------
Posting         | INVALID_INVOICE_TRANSITION    | Propagates. Caller error.
                | PARTIAL_POSTING               | Healed by delete-and-repost.
                | UNMAPPED_ACCOUNT              | Configuration-missing. Warning.
----------------|-------------------------------|----------------------------------
Configuration   | COMPANY_SETTINGS_MISSING      | Configuration-missing. Warning.

===============================================================================
HANDLING PATTERNS
===============================================================================

1. Cascade steps catch everything except the two propagating errors above,
   roll the step back to its savepoint, log and continue:

    try:
        with session.begin_nested():
            ledger.apply_status_change(invoice, old_status, actor_id)
    except (BackfillLimitExceededError, InvalidInvoiceTransitionError):
        raise
    except Exception:
        logger.exception("cascade_step_failed", extra={"step": "ledger"})

2. Use structured data, not the message:

    except BackfillLimitExceededError as e:
        alert(work_id=e.work_id, limit=e.limit, candidates=e.candidates)
"""

from uuid import UUID


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Recurrence exceptions


class RecurrenceError(BillingKernelError):
    """Base exception for period recurrence errors."""

    code: str = "RECURRENCE_ERROR"


class BackfillLimitExceededError(RecurrenceError):
    """Backfill would generate more periods than the per-run cap allows."""

    code: str = "BACKFILL_LIMIT_EXCEEDED"

    def __init__(self, work_id: UUID | str | None, limit: int, candidates: int):
        self.work_id = str(work_id) if work_id is not None else None
        self.limit = limit
        self.candidates = candidates
        super().__init__(
            f"Backfill for work {self.work_id} needs more than {limit} periods "
            f"(stopped after {candidates}); check the recurrence settings"
        )


# Billing exceptions


class BillingError(BillingKernelError):
    """Base exception for invoice generation errors."""

    code: str = "BILLING_ERROR"


class InvoiceAlreadyExistsError(BillingError):
    """An invoice already exists for the (work, period) key."""

    code: str = "INVOICE_ALREADY_EXISTS"

    def __init__(self, work_id: UUID | str, period_id: UUID | str | None, invoice_id: UUID | str):
        self.work_id = str(work_id)
        self.period_id = str(period_id) if period_id is not None else None
        self.invoice_id = str(invoice_id)
        super().__init__(
            f"Invoice {self.invoice_id} already exists for work {self.work_id}, "
            f"period {self.period_id}"
        )


class InvoicePriceUnresolvedError(BillingError):
    """No positive price could be resolved for a billable work."""

    code: str = "INVOICE_PRICE_UNRESOLVED"

    def __init__(self, work_id: UUID | str, period_id: UUID | str | None = None):
        self.work_id = str(work_id)
        self.period_id = str(period_id) if period_id is not None else None
        super().__init__(f"No billable price resolved for work {self.work_id}")


# Posting exceptions


class PostingError(BillingKernelError):
    """Base exception for ledger posting errors."""

    code: str = "POSTING_ERROR"


class InvalidInvoiceTransitionError(PostingError):
    """Invoice status transition is not allowed by the state machine."""

    code: str = "INVALID_INVOICE_TRANSITION"

    def __init__(self, from_status: str | None, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid invoice status transition: {from_status} -> {to_status}"
        )


class PartialPostingError(PostingError):
    """Ledger rows for an invoice exist but do not form a balanced pair."""

    code: str = "PARTIAL_POSTING"

    def __init__(self, invoice_id: UUID | str, debits: str, credits: str, row_count: int):
        self.invoice_id = str(invoice_id)
        self.debits = debits
        self.credits = credits
        self.row_count = row_count
        super().__init__(
            f"Invoice {self.invoice_id} has a partial posting: "
            f"{row_count} rows, debits={debits}, credits={credits}"
        )


class UnmappedAccountError(PostingError):
    """A ledger account required for posting is not mapped."""

    code: str = "UNMAPPED_ACCOUNT"

    def __init__(self, role: str, invoice_id: UUID | str | None = None):
        self.role = role
        self.invoice_id = str(invoice_id) if invoice_id is not None else None
        super().__init__(f"No ledger account mapped for role '{role}'")


# Configuration exceptions


class ConfigurationError(BillingKernelError):
    """Base exception for missing or invalid configuration records."""

    code: str = "CONFIGURATION_ERROR"


class CompanySettingsMissingError(ConfigurationError):
    """No company settings row exists."""

    code: str = "COMPANY_SETTINGS_MISSING"

    def __init__(self) -> None:
        super().__init__("Company settings have not been configured")
