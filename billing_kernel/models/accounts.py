"""
Ledger accounts and company-wide posting defaults.

Both tables are read-only inputs to the billing kernel; they are maintained
by the surrounding application.
"""

from uuid import UUID

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.types import ReceiptAccountPreference


class LedgerAccount(TrackedBase):
    """
    A posting account in the chart of accounts.

    Non-goals:
        - No hierarchy, normal-balance or currency semantics; reporting over
          accounts is outside the billing kernel.
    """

    __tablename__ = "ledger_accounts"

    __table_args__ = (UniqueConstraint("code", name="uq_ledger_account_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    # asset, liability, income, expense, equity
    account_type: Mapped[str] = mapped_column(String(20), nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerAccount {self.code}: {self.name}>"


class CompanySettings(TrackedBase):
    """
    Company-wide default ledger mappings.

    Contract:
        - ``default_income_ledger_id`` is the income-account fallback when a
          service has no mapping of its own.
        - ``default_payment_receipt_type`` selects which of the cash or bank
          defaults receives customer payments.
    """

    __tablename__ = "company_settings"

    company_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    default_income_ledger_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )
    default_cash_ledger_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )
    default_bank_ledger_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )

    default_payment_receipt_type: Mapped[str] = mapped_column(
        String(20),
        default=ReceiptAccountPreference.CASH.value,
        nullable=False,
    )

    @property
    def receipt_account_id(self) -> UUID | None:
        """Cash or bank default, per ``default_payment_receipt_type``."""
        if self.default_payment_receipt_type == ReceiptAccountPreference.BANK.value:
            return self.default_bank_ledger_id
        return self.default_cash_ledger_id
