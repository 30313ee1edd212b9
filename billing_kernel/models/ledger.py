"""
Double-entry ledger rows and receipt vouchers.

Both are created and destroyed exclusively by the ledger posting state
machine.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.types import VoucherType


class Voucher(TrackedBase):
    """
    An accounting voucher.  Only receipt vouchers are produced here.

    Contract:
        A receipt voucher exists exactly while its invoice is ``paid``.
        Deleting it deletes its entries (ORM cascade); its ledger rows are
        deleted explicitly by the posting service.
    """

    __tablename__ = "vouchers"

    __table_args__ = (
        UniqueConstraint("voucher_number", name="uq_voucher_number"),
        Index("idx_voucher_invoice", "invoice_id", "voucher_type"),
    )

    voucher_type: Mapped[str] = mapped_column(
        String(20), default=VoucherType.RECEIPT.value, nullable=False
    )
    voucher_number: Mapped[str] = mapped_column(String(50), nullable=False)
    voucher_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="posted", nullable=False)

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )
    customer_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=True
    )

    entries: Mapped[list["VoucherEntry"]] = relationship(
        back_populates="voucher",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Voucher {self.voucher_number} {self.voucher_type}: {self.total_amount}>"


class VoucherEntry(TrackedBase):
    __tablename__ = "voucher_entries"

    voucher_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("vouchers.id", ondelete="CASCADE"), nullable=False
    )
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=False
    )
    debit_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    credit_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)

    voucher: Mapped[Voucher] = relationship(back_populates="entries")


class LedgerTransaction(TrackedBase):
    """
    One row of a double-entry posting.

    Guarantees:
        - Exactly one of debit / credit is non-zero.
        - Invoice postings carry ``invoice_id`` and no ``voucher_id``;
          receipt postings carry ``voucher_id`` and no ``invoice_id``.
          The two pairs can therefore be removed independently.
    """

    __tablename__ = "ledger_transactions"

    __table_args__ = (
        Index("idx_ledger_tx_invoice", "invoice_id"),
        Index("idx_ledger_tx_voucher", "voucher_id"),
        Index("idx_ledger_tx_account", "account_id", "transaction_date"),
    )

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=False
    )
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    debit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    credit: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    narration: Mapped[str | None] = mapped_column(Text, nullable=True)

    voucher_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("vouchers.id"), nullable=True
    )
    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<LedgerTransaction Dr {self.debit} Cr {self.credit} acct={self.account_id}>"
