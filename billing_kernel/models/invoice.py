"""
Invoice and InvoiceItem -- billing documents produced by the invoice
generator.  Status changes are driven externally and posted by the ledger
state machine.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.types import InvoiceStatus


class Invoice(TrackedBase):
    """
    A customer invoice.

    Guarantees:
        - At most one invoice per (work_id, period_id), enforced by a
          unique constraint and an existence check in the generator (the
          constraint does not cover NULL period_id).
        - total_amount == subtotal + tax_amount.
        - paid_amount + balance_amount == total_amount.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        UniqueConstraint("work_id", "period_id", name="uq_invoice_work_period"),
        Index("idx_invoice_status", "status"),
    )

    invoice_number: Mapped[str] = mapped_column(String(50), nullable=False)

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id"), nullable=False
    )
    work_id: Mapped[UUID] = mapped_column(UUIDString(), ForeignKey("works.id"), nullable=False)
    period_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("recurring_periods.id"), nullable=True
    )

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("0"), nullable=False)
    balance_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), default=InvoiceStatus.DRAFT.value, nullable=False
    )

    income_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )
    customer_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["InvoiceItem"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number}: {self.status} {self.total_amount}>"

    @property
    def is_fully_mapped(self) -> bool:
        return self.income_account_id is not None and self.customer_account_id is not None


class InvoiceItem(TrackedBase):
    __tablename__ = "invoice_items"

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )
    service_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("services.id"), nullable=True
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)
    quantity: Mapped[Decimal] = mapped_column(Numeric(38, 9), default=Decimal("1"), nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(9, 4), default=Decimal("0"), nullable=False)

    invoice: Mapped[Invoice] = relationship(back_populates="items")
