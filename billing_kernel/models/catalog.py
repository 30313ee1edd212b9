"""
Customers, services, negotiated prices and service task templates.

Read-only inputs for price, tax, account and task resolution.  CRUD for
these records belongs to the surrounding application.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class Customer(TrackedBase):
    __tablename__ = "customers"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Receivable account; back-filled from the invoice on first payment
    ledger_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Customer {self.name}>"


class Service(TrackedBase):
    """
    A billable service offering.

    Guarantees:
        - ``tax_rate`` is a percentage and defaults to 0.
        - ``income_account_id`` takes precedence over the company default
          income account.
    """

    __tablename__ = "services"

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    default_price: Mapped[Decimal | None] = mapped_column(Numeric(38, 9), nullable=True)

    tax_rate: Mapped[Decimal] = mapped_column(
        Numeric(9, 4), default=Decimal("0"), nullable=False
    )

    income_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("ledger_accounts.id"), nullable=True
    )

    def __repr__(self) -> str:
        return f"<Service {self.name}>"


class CustomerServicePrice(TrackedBase):
    """Negotiated price of one service for one customer."""

    __tablename__ = "customer_service_prices"

    __table_args__ = (
        UniqueConstraint("customer_id", "service_id", name="uq_customer_service_price"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("customers.id", ondelete="CASCADE"), nullable=False
    )
    service_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("services.id", ondelete="CASCADE"), nullable=False
    )
    price: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)


class ServiceTaskTemplate(TrackedBase):
    """
    Reusable task definition attached to a service.

    Contract:
        - ``recurrence_granularity`` is independent of the work's own
          recurrence; None means "same as the work".
        - Due-date fields follow the resolver precedence: exact date, then
          offset rule, then period end.
        - Inactive templates and templates whose ``start_date`` is after a
          period's end are not materialized into that period.
    """

    __tablename__ = "service_task_templates"

    __table_args__ = (
        Index("idx_task_template_service", "service_id", "sort_order"),
    )

    service_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("services.id", ondelete="CASCADE"), nullable=False
    )

    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    recurrence_granularity: Mapped[str | None] = mapped_column(String(20), nullable=True)

    exact_due_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    due_offset_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    due_offset_value: Mapped[int | None] = mapped_column(Integer, nullable=True)

    priority: Mapped[str] = mapped_column(String(20), default="medium", nullable=False)
    estimated_hours: Mapped[Decimal | None] = mapped_column(Numeric(9, 2), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    def __repr__(self) -> str:
        return f"<ServiceTaskTemplate {self.title} ({self.recurrence_granularity or 'work'})>"
