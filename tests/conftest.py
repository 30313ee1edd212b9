"""
Pytest fixtures for the billing kernel test suite.

Provides:
- Database sessions with per-test rollback isolation
- Deterministic clock and actor id
- Factory fixtures for accounts, settings, customers, services, templates
  and works

Environment Variables:
- DATABASE_URL: SQLAlchemy URL of the test database.  Defaults to an
  in-memory SQLite database; set it to a PostgreSQL URL to run the suite
  against PostgreSQL.
"""

import json
import logging
import os
from datetime import date
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from billing_config import BillingConfig
from billing_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from billing_kernel.domain.clock import DeterministicClock
from billing_kernel.domain.periods import period_bounds
from billing_kernel.domain.types import ReceiptAccountPreference
from billing_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from billing_kernel.models import (
    CompanySettings,
    Customer,
    CustomerServicePrice,
    LedgerAccount,
    Service,
    ServiceTaskTemplate,
    Work,
    WorkTask,
    WorkTaskConfig,
)
from billing_kernel.selectors.ledger_selector import LedgerSelector
from billing_kernel.selectors.period_selector import PeriodSelector
from billing_kernel.services.invoice_generator import InvoiceGenerator
from billing_kernel.services.materializer import PeriodMaterializer

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"

# "Today" for most tests
TODAY = date(2025, 10, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture billing_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ...):
            ...
            logs = captured_logs()
            assert any(r["message"] == "invoice_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("billing_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


# =============================================================================
# Session-scoped DB infrastructure (create engine + tables ONCE per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(get_database_url(), echo=False)
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end."""
    drop_tables()
    create_tables()
    yield
    drop_tables()


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Uses the SQLAlchemy 2.0 ``join_transaction_mode`` pattern:
    - Opens a dedicated connection with an outer transaction
    - Creates a session that *joins* the outer transaction
    - Any ``session.commit()`` inside the test releases a savepoint
    - At teardown the outer transaction is rolled back, undoing ALL data
      changes made during the test
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


# Clock fixtures


@pytest.fixture
def deterministic_clock():
    """Clock fixed at noon UTC on TODAY (2025-10-15)."""
    return DeterministicClock.on(TODAY)


# Config fixtures


@pytest.fixture
def always_config() -> BillingConfig:
    """Config that materializes every elapsed period."""
    return BillingConfig.from_dict({"backfill": {"policy": "always_materialize"}})


@pytest.fixture
def ledger_selector(session: Session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def period_selector(session: Session) -> PeriodSelector:
    return PeriodSelector(session)


# =============================================================================
# Test data generators
# =============================================================================


@pytest.fixture
def create_account(session: Session, test_actor_id: UUID):
    """Factory fixture to create ledger accounts."""

    def _create_account(code: str, name: str, account_type: str = "asset") -> LedgerAccount:
        account = LedgerAccount(
            code=code,
            name=name,
            account_type=account_type,
            created_by_id=test_actor_id,
        )
        session.add(account)
        session.flush()
        return account

    return _create_account


@pytest.fixture
def standard_accounts(create_account) -> dict[str, LedgerAccount]:
    """Create a standard set of ledger accounts."""
    return {
        "cash": create_account("1000", "Cash", "asset"),
        "bank": create_account("1010", "Bank", "asset"),
        "receivable": create_account("1100", "Accounts Receivable", "asset"),
        "income": create_account("4000", "Service Income", "income"),
        "consulting": create_account("4100", "Consulting Income", "income"),
    }


@pytest.fixture
def create_company_settings(session: Session, test_actor_id: UUID):
    def _create_company_settings(
        income: LedgerAccount | None = None,
        cash: LedgerAccount | None = None,
        bank: LedgerAccount | None = None,
        receipt_type: ReceiptAccountPreference = ReceiptAccountPreference.CASH,
    ) -> CompanySettings:
        settings = CompanySettings(
            company_name="Test Practice",
            default_income_ledger_id=income.id if income else None,
            default_cash_ledger_id=cash.id if cash else None,
            default_bank_ledger_id=bank.id if bank else None,
            default_payment_receipt_type=receipt_type.value,
            created_by_id=test_actor_id,
        )
        session.add(settings)
        session.flush()
        return settings

    return _create_company_settings


@pytest.fixture
def company_settings(create_company_settings, standard_accounts) -> CompanySettings:
    """Fully mapped company settings (cash receipts)."""
    return create_company_settings(
        income=standard_accounts["income"],
        cash=standard_accounts["cash"],
        bank=standard_accounts["bank"],
    )


@pytest.fixture
def create_customer(session: Session, test_actor_id: UUID):
    def _create_customer(
        name: str = "Acme Traders",
        account: LedgerAccount | None = None,
    ) -> Customer:
        customer = Customer(
            name=name,
            ledger_account_id=account.id if account else None,
            created_by_id=test_actor_id,
        )
        session.add(customer)
        session.flush()
        return customer

    return _create_customer


@pytest.fixture
def create_service(session: Session, test_actor_id: UUID):
    def _create_service(
        name: str = "GST Filing",
        default_price: Decimal | None = Decimal("1000"),
        tax_rate: Decimal = Decimal("0"),
        income_account: LedgerAccount | None = None,
    ) -> Service:
        service = Service(
            name=name,
            default_price=default_price,
            tax_rate=tax_rate,
            income_account_id=income_account.id if income_account else None,
            created_by_id=test_actor_id,
        )
        session.add(service)
        session.flush()
        return service

    return _create_service


@pytest.fixture
def create_price(session: Session, test_actor_id: UUID):
    def _create_price(customer: Customer, service: Service, price: Decimal) -> CustomerServicePrice:
        row = CustomerServicePrice(
            customer_id=customer.id,
            service_id=service.id,
            price=price,
            created_by_id=test_actor_id,
        )
        session.add(row)
        session.flush()
        return row

    return _create_price


@pytest.fixture
def create_template(session: Session, test_actor_id: UUID):
    """Factory fixture to create service task templates."""

    def _create_template(
        service: Service,
        title: str = "Prepare return",
        granularity: str | None = None,
        exact_due_date: date | None = None,
        offset_type: str | None = None,
        offset_value: int | None = None,
        sort_order: int = 0,
        is_active: bool = True,
        start_date: date | None = None,
    ) -> ServiceTaskTemplate:
        template = ServiceTaskTemplate(
            service_id=service.id,
            title=title,
            recurrence_granularity=granularity,
            exact_due_date=exact_due_date,
            due_offset_type=offset_type,
            due_offset_value=offset_value,
            sort_order=sort_order,
            is_active=is_active,
            start_date=start_date,
            created_by_id=test_actor_id,
        )
        session.add(template)
        session.flush()
        return template

    return _create_template


@pytest.fixture
def create_work(session: Session, test_actor_id: UUID):
    """Factory fixture to create works."""

    def _create_work(
        customer: Customer,
        service: Service,
        title: str = "Monthly compliance",
        is_recurring: bool = True,
        pattern: str | None = "monthly",
        start_date: date | None = date(2025, 8, 1),
        fiscal_year_start_month: int = 1,
        auto_bill: bool = True,
        billing_amount: Decimal | None = None,
    ) -> Work:
        work = Work(
            customer_id=customer.id,
            service_id=service.id,
            title=title,
            is_recurring=is_recurring,
            recurrence_pattern=pattern if is_recurring else None,
            start_date=start_date,
            fiscal_year_start_month=fiscal_year_start_month,
            auto_bill=auto_bill,
            billing_amount=billing_amount,
            created_by_id=test_actor_id,
        )
        session.add(work)
        session.flush()
        return work

    return _create_work


@pytest.fixture
def create_work_task(session: Session, test_actor_id: UUID):
    def _create_work_task(work: Work, title: str = "Deliver report") -> WorkTask:
        task = WorkTask(work_id=work.id, title=title, created_by_id=test_actor_id)
        session.add(task)
        session.flush()
        return task

    return _create_work_task


@pytest.fixture
def create_work_task_config(session: Session, test_actor_id: UUID):
    def _create_config(work: Work, template: ServiceTaskTemplate, **overrides) -> WorkTaskConfig:
        config = WorkTaskConfig(
            work_id=work.id,
            template_id=template.id,
            created_by_id=test_actor_id,
            **overrides,
        )
        session.add(config)
        session.flush()
        return config

    return _create_config


@pytest.fixture
def billing_setup(
    standard_accounts,
    company_settings,
    create_customer,
    create_service,
    create_template,
):
    """A mapped customer and a monthly service with one task template.

    The template is due 10 days after the period end.
    """
    customer = create_customer(account=standard_accounts["receivable"])
    service = create_service(income_account=standard_accounts["consulting"])
    template = create_template(service, title="File return", offset_type="days", offset_value=10)
    return {
        "accounts": standard_accounts,
        "settings": company_settings,
        "customer": customer,
        "service": service,
        "template": template,
    }


@pytest.fixture
def monthly_work(billing_setup, create_work) -> Work:
    """Auto-billed monthly work starting 2025-08-01."""
    return create_work(billing_setup["customer"], billing_setup["service"])


@pytest.fixture
def august_period(session, deterministic_clock, monthly_work, test_actor_id):
    """The materialized August 2025 period of ``monthly_work``."""
    bounds = period_bounds(date(2025, 8, 1), "monthly")
    materializer = PeriodMaterializer(session, deterministic_clock)
    return materializer.materialize(monthly_work, bounds, test_actor_id).period


@pytest.fixture
def draft_invoice(session, deterministic_clock, monthly_work, august_period, test_actor_id):
    """Draft invoice INV-00001 for the August period (total 1000.00)."""
    generator = InvoiceGenerator(session, deterministic_clock)
    invoice = generator.generate(monthly_work, august_period, test_actor_id, today=TODAY)
    assert invoice is not None
    return invoice
