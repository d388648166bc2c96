"""
Pytest fixtures for the ledger test suite.

Provides:
- Database sessions (SQLite in-memory by default, PostgreSQL when
  DATABASE_URL points at one)
- Tenant, account, item and warehouse factories
- Service fixtures wired to a deterministic clock

Environment Variables:
- DATABASE_URL: database URL.  Defaults to ``sqlite://`` (in-memory).
  Concurrency tests are marked ``postgres`` and skipped on SQLite, which
  has no row-level locking.
"""

import json
import logging
import os
import threading
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.orm import Session

from ledger_config.schema import CoreConfig
from ledger_kernel.db.base import Base
from ledger_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from ledger_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.domain.clock import DeterministicClock
from ledger_kernel.domain.policies import NegativeInventoryPolicy
from ledger_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.inventory import Item, MovementType, Warehouse
from ledger_kernel.models.organization import Organization
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.selectors.ledger_selector import LedgerSelector
from ledger_kernel.selectors.transfer_selector import TransferSelector
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.opening_balance_service import OpeningBalanceService
from ledger_kernel.services.period_service import PeriodService
from ledger_services.costing_service import CostingService
from ledger_services.inventory_posting_service import InventoryPostingService
from ledger_services.transfer_service import TransferService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def _is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")


def pytest_collection_modifyitems(config, items):
    """Skip PostgreSQL-only tests when running against SQLite."""
    if _is_postgres_url(get_database_url()):
        return
    skip_pg = pytest.mark.skip(reason="requires PostgreSQL (set DATABASE_URL)")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG, stream=StringIO())
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
    Capture ledger_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, journal_service):
            journal_service.post_journal(...)
            logs = captured_logs()
            assert any(r["message"] == "journal_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("ledger_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Session-scoped DB infrastructure (engine + tables once per suite)
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single engine for the entire test session."""
    eng = init_engine_from_url(
        get_database_url(), echo=False,
        pool_size=30, max_overflow=20, pool_timeout=10,
    )
    yield eng
    reset_engine()


@pytest.fixture(scope="session")
def db_tables(db_engine):
    """Create all tables once per session, drop once at end.

    Immutability listeners are registered once and remain active.
    """
    drop_tables()
    create_tables()
    register_immutability_listeners()
    yield
    unregister_immutability_listeners()
    drop_tables()


def _delete_all_rows(engine):
    """Remove all data left behind by tests that really commit."""
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())


# =============================================================================
# Per-test session with automatic rollback
# =============================================================================


@pytest.fixture(scope="function")
def session(db_tables, db_engine) -> Generator[Session, None, None]:
    """Provide a database session for testing.

    Opens a dedicated connection with an outer transaction and a session
    that joins it.  Savepoints opened by the services nest inside; at
    teardown the outer transaction is rolled back, undoing every change
    the test made.
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


# =============================================================================
# Concurrency testing fixtures (real commits + row cleanup)
# =============================================================================


@pytest.fixture(scope="function")
def pg_session_factory(db_engine, db_tables):
    """Provide a tracked session factory for creating sessions in threads.

    Each thread creates its own session.  On teardown all tracked sessions
    are rolled back and closed and committed rows are deleted.
    """
    factory = get_session_factory()
    created_sessions = []
    lock = threading.Lock()
    closed = False

    def tracked_factory():
        nonlocal closed
        with lock:
            if closed:
                raise RuntimeError("pg_session_factory closed (fixture teardown)")
            s = factory()
            created_sessions.append(s)
            return s

    yield tracked_factory

    with lock:
        closed = True

    for s in created_sessions:
        if s.is_active:
            s.rollback()
        s.close()

    unregister_immutability_listeners()
    try:
        _delete_all_rows(db_engine)
    finally:
        register_immutability_listeners()


# =============================================================================
# Clock, actor, config
# =============================================================================


@pytest.fixture
def test_actor_id() -> UUID:
    """Provide a consistent test actor ID."""
    return TEST_ACTOR_ID


@pytest.fixture
def deterministic_clock() -> DeterministicClock:
    return DeterministicClock()


@pytest.fixture
def core_config() -> CoreConfig:
    return CoreConfig()


# =============================================================================
# Data factories
# =============================================================================


@pytest.fixture
def create_organization(session, test_actor_id):
    """Factory for tenants."""

    def _create(name: str = "Acme Trading") -> Organization:
        org = Organization(name=name, is_active=True, created_by_id=test_actor_id)
        session.add(org)
        session.flush()
        return org

    return _create


@pytest.fixture
def organization(create_organization) -> Organization:
    return create_organization()


@pytest.fixture
def create_account(session, test_actor_id):
    """Factory for accounts."""

    def _create(
        organization_id: UUID,
        code: str,
        name: str | None = None,
        account_type: AccountType = AccountType.ASSET,
        subtype: str | None = None,
        is_active: bool = True,
    ) -> Account:
        account = Account(
            organization_id=organization_id,
            code=code,
            name=name or f"Account {code}",
            account_type=account_type,
            subtype=subtype,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(account)
        session.flush()
        return account

    return _create


@pytest.fixture
def standard_accounts(organization, create_account) -> dict[str, Account]:
    """A small chart of accounts for the default organization."""
    return {
        "cash": create_account(organization.id, "1000", "Cash", AccountType.ASSET, "cash"),
        "inventory_main": create_account(organization.id, "1300", "Inventory - Main", AccountType.ASSET, "stock"),
        "inventory_branch": create_account(organization.id, "1310", "Inventory - Branch", AccountType.ASSET, "stock"),
        "payables": create_account(organization.id, "2000", "Accounts Payable", AccountType.LIABILITY, "payable"),
        "capital": create_account(organization.id, "3000", "Owner Capital", AccountType.EQUITY),
        "sales": create_account(organization.id, "4000", "Sales", AccountType.INCOME),
        "cogs": create_account(organization.id, "5000", "Cost of Goods Sold", AccountType.EXPENSE),
    }


@pytest.fixture
def create_item(session, test_actor_id):
    """Factory for stock items."""

    def _create(
        organization_id: UUID,
        sku: str,
        name: str | None = None,
        inventory_account_id: UUID | None = None,
        track_inventory: bool = True,
    ) -> Item:
        item = Item(
            organization_id=organization_id,
            sku=sku,
            name=name or sku,
            inventory_account_id=inventory_account_id,
            track_inventory=track_inventory,
            is_active=True,
            created_by_id=test_actor_id,
        )
        session.add(item)
        session.flush()
        return item

    return _create


@pytest.fixture
def create_warehouse(session, test_actor_id):
    """Factory for warehouses."""

    def _create(
        organization_id: UUID,
        code: str,
        cost_center: str | None = None,
        inventory_account_id: UUID | None = None,
        negative_inventory_policy: NegativeInventoryPolicy | None = None,
        is_active: bool = True,
    ) -> Warehouse:
        warehouse = Warehouse(
            organization_id=organization_id,
            code=code,
            name=f"Warehouse {code}",
            cost_center=cost_center,
            inventory_account_id=inventory_account_id,
            negative_inventory_policy=negative_inventory_policy,
            is_active=is_active,
            created_by_id=test_actor_id,
        )
        session.add(warehouse)
        session.flush()
        return warehouse

    return _create


@pytest.fixture
def item(organization, create_item) -> Item:
    return create_item(organization.id, "WIDGET-1", "Widget")


@pytest.fixture
def warehouse(organization, create_warehouse) -> Warehouse:
    return create_warehouse(organization.id, "MAIN")


# =============================================================================
# Services and selectors
# =============================================================================


@pytest.fixture
def journal_service(session, deterministic_clock, core_config) -> JournalService:
    return JournalService(session, deterministic_clock, core_config.ledger)


@pytest.fixture
def period_service(session, deterministic_clock) -> PeriodService:
    return PeriodService(session, deterministic_clock)


@pytest.fixture
def costing_service(session, deterministic_clock, core_config) -> CostingService:
    return CostingService(session, deterministic_clock, core_config.inventory)


@pytest.fixture
def opening_balance_service(session, deterministic_clock, core_config) -> OpeningBalanceService:
    return OpeningBalanceService(
        session, deterministic_clock, core_config.opening_balance, core_config.ledger
    )


@pytest.fixture
def transfer_service(session, deterministic_clock, core_config, costing_service, journal_service) -> TransferService:
    return TransferService(
        session,
        deterministic_clock,
        core_config,
        costing=costing_service,
        journals=journal_service,
    )


@pytest.fixture
def inventory_posting_service(
    session, deterministic_clock, core_config, costing_service, journal_service, opening_balance_service
) -> InventoryPostingService:
    return InventoryPostingService(
        session,
        deterministic_clock,
        core_config,
        costing=costing_service,
        journals=journal_service,
        opening_balances=opening_balance_service,
    )


@pytest.fixture
def ledger_selector(session) -> LedgerSelector:
    return LedgerSelector(session)


@pytest.fixture
def inventory_selector(session) -> InventorySelector:
    return InventorySelector(session)


@pytest.fixture
def transfer_selector(session) -> TransferSelector:
    return TransferSelector(session)


@pytest.fixture
def receive_stock(costing_service, deterministic_clock, test_actor_id):
    """Record a purchase layer; advances the clock so layers get distinct timestamps."""
    def _receive(organization_id, item_id, warehouse_id, quantity, unit_cost, posting_date=None):
        result = costing_service.record_inbound(
            organization_id,
            item_id,
            warehouse_id,
            Decimal(str(quantity)),
            Decimal(str(unit_cost)),
            MovementType.PURCHASE,
            "PO-TEST",
            posting_date or deterministic_clock.now().date(),
            actor_id=test_actor_id,
        )
        deterministic_clock.advance(60)
        return result

    return _receive
