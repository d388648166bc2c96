"""
Tests for engine initialization (ledger_kernel.db.engine).

Each test builds a private in-memory SQLite engine.  The module-level
engine and session factory used by the rest of the suite are restored by
monkeypatch afterwards.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import event, select

from ledger_config.schema import DatabaseConfig
from ledger_kernel.db import engine as engine_module
from ledger_kernel.db.engine import (
    create_tables,
    get_engine,
    get_session,
    init_engine_from_config,
    init_engine_from_url,
    session_scope,
)
from ledger_kernel.db.immutability import (
    _check_append_only_update,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.models.inventory import InventoryMovement, Item, MovementType, Warehouse
from ledger_kernel.models.organization import Organization
from ledger_services.costing_service import CostingService


@pytest.fixture
def private_engine(db_tables, monkeypatch):
    """Swap in a fresh engine slot and start with no listeners installed."""
    monkeypatch.setattr(engine_module, "_engine", engine_module._engine)
    monkeypatch.setattr(engine_module, "_SessionFactory", engine_module._SessionFactory)
    unregister_immutability_listeners()
    yield
    if engine_module._engine is not None:
        get_engine().dispose()
    register_immutability_listeners()


class TestImmutabilityInstalledByEngine:

    def test_init_engine_installs_listeners(self, private_engine):
        assert not event.contains(InventoryMovement, "before_update", _check_append_only_update)

        init_engine_from_url("sqlite://")

        assert event.contains(InventoryMovement, "before_update", _check_append_only_update)

    def test_movement_update_blocked_without_test_fixtures(self, private_engine):
        actor_id = uuid4()
        init_engine_from_url("sqlite://")
        create_tables()

        with session_scope() as session:
            org = Organization(name="Prod Co", created_by_id=actor_id)
            session.add(org)
            session.flush()
            item = Item(organization_id=org.id, sku="P-1", name="P-1", created_by_id=actor_id)
            warehouse = Warehouse(organization_id=org.id, code="W", name="W", created_by_id=actor_id)
            session.add_all([item, warehouse])
            session.flush()
            CostingService(session).record_inbound(
                org.id, item.id, warehouse.id, Decimal("5"), Decimal("1.00"),
                MovementType.PURCHASE, "PO-1", date(2024, 1, 1), actor_id=actor_id,
            )

        session = get_session()
        try:
            movement = session.execute(select(InventoryMovement)).scalar_one()
            movement.unit_cost = Decimal("9.99")
            with pytest.raises(ImmutabilityViolationError):
                session.flush()
        finally:
            session.rollback()
            session.close()


class TestInitFromConfig:

    def test_database_section_drives_the_engine(self, private_engine):
        engine = init_engine_from_config(DatabaseConfig(url="sqlite://", echo=True))

        assert engine is get_engine()
        assert engine.dialect.name == "sqlite"
        assert engine.echo is True
