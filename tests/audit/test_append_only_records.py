"""
Tests for the append-only ORM listeners (ledger_kernel.db.immutability).

Posted journals, journal lines and inventory movements cannot be updated
or deleted through the ORM.  Inventory layers only ever change
quantity_remaining.
"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import ImmutabilityViolationError


@pytest.fixture
def journal(journal_service, organization, standard_accounts, test_actor_id):
    a = standard_accounts
    return journal_service.post_journal(
        organization.id,
        date(2024, 1, 5),
        "IMM",
        [
            JournalLineSpec.debit_line(a["cash"].id, "10"),
            JournalLineSpec.credit_line(a["sales"].id, "10"),
        ],
        actor_id=test_actor_id,
    )


@pytest.fixture
def inbound(receive_stock, organization, item, warehouse):
    return receive_stock(organization.id, item.id, warehouse.id, "10", "2.00")


def _flush_in_savepoint(session, mutate):
    with session.begin_nested():
        mutate()
        session.flush()


class TestJournalImmutability:

    def test_journal_header_update_blocked(self, session, journal):
        def mutate():
            journal.reference = "EDITED"

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            _flush_in_savepoint(session, mutate)
        assert exc_info.value.code == "IMMUTABILITY_VIOLATION"

    def test_journal_line_amount_update_blocked(self, session, journal):
        line = journal.lines[0]

        def mutate():
            line.debit_amount = Decimal("999")

        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, mutate)

    def test_journal_delete_blocked(self, session, journal):
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, lambda: session.delete(journal))

    def test_blocked_attempt_is_logged(self, session, journal, captured_logs):
        def mutate():
            journal.description = "tampered"

        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, mutate)

        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked and blocked[0]["operation"] == "UPDATE"


class TestInventoryImmutability:

    def test_movement_update_blocked(self, session, inbound):
        def mutate():
            inbound.movement.total_cost = Decimal("0")

        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, mutate)

    def test_movement_delete_blocked(self, session, inbound):
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, lambda: session.delete(inbound.movement))

    def test_layer_unit_cost_update_blocked(self, session, inbound):
        def mutate():
            inbound.layer.unit_cost = Decimal("1.00")

        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, mutate)

    def test_layer_delete_blocked(self, session, inbound):
        with pytest.raises(ImmutabilityViolationError):
            _flush_in_savepoint(session, lambda: session.delete(inbound.layer))

    def test_layer_remaining_quantity_may_change(self, session, inbound):
        def mutate():
            inbound.layer.quantity_remaining = Decimal("4")

        _flush_in_savepoint(session, mutate)
        session.refresh(inbound.layer)
        assert inbound.layer.quantity_remaining == Decimal("4")
