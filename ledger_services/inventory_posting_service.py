"""
InventoryPostingService -- stock movements that carry their journal.

Responsibility:
    Pairs a FIFO movement with the journal that values it.  Opening stock
    creates a layer and debits the inventory account against Opening
    Balance Equity.  A sale consumes layers FIFO and debits COGS against
    the inventory account at the consumed cost.  The service also owns the
    per-item inventory tracking switch.

Invariants enforced:
    - Movement and journal share one savepoint; neither survives alone.
    - The journal amount is the movement's total cost rounded to the
      ledger's money places.
    - Opening stock and sales refuse items with track_inventory off.
    - Tracking can only be switched off while the item has no movement
      other than opening stock.

Lock order:
    Opening balance counter, movement counter, layers, layer counter,
    journal counter.  CostingService and JournalService take the later ones
    in this order, so opening stock reserves its journal number first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import CoreConfig
from ledger_kernel.db.types import round_money, to_decimal
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import (
    InvalidAmountError,
    InvalidQuantityError,
    InventoryTrackingInUseError,
    MissingCogsAccountError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.inventory import InventoryLayer, InventoryMovement, Item, MovementType, Warehouse
from ledger_kernel.models.journal import Journal, JournalSourceType
from ledger_kernel.selectors.inventory_selector import InventorySelector
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.opening_balance_service import OpeningBalanceService
from ledger_services.costing_service import CostingService, OutboundResult

logger = get_logger("services.inventory_posting")


@dataclass(frozen=True)
class OpeningStockResult:
    """Layer, movement and journal written for opening stock."""

    layer: InventoryLayer
    movement: InventoryMovement
    journal: Journal


@dataclass(frozen=True)
class SaleResult:
    """FIFO outbound of a sale and its COGS journal (None when the cost is zero)."""

    outbound: OutboundResult
    journal: Journal | None


class InventoryPostingService(BaseService):
    """Opening stock and sales over CostingService and JournalService."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: CoreConfig | None = None,
        costing: CostingService | None = None,
        journals: JournalService | None = None,
        opening_balances: OpeningBalanceService | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or CoreConfig()
        self.costing = costing or CostingService(session, self.clock, self.config.inventory)
        self.journals = journals or JournalService(session, self.clock, self.config.ledger)
        self.opening_balances = opening_balances or OpeningBalanceService(
            session, self.clock, self.config.opening_balance, self.config.ledger
        )
        self._selector = InventorySelector(session)

    def _money(self, amount: Decimal) -> Decimal:
        return round_money(amount, self.config.ledger.money_places)

    def _cogs_account(self, organization_id: UUID) -> Account:
        code = self.config.inventory.cogs_account_code
        account = self.session.execute(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.code == code,
            )
        ).scalar_one_or_none()
        if account is None or not account.is_active:
            raise MissingCogsAccountError(organization_id, code)
        return account

    # ------------------------------------------------------------------
    # Opening stock
    # ------------------------------------------------------------------

    def record_opening_stock(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        unit_cost: Decimal,
        as_of_date: date,
        *,
        actor_id: UUID,
        description: str | None = None,
    ) -> OpeningStockResult:
        """
        Seed stock of an item in a warehouse.

        Creates one layer and one ``opening_balance`` movement, and posts a
        journal debiting the inventory account (warehouse, else item) and
        crediting Opening Balance Equity for quantity x unit cost.  The
        journal is numbered ``OB-{sku}-{000001}`` and is covered by
        OpeningBalanceService.validate_opening_balance_integrity().
        """
        quantity = to_decimal(quantity)
        unit_cost = to_decimal(unit_cost)
        if quantity <= 0:
            raise InvalidQuantityError(quantity, "opening stock")
        if unit_cost <= 0:
            raise InvalidAmountError(unit_cost, "opening stock unit cost must be positive")

        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            item = self.costing.tracked_item(organization_id, item_id)
            warehouse = self._get_scoped(Warehouse, warehouse_id, organization_id, "warehouse")
            inventory_account_id = self.costing.inventory_account_id(warehouse, item)
            equity = self.opening_balances.ensure_opening_balance_equity_account(organization_id, actor_id)
            journal_number = self.opening_balances.next_journal_number(organization_id, item.sku)

            inbound = self.costing.record_inbound(
                organization_id,
                item.id,
                warehouse.id,
                quantity,
                unit_cost,
                MovementType.OPENING_BALANCE,
                journal_number,
                as_of_date,
                actor_id=actor_id,
            )

            amount = self._money(inbound.movement.total_cost)
            memo = description or f"Opening stock {item.sku} in {warehouse.code}"
            journal = self.journals.post_journal(
                organization_id,
                as_of_date,
                f"Opening stock {item.sku}",
                [
                    JournalLineSpec.debit_line(inventory_account_id, amount, memo),
                    JournalLineSpec.credit_line(equity.id, amount, memo),
                ],
                actor_id=actor_id,
                description=memo,
                source_type=JournalSourceType.OPENING_BALANCE,
                source_id=str(inventory_account_id),
                journal_number=journal_number,
            )

            logger.info(
                "opening_stock_recorded",
                extra={
                    "item_id": str(item.id),
                    "warehouse_id": str(warehouse.id),
                    "quantity": str(quantity),
                    "unit_cost": str(unit_cost),
                    "amount": str(amount),
                    "journal_id": str(journal.id),
                },
            )
        return OpeningStockResult(layer=inbound.layer, movement=inbound.movement, journal=journal)

    # ------------------------------------------------------------------
    # Sales
    # ------------------------------------------------------------------

    def record_sale(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        quantity: Decimal,
        reference_id: str | None,
        posting_date: date,
        *,
        actor_id: UUID,
    ) -> SaleResult:
        """Consume layers FIFO for a sale and post its COGS journal."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            self.costing.tracked_item(organization_id, item_id)
            outbound = self.costing.record_outbound(
                organization_id,
                item_id,
                warehouse_id,
                quantity,
                MovementType.SALE,
                reference_id,
                posting_date,
                actor_id=actor_id,
            )
            journal = self.post_cogs_journal(
                organization_id,
                item_id,
                warehouse_id,
                outbound.total_cost,
                posting_date,
                actor_id=actor_id,
                source_id=str(outbound.movement.id),
            )
        return SaleResult(outbound=outbound, journal=journal)

    def post_cogs_journal(
        self,
        organization_id: UUID,
        item_id: UUID,
        warehouse_id: UUID,
        total_cost: Decimal,
        journal_date: date,
        *,
        actor_id: UUID,
        source_id: str | None = None,
    ) -> Journal | None:
        """
        Debit COGS and credit inventory for ``total_cost``.

        Returns None without posting when the cost rounds to zero (for
        example a sale costed under the zero-cost negative stock policy).
        """
        amount = self._money(to_decimal(total_cost))
        if amount < 0:
            raise InvalidAmountError(amount, "COGS must not be negative")

        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            item = self._get_scoped(Item, item_id, organization_id, "item")
            warehouse = self._get_scoped(Warehouse, warehouse_id, organization_id, "warehouse")
            if amount == 0:
                logger.info("cogs_journal_skipped", extra={"item_id": str(item.id), "source_id": source_id})
                return None

            inventory_account_id = self.costing.inventory_account_id(warehouse, item)
            cogs = self._cogs_account(organization_id)
            memo = f"COGS {item.sku}"
            journal = self.journals.post_journal(
                organization_id,
                journal_date,
                memo,
                [
                    JournalLineSpec.debit_line(cogs.id, amount, memo),
                    JournalLineSpec.credit_line(inventory_account_id, amount, f"Inventory reduction {item.sku}"),
                ],
                actor_id=actor_id,
                description=f"Cost of goods sold for {item.sku} from {warehouse.code}",
                source_type=JournalSourceType.COGS,
                source_id=source_id,
            )

            logger.info(
                "cogs_journal_posted",
                extra={
                    "item_id": str(item.id),
                    "amount": str(amount),
                    "journal_id": str(journal.id),
                },
            )
        return journal

    # ------------------------------------------------------------------
    # Tracking switch
    # ------------------------------------------------------------------

    def set_inventory_tracking(
        self,
        organization_id: UUID,
        item_id: UUID,
        enabled: bool,
        *,
        actor_id: UUID,
    ) -> Item:
        """Turn inventory tracking on or off for an item."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            item = self._get_scoped(Item, item_id, organization_id, "item")
            if item.track_inventory == enabled:
                return item
            if not enabled:
                moved = self._selector.non_opening_movement_count(organization_id, item.id)
                if moved:
                    raise InventoryTrackingInUseError(item.id, moved)

            item.track_inventory = enabled
            item.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "inventory_tracking_changed",
                extra={"item_id": str(item.id), "sku": item.sku, "enabled": enabled},
            )
        return item
