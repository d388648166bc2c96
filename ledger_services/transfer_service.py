"""
TransferService -- inter-warehouse transfers as a state machine.

Responsibility:
    Creates draft transfers with a FIFO cost preview, confirms them by
    moving stock (outbound at the source, inbound at the destination at the
    outbound's cost), posts a journal when the two warehouses belong to
    different cost centers, and completes or cancels them.

Invariants enforced:
    - Every action is checked against TRANSFER_WORKFLOW before any row is
      touched.
    - Confirmation is all-or-nothing.  Outbounds, inbounds, the journal,
      the balance re-check and the status change share one savepoint; if
      any step fails the transfer stays in draft and no layer, movement or
      journal change survives.
    - Stock moves only when the transition has moves_inventory set; the
      cost-center journal is posted only when it has posts_entry set.
    - The STOCK_AVAILABLE guard rejects any line the source layers do not
      fully cover, even in a warehouse that allows negative stock.
    - Only items with track_inventory on can be transferred.
    - Cost follows the goods: the destination layer is created at the
      average unit cost the source outbound actually consumed.
    - The transfer row is locked (SELECT ... FOR UPDATE) for every
      transition, so two callers cannot confirm the same draft twice.

Open decision:
    Cancelling an in-transit transfer would require reversing its inventory
    movements.  There is no agreed reversal policy (re-create layers at the
    original cost, or at the current FIFO head), so the transition exists
    but its guard never passes and TransferReversalNotSupportedError is
    raised.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import CoreConfig
from ledger_kernel.db.types import round_money, round_unit_cost, to_decimal
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import (
    EmptyTransferError,
    InactiveWarehouseError,
    InsufficientInventoryError,
    InvalidQuantityError,
    InvalidStateTransitionError,
    NotFoundError,
    SameWarehouseError,
    TransferReversalNotSupportedError,
    UnbalancedJournalError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.inventory import Item, MovementType, Warehouse
from ledger_kernel.models.journal import Journal, JournalSourceType
from ledger_kernel.models.transfer import Transfer, TransferItem, TransferStatus
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.sequence_service import SequenceService
from ledger_services.costing_service import CostingService, OutboundResult
from ledger_services.transfer_workflow import (
    REVERSAL_SUPPORTED,
    STOCK_AVAILABLE,
    TRANSFER_WORKFLOW,
    Transition,
)

logger = get_logger("services.transfer")


@dataclass(frozen=True)
class TransferItemInput:
    """Requested quantity of one item."""

    item_id: UUID
    quantity: Decimal

    def __post_init__(self):
        object.__setattr__(self, "quantity", to_decimal(self.quantity))


class TransferService(BaseService):
    """Transfer workflow over CostingService and JournalService."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: CoreConfig | None = None,
        costing: CostingService | None = None,
        journals: JournalService | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or CoreConfig()
        self.costing = costing or CostingService(session, self.clock, self.config.inventory)
        self.journals = journals or JournalService(session, self.clock, self.config.ledger)
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _lock_transfer(self, transfer_id: UUID, organization_id: UUID) -> Transfer:
        transfer = self.session.execute(
            select(Transfer)
            .where(Transfer.id == transfer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if transfer is None or transfer.organization_id != organization_id:
            raise NotFoundError("transfer", transfer_id)
        return transfer

    def _active_warehouse(self, warehouse_id: UUID, organization_id: UUID) -> Warehouse:
        warehouse = self._get_scoped(Warehouse, warehouse_id, organization_id, "warehouse")
        if not warehouse.is_active:
            raise InactiveWarehouseError(warehouse.id, warehouse.code)
        return warehouse

    @staticmethod
    def _status(transfer: Transfer) -> TransferStatus:
        return TransferStatus(transfer.status)

    # ------------------------------------------------------------------
    # Draft construction
    # ------------------------------------------------------------------

    def _validate_items(self, items: Sequence[TransferItemInput]) -> None:
        if not items:
            raise EmptyTransferError()
        for line in items:
            if line.quantity <= 0:
                raise InvalidQuantityError(line.quantity, f"transfer item {line.item_id}")

    def _build_items(
        self,
        organization_id: UUID,
        source: Warehouse,
        items: Sequence[TransferItemInput],
    ) -> tuple[list[TransferItem], Decimal]:
        """
        Build draft item rows priced with a lock-free FIFO dry run.

        Each line is costed at the marginal FIFO cost it will consume when
        lines are confirmed in order, so repeated items are priced exactly
        as confirmation will price them.  Raises InsufficientInventoryError
        when the source layers cannot cover an item's cumulative quantity.
        """
        cumulative_qty: dict[UUID, Decimal] = {}
        cumulative_cost: dict[UUID, Decimal] = {}
        rows: list[TransferItem] = []
        total = Decimal("0")

        for line_number, line in enumerate(items, start=1):
            self.costing.tracked_item(organization_id, line.item_id)
            before_qty = cumulative_qty.get(line.item_id, Decimal("0"))
            before_cost = cumulative_cost.get(line.item_id, Decimal("0"))

            plan = self.costing.preview_outbound_cost(
                organization_id, line.item_id, source.id, before_qty + line.quantity
            )
            line_cost = plan.total_cost - before_cost
            cumulative_qty[line.item_id] = before_qty + line.quantity
            cumulative_cost[line.item_id] = plan.total_cost

            rows.append(
                TransferItem(
                    line_number=line_number,
                    item_id=line.item_id,
                    quantity=line.quantity,
                    unit_cost=round_unit_cost(line_cost / line.quantity),
                    total_value=line_cost,
                )
            )
            total += line_cost

        return rows, total

    def _next_transfer_number(self, organization_id: UUID, transfer_date: date) -> str:
        cfg = self.config.transfer
        seq = self._sequences.next_value(
            SequenceService.transfer_sequence(organization_id, transfer_date.year)
        )
        return f"{cfg.number_prefix}-{transfer_date.year}-{seq:0{cfg.number_width}d}"

    def create_transfer(
        self,
        organization_id: UUID,
        source_warehouse_id: UUID,
        destination_warehouse_id: UUID,
        items: Sequence[TransferItemInput],
        *,
        actor_id: UUID,
        transfer_date: date | None = None,
        notes: str | None = None,
    ) -> Transfer:
        """Validate, price and persist a transfer in draft."""
        if source_warehouse_id == destination_warehouse_id:
            raise SameWarehouseError(source_warehouse_id)
        self._validate_items(items)
        transfer_date = transfer_date or self.clock.now().date()

        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            source = self._active_warehouse(source_warehouse_id, organization_id)
            self._active_warehouse(destination_warehouse_id, organization_id)

            rows, total = self._build_items(organization_id, source, items)

            transfer = Transfer(
                organization_id=organization_id,
                transfer_number=self._next_transfer_number(organization_id, transfer_date),
                source_warehouse_id=source_warehouse_id,
                destination_warehouse_id=destination_warehouse_id,
                status=TransferStatus.DRAFT,
                transfer_date=transfer_date,
                notes=notes,
                total_value=total,
                created_by_id=actor_id,
            )
            transfer.items.extend(rows)
            self.session.add(transfer)
            self.session.flush()

            logger.info(
                "transfer_created",
                extra={
                    "transfer_id": str(transfer.id),
                    "transfer_number": transfer.transfer_number,
                    "item_count": len(rows),
                    "total_value": str(total),
                },
            )
        return transfer

    def update_draft_transfer(
        self,
        transfer_id: UUID,
        organization_id: UUID,
        *,
        actor_id: UUID,
        items: Sequence[TransferItemInput] | None = None,
        notes: str | None = None,
        transfer_date: date | None = None,
    ) -> Transfer:
        """Replace items, notes or date of a draft.  Items are re-priced."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            transfer = self._lock_transfer(transfer_id, organization_id)
            status = self._status(transfer)
            if status is not TransferStatus.DRAFT:
                raise InvalidStateTransitionError("transfer", transfer_id, status.value, "update")

            if items is not None:
                self._validate_items(items)
                source = self._active_warehouse(transfer.source_warehouse_id, organization_id)
                rows, total = self._build_items(organization_id, source, items)
                transfer.items.clear()
                self.session.flush()
                transfer.items.extend(rows)
                transfer.total_value = total
            if notes is not None:
                transfer.notes = notes
            if transfer_date is not None:
                transfer.transfer_date = transfer_date
            transfer.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "transfer_updated",
                extra={
                    "transfer_id": str(transfer.id),
                    "items_replaced": items is not None,
                    "total_value": str(transfer.total_value),
                },
            )
        return transfer

    def delete_draft_transfer(self, transfer_id: UUID, organization_id: UUID, *, actor_id: UUID) -> None:
        """Remove a draft and its items outright."""
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id), self.atomic():
            transfer = self._lock_transfer(transfer_id, organization_id)
            status = self._status(transfer)
            if status is not TransferStatus.DRAFT:
                raise InvalidStateTransitionError("transfer", transfer_id, status.value, "delete")
            number = transfer.transfer_number
            self.session.delete(transfer)
            self.session.flush()

        logger.info(
            "transfer_deleted",
            extra={"transfer_id": str(transfer_id), "transfer_number": number},
        )

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def confirm_transfer(self, transfer_id: UUID, organization_id: UUID, *, actor_id: UUID) -> Transfer:
        """
        draft -> in_transit.

        For each item: outbound at the source, then inbound at the
        destination at the outbound's average unit cost.  Cross cost-center
        transfers also post a journal and re-verify it from the stored
        lines before the status changes.
        """
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, transfer_id=transfer_id
        ), self.atomic():
            transfer = self._lock_transfer(transfer_id, organization_id)
            transition = TRANSFER_WORKFLOW.require(transfer.id, self._status(transfer).value, "confirm")

            source = self._active_warehouse(transfer.source_warehouse_id, organization_id)
            destination = self._active_warehouse(transfer.destination_warehouse_id, organization_id)

            if transition.moves_inventory:
                self._move_stock(transfer, transition, source, destination, actor_id)

            if transition.posts_entry and self._crosses_cost_centers(source, destination):
                journal = self._post_transfer_journal(transfer, source, destination, actor_id)
                check = self.journals.check_ledger_balance(journal.id, organization_id)
                if not check.balanced:
                    raise UnbalancedJournalError(check.total_debit, check.total_credit)
                transfer.journal_id = journal.id

            transfer.status = TransferStatus.IN_TRANSIT
            transfer.confirmed_at = self.clock.now()
            transfer.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "transfer_confirmed",
                extra={
                    "transfer_number": transfer.transfer_number,
                    "total_value": str(transfer.total_value),
                    "journal_id": str(transfer.journal_id) if transfer.journal_id else None,
                },
            )
        return transfer

    def _move_stock(
        self,
        transfer: Transfer,
        transition: Transition,
        source: Warehouse,
        destination: Warehouse,
        actor_id: UUID,
    ) -> None:
        """Outbound at the source and inbound at the destination, line by line."""
        reference = str(transfer.id)
        total = Decimal("0")
        for line in transfer.items:
            self.costing.tracked_item(transfer.organization_id, line.item_id)
            outbound = self.costing.record_outbound(
                transfer.organization_id,
                line.item_id,
                source.id,
                line.quantity,
                MovementType.TRANSFER_OUT,
                reference,
                transfer.transfer_date,
                actor_id=actor_id,
            )
            if transition.guard is STOCK_AVAILABLE:
                self._require_covered(transfer, outbound, line.item_id, source)
            self.costing.record_inbound(
                transfer.organization_id,
                line.item_id,
                destination.id,
                line.quantity,
                outbound.average_unit_cost,
                MovementType.TRANSFER_IN,
                reference,
                transfer.transfer_date,
                actor_id=actor_id,
            )
            line.unit_cost = outbound.average_unit_cost
            line.total_value = outbound.total_cost
            total += outbound.total_cost
        transfer.total_value = total

    @staticmethod
    def _require_covered(transfer: Transfer, outbound: OutboundResult, item_id: UUID, source: Warehouse) -> None:
        """Transfers never ship unbacked stock, whatever the source warehouse policy."""
        if outbound.shortfall_quantity == 0:
            return
        logger.warning(
            "transfer_guard_failed",
            extra={
                "guard": STOCK_AVAILABLE.name,
                "transfer_number": transfer.transfer_number,
                "item_id": str(item_id),
                "shortfall": str(outbound.shortfall_quantity),
            },
        )
        raise InsufficientInventoryError(
            available=outbound.quantity - outbound.shortfall_quantity,
            requested=outbound.quantity,
            item_id=item_id,
            warehouse_id=source.id,
        )

    def complete_transfer(self, transfer_id: UUID, organization_id: UUID, *, actor_id: UUID) -> Transfer:
        """in_transit -> completed.  No inventory effect."""
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, transfer_id=transfer_id
        ), self.atomic():
            transfer = self._lock_transfer(transfer_id, organization_id)
            TRANSFER_WORKFLOW.require(transfer.id, self._status(transfer).value, "complete")

            transfer.status = TransferStatus.COMPLETED
            transfer.completed_at = self.clock.now()
            transfer.updated_by_id = actor_id
            self.session.flush()

            logger.info("transfer_completed", extra={"transfer_number": transfer.transfer_number})
        return transfer

    def cancel_transfer(
        self,
        transfer_id: UUID,
        organization_id: UUID,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Transfer:
        """
        draft -> cancelled.

        A draft has moved no stock, so cancelling only changes its status.
        In-transit transfers raise TransferReversalNotSupportedError.
        """
        with LogContext.bind(
            organization_id=organization_id, actor_id=actor_id, transfer_id=transfer_id
        ), self.atomic():
            transfer = self._lock_transfer(transfer_id, organization_id)
            transition = TRANSFER_WORKFLOW.require(transfer.id, self._status(transfer).value, "cancel")
            if transition.guard is REVERSAL_SUPPORTED:
                logger.warning(
                    "transfer_cancel_rejected",
                    extra={"transfer_number": transfer.transfer_number, "status": transition.from_state},
                )
                raise TransferReversalNotSupportedError(transfer.id)

            transfer.status = TransferStatus.CANCELLED
            transfer.cancelled_at = self.clock.now()
            transfer.cancellation_reason = reason
            transfer.updated_by_id = actor_id
            self.session.flush()

            logger.info(
                "transfer_cancelled",
                extra={"transfer_number": transfer.transfer_number, "reason": reason},
            )
        return transfer

    # ------------------------------------------------------------------
    # Journal
    # ------------------------------------------------------------------

    @staticmethod
    def _crosses_cost_centers(source: Warehouse, destination: Warehouse) -> bool:
        return bool(
            source.cost_center
            and destination.cost_center
            and source.cost_center != destination.cost_center
        )

    def _post_transfer_journal(
        self,
        transfer: Transfer,
        source: Warehouse,
        destination: Warehouse,
        actor_id: UUID,
    ) -> Journal:
        places = self.config.ledger.money_places
        lines: list[JournalLineSpec] = []
        for line in transfer.items:
            item = self.session.get(Item, line.item_id)
            amount = round_money(line.total_value, places)
            memo = f"{transfer.transfer_number} line {line.line_number}"
            lines.append(
                JournalLineSpec.debit_line(self.costing.inventory_account_id(destination, item), amount, memo)
            )
            lines.append(
                JournalLineSpec.credit_line(self.costing.inventory_account_id(source, item), amount, memo)
            )

        return self.journals.post_journal(
            transfer.organization_id,
            transfer.transfer_date,
            transfer.transfer_number,
            lines,
            actor_id=actor_id,
            description=(
                f"Transfer {transfer.transfer_number} from {source.code} "
                f"({source.cost_center}) to {destination.code} ({destination.cost_center})"
            ),
            source_type=JournalSourceType.TRANSFER,
            source_id=str(transfer.id),
        )
