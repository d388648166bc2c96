"""
Module: ledger_kernel.selectors.transfer_selector
Responsibility: Read-only queries over transfers: single lookup with items,
    filtered listing and per-status statistics.
Architecture position: Kernel > Selectors.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, or_, select

from ledger_kernel.domain.balance import ZERO
from ledger_kernel.models.transfer import Transfer, TransferStatus
from ledger_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class TransferItemView:
    line_number: int
    item_id: UUID
    quantity: Decimal
    unit_cost: Decimal
    total_value: Decimal


@dataclass(frozen=True)
class TransferView:
    """A transfer and its items."""

    id: UUID
    transfer_number: str
    status: TransferStatus
    source_warehouse_id: UUID
    destination_warehouse_id: UUID
    transfer_date: date
    total_value: Decimal
    journal_id: UUID | None
    notes: str | None
    confirmed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    items: tuple[TransferItemView, ...]


@dataclass(frozen=True)
class TransferStats:
    """Counts and values of an organization's transfers by status."""

    organization_id: UUID
    counts: dict[TransferStatus, int]
    values: dict[TransferStatus, Decimal]

    @property
    def total_count(self) -> int:
        return sum(self.counts.values())

    @property
    def total_value(self) -> Decimal:
        return sum(self.values.values(), ZERO)


class TransferSelector(BaseSelector):
    """Queries over transfers of one organization."""

    @staticmethod
    def _to_view(transfer: Transfer) -> TransferView:
        return TransferView(
            id=transfer.id,
            transfer_number=transfer.transfer_number,
            status=TransferStatus(transfer.status),
            source_warehouse_id=transfer.source_warehouse_id,
            destination_warehouse_id=transfer.destination_warehouse_id,
            transfer_date=transfer.transfer_date,
            total_value=transfer.total_value,
            journal_id=transfer.journal_id,
            notes=transfer.notes,
            confirmed_at=transfer.confirmed_at,
            completed_at=transfer.completed_at,
            cancelled_at=transfer.cancelled_at,
            items=tuple(
                TransferItemView(
                    line_number=item.line_number,
                    item_id=item.item_id,
                    quantity=item.quantity,
                    unit_cost=item.unit_cost,
                    total_value=item.total_value,
                )
                for item in transfer.items
            ),
        )

    def get_transfer(self, organization_id: UUID, transfer_id: UUID) -> TransferView:
        transfer = self._get_scoped(Transfer, transfer_id, organization_id, "transfer")
        return self._to_view(transfer)

    def list_transfers(
        self,
        organization_id: UUID,
        status: TransferStatus | None = None,
        warehouse_id: UUID | None = None,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> list[TransferView]:
        """
        Transfers ordered by date then number.

        ``warehouse_id`` matches either end of the transfer.
        """
        stmt = select(Transfer).where(Transfer.organization_id == organization_id)
        if status is not None:
            stmt = stmt.where(Transfer.status == TransferStatus(status).value)
        if warehouse_id is not None:
            stmt = stmt.where(
                or_(
                    Transfer.source_warehouse_id == warehouse_id,
                    Transfer.destination_warehouse_id == warehouse_id,
                )
            )
        if date_from is not None:
            stmt = stmt.where(Transfer.transfer_date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Transfer.transfer_date <= date_to)
        stmt = stmt.order_by(Transfer.transfer_date, Transfer.transfer_number)

        return [self._to_view(t) for t in self.session.execute(stmt).scalars()]

    def transfer_stats(self, organization_id: UUID) -> TransferStats:
        rows = self.session.execute(
            select(
                Transfer.status,
                func.count(Transfer.id),
                func.coalesce(func.sum(Transfer.total_value), ZERO),
            )
            .where(Transfer.organization_id == organization_id)
            .group_by(Transfer.status)
        ).all()

        counts = {status: 0 for status in TransferStatus}
        values = {status: ZERO for status in TransferStatus}
        for status, count, value in rows:
            counts[TransferStatus(status)] = count
            values[TransferStatus(status)] = Decimal(value)
        return TransferStats(organization_id=organization_id, counts=counts, values=values)
