"""
PeriodService -- accounting period lifecycle and posting-date gate.

A period is OPEN, SOFT_CLOSED or CLOSED.  Only OPEN periods accept
journals.  Soft-closed and closed periods can be reopened; periods of the
same organization never overlap.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import and_, select

from ledger_kernel.exceptions import (
    InvalidStateTransitionError,
    PeriodClosedError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.period import AccountingPeriod, PeriodStatus
from ledger_kernel.services.base import BaseService

logger = get_logger("services.period")


class PeriodService(BaseService):
    """Create, close and reopen periods; validate posting dates."""

    def create_period(
        self,
        organization_id: UUID,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
    ) -> AccountingPeriod:
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        with self.atomic():
            overlapping = self.session.execute(
                select(AccountingPeriod).where(
                    and_(
                        AccountingPeriod.organization_id == organization_id,
                        AccountingPeriod.start_date <= end_date,
                        AccountingPeriod.end_date >= start_date,
                    )
                )
            ).scalars().first()
            if overlapping is not None:
                raise PeriodOverlapError(name, overlapping.name)

            period = AccountingPeriod(
                organization_id=organization_id,
                name=name,
                start_date=start_date,
                end_date=end_date,
                status=PeriodStatus.OPEN,
                created_by_id=actor_id,
            )
            self.session.add(period)
            self.session.flush()

        logger.info(
            "period_created",
            extra={
                "organization_id": str(organization_id),
                "period_name": name,
                "start_date": str(start_date),
                "end_date": str(end_date),
            },
        )
        return period

    def get_period_for_date(self, organization_id: UUID, posting_date: date) -> AccountingPeriod | None:
        return self.session.execute(
            select(AccountingPeriod).where(
                AccountingPeriod.organization_id == organization_id,
                AccountingPeriod.start_date <= posting_date,
                AccountingPeriod.end_date >= posting_date,
            )
        ).scalar_one_or_none()

    def validate_posting_date(self, organization_id: UUID, posting_date: date) -> AccountingPeriod:
        """
        Return the open period covering ``posting_date``.

        Raises:
            PeriodNotFoundError: no period covers the date.
            PeriodClosedError: the covering period is closed or soft-closed.
        """
        period = self.get_period_for_date(organization_id, posting_date)
        if period is None:
            raise PeriodNotFoundError(posting_date)
        status = PeriodStatus(period.status)
        if status is not PeriodStatus.OPEN:
            raise PeriodClosedError(period.name, status.value, posting_date)
        return period

    def _transition(
        self,
        period_id: UUID,
        organization_id: UUID,
        actor_id: UUID,
        allowed_from: tuple[PeriodStatus, ...],
        to_status: PeriodStatus,
        action: str,
    ) -> AccountingPeriod:
        with self.atomic():
            period = self._get_scoped(AccountingPeriod, period_id, organization_id, "accounting_period")
            current = PeriodStatus(period.status)
            if current not in allowed_from:
                raise InvalidStateTransitionError("accounting_period", period_id, current.value, action)
            period.status = to_status
            period.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            f"period_{action}",
            extra={
                "period_name": period.name,
                "from_status": current.value,
                "to_status": to_status.value,
            },
        )
        return period

    def close_period(self, period_id: UUID, organization_id: UUID, actor_id: UUID) -> AccountingPeriod:
        return self._transition(
            period_id, organization_id, actor_id,
            (PeriodStatus.OPEN, PeriodStatus.SOFT_CLOSED), PeriodStatus.CLOSED, "close",
        )

    def soft_close_period(self, period_id: UUID, organization_id: UUID, actor_id: UUID) -> AccountingPeriod:
        return self._transition(
            period_id, organization_id, actor_id,
            (PeriodStatus.OPEN,), PeriodStatus.SOFT_CLOSED, "soft_close",
        )

    def reopen_period(self, period_id: UUID, organization_id: UUID, actor_id: UUID) -> AccountingPeriod:
        return self._transition(
            period_id, organization_id, actor_id,
            (PeriodStatus.SOFT_CLOSED, PeriodStatus.CLOSED), PeriodStatus.OPEN, "reopen",
        )
