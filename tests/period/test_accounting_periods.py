"""
Tests for PeriodService -- accounting period lifecycle.

Covers:
- create_period(): overlap detection, date validation
- validate_posting_date(): open, soft-closed, closed, missing
- close / soft_close / reopen transitions
"""

from datetime import date
from uuid import uuid4

import pytest

from ledger_kernel.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    PeriodClosedError,
    PeriodNotFoundError,
    PeriodOverlapError,
)
from ledger_kernel.models.period import PeriodStatus


@pytest.fixture
def january(period_service, organization, test_actor_id):
    return period_service.create_period(
        organization.id, "2024-01", date(2024, 1, 1), date(2024, 1, 31), test_actor_id,
    )


class TestCreatePeriod:

    def test_period_starts_open(self, january):
        assert PeriodStatus(january.status) is PeriodStatus.OPEN
        assert january.contains(date(2024, 1, 15))
        assert not january.contains(date(2024, 2, 1))

    def test_overlap_rejected(self, period_service, organization, january, test_actor_id):
        with pytest.raises(PeriodOverlapError) as exc_info:
            period_service.create_period(
                organization.id, "mid-jan", date(2024, 1, 15), date(2024, 2, 15), test_actor_id,
            )
        assert exc_info.value.existing_name == "2024-01"

    def test_adjacent_period_allowed(self, period_service, organization, january, test_actor_id):
        february = period_service.create_period(
            organization.id, "2024-02", date(2024, 2, 1), date(2024, 2, 29), test_actor_id,
        )
        assert february.start_date == date(2024, 2, 1)

    def test_other_organization_may_reuse_dates(self, period_service, january, create_organization, test_actor_id):
        other = create_organization("Other")
        period = period_service.create_period(other.id, "2024-01", date(2024, 1, 1), date(2024, 1, 31), test_actor_id)
        assert period.organization_id == other.id

    def test_start_after_end_rejected(self, period_service, organization, test_actor_id):
        with pytest.raises(ValueError):
            period_service.create_period(organization.id, "bad", date(2024, 2, 1), date(2024, 1, 1), test_actor_id)


class TestPostingDateValidation:

    def test_open_period_accepts(self, period_service, organization, january):
        assert period_service.validate_posting_date(organization.id, date(2024, 1, 31)).id == january.id

    def test_date_outside_any_period(self, period_service, organization, january):
        with pytest.raises(PeriodNotFoundError):
            period_service.validate_posting_date(organization.id, date(2024, 3, 1))

    @pytest.mark.parametrize("action", ["close_period", "soft_close_period"])
    def test_closed_or_soft_closed_rejects(self, period_service, organization, january, test_actor_id, action):
        getattr(period_service, action)(january.id, organization.id, test_actor_id)

        with pytest.raises(PeriodClosedError):
            period_service.validate_posting_date(organization.id, date(2024, 1, 10))


class TestTransitions:

    def test_soft_close_then_close(self, period_service, organization, january, test_actor_id):
        period_service.soft_close_period(january.id, organization.id, test_actor_id)
        closed = period_service.close_period(january.id, organization.id, test_actor_id)
        assert PeriodStatus(closed.status) is PeriodStatus.CLOSED

    def test_reopen(self, period_service, organization, january, test_actor_id):
        period_service.close_period(january.id, organization.id, test_actor_id)
        reopened = period_service.reopen_period(january.id, organization.id, test_actor_id)
        assert PeriodStatus(reopened.status) is PeriodStatus.OPEN

    def test_reopen_open_period_rejected(self, period_service, organization, january, test_actor_id):
        with pytest.raises(InvalidStateTransitionError):
            period_service.reopen_period(january.id, organization.id, test_actor_id)

    def test_soft_close_of_closed_period_rejected(self, period_service, organization, january, test_actor_id):
        period_service.close_period(january.id, organization.id, test_actor_id)
        with pytest.raises(InvalidStateTransitionError):
            period_service.soft_close_period(january.id, organization.id, test_actor_id)

    def test_unknown_period(self, period_service, organization, test_actor_id):
        with pytest.raises(NotFoundError):
            period_service.close_period(uuid4(), organization.id, test_actor_id)
