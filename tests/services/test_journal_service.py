"""
Tests for JournalService -- posting, verification and reversal.

Covers:
- post_journal(): balanced journals persist header totals and lines,
  tolerance boundary, rejection of unbalanced/empty/malformed input
- Tenant scope: accounts of another organization are not found
- Inactive accounts are rejected
- A rejected post leaves nothing behind and a retry succeeds
- check_ledger_balance(): idempotent re-read from stored lines
- reverse_journal(): mirror lines, single reversal only
- Journal numbering per organization and year
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import func, select

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import (
    EmptyJournalError,
    InactiveAccountError,
    InvalidJournalLineError,
    JournalAlreadyReversedError,
    NotFoundError,
    PeriodClosedError,
    PeriodNotFoundError,
    UnbalancedJournalError,
)
from ledger_kernel.models.journal import Journal, JournalLine, JournalSourceType
from ledger_kernel.services.journal_service import JournalService

POST_DATE = date(2024, 3, 15)


def _pair(debit_account, credit_account, amount):
    return [
        JournalLineSpec.debit_line(debit_account.id, amount),
        JournalLineSpec.credit_line(credit_account.id, amount),
    ]


def _journal_count(session, organization_id):
    return session.execute(
        select(func.count(Journal.id)).where(Journal.organization_id == organization_id)
    ).scalar_one()


class TestPostJournal:

    def test_balanced_journal_is_persisted(self, session, journal_service, organization, standard_accounts, test_actor_id):
        accounts = standard_accounts
        journal = journal_service.post_journal(
            organization.id,
            POST_DATE,
            "INV-100",
            _pair(accounts["cash"], accounts["sales"], Decimal("150.00")),
            actor_id=test_actor_id,
            description="Cash sale",
        )

        assert journal.id is not None
        assert journal.total_debit == Decimal("150.00")
        assert journal.total_credit == Decimal("150.00")
        assert journal.is_balanced
        assert JournalSourceType(journal.source_type) is JournalSourceType.MANUAL

        lines = session.execute(
            select(JournalLine).where(JournalLine.journal_id == journal.id).order_by(JournalLine.line_number)
        ).scalars().all()
        assert [l.line_number for l in lines] == [1, 2]
        assert lines[0].debit_amount == Decimal("150.00")
        assert lines[1].credit_amount == Decimal("150.00")

    def test_multi_line_journal(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        journal = journal_service.post_journal(
            organization.id,
            POST_DATE,
            "SPLIT",
            [
                JournalLineSpec.debit_line(a["cash"].id, "60.00"),
                JournalLineSpec.debit_line(a["cogs"].id, "40.00"),
                JournalLineSpec.credit_line(a["sales"].id, "100.00"),
            ],
            actor_id=test_actor_id,
        )
        assert len(journal.lines) == 3
        assert journal.total_debit == journal.total_credit == Decimal("100.00")

    def test_difference_below_tolerance_is_accepted(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        journal = journal_service.post_journal(
            organization.id,
            POST_DATE,
            "ROUNDING",
            [
                JournalLineSpec.debit_line(a["cash"].id, "100.005"),
                JournalLineSpec.credit_line(a["sales"].id, "100.000"),
            ],
            actor_id=test_actor_id,
        )
        assert journal.total_debit - journal.total_credit == Decimal("0.005")

    def test_difference_at_tolerance_is_rejected(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(UnbalancedJournalError) as exc_info:
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "OFF-BY-A-CENT",
                [
                    JournalLineSpec.debit_line(a["cash"].id, "100.01"),
                    JournalLineSpec.credit_line(a["sales"].id, "100.00"),
                ],
                actor_id=test_actor_id,
            )
        assert exc_info.value.difference == Decimal("0.01")
        assert exc_info.value.code == "UNBALANCED_JOURNAL"

    def test_unbalanced_journal_writes_nothing(self, session, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(UnbalancedJournalError):
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "BAD",
                [
                    JournalLineSpec.debit_line(a["cash"].id, "100.00"),
                    JournalLineSpec.credit_line(a["sales"].id, "90.00"),
                ],
                actor_id=test_actor_id,
            )
        assert _journal_count(session, organization.id) == 0

    def test_empty_journal_rejected(self, journal_service, organization, test_actor_id):
        with pytest.raises(EmptyJournalError):
            journal_service.post_journal(organization.id, POST_DATE, "EMPTY", [], actor_id=test_actor_id)

    def test_negative_amount_rejected(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(InvalidJournalLineError) as exc_info:
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "NEG",
                [
                    JournalLineSpec(account_id=a["cash"].id, debit=Decimal("-5")),
                    JournalLineSpec(account_id=a["sales"].id, credit=Decimal("-5")),
                ],
                actor_id=test_actor_id,
            )
        assert exc_info.value.line_number == 1

    def test_line_with_both_sides_rejected(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(InvalidJournalLineError) as exc_info:
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "BOTH",
                [
                    JournalLineSpec.debit_line(a["cash"].id, "10"),
                    JournalLineSpec(account_id=a["sales"].id, debit=Decimal("5"), credit=Decimal("15")),
                ],
                actor_id=test_actor_id,
            )
        assert exc_info.value.line_number == 2

    def test_float_amounts_are_refused(self, standard_accounts):
        with pytest.raises(TypeError):
            JournalLineSpec.debit_line(standard_accounts["cash"].id, 10.5)

    def test_unknown_account_is_not_found(self, journal_service, organization, standard_accounts, test_actor_id):
        missing = uuid4()
        with pytest.raises(NotFoundError) as exc_info:
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "GHOST",
                [
                    JournalLineSpec.debit_line(missing, "10"),
                    JournalLineSpec.credit_line(standard_accounts["sales"].id, "10"),
                ],
                actor_id=test_actor_id,
            )
        assert exc_info.value.entity_id == str(missing)

    def test_inactive_account_rejected(self, journal_service, organization, create_account, standard_accounts, test_actor_id):
        retired = create_account(organization.id, "1999", "Retired", is_active=False)
        with pytest.raises(InactiveAccountError):
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "OLD",
                _pair(retired, standard_accounts["sales"], Decimal("10")),
                actor_id=test_actor_id,
            )

    def test_retry_after_rejection_starts_clean(self, session, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(UnbalancedJournalError):
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "RETRY",
                [
                    JournalLineSpec.debit_line(a["cash"].id, "50"),
                    JournalLineSpec.credit_line(a["sales"].id, "49"),
                ],
                actor_id=test_actor_id,
            )

        journal = journal_service.post_journal(
            organization.id, POST_DATE, "RETRY", _pair(a["cash"], a["sales"], Decimal("50")), actor_id=test_actor_id,
        )

        assert _journal_count(session, organization.id) == 1
        assert journal.journal_number == "JV-2024-000001"


class TestTenantScope:

    def test_account_of_another_organization_is_not_found(
        self, session, journal_service, create_organization, create_account, standard_accounts, organization, test_actor_id
    ):
        other_org = create_organization("Other Co")
        foreign = create_account(other_org.id, "1000", "Foreign Cash")

        with pytest.raises(NotFoundError):
            journal_service.post_journal(
                organization.id,
                POST_DATE,
                "CROSS",
                _pair(foreign, standard_accounts["sales"], Decimal("10")),
                actor_id=test_actor_id,
            )
        assert _journal_count(session, organization.id) == 0

    def test_numbering_is_independent_per_organization(
        self, journal_service, create_organization, create_account, test_actor_id
    ):
        numbers = []
        for name in ("North", "South"):
            org = create_organization(name)
            cash = create_account(org.id, "1000", "Cash")
            sales = create_account(org.id, "4000", "Sales")
            journal = journal_service.post_journal(
                org.id, POST_DATE, "FIRST", _pair(cash, sales, Decimal("1")), actor_id=test_actor_id,
            )
            numbers.append(journal.journal_number)

        assert numbers == ["JV-2024-000001", "JV-2024-000001"]

    def test_numbering_restarts_each_year(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        first = journal_service.post_journal(
            organization.id, date(2024, 12, 31), None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
        )
        second = journal_service.post_journal(
            organization.id, date(2024, 12, 31), None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
        )
        third = journal_service.post_journal(
            organization.id, date(2025, 1, 1), None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
        )
        assert [first.journal_number, second.journal_number, third.journal_number] == [
            "JV-2024-000001",
            "JV-2024-000002",
            "JV-2025-000001",
        ]


class TestCheckLedgerBalance:

    def test_balanced_journal_checks_balanced(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        journal = journal_service.post_journal(
            organization.id, POST_DATE, "CHK", _pair(a["cash"], a["capital"], Decimal("500")), actor_id=test_actor_id,
        )

        check = journal_service.check_ledger_balance(journal.id, organization.id)

        assert check.balanced
        assert check.total_debit == Decimal("500")
        assert check.total_credit == Decimal("500")
        assert check.line_count == 2
        assert check.difference == Decimal("0")

    def test_repeated_checks_are_equal(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        journal = journal_service.post_journal(
            organization.id, POST_DATE, "CHK", _pair(a["cash"], a["capital"], Decimal("12.34")), actor_id=test_actor_id,
        )

        first = journal_service.check_ledger_balance(journal.id)
        second = journal_service.check_ledger_balance(journal.id)

        assert first == second

    def test_unknown_journal(self, journal_service, organization):
        with pytest.raises(NotFoundError):
            journal_service.check_ledger_balance(uuid4(), organization.id)

    def test_journal_of_other_organization(self, journal_service, organization, create_organization, standard_accounts, test_actor_id):
        a = standard_accounts
        journal = journal_service.post_journal(
            organization.id, POST_DATE, "CHK", _pair(a["cash"], a["capital"], Decimal("1")), actor_id=test_actor_id,
        )
        other = create_organization("Other")
        with pytest.raises(NotFoundError):
            journal_service.check_ledger_balance(journal.id, other.id)


class TestReverseJournal:

    def test_reversal_mirrors_lines(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        original = journal_service.post_journal(
            organization.id, POST_DATE, "ORIG", _pair(a["cash"], a["sales"], Decimal("75")), actor_id=test_actor_id,
        )

        reversal = journal_service.reverse_journal(
            original.id, organization.id, date(2024, 3, 20), actor_id=test_actor_id, reason="entered twice",
        )

        assert reversal.reverses_journal_id == original.id
        assert JournalSourceType(reversal.source_type) is JournalSourceType.REVERSAL
        mirrored = {(l.account_id, l.debit_amount, l.credit_amount) for l in reversal.lines}
        assert mirrored == {
            (a["cash"].id, Decimal("0"), Decimal("75")),
            (a["sales"].id, Decimal("75"), Decimal("0")),
        }

    def test_journal_can_be_reversed_only_once(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        original = journal_service.post_journal(
            organization.id, POST_DATE, "ORIG", _pair(a["cash"], a["sales"], Decimal("75")), actor_id=test_actor_id,
        )
        journal_service.reverse_journal(original.id, organization.id, POST_DATE, actor_id=test_actor_id)

        with pytest.raises(JournalAlreadyReversedError):
            journal_service.reverse_journal(original.id, organization.id, POST_DATE, actor_id=test_actor_id)

    def test_reversal_cannot_be_reversed(self, journal_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        original = journal_service.post_journal(
            organization.id, POST_DATE, "ORIG", _pair(a["cash"], a["sales"], Decimal("75")), actor_id=test_actor_id,
        )
        reversal = journal_service.reverse_journal(original.id, organization.id, POST_DATE, actor_id=test_actor_id)

        with pytest.raises(JournalAlreadyReversedError):
            journal_service.reverse_journal(reversal.id, organization.id, POST_DATE, actor_id=test_actor_id)


class TestPostingPeriods:

    @pytest.fixture
    def enforcing_service(self, session, deterministic_clock):
        return JournalService(session, deterministic_clock, LedgerConfig(enforce_posting_periods=True))

    def test_no_period_for_date(self, enforcing_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        with pytest.raises(PeriodNotFoundError):
            enforcing_service.post_journal(
                organization.id, POST_DATE, None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
            )

    def test_closed_period_rejects(self, enforcing_service, period_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        period = period_service.create_period(
            organization.id, "2024-03", date(2024, 3, 1), date(2024, 3, 31), test_actor_id,
        )
        period_service.close_period(period.id, organization.id, test_actor_id)

        with pytest.raises(PeriodClosedError):
            enforcing_service.post_journal(
                organization.id, POST_DATE, None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
            )

    def test_open_period_accepts(self, enforcing_service, period_service, organization, standard_accounts, test_actor_id):
        a = standard_accounts
        period_service.create_period(organization.id, "2024-03", date(2024, 3, 1), date(2024, 3, 31), test_actor_id)

        journal = enforcing_service.post_journal(
            organization.id, POST_DATE, None, _pair(a["cash"], a["sales"], Decimal("1")), actor_id=test_actor_id,
        )
        assert journal.id is not None
