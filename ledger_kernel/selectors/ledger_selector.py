"""
Module: ledger_kernel.selectors.ledger_selector
Responsibility: Trial balance and account ledger reporting.  Balances are
    never stored; every figure is aggregated from journal lines at query
    time.
Architecture position: Kernel > Selectors.  May import models/ and domain/.

Invariants enforced:
    - Trial balance grand totals equal the sum of the journals' header
      totals for the same cut-off, and the report is balanced whenever
      every journal was balanced at post time.
    - Each aggregate is one SELECT statement, so under READ COMMITTED it
      sees a single committed snapshot and never a half-written journal.
"""

from dataclasses import dataclass, field
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from ledger_kernel.domain.balance import BALANCE_TOLERANCE, ZERO, BalanceTotals, is_balanced
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import Journal, JournalLine
from ledger_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.ledger")


@dataclass(frozen=True)
class TrialBalanceRow:
    """Debit and credit totals of one account."""

    account_id: UUID
    account_code: str
    account_name: str
    account_type: str
    total_debit: Decimal
    total_credit: Decimal

    @property
    def balance(self) -> Decimal:
        """Net balance (debits - credits)."""
        return self.total_debit - self.total_credit


@dataclass(frozen=True)
class TrialBalance:
    """Trial balance report as of a date."""

    organization_id: UUID
    as_of_date: date
    rows: tuple[TrialBalanceRow, ...]
    grand_total_debit: Decimal
    grand_total_credit: Decimal
    is_balanced: bool

    @property
    def difference(self) -> Decimal:
        return self.grand_total_debit - self.grand_total_credit


@dataclass(frozen=True)
class AccountBalance:
    """Balance of a single account."""

    account_id: UUID
    total_debit: Decimal
    total_credit: Decimal
    line_count: int

    @property
    def balance(self) -> Decimal:
        return self.total_debit - self.total_credit


@dataclass(frozen=True)
class AccountLedgerLine:
    """One line of an account's ledger with the running balance after it."""

    journal_id: UUID
    journal_number: str
    journal_date: date
    reference: str | None
    description: str | None
    debit: Decimal
    credit: Decimal
    running_balance: Decimal


@dataclass(frozen=True)
class AccountLedger:
    """Lines of one account in a date range, bracketed by opening/closing balance."""

    account_id: UUID
    account_code: str
    account_name: str
    date_from: date | None
    date_to: date | None
    opening_balance: Decimal
    lines: tuple[AccountLedgerLine, ...] = field(default_factory=tuple)

    @property
    def closing_balance(self) -> Decimal:
        return self.lines[-1].running_balance if self.lines else self.opening_balance


class LedgerSelector(BaseSelector):
    """Trial balance and ledger queries, tenant-scoped."""

    def generate_trial_balance(self, organization_id: UUID, as_of_date: date) -> TrialBalance:
        """
        Aggregate all lines of journals dated on or before ``as_of_date``
        by account.

        Rows are ordered by account code.  ``is_balanced`` is
        |grand debit - grand credit| < 0.01.
        """
        debit_total = func.coalesce(func.sum(JournalLine.debit_amount), ZERO).label("total_debit")
        credit_total = func.coalesce(func.sum(JournalLine.credit_amount), ZERO).label("total_credit")

        query = (
            select(
                Account.id,
                Account.code,
                Account.name,
                Account.account_type,
                debit_total,
                credit_total,
            )
            .select_from(JournalLine)
            .join(Journal, JournalLine.journal_id == Journal.id)
            .join(Account, JournalLine.account_id == Account.id)
            .where(
                Journal.organization_id == organization_id,
                Journal.journal_date <= as_of_date,
            )
            .group_by(Account.id, Account.code, Account.name, Account.account_type)
            .order_by(Account.code)
        )

        rows = tuple(
            TrialBalanceRow(
                account_id=row.id,
                account_code=row.code,
                account_name=row.name,
                account_type=row.account_type,
                total_debit=Decimal(row.total_debit),
                total_credit=Decimal(row.total_credit),
            )
            for row in self.session.execute(query)
        )

        grand_debit = sum((r.total_debit for r in rows), ZERO)
        grand_credit = sum((r.total_credit for r in rows), ZERO)
        report = TrialBalance(
            organization_id=organization_id,
            as_of_date=as_of_date,
            rows=rows,
            grand_total_debit=grand_debit,
            grand_total_credit=grand_credit,
            is_balanced=is_balanced(grand_debit, grand_credit, BALANCE_TOLERANCE),
        )

        log = logger.debug if report.is_balanced else logger.warning
        log(
            "trial_balance_generated",
            extra={
                "organization_id": str(organization_id),
                "as_of_date": str(as_of_date),
                "account_count": len(rows),
                "grand_total_debit": str(grand_debit),
                "grand_total_credit": str(grand_credit),
                "is_balanced": report.is_balanced,
            },
        )
        return report

    def journal_totals(self, organization_id: UUID, as_of_date: date) -> BalanceTotals:
        """Sum of journal header totals; cross-check for the trial balance."""
        row = self.session.execute(
            select(
                func.coalesce(func.sum(Journal.total_debit), ZERO).label("total_debit"),
                func.coalesce(func.sum(Journal.total_credit), ZERO).label("total_credit"),
            ).where(
                Journal.organization_id == organization_id,
                Journal.journal_date <= as_of_date,
            )
        ).one()
        return BalanceTotals(
            total_debit=Decimal(row.total_debit),
            total_credit=Decimal(row.total_credit),
        )

    def account_balance(
        self,
        organization_id: UUID,
        account_id: UUID,
        as_of_date: date | None = None,
    ) -> AccountBalance:
        """Debit/credit totals of one account, optionally cut off at a date."""
        self._get_scoped(Account, account_id, organization_id, "account")

        query = (
            select(
                func.coalesce(func.sum(JournalLine.debit_amount), ZERO).label("total_debit"),
                func.coalesce(func.sum(JournalLine.credit_amount), ZERO).label("total_credit"),
                func.count(JournalLine.id).label("line_count"),
            )
            .join(Journal, JournalLine.journal_id == Journal.id)
            .where(
                Journal.organization_id == organization_id,
                JournalLine.account_id == account_id,
            )
        )
        if as_of_date is not None:
            query = query.where(Journal.journal_date <= as_of_date)

        row = self.session.execute(query).one()
        return AccountBalance(
            account_id=account_id,
            total_debit=Decimal(row.total_debit),
            total_credit=Decimal(row.total_credit),
            line_count=row.line_count,
        )

    def account_ledger(
        self,
        organization_id: UUID,
        account_id: UUID,
        date_from: date | None = None,
        date_to: date | None = None,
    ) -> AccountLedger:
        """
        Lines posted to one account with a running balance.

        The opening balance is everything before ``date_from``.  Lines are
        ordered by journal date, journal number, then line number.
        """
        account = self._get_scoped(Account, account_id, organization_id, "account")

        opening = ZERO
        if date_from is not None:
            before = self.account_balance(organization_id, account_id, date_from - timedelta(days=1))
            opening = before.balance

        query = (
            select(
                Journal.id,
                Journal.journal_number,
                Journal.journal_date,
                Journal.reference,
                JournalLine.description,
                JournalLine.debit_amount,
                JournalLine.credit_amount,
            )
            .join(Journal, JournalLine.journal_id == Journal.id)
            .where(
                Journal.organization_id == organization_id,
                JournalLine.account_id == account_id,
            )
            .order_by(Journal.journal_date, Journal.journal_number, JournalLine.line_number)
        )
        if date_from is not None:
            query = query.where(Journal.journal_date >= date_from)
        if date_to is not None:
            query = query.where(Journal.journal_date <= date_to)

        running = opening
        lines = []
        for row in self.session.execute(query):
            running += row.debit_amount - row.credit_amount
            lines.append(
                AccountLedgerLine(
                    journal_id=row.id,
                    journal_number=row.journal_number,
                    journal_date=row.journal_date,
                    reference=row.reference,
                    description=row.description,
                    debit=row.debit_amount,
                    credit=row.credit_amount,
                    running_balance=running,
                )
            )

        return AccountLedger(
            account_id=account.id,
            account_code=account.code,
            account_name=account.name,
            date_from=date_from,
            date_to=date_to,
            opening_balance=opening,
            lines=tuple(lines),
        )
