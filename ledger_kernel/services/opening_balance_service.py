"""
OpeningBalanceService -- starting balances against a synthetic equity account.

Every opening balance is a two-line journal: the target account on one
side, the organization's Opening Balance Equity account on the other.  The
equity account is created lazily on first use.

Invariants enforced:
    - Each opening-balance journal is balanced (posted through
      JournalService, which remains the source of truth).
    - validate_opening_balance_integrity() reports any journal with
      |imbalance| >= 0.01 as failing.  The aggregate is the sum of absolute
      imbalances, so errors in opposite directions never cancel out.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig, OpeningBalanceConfig
from ledger_kernel.db.types import to_decimal
from ledger_kernel.domain.balance import ZERO, is_balanced, sum_lines
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import JournalLineSpec
from ledger_kernel.exceptions import InvalidAmountError
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account, AccountType
from ledger_kernel.models.journal import Journal, JournalLine, JournalSourceType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.journal_service import JournalService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.opening_balance")


@dataclass(frozen=True)
class OpeningBalanceJournalCheck:
    """Line-derived totals of one opening-balance journal."""

    journal_id: UUID
    journal_number: str
    account_id: str | None
    total_debit: Decimal
    total_credit: Decimal
    imbalance: Decimal
    balanced: bool


@dataclass(frozen=True)
class OpeningBalanceIntegrityReport:
    """Result of scanning every opening-balance journal of an organization."""

    organization_id: UUID
    journals: tuple[OpeningBalanceJournalCheck, ...] = field(default_factory=tuple)
    total_imbalance: Decimal = ZERO
    is_valid: bool = True

    @property
    def failing(self) -> tuple[OpeningBalanceJournalCheck, ...]:
        return tuple(j for j in self.journals if not j.balanced)


class OpeningBalanceService(BaseService):
    """Seeds account opening balances via balancing journals."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: OpeningBalanceConfig | None = None,
        ledger_config: LedgerConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or OpeningBalanceConfig()
        self.ledger_config = ledger_config or LedgerConfig()
        self._journals = JournalService(session, self.clock, self.ledger_config)
        self._sequences = SequenceService(session)

    def _find_equity_account(self, organization_id: UUID) -> Account | None:
        return self.session.execute(
            select(Account).where(
                Account.organization_id == organization_id,
                Account.code == self.config.equity_account_code,
            )
        ).scalar_one_or_none()

    def ensure_opening_balance_equity_account(
        self,
        organization_id: UUID,
        actor_id: UUID,
    ) -> Account:
        """
        Return the organization's Opening Balance Equity account, creating
        it on first call.  Idempotent; concurrent first calls converge on
        one row through the (organization_id, code) unique constraint.
        """
        account = self._find_equity_account(organization_id)
        if account is not None:
            return account

        savepoint = self.session.begin_nested()
        try:
            account = Account(
                organization_id=organization_id,
                code=self.config.equity_account_code,
                name=self.config.equity_account_name,
                account_type=AccountType.EQUITY,
                subtype=self.config.equity_account_subtype,
                is_active=True,
                created_by_id=actor_id,
            )
            self.session.add(account)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            account = self._find_equity_account(organization_id)
            if account is None:
                raise
            return account

        logger.info(
            "opening_balance_equity_account_created",
            extra={
                "organization_id": str(organization_id),
                "account_id": str(account.id),
                "account_code": account.code,
            },
        )
        return account

    def next_journal_number(self, organization_id: UUID, code: str) -> str:
        """Allocate the next ``OB-{code}-{000001}`` number of the organization."""
        seq = self._sequences.next_value(SequenceService.opening_balance_sequence(organization_id))
        return f"{self.config.journal_prefix}-{code}-{seq:06d}"

    def set_account_opening_balance(
        self,
        account_id: UUID,
        organization_id: UUID,
        amount: Decimal,
        as_of_date: date,
        *,
        actor_id: UUID,
        description: str | None = None,
    ) -> Journal:
        """
        Post an opening balance for ``account_id``.

        A positive amount is a debit balance (target debited, equity
        credited); a negative amount is a credit balance.
        """
        amount = to_decimal(amount)
        if amount == 0:
            raise InvalidAmountError(amount, "opening balance must be non-zero")

        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            account = self._get_scoped(Account, account_id, organization_id, "account")

            with self.atomic():
                equity = self.ensure_opening_balance_equity_account(organization_id, actor_id)
                if equity.id == account.id:
                    raise InvalidAmountError(
                        amount, "the opening balance equity account cannot take an opening balance"
                    )

                magnitude = abs(amount)
                memo = description or f"Opening balance for {account.code} {account.name}"
                if amount > 0:
                    lines = [
                        JournalLineSpec.debit_line(account.id, magnitude, memo),
                        JournalLineSpec.credit_line(equity.id, magnitude, memo),
                    ]
                else:
                    lines = [
                        JournalLineSpec.credit_line(account.id, magnitude, memo),
                        JournalLineSpec.debit_line(equity.id, magnitude, memo),
                    ]

                journal_number = self.next_journal_number(organization_id, account.code)
                journal = self._journals.post_journal(
                    organization_id,
                    as_of_date,
                    f"Opening balance {account.code}",
                    lines,
                    actor_id=actor_id,
                    description=memo,
                    source_type=JournalSourceType.OPENING_BALANCE,
                    source_id=str(account.id),
                    journal_number=journal_number,
                )

            logger.info(
                "opening_balance_set",
                extra={
                    "account_id": str(account.id),
                    "account_code": account.code,
                    "amount": str(amount),
                    "as_of_date": str(as_of_date),
                    "journal_id": str(journal.id),
                },
            )
            return journal

    def validate_opening_balance_integrity(self, organization_id: UUID) -> OpeningBalanceIntegrityReport:
        """
        Recompute every opening-balance journal from its lines.

        Read-only.  Reports per-journal and aggregate imbalance; a journal
        fails when |imbalance| >= the balance tolerance.
        """
        tolerance = self.ledger_config.balance_tolerance
        rows = self.session.execute(
            select(
                Journal.id,
                Journal.journal_number,
                Journal.source_id,
                JournalLine.debit_amount,
                JournalLine.credit_amount,
            )
            .join(JournalLine, JournalLine.journal_id == Journal.id)
            .where(
                Journal.organization_id == organization_id,
                Journal.source_type == JournalSourceType.OPENING_BALANCE,
            )
            .order_by(Journal.journal_number, JournalLine.line_number)
        ).all()

        grouped: dict[UUID, list] = {}
        for row in rows:
            grouped.setdefault(row.id, []).append(row)

        checks = []
        total_imbalance = ZERO
        for journal_id, journal_rows in grouped.items():
            totals = sum_lines((r.debit_amount, r.credit_amount) for r in journal_rows)
            total_imbalance += abs(totals.difference)
            checks.append(
                OpeningBalanceJournalCheck(
                    journal_id=journal_id,
                    journal_number=journal_rows[0].journal_number,
                    account_id=journal_rows[0].source_id,
                    total_debit=totals.total_debit,
                    total_credit=totals.total_credit,
                    imbalance=totals.difference,
                    balanced=totals.is_balanced(tolerance),
                )
            )

        report = OpeningBalanceIntegrityReport(
            organization_id=organization_id,
            journals=tuple(checks),
            total_imbalance=total_imbalance,
            is_valid=all(c.balanced for c in checks)
            and is_balanced(total_imbalance, ZERO, tolerance),
        )
        log = logger.info if report.is_valid else logger.warning
        log(
            "opening_balance_integrity_checked",
            extra={
                "organization_id": str(organization_id),
                "journal_count": len(checks),
                "failing_count": len(report.failing),
                "total_imbalance": str(total_imbalance),
            },
        )
        return report
