"""
JournalService -- the journal engine.

Responsibility:
    Validates and persists balanced double-entry journals, re-verifies
    persisted journals from their lines, and reverses journals by posting a
    mirror entry.

Invariants enforced:
    - Balance: |sum(debit) - sum(credit)| < tolerance (0.01 by default) or
      the journal is rejected with UnbalancedJournalError.  All arithmetic
      is Decimal.
    - Atomicity: header and lines are written in one savepoint.  A failure
      leaves no partial journal, so a retry after a failure starts clean.
    - Tenant scope: every line account must belong to the journal's
      organization; foreign accounts are reported as not found.
    - Journals are never edited.  Corrections are reversals.

Failure modes:
    EmptyJournalError, InvalidJournalLineError, UnbalancedJournalError,
    NotFoundError, InactiveAccountError, PeriodNotFoundError,
    PeriodClosedError, JournalAlreadyReversedError.
"""

import time
from datetime import date
from typing import Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_config.schema import LedgerConfig
from ledger_kernel.domain.balance import BalanceTotals, sum_lines
from ledger_kernel.domain.clock import Clock
from ledger_kernel.domain.dtos import JournalLineSpec, LedgerBalanceCheck
from ledger_kernel.exceptions import (
    EmptyJournalError,
    InactiveAccountError,
    InvalidJournalLineError,
    JournalAlreadyReversedError,
    NotFoundError,
    UnbalancedJournalError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.models.account import Account
from ledger_kernel.models.journal import Journal, JournalLine, JournalSourceType
from ledger_kernel.services.base import BaseService
from ledger_kernel.services.period_service import PeriodService
from ledger_kernel.services.sequence_service import SequenceService

logger = get_logger("services.journal")


class JournalService(BaseService):
    """
    Journal engine.

    Flush-only: the caller commits.  Each public write runs in its own
    savepoint so a rejected journal leaves the session's transaction as it
    was.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: LedgerConfig | None = None,
    ):
        super().__init__(session, clock)
        self.config = config or LedgerConfig()
        self._sequences = SequenceService(session)

    # ------------------------------------------------------------------
    # Posting
    # ------------------------------------------------------------------

    def post_journal(
        self,
        organization_id: UUID,
        journal_date: date,
        reference: str | None,
        lines: Sequence[JournalLineSpec],
        *,
        actor_id: UUID,
        description: str | None = None,
        source_type: JournalSourceType = JournalSourceType.MANUAL,
        source_id: str | None = None,
        journal_number: str | None = None,
        reverses_journal_id: UUID | None = None,
    ) -> Journal:
        """
        Validate and persist a balanced journal.

        Returns the flushed Journal with its lines.  The journal number is
        allocated as ``{prefix}-{year}-{NNNNNN}`` from a per-organization,
        per-year sequence unless one is supplied.
        """
        started = time.monotonic()
        with LogContext.bind(organization_id=organization_id, actor_id=actor_id):
            self._validate_lines(lines)
            totals = sum_lines((spec.debit, spec.credit) for spec in lines)
            self._require_balanced(totals, reference)

            with self.atomic():
                self._load_postable_accounts(organization_id, {spec.account_id for spec in lines})

                if self.config.enforce_posting_periods:
                    PeriodService(self.session, self.clock).validate_posting_date(
                        organization_id, journal_date
                    )

                if journal_number is None:
                    journal_number = self._next_journal_number(organization_id, journal_date)

                journal = Journal(
                    organization_id=organization_id,
                    journal_number=journal_number,
                    journal_date=journal_date,
                    reference=reference,
                    description=description,
                    source_type=source_type,
                    source_id=source_id,
                    total_debit=totals.total_debit,
                    total_credit=totals.total_credit,
                    reverses_journal_id=reverses_journal_id,
                    created_by_id=actor_id,
                )
                for line_number, spec in enumerate(lines, start=1):
                    journal.lines.append(
                        JournalLine(
                            line_number=line_number,
                            account_id=spec.account_id,
                            debit_amount=spec.debit,
                            credit_amount=spec.credit,
                            description=spec.description,
                            created_by_id=actor_id,
                        )
                    )
                self.session.add(journal)
                self.session.flush()

            logger.info(
                "journal_posted",
                extra={
                    "journal_id": str(journal.id),
                    "journal_number": journal.journal_number,
                    "source_type": JournalSourceType(source_type).value,
                    "line_count": len(lines),
                    "total_debit": str(totals.total_debit),
                    "total_credit": str(totals.total_credit),
                    "duration_ms": round((time.monotonic() - started) * 1000, 2),
                },
            )
            return journal

    def _validate_lines(self, lines: Sequence[JournalLineSpec]) -> None:
        if not lines:
            raise EmptyJournalError()
        for line_number, spec in enumerate(lines, start=1):
            if spec.debit < 0 or spec.credit < 0:
                raise InvalidJournalLineError(line_number, "amounts must not be negative")
            if spec.debit != 0 and spec.credit != 0:
                raise InvalidJournalLineError(
                    line_number, "a line cannot carry both a debit and a credit"
                )

    def _require_balanced(self, totals: BalanceTotals, reference: str | None) -> None:
        if totals.is_balanced(self.config.balance_tolerance):
            return
        logger.warning(
            "journal_rejected_unbalanced",
            extra={
                "reference": reference,
                "total_debit": str(totals.total_debit),
                "total_credit": str(totals.total_credit),
                "difference": str(totals.difference),
            },
        )
        raise UnbalancedJournalError(totals.total_debit, totals.total_credit)

    def _load_postable_accounts(self, organization_id: UUID, account_ids: set[UUID]) -> dict[UUID, Account]:
        accounts = {
            account.id: account
            for account in self.session.execute(
                select(Account).where(Account.id.in_(account_ids))
            ).scalars()
        }
        # Sorted so the reported id is deterministic
        for account_id in sorted(account_ids, key=str):
            account = accounts.get(account_id)
            if account is None or account.organization_id != organization_id:
                raise NotFoundError("account", account_id)
            if not account.is_active:
                raise InactiveAccountError(account.id, account.code)
        return accounts

    def _next_journal_number(self, organization_id: UUID, journal_date: date) -> str:
        seq = self._sequences.next_value(
            SequenceService.journal_sequence(organization_id, journal_date.year)
        )
        return f"{self.config.journal_prefix}-{journal_date.year}-{seq:06d}"

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def check_ledger_balance(
        self,
        journal_id: UUID,
        organization_id: UUID | None = None,
    ) -> LedgerBalanceCheck:
        """
        Recompute a journal's totals from its persisted lines.

        Reads line amounts straight from the database (column select, not
        the identity map), so it reflects what was actually written.  Used
        as a verification gate before a workflow moves past a committed
        boundary.  Read-only: repeated calls without writes in between
        return equal results.
        """
        journal_org = self.session.execute(
            select(Journal.organization_id).where(Journal.id == journal_id)
        ).scalar_one_or_none()
        if journal_org is None or (
            organization_id is not None and journal_org != organization_id
        ):
            raise NotFoundError("journal", journal_id)

        rows = self.session.execute(
            select(JournalLine.debit_amount, JournalLine.credit_amount)
            .where(JournalLine.journal_id == journal_id)
        ).all()
        totals = sum_lines((row.debit_amount, row.credit_amount) for row in rows)

        result = LedgerBalanceCheck(
            journal_id=journal_id,
            balanced=totals.is_balanced(self.config.balance_tolerance),
            total_debit=totals.total_debit,
            total_credit=totals.total_credit,
            line_count=len(rows),
        )
        logger.debug(
            "ledger_balance_checked",
            extra={
                "journal_id": str(journal_id),
                "balanced": result.balanced,
                "total_debit": str(result.total_debit),
                "total_credit": str(result.total_credit),
            },
        )
        return result

    # ------------------------------------------------------------------
    # Reversal
    # ------------------------------------------------------------------

    def reverse_journal(
        self,
        journal_id: UUID,
        organization_id: UUID,
        reversal_date: date,
        *,
        actor_id: UUID,
        reason: str | None = None,
    ) -> Journal:
        """
        Post a mirror journal that swaps every line's debit and credit.

        A journal can be reversed once; a reversal cannot itself be
        reversed.  The original journal is left untouched.
        """
        original = self._get_scoped(Journal, journal_id, organization_id, "journal")

        if original.reverses_journal_id is not None:
            raise JournalAlreadyReversedError(journal_id)

        existing = self.session.execute(
            select(Journal.id).where(Journal.reverses_journal_id == original.id)
        ).scalar_one_or_none()
        if existing is not None:
            raise JournalAlreadyReversedError(journal_id, existing)

        mirrored = [
            JournalLineSpec(
                account_id=line.account_id,
                debit=line.credit_amount,
                credit=line.debit_amount,
                description=line.description,
            )
            for line in original.lines
        ]

        reversal = self.post_journal(
            organization_id,
            reversal_date,
            f"Reversal of {original.journal_number}",
            mirrored,
            actor_id=actor_id,
            description=reason,
            source_type=JournalSourceType.REVERSAL,
            source_id=str(original.id),
            reverses_journal_id=original.id,
        )
        logger.info(
            "journal_reversed",
            extra={
                "journal_id": str(original.id),
                "reversal_journal_id": str(reversal.id),
                "reason": reason,
            },
        )
        return reversal
