"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Hands out strictly increasing integers per sequence name.  Used for
    journal numbers, transfer numbers and the FIFO insertion order of
    inventory layers and movements.

Invariants enforced:
    - Monotonic: the locked counter row is the only source of the next
      value.  ``SELECT max(...) + 1`` is never used.
    - Transactional: an increment becomes visible when the caller's
      transaction commits; a rollback returns the value.

Failure modes:
    - IntegrityError on a concurrent first-use race.  Handled by rolling
      back a savepoint and re-reading the counter under lock.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional named sequences.

    Does NOT commit; the counter row stays locked until the caller's
    transaction ends, which serializes allocations of the same name.
    """

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def journal_sequence(organization_id, year: int) -> str:
        return f"journal:{organization_id}:{year}"

    @staticmethod
    def transfer_sequence(organization_id, year: int) -> str:
        return f"transfer:{organization_id}:{year}"

    @staticmethod
    def opening_balance_sequence(organization_id) -> str:
        return f"opening_balance:{organization_id}"

    @staticmethod
    def layer_sequence(organization_id) -> str:
        return f"inventory_layer:{organization_id}"

    @staticmethod
    def movement_sequence(organization_id) -> str:
        return f"inventory_movement:{organization_id}"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock the named counter (creating it on first use), increment it and
        return the new value.  Always > 0.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use.  Another transaction may create the same row
            # concurrently, so insert under a savepoint.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
