"""
SequenceService -- per-tenant monotonic counters via locked rows.

Responsibility:
    Hands out strictly increasing integers per (tenant, sequence name).
    Journal entry, invoice and payment numbers are built from them.

Invariants enforced:
    - The locked counter row is the only source of the next value.  Never
      ``MAX(number) + 1``.
    - Increments are transactional: a rollback of the caller's transaction
      returns the value.

Failure modes:
    - IntegrityError when two transactions create the same counter row at
      once.  Handled: the loser rolls back its savepoint and locks the
      winner's row.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.

    Usage:
        seq = SequenceService(session).next_value(tenant_id, "journal_entry")
    """

    JOURNAL_ENTRY = "journal_entry"
    INVOICE = "invoice"
    PURCHASE_INVOICE = "purchase_invoice"
    PAYMENT = "payment"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, tenant_id: UUID, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.name == sequence_name,
            )
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, tenant_id: UUID, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the value.

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for this (tenant, name).
            - The counter row stays locked until the transaction ends.
        """
        counter = self._locked_counter(tenant_id, sequence_name)

        if counter is None:
            # First use.  Another transaction may be creating the same row.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(
                    tenant_id=tenant_id, name=sequence_name, current_value=1,
                )
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
                counter = self._locked_counter(tenant_id, sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, tenant_id: UUID, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(
                SequenceCounter.tenant_id == tenant_id,
                SequenceCounter.name == sequence_name,
            )
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, tenant_id: UUID, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: Tests and migration scripts only.  Resetting a live
        sequence makes the next entry numbers collide.
        """
        counter = self._locked_counter(tenant_id, sequence_name)

        if counter is None:
            self._session.add(
                SequenceCounter(tenant_id=tenant_id, name=sequence_name, current_value=value)
            )
        else:
            counter.current_value = value

        self._session.flush()
