"""
Named counters for the ledger sequence and daily document numbers.

A counter is a row in ``sequence_counters`` that is read with
``SELECT ... FOR UPDATE`` and incremented in the caller's transaction, so
two sessions can never draw the same value and a rolled-back transaction
gives its value back.  Document numbers (``PO-20240101-001``, ``GRN-``,
``BATCH-``, ``PE-``, ``ST-``, ``REQ-``) use one counter per prefix and day.

The service flushes but never commits.
"""

from datetime import datetime

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from inventory_kernel.db.base import Base
from inventory_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    # "stock_movement", "GRN:20240101", ...
    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    STOCK_MOVEMENT = "stock_movement"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """Increment the named counter under a row lock and return the new value."""
        counter = self._locked(sequence_name) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(self, prefix: str, when: datetime) -> str:
        """``{prefix}-{YYYYMMDD}-{NNN}``; numbering restarts at 001 each day."""
        day = when.strftime("%Y%m%d")
        return f"{prefix}-{day}-{self.next_value(f'{prefix}:{day}'):03d}"

    def current_value(self, sequence_name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def _locked(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter:
        # A concurrent first use may insert the same name; the savepoint
        # keeps the caller's pending work when that happens.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            counter = self._locked(sequence_name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter
