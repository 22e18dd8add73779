"""
Declarative bases for every inventory table.

All models import from here and nothing here imports from the rest of the
package.  Conventions:

- Primary keys are uuid4 values, stored as 36-character strings so the same
  schema runs on PostgreSQL and SQLite.
- Stock quantities use ``QUANTITY`` (3 decimal places, enough for kg and
  litre fractions); prices and totals use the ``Decimal`` default
  ``Numeric(38, 9)``.  Floats are never used for either.
- Mutable documents inherit ``TrackedBase`` for who/when audit columns.
  Append-only rows (the stock ledger) inherit ``Base`` and declare their
  own ``created_at`` taken from the injected clock.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

QUANTITY = Numeric(10, 3)


class UUIDString(TypeDecorator):
    """``uuid.UUID`` in Python, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Audit columns for rows that change after insert.

    ``created_by_id`` is mandatory: services always pass the acting user.
    ``updated_at`` is refreshed by the database on every UPDATE.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(),
    )
    created_by_id: Mapped[UUID]
    updated_by_id: Mapped[UUID | None]
