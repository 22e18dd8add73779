"""
Shared plumbing for the supply-chain services.

Every public mutation runs inside ``_unit_of_work``: commit on success,
roll back and translate a database error, roll back and
re-raise anything else.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Generator, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from inventory_kernel.domain.clock import Clock, SystemClock
from inventory_kernel.exceptions import (
    ConflictError,
    InternalError,
    InventoryKernelError,
    NotFoundError,
    ValidationFailureError,
)
from inventory_kernel.logging_config import LogContext, get_logger
from inventory_kernel.models.item import Item
from inventory_kernel.services.location_stock_store import LocationStockStore
from inventory_kernel.services.sequence_service import SequenceService

logger = get_logger("modules.supply_chain.base")

ZERO = Decimal("0")


class SupplyChainService:
    """
    Base for the document services.

    Transaction boundary: subclasses commit on success, roll back on failure.
    """

    entity_type: str = "Document"

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequences = SequenceService(session)
        self._stock = LocationStockStore(session, self._clock)

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        actor_id: UUID | None = None,
        entity_id: Any = None,
    ) -> Generator[None, None, None]:
        with LogContext.bind(operation=operation, actor_id=actor_id, entity_id=entity_id):
            try:
                yield
                self._session.commit()
            except InventoryKernelError as exc:
                self._session.rollback()
                logger.info(
                    "supply_chain_operation_rejected",
                    extra={"operation": operation, "error_code": exc.code},
                )
                raise
            except IntegrityError as exc:
                self._session.rollback()
                logger.warning(
                    "supply_chain_integrity_conflict",
                    extra={"operation": operation, "error": str(exc.orig)},
                )
                raise ConflictError(self.entity_type, operation) from exc
            except SQLAlchemyError as exc:
                self._session.rollback()
                logger.exception("supply_chain_operation_failed", extra={"operation": operation})
                raise InternalError(operation) from exc
            except Exception:
                self._session.rollback()
                logger.exception("supply_chain_operation_failed", extra={"operation": operation})
                raise

    def _next_number(self, prefix: str) -> str:
        return self._sequences.next_document_number(prefix, self._clock.now())

    def _load(self, model, entity_id: UUID, *, lock: bool = False):
        stmt = select(model).where(model.id == entity_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self._session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFoundError(model.__name__.removesuffix("Model"), entity_id)
        return row

    def _require_items(self, item_ids: Iterable[UUID]) -> dict[UUID, Item]:
        """Load the catalog rows for ``item_ids``; any unknown id raises."""
        wanted = set(item_ids)
        if not wanted:
            return {}
        rows = self._session.execute(
            select(Item).where(Item.id.in_(wanted))
        ).scalars().all()
        found = {row.id: row for row in rows}
        missing = sorted(wanted - found.keys(), key=str)
        if missing:
            raise NotFoundError("Item", missing[0])
        return found


def require_lines(lines, field: str = "items") -> None:
    if not lines:
        raise ValidationFailureError("At least one item is required", field=field)


def require_positive(value: Decimal, item_id: UUID, field: str = "quantity") -> Decimal:
    value = Decimal(value)
    if value <= 0:
        raise ValidationFailureError(
            f"{field} for item {item_id} must be positive, got {value}",
            field=field,
        )
    return value


def require_non_negative(value: Decimal, item_id: UUID | None, field: str) -> Decimal:
    value = Decimal(value)
    if value < 0:
        subject = field if item_id is None else f"{field} for item {item_id}"
        raise ValidationFailureError(
            f"{subject} must not be negative, got {value}",
            field=field,
        )
    return value

