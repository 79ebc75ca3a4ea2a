"""Row-level ledger store over an async SQLAlchemy session.

Every call is committed on its own. There is deliberately no API for spanning
several calls with one transaction: multi-step operations built on top of the
store have to order their writes so a failure leaves a detectable state.
"""

import logging
from typing import Any, Iterable, TypeVar

from sqlalchemy import select
from sqlalchemy import update as sa_update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from src.services.errors import LedgerStoreError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

_COLLECTION_TYPES = (list, tuple, set, frozenset)


class LedgerStore:
    """get / insert / update against named tables (ORM models)."""

    def __init__(self, session: AsyncSession):
        """Initialize with async database session.

        The session factory must use ``expire_on_commit=False``; rows returned
        from ``insert`` are read after their commit.
        """
        self.session = session

    @staticmethod
    def _where(model: type, filters: dict[str, Any]) -> list:
        clauses = []
        for name, value in filters.items():
            column = getattr(model, name)
            if isinstance(value, _COLLECTION_TYPES):
                clauses.append(column.in_(list(value)))
            elif value is None:
                clauses.append(column.is_(None))
            else:
                clauses.append(column == value)
        return clauses

    async def _fail(self, operation: str, model: type, exc: Exception) -> LedgerStoreError:
        await self.session.rollback()
        logger.error("Ledger %s on %s failed: %s", operation, model.__tablename__, exc)
        return LedgerStoreError(operation, model.__tablename__, str(exc))

    async def get(self, model: type[ModelT], **filters: Any) -> list[ModelT]:
        """Fetch rows matching all filters, ordered by id.

        Collection values filter with IN, ``None`` filters with IS NULL.
        Rows are always refreshed from the database.
        """
        stmt = (
            select(model)
            .where(*self._where(model, filters))
            .order_by(model.id)
            .execution_options(populate_existing=True)
        )
        try:
            result = await self.session.execute(stmt)
        except SQLAlchemyError as exc:
            raise await self._fail("get", model, exc) from exc
        return list(result.scalars().all())

    async def get_one(self, model: type[ModelT], **filters: Any) -> ModelT | None:
        """Fetch the first row matching all filters, or None."""
        rows = await self.get(model, **filters)
        return rows[0] if rows else None

    async def insert(self, model: type[ModelT], rows: dict | Iterable[dict]) -> Any:
        """Insert one row (dict) or a batch (iterable of dicts) in a single commit.

        Returns:
            The inserted row for a dict, a list of rows for a batch
        """
        single = isinstance(rows, dict)
        objects = [model(**row) for row in ([rows] if single else rows)]
        if not objects:
            return []
        try:
            self.session.add_all(objects)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("insert", model, exc) from exc

        logger.debug("Inserted %d row(s) into %s", len(objects), model.__tablename__)
        return objects[0] if single else objects

    async def update(self, model: type, target: int | dict[str, Any], patch: dict[str, Any]) -> int:
        """Apply ``patch`` to the row with id ``target`` or to all rows matching a filter dict.

        Returns:
            Number of rows updated
        """
        filters = dict(target) if isinstance(target, dict) else {"id": target}
        stmt = (
            sa_update(model)
            .where(*self._where(model, filters))
            .values(**patch)
        )
        try:
            result = await self.session.execute(stmt)
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("update", model, exc) from exc

        logger.debug("Updated %d row(s) in %s", result.rowcount, model.__tablename__)
        return result.rowcount


__all__ = ["LedgerStore"]
