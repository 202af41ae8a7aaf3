"""Data access façade over the relational store.

Every read and write in the application goes through :class:`Store`, which
exposes per-table select/insert/update/delete with equality filters and
returns plain dictionaries.

A *criterion* is a mapping of column name to value. The pairs of one
criterion are ANDed together, and several criteria are ORed::

    store.messages.select(
        {"sender_id": a, "receiver_id": b},
        {"sender_id": b, "receiver_id": a},
        order_by="created_at",
    )

``None`` matches ``IS NULL`` and a list, tuple or set matches ``IN``.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterable, Mapping

from fastapi import Depends
from sqlalchemy import Table, and_, delete, insert, or_, select, true, update
from sqlalchemy.exc import (
    DBAPIError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)
from sqlalchemy.orm import Session

from . import models  # noqa: F401  registers the tables on Base
from .database import Base, get_db
from .errors import DuplicateError, ServiceUnavailableError, StoreError

logger = logging.getLogger(__name__)

Criterion = Mapping[str, Any]


class TableGateway:
    """Filtered CRUD access to a single table."""

    def __init__(self, session: Session, table: Table):
        self.session = session
        self.table = table

    @property
    def name(self) -> str:
        return self.table.name

    def _clause(self, criterion: Criterion):
        parts = []
        for name, value in criterion.items():
            column = self.table.c[name]
            if value is None:
                parts.append(column.is_(None))
            elif isinstance(value, (list, tuple, set, frozenset)):
                parts.append(column.in_(list(value)))
            else:
                parts.append(column == value)
        return and_(*parts) if parts else true()

    def _where(self, criteria: Iterable[Criterion]):
        clauses = [self._clause(criterion) for criterion in criteria]
        if not clauses:
            return None
        return clauses[0] if len(clauses) == 1 else or_(*clauses)

    def _columns(self, columns: Iterable[str] | None):
        if columns is None:
            return list(self.table.c)
        return [self.table.c[name] for name in columns]

    @contextmanager
    def _guard(self, action: str):
        try:
            yield
        except IntegrityError as exc:
            self.session.rollback()
            logger.warning("%s on %s violated a constraint: %s", action, self.name, exc.orig)
            raise DuplicateError() from exc
        except OperationalError as exc:
            self.session.rollback()
            logger.error("%s on %s failed, store unreachable: %s", action, self.name, exc)
            raise ServiceUnavailableError("Database service unavailable") from exc
        except DBAPIError as exc:
            self.session.rollback()
            if exc.connection_invalidated:
                logger.error("%s on %s lost its connection: %s", action, self.name, exc)
                raise ServiceUnavailableError("Database service unavailable") from exc
            logger.error("%s on %s failed: %s", action, self.name, exc)
            raise StoreError() from exc
        except PoolTimeoutError as exc:
            self.session.rollback()
            logger.error("%s on %s found no free connection: %s", action, self.name, exc)
            raise ServiceUnavailableError("Database service unavailable") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.error("%s on %s failed: %s", action, self.name, exc)
            raise StoreError() from exc

    def select(
        self,
        *criteria: Criterion,
        columns: Iterable[str] | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        """
        Fetch the rows matching any of ``criteria`` (all rows when none given).

        Args:
            criteria: Equality filters, ORed together.
            columns: Column names to return. Defaults to every column.
            order_by: Column to sort by, prefixed with ``-`` for descending.

        Returns:
            list[dict]: Matching rows.
        """
        stmt = select(*self._columns(columns))
        where = self._where(criteria)
        if where is not None:
            stmt = stmt.where(where)
        if order_by:
            column = self.table.c[order_by.lstrip("-")]
            stmt = stmt.order_by(column.desc() if order_by.startswith("-") else column)
        with self._guard("select"):
            return [dict(row) for row in self.session.execute(stmt).mappings()]

    def select_one(
        self, *criteria: Criterion, columns: Iterable[str] | None = None
    ) -> dict | None:
        """Fetch the first row matching ``criteria``, or ``None``."""
        stmt = select(*self._columns(columns)).limit(1)
        where = self._where(criteria)
        if where is not None:
            stmt = stmt.where(where)
        with self._guard("select"):
            row = self.session.execute(stmt).mappings().first()
        return dict(row) if row is not None else None

    def insert(self, values: Mapping[str, Any]) -> dict:
        """Insert one row and return it as stored, defaults included."""
        stmt = insert(self.table).values(**values).returning(*self.table.c)
        with self._guard("insert"):
            row = dict(self.session.execute(stmt).mappings().one())
            self.session.commit()
        return row

    def update(self, values: Mapping[str, Any], *criteria: Criterion) -> list[dict]:
        """
        Update the rows matching ``criteria`` and return them after the change.

        Raises:
            ValueError: If no criterion is given.
        """
        if not criteria:
            raise ValueError(f"refusing to update every row of {self.name}")
        stmt = (
            update(self.table)
            .where(self._where(criteria))
            .values(**values)
            .returning(*self.table.c)
        )
        with self._guard("update"):
            rows = [dict(row) for row in self.session.execute(stmt).mappings()]
            self.session.commit()
        return rows

    def delete(self, *criteria: Criterion) -> int:
        """
        Delete the rows matching ``criteria``.

        Returns:
            int: Number of deleted rows as reported by the driver.

        Raises:
            ValueError: If no criterion is given.
        """
        if not criteria:
            raise ValueError(f"refusing to delete every row of {self.name}")
        stmt = delete(self.table).where(self._where(criteria))
        with self._guard("delete"):
            count = self.session.execute(stmt).rowcount
            self.session.commit()
        return count


class Store:
    """Single point of contact with the relational store."""

    def __init__(self, session: Session):
        self.session = session

    def table(self, name: str) -> TableGateway:
        return TableGateway(self.session, Base.metadata.tables[name])

    @property
    def users(self) -> TableGateway:
        return self.table("users")

    @property
    def notes(self) -> TableGateway:
        return self.table("notes")

    @property
    def messages(self) -> TableGateway:
        return self.table("messages")


def get_store(db: Session = Depends(get_db)) -> Store:
    """FastAPI dependency returning a :class:`Store` for the request session."""
    return Store(db)
