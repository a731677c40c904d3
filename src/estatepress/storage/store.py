"""Keyed access to persisted topics, articles, feedback and strategies."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Iterable, TypeVar

from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlmodel import SQLModel, select

from estatepress.errors import DuplicateRecordError
from estatepress.storage.database import get_session

M = TypeVar("M", bound=SQLModel)


def _plain(value: object) -> object:
    return value.value if isinstance(value, Enum) else value


class ContentStore:
    """Single-row reads and writes over the SQLite database.

    Every mutation is one statement so two pipeline runs touching the same
    row cannot interleave inside it. Records handed back are detached
    copies; mutating them has no effect until passed to ``update``.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    def get(self, model: type[M], record_id: int) -> M | None:
        with get_session(self._db_path) as session:
            return session.get(model, record_id)

    def find_by(
        self,
        model: type[M],
        *,
        slug: str | None = None,
        status: str | Iterable[str] | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        date_field: str = "created_at",
        order_by: str | None = None,
        descending: bool = True,
        limit: int | None = None,
        **equals: object,
    ) -> list[M]:
        """Return records matching every given filter.

        Args:
            slug: Exact slug match.
            status: One status or several.
            since: Inclusive lower bound on ``date_field``.
            until: Exclusive upper bound on ``date_field``.
            order_by: Column to sort by, defaults to primary key order.
            equals: Further exact-match column filters.
        """
        stmt = select(model)
        if slug is not None:
            stmt = stmt.where(model.slug == slug)
        if status is not None:
            statuses = [status] if isinstance(status, str) else list(status)
            stmt = stmt.where(model.status.in_([_plain(s) for s in statuses]))
        column = getattr(model, date_field, None)
        if since is not None:
            stmt = stmt.where(column >= since)
        if until is not None:
            stmt = stmt.where(column < until)
        for name, value in equals.items():
            stmt = stmt.where(getattr(model, name) == _plain(value))
        if order_by:
            col = getattr(model, order_by)
            stmt = stmt.order_by(col.desc() if descending else col.asc(), model.id)
        else:
            stmt = stmt.order_by(model.id)
        if limit is not None:
            stmt = stmt.limit(limit)

        with get_session(self._db_path) as session:
            return list(session.exec(stmt).all())

    def insert(self, record: M) -> int:
        """Insert ``record`` and return its new id.

        Raises:
            DuplicateRecordError: a unique key (slug, strategy version) exists.
        """
        with get_session(self._db_path) as session:
            session.add(record)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise DuplicateRecordError(
                    record.__tablename__, getattr(record, "slug", None)
                ) from exc
            session.refresh(record)
            return record.id

    def update(self, model: type[M], record_id: int, **fields: object) -> bool:
        """Set ``fields`` on one row. Returns False if the row is gone."""
        return self.update_where(model, record_id, {}, **fields)

    def update_where(
        self, model: type[M], record_id: int, expected: dict, **fields: object
    ) -> bool:
        """Conditionally update one row.

        The write applies only if every column in ``expected`` still holds the
        given value, which makes read-modify-write sequences safe against a
        concurrent writer. Returns True if the row was updated.
        """
        values = {k: _plain(v) for k, v in fields.items()}
        if "updated_at" in model.model_fields and "updated_at" not in values:
            values["updated_at"] = datetime.now()

        stmt = update(model).where(model.id == record_id)
        for name, value in expected.items():
            stmt = stmt.where(getattr(model, name) == _plain(value))
        stmt = stmt.values(**values)

        with get_session(self._db_path) as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount == 1

    def delete_where(self, model: type[M], *criteria: object) -> int:
        """Delete every row matching the SQLAlchemy ``criteria``."""
        stmt = delete(model)
        for criterion in criteria:
            stmt = stmt.where(criterion)
        with get_session(self._db_path) as session:
            result = session.execute(stmt)
            session.commit()
            return result.rowcount
