"""
Storage port: a generic keyed record store over the SQLModel tables.

Each call is its own unit of work (own session, own commit), so no caller
ever holds a transaction across suspension points. Every table is keyed by
its single primary-key column: join requests by ``join_id``, users by
``email``, everything else by tenant key or catalogue code.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional, Protocol, Sequence, TypeVar

import sqlalchemy as sa
import structlog
from fastapi import Request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import sessionmaker
from sqlmodel import SQLModel, select

from app.core.errors import StorageUnavailable

log = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=SQLModel)


class DuplicateRecord(Exception):
    """Insert collided with an existing primary key."""


class Contains:
    """Filter predicate: array column contains ``value``."""

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Contains({self.value!r})"


class Storage(Protocol):
    async def insert(self, record: RecordT, *, overwrite: bool = False) -> RecordT: ...

    async def get(self, model: type[RecordT], key: str) -> Optional[RecordT]: ...

    async def find(self, model: type[RecordT], **filters: Any) -> list[RecordT]: ...

    async def update(
        self, model: type[RecordT], key: str, fields: dict[str, Any]
    ) -> Optional[RecordT]: ...

    async def increment(
        self,
        model: type[SQLModel],
        key: str,
        field: str,
        by: int = 1,
        *,
        limit_field: Optional[str] = None,
    ) -> Optional[int]: ...

    async def delete(self, model: type[SQLModel], key: str) -> bool: ...

    async def ping(self) -> None: ...


def _key_column(model: type[SQLModel]) -> sa.Column:
    return next(iter(model.__table__.primary_key.columns))


class SqlStorage:
    """Storage port backed by an async SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator:
        try:
            async with self._session_factory() as session:
                yield session
        except IntegrityError as exc:
            raise DuplicateRecord(str(exc.orig)) from exc
        except (SQLAlchemyError, OSError) as exc:
            log.error("storage.unavailable", error=str(exc))
            raise StorageUnavailable("Storage is temporarily unavailable", error=type(exc).__name__) from exc

    async def insert(self, record: RecordT, *, overwrite: bool = False) -> RecordT:
        """Insert a record; ``overwrite`` turns it into a put (upsert)."""
        async with self._session() as session:
            if overwrite:
                record = await session.merge(record)
            else:
                session.add(record)
            await session.commit()
            return record

    async def get(self, model: type[RecordT], key: str) -> Optional[RecordT]:
        async with self._session() as session:
            return await session.get(model, key)

    async def find(self, model: type[RecordT], **filters: Any) -> list[RecordT]:
        """Exact-match filter; ``Contains`` values test array membership.

        Array predicates are evaluated after the scan so the same filter works
        on every backend's JSON representation.
        """
        columns = model.__table__.c
        stmt = select(model)
        contains: dict[str, Any] = {}
        for field, value in filters.items():
            if isinstance(value, Contains):
                contains[field] = value.value
            else:
                stmt = stmt.where(columns[field] == value)

        async with self._session() as session:
            result = await session.execute(stmt)
            records: Sequence[RecordT] = result.scalars().all()

        return [
            record
            for record in records
            if all(value in (getattr(record, field) or []) for field, value in contains.items())
        ]

    async def update(
        self, model: type[RecordT], key: str, fields: dict[str, Any]
    ) -> Optional[RecordT]:
        """Merge ``fields`` into the record. Returns None when it does not exist."""
        async with self._session() as session:
            record = await session.get(model, key)
            if record is None:
                return None
            for field, value in fields.items():
                setattr(record, field, value)
            session.add(record)
            await session.commit()
            return record

    async def increment(
        self,
        model: type[SQLModel],
        key: str,
        field: str,
        by: int = 1,
        *,
        limit_field: Optional[str] = None,
    ) -> Optional[int]:
        """Atomically add ``by`` to ``field`` and return the new value.

        With ``limit_field`` the update only applies while the result stays
        within the limit column (a NULL limit is unlimited). Returns None when
        no row matched: the record is missing or the limit would be exceeded.
        """
        table = model.__table__
        key_column = _key_column(model)
        counter = table.c[field]

        stmt = sa.update(table).where(key_column == key).values({field: counter + by})
        if limit_field is not None:
            limit = table.c[limit_field]
            stmt = stmt.where(sa.or_(limit.is_(None), counter + by <= limit))

        async with self._session() as session:
            result = await session.execute(stmt)
            if result.rowcount == 0:
                await session.rollback()
                return None
            value = (
                await session.execute(sa.select(counter).where(key_column == key))
            ).scalar_one()
            await session.commit()
            return value

    async def delete(self, model: type[SQLModel], key: str) -> bool:
        async with self._session() as session:
            result = await session.execute(
                sa.delete(model.__table__).where(_key_column(model) == key)
            )
            await session.commit()
            return result.rowcount > 0

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(sa.text("SELECT 1"))


def get_storage(request: Request) -> Storage:
    """FastAPI dependency: the app's storage port."""
    return request.app.state.storage
