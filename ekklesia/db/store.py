"""Generic record store over the registered tables.

Records cross this boundary as plain dicts keyed by column name, so the
scheduling layer never holds ORM instances or sessions. Each call runs in
its own short transaction. Every mutation is published on the Redis channel
`changes:<table>` for live subscribers; publishing is best-effort and never
fails the write.

Usage:
    store = RecordStore()
    rows = await store.find("counseling_appointments", {
        "church_id": church_id,
        "status__in": ["Pendente", "Marcado"],
        "form_data.counselor_id": counselor_id,
    })
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ekklesia.db.engine import async_session_factory, redis_client
from ekklesia.db.filters import matches, to_clauses
from ekklesia.models import Base, CounselingAppointment, Counselor, Leader, MessageLog
from ekklesia.models.audit import AuditLog

logger = logging.getLogger(__name__)

TABLES: dict[str, type[Base]] = {
    model.__tablename__: model
    for model in (CounselingAppointment, Counselor, Leader, MessageLog, AuditLog)
}

ChangeCallback = Callable[[dict[str, Any]], Awaitable[None]]


class RecordStoreError(Exception):
    """A store operation failed."""


class DuplicateRecordError(RecordStoreError):
    """A write violated a uniqueness constraint."""


def _to_record(obj: Base) -> dict[str, Any]:
    return {column.key: getattr(obj, column.key) for column in obj.__table__.columns}


def change_channel(table: str) -> str:
    return f"changes:{table}"


class Subscription:
    """Handle for a live change subscription. Call `close()` to stop listening."""

    def __init__(self, channel: str, pubsub: Any, task: asyncio.Task[None]) -> None:
        self.channel = channel
        self._pubsub = pubsub
        self._task = task

    async def close(self) -> None:
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        await self._pubsub.unsubscribe(self.channel)
        await self._pubsub.aclose()


class RecordStore:
    """find / insert / update / delete / subscribe over registered tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
        redis: aioredis.Redis = redis_client,
    ) -> None:
        self._session_factory = session_factory
        self._redis = redis

    def _model(self, table: str) -> type[Base]:
        try:
            return TABLES[table]
        except KeyError:
            msg = f"Unknown table: {table}"
            raise RecordStoreError(msg) from None

    # ── Reads ────────────────────────────────────────────────────────

    async def find(
        self,
        table: str,
        filters: Mapping[str, Any] | None = None,
        *,
        order_by: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return records matching `filters`.

        Args:
            table: Registered table name.
            filters: Filter mapping (see `ekklesia.db.filters`).
            order_by: Column name, prefixed with "-" for descending.
            limit: Maximum number of records.
        """
        model = self._model(table)
        stmt = select(model).where(*to_clauses(model, filters))
        if order_by:
            column = getattr(model, order_by.lstrip("-"))
            stmt = stmt.order_by(column.desc() if order_by.startswith("-") else column.asc())
        if limit is not None:
            stmt = stmt.limit(limit)

        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [_to_record(obj) for obj in result.scalars().all()]
        except SQLAlchemyError as exc:
            logger.exception("find failed on %s", table)
            raise RecordStoreError(str(exc)) from exc

    async def get(self, table: str, record_id: str) -> dict[str, Any] | None:
        rows = await self.find(table, {"id": record_id}, limit=1)
        return rows[0] if rows else None

    # ── Writes ───────────────────────────────────────────────────────

    async def insert(self, table: str, record: Mapping[str, Any]) -> dict[str, Any]:
        """Insert one record and return it as stored (server defaults included).

        Raises:
            DuplicateRecordError: On a uniqueness violation.
            RecordStoreError: On any other database failure.
        """
        model = self._model(table)
        try:
            async with self._session_factory() as session:
                obj = model(**record)
                session.add(obj)
                await session.flush()
                await session.refresh(obj)
                stored = _to_record(obj)
                await session.commit()
        except IntegrityError as exc:
            logger.warning("Insert into %s rejected by constraint: %s", table, exc.orig)
            raise DuplicateRecordError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Insert into %s failed", table)
            raise RecordStoreError(str(exc)) from exc

        await self._publish(table, "INSERT", stored)
        return stored

    async def update(
        self,
        table: str,
        filters: Mapping[str, Any],
        patch: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """Apply `patch` to every record matching `filters`.

        Returns:
            The updated records. Empty when nothing matched, which callers
            using a version filter read as a lost compare-and-swap.
        """
        model = self._model(table)
        stmt = (
            update(model)
            .where(*to_clauses(model, filters))
            .values(**patch)
            .returning(model)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [_to_record(obj) for obj in result.scalars().all()]
                await session.commit()
        except IntegrityError as exc:
            logger.warning("Update on %s rejected by constraint: %s", table, exc.orig)
            raise DuplicateRecordError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            logger.exception("Update on %s failed", table)
            raise RecordStoreError(str(exc)) from exc

        for row in rows:
            await self._publish(table, "UPDATE", row)
        return rows

    async def delete(self, table: str, filters: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Remove every record matching `filters` and return what was removed."""
        if not filters:
            msg = f"Refusing unfiltered delete on {table}"
            raise RecordStoreError(msg)
        model = self._model(table)
        stmt = (
            delete(model)
            .where(*to_clauses(model, filters))
            .returning(model)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = [_to_record(obj) for obj in result.scalars().all()]
                await session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Delete on %s failed", table)
            raise RecordStoreError(str(exc)) from exc

        for row in rows:
            await self._publish(table, "DELETE", row)
        return rows

    # ── Change notifications ─────────────────────────────────────────

    async def _publish(self, table: str, change: str, record: Mapping[str, Any]) -> None:
        payload = json.dumps({"table": table, "type": change, "record": record}, default=str)
        try:
            await self._redis.publish(change_channel(table), payload)
        except (RedisError, OSError):
            logger.warning("Change notification for %s dropped (%s)", table, change)

    async def subscribe(
        self,
        table: str,
        filters: Mapping[str, Any] | None,
        on_change: ChangeCallback,
    ) -> Subscription:
        """Invoke `on_change(payload)` for every change to a matching record.

        Delivery is best-effort and at-least-once; callers should re-fetch
        rather than trust the payload as the latest state.
        """
        self._model(table)
        channel = change_channel(table)
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(channel)

        async def _listen() -> None:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    payload = json.loads(message["data"])
                except (TypeError, ValueError):
                    logger.warning("Malformed change notification on %s", channel)
                    continue
                if not matches(payload.get("record") or {}, filters):
                    continue
                try:
                    await on_change(payload)
                except Exception:
                    logger.exception("Change callback failed on %s", channel)

        task = asyncio.create_task(_listen())
        logger.info("Subscribed to %s with filters %s", channel, dict(filters or {}))
        return Subscription(channel, pubsub, task)


record_store = RecordStore()
