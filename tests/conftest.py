"""Shared fixtures: an in-memory record store and a service wired to it."""

from __future__ import annotations

import copy
import uuid
from collections import defaultdict
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import DataError
from sqlalchemy.types import Uuid

from ekklesia.counseling.notifications import Notifier
from ekklesia.counseling.service import SchedulingService
from ekklesia.db.filters import matches
from ekklesia.db.store import DuplicateRecordError, RecordStoreError

LIVE_STATUSES = {"Pendente", "Marcado", "Em Aconselhamento"}


class InMemoryStore:
    """Record store fake honoring the filter grammar and the live-slot unique index."""

    def __init__(self) -> None:
        self.tables: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self.fail_writes = False
        self.changes: list[tuple[str, str, dict[str, Any]]] = []

    def seed(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(record)
        row.setdefault("id", str(uuid.uuid4()))
        self.tables[table][row["id"]] = row
        return row

    def _check_live_slot(self, table: str, row: dict[str, Any]) -> None:
        if table != "counseling_appointments" or row.get("status") not in LIVE_STATUSES:
            return
        bag = row.get("form_data") or {}
        if not bag.get("counselor_id"):
            return
        for other in self.tables[table].values():
            other_bag = other.get("form_data") or {}
            if (
                other["id"] != row["id"]
                and other.get("status") in LIVE_STATUSES
                and other_bag.get("counselor_id") == bag["counselor_id"]
                and other_bag.get("date") == bag.get("date")
            ):
                raise DuplicateRecordError("uq_counseling_live_slot")

    async def find(self, table, filters=None, *, order_by=None, limit=None):
        rows = [copy.deepcopy(r) for r in self.tables[table].values() if matches(r, filters)]
        if order_by:
            key = order_by.lstrip("-")
            rows.sort(key=lambda r: r.get(key), reverse=order_by.startswith("-"))
        return rows[:limit] if limit is not None else rows

    async def get(self, table, record_id):
        row = self.tables[table].get(record_id)
        return copy.deepcopy(row) if row is not None else None

    async def insert(self, table, record):
        if self.fail_writes:
            raise RecordStoreError("write failed")
        row = copy.deepcopy(dict(record))
        row.setdefault("id", str(uuid.uuid4()))
        self._check_live_slot(table, row)
        self.tables[table][row["id"]] = row
        self.changes.append((table, "INSERT", row))
        return copy.deepcopy(row)

    async def update(self, table, filters, patch):
        if self.fail_writes:
            raise RecordStoreError("write failed")
        updated = []
        for row_id, row in list(self.tables[table].items()):
            if not matches(row, filters):
                continue
            new_row = {**row, **copy.deepcopy(dict(patch))}
            self._check_live_slot(table, new_row)
            self.tables[table][row_id] = new_row
            self.changes.append((table, "UPDATE", new_row))
            updated.append(copy.deepcopy(new_row))
        return updated

    async def delete(self, table, filters):
        if self.fail_writes:
            raise RecordStoreError("write failed")
        removed = []
        for row_id, row in list(self.tables[table].items()):
            if matches(row, filters):
                removed.append(self.tables[table].pop(row_id))
                self.changes.append((table, "DELETE", row))
        return removed


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def email_sender() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture()
def chat_sender() -> AsyncMock:
    return AsyncMock(return_value=True)


@pytest.fixture()
def service(store, email_sender, chat_sender) -> SchedulingService:
    return SchedulingService(store=store, notifier=Notifier(store, email_sender, chat_sender))


@pytest.fixture()
def mock_emit():
    """Capture SystemEvents instead of starting the event worker."""
    with patch("ekklesia.counseling.service.emit", new_callable=AsyncMock) as emitted:
        yield emitted


@pytest.fixture()
def pg_session_factory():
    """Session factory whose `execute` rejects non-UUID bind values like PostgreSQL does."""

    async def execute(statement):
        compiled = statement.compile(dialect=postgresql.dialect())
        for bind in compiled.binds.values():
            if isinstance(bind.type, Uuid) and isinstance(bind.value, str) and not _looks_like_uuid(bind.value):
                raise DataError(str(statement), compiled.params, Exception("invalid input syntax for type uuid"))
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        return result

    session = MagicMock()
    session.execute = AsyncMock(side_effect=execute)
    session.commit = AsyncMock()
    factory = MagicMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    factory.session = session
    return factory


def _looks_like_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True
