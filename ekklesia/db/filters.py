"""Filter grammar shared by the record store and its change notifications.

A filter is a flat mapping of keys to values:

    {"status__in": ["Pendente", "Marcado"],    # set membership
     "id__ne": appointment_id,                  # inequality
     "form_data.counselor_id": counselor_id,    # nested equality on the attribute bag
     "church_id": church_id}                    # equality

The same filter compiles to SQLAlchemy clauses (`to_clauses`) and evaluates
in Python against a plain record (`matches`), so a subscriber sees exactly
the rows a `find` with that filter would return. Nested values are compared
as text, the way PostgreSQL's `->>` operator returns them.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from sqlalchemy import false
from sqlalchemy.sql.elements import ColumnElement
from sqlalchemy.types import Uuid

_OPERATORS = {"in", "ne"}


@dataclass(frozen=True)
class Condition:
    """One parsed filter entry."""

    field: str
    path: str | None
    op: str
    value: Any


def parse_filters(filters: Mapping[str, Any] | None) -> list[Condition]:
    """Split filter keys into (field, nested path, operator) conditions."""
    conditions: list[Condition] = []
    for key, value in (filters or {}).items():
        name, _, op = key.partition("__")
        if op and op not in _OPERATORS:
            msg = f"Unsupported filter operator: {op!r} in {key!r}"
            raise ValueError(msg)
        field, _, path = name.partition(".")
        if op == "in" and (isinstance(value, (str, bytes)) or not isinstance(value, Iterable)):
            msg = f"Filter {key!r} expects a collection of values"
            raise ValueError(msg)
        conditions.append(Condition(field=field, path=path or None, op=op or "eq", value=value))
    return conditions


def _as_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _lookup(record: Mapping[str, Any], condition: Condition) -> Any:
    value = record.get(condition.field)
    if condition.path is None:
        return value
    if not isinstance(value, Mapping):
        return None
    return _as_text(value.get(condition.path))


def matches(record: Mapping[str, Any], filters: Mapping[str, Any] | None) -> bool:
    """Evaluate a filter against a plain record dict (SQL NULL semantics)."""
    for condition in parse_filters(filters):
        actual = _lookup(record, condition)
        expected = condition.value
        if condition.path is not None:
            expected = (
                [_as_text(v) for v in expected] if condition.op == "in" else _as_text(expected)
            )

        if condition.op == "eq":
            if actual != expected:
                return False
        elif condition.op == "ne":
            if actual is None or (expected is not None and actual == expected):
                return False
        elif actual is None or actual not in expected:
            return False
    return True


def to_clauses(model: type, filters: Mapping[str, Any] | None) -> list[ColumnElement[bool]]:
    """Compile a filter into SQLAlchemy WHERE clauses for an ORM model.

    A value that is not a UUID can never equal a UUID column, so it compiles
    to a clause with that outcome instead of reaching the driver, which would
    reject the parameter.
    """
    clauses: list[ColumnElement[bool]] = []
    for condition in parse_filters(filters):
        column = getattr(model, condition.field, None)
        if column is None:
            msg = f"Unknown filter field {condition.field!r} for {model.__name__}"
            raise ValueError(msg)

        value = condition.value
        if condition.path is not None:
            column = column[condition.path].astext
            value = [_as_text(v) for v in value] if condition.op == "in" else _as_text(value)
        elif isinstance(column.type, Uuid) and value is not None:
            clauses.append(_uuid_clause(column, condition.op, value))
            continue

        if condition.op == "in":
            clauses.append(column.in_(list(value)))
        elif condition.op == "ne":
            clauses.append(column.is_not(None) if value is None else column != value)
        else:
            clauses.append(column.is_(None) if value is None else column == value)
    return clauses


def _is_uuid(value: Any) -> bool:
    if isinstance(value, uuid.UUID):
        return True
    try:
        uuid.UUID(str(value))
    except ValueError:
        return False
    return True


def _uuid_clause(column: Any, op: str, value: Any) -> ColumnElement[bool]:
    if op == "in":
        valid = [v for v in value if v is not None and _is_uuid(v)]
        return column.in_(valid) if valid else false()
    if _is_uuid(value):
        return column != value if op == "ne" else column == value
    return column.is_not(None) if op == "ne" else false()
