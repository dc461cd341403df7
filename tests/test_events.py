"""Tests for the event bus and the audit subscriber."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from ekklesia import events
from ekklesia.schemas.events import EventType, SystemEvent
from ekklesia.security.audit import audit_on_event


@pytest.fixture(autouse=True)
def _isolated_subscribers():
    saved_global = list(events._subscribers)
    saved_typed = {k: list(v) for k, v in events._type_subscribers.items()}
    events._subscribers.clear()
    events._type_subscribers.clear()
    yield
    events._subscribers[:] = saved_global
    events._type_subscribers.clear()
    events._type_subscribers.update(saved_typed)


def _make_event(event_type: EventType = EventType.APPOINTMENT_APPROVED) -> SystemEvent:
    return SystemEvent(
        event_type=event_type,
        appointment_id="a1",
        church_id="ch1",
        actor_id="c1",
        actor_role="Conselheiro",
        data={"status": "Marcado"},
        source_module="tests",
    )


class TestDispatch:
    @pytest.mark.asyncio()
    async def test_global_and_typed_subscribers(self):
        received: list[tuple[str, EventType]] = []

        async def everything(event: SystemEvent) -> None:
            received.append(("all", event.event_type))

        async def only_deletes(event: SystemEvent) -> None:
            received.append(("deletes", event.event_type))

        events.subscribe(everything)
        events.subscribe(only_deletes, [EventType.APPOINTMENT_DELETED])

        await events._dispatch(_make_event())
        await events._dispatch(_make_event(EventType.APPOINTMENT_DELETED))

        assert received == [
            ("all", EventType.APPOINTMENT_APPROVED),
            ("all", EventType.APPOINTMENT_DELETED),
            ("deletes", EventType.APPOINTMENT_DELETED),
        ]

    @pytest.mark.asyncio()
    async def test_failing_handler_isolated(self):
        received = []

        async def broken(event: SystemEvent) -> None:
            raise RuntimeError("boom")

        async def healthy(event: SystemEvent) -> None:
            received.append(event)

        events.subscribe(broken)
        events.subscribe(healthy)

        await events._dispatch(_make_event())

        assert len(received) == 1

    @pytest.mark.asyncio()
    async def test_unsubscribe(self):
        received = []

        async def handler(event: SystemEvent) -> None:
            received.append(event)

        events.subscribe(handler)
        events.unsubscribe(handler)
        await events._dispatch(_make_event())

        assert received == []

    @pytest.mark.asyncio()
    async def test_handler_registered_twice_runs_once(self):
        received = []

        async def handler(event: SystemEvent) -> None:
            received.append(event)

        events.subscribe(handler)
        events.subscribe(handler, [EventType.APPOINTMENT_APPROVED])
        await events._dispatch(_make_event())

        assert len(received) == 1

    @pytest.mark.asyncio()
    async def test_emit_is_drained_on_stop(self):
        received = []

        async def handler(event: SystemEvent) -> None:
            received.append(event.event_type)

        events.subscribe(handler)
        await events.start_event_system()
        await events.emit(_make_event())
        await events.stop_event_system()

        assert received == [EventType.APPOINTMENT_APPROVED]
        assert events.queue_depth() == 0


class TestAuditSubscriber:
    @pytest.mark.asyncio()
    async def test_persists_event(self):
        db = MagicMock()
        db.commit = AsyncMock()
        with patch("ekklesia.security.audit.async_session_factory") as factory:
            factory.return_value.__aenter__ = AsyncMock(return_value=db)
            factory.return_value.__aexit__ = AsyncMock(return_value=False)

            await audit_on_event(_make_event())

        row = db.add.call_args.args[0]
        assert row.event_type == "appointment.approved"
        assert row.appointment_id == "a1"
        assert row.actor_role == "Conselheiro"
        db.commit.assert_awaited_once()

    @pytest.mark.asyncio()
    async def test_failure_is_swallowed(self):
        with patch("ekklesia.security.audit.async_session_factory", side_effect=OSError("db down")):
            await audit_on_event(_make_event())
