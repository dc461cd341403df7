"""Tests for the notifier: warnings instead of errors, message log lifecycle."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from ekklesia.counseling.notifications import Notifier


class TestEmail:
    @pytest.mark.asyncio()
    async def test_delivered(self, store, email_sender):
        notifier = Notifier(store, email_sender, AsyncMock())

        warning = await notifier.email("ana@x.com", ("Assunto", "<p>Oi</p>"), recipient="Ana")

        assert warning is None
        email_sender.assert_awaited_once_with("ana@x.com", "Assunto", "<p>Oi</p>")

    @pytest.mark.asyncio()
    async def test_invalid_address_skipped_silently(self, store, email_sender):
        notifier = Notifier(store, email_sender, AsyncMock())

        assert await notifier.email("sem-email", ("Assunto", "x"), recipient="Ana") is None
        email_sender.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_failure_becomes_warning(self, store):
        notifier = Notifier(store, AsyncMock(return_value=False), AsyncMock())

        warning = await notifier.email("ana@x.com", ("Assunto", "x"), recipient="Ana")

        assert warning == "Não foi possível enviar o e-mail para Ana."

    @pytest.mark.asyncio()
    async def test_sender_exception_becomes_warning(self, store):
        notifier = Notifier(store, AsyncMock(side_effect=RuntimeError("boom")), AsyncMock())

        assert await notifier.email("ana@x.com", ("Assunto", "x"), recipient="Ana") is not None


class TestChat:
    @pytest.mark.asyncio()
    async def test_logged_pending_then_sent(self, store, chat_sender):
        notifier = Notifier(store, AsyncMock(), chat_sender)

        warning = await notifier.chat(
            "11988887777", "Olá", recipient="Bruno", church_id="ch1", campaign="new-request"
        )

        assert warning is None
        statuses = [(change, row["status"]) for table, change, row in store.changes if table == "message_history"]
        assert statuses == [("INSERT", "pending"), ("UPDATE", "sent")]

    @pytest.mark.asyncio()
    async def test_failure_leaves_pending(self, store):
        notifier = Notifier(store, AsyncMock(), AsyncMock(return_value=False))

        warning = await notifier.chat("11988887777", "Olá", recipient="Bruno", church_id="ch1", campaign="x")

        assert warning == "Não foi possível enviar a mensagem de WhatsApp para Bruno."
        (row,) = store.tables["message_history"].values()
        assert row["status"] == "pending"

    @pytest.mark.asyncio()
    async def test_no_phone_skipped(self, store, chat_sender):
        notifier = Notifier(store, AsyncMock(), chat_sender)

        assert await notifier.chat(None, "Olá", recipient="Bruno", church_id="ch1", campaign="x") is None
        chat_sender.assert_not_awaited()
        assert store.changes == []

    @pytest.mark.asyncio()
    async def test_log_failure_does_not_block_send(self, store, chat_sender):
        store.fail_writes = True
        notifier = Notifier(store, AsyncMock(), chat_sender)

        assert await notifier.chat("11988887777", "Olá", recipient="Bruno", church_id="ch1", campaign="x") is None
        chat_sender.assert_awaited_once()
