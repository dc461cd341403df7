"""Notifier — email and chat delivery for scheduling operations.

Runs strictly after the state change is committed. Nothing here raises:
a missing or malformed address is skipped with a log line, and a failed
delivery comes back as a user-facing warning string.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ekklesia.channels.email import is_valid_email, send_email
from ekklesia.channels.whatsapp import normalize_phone, send_whatsapp_message
from ekklesia.db.store import RecordStoreError
from ekklesia.models.enums import MessageStatus

logger = logging.getLogger(__name__)

EmailSender = Callable[[str, str, str], Awaitable[bool]]
ChatSender = Callable[[str, str], Awaitable[bool]]

MESSAGE_TABLE = "message_history"


class Notifier:
    """Sends one notification at a time and reports failures as warnings."""

    def __init__(
        self,
        store: Any,
        email_sender: EmailSender = send_email,
        chat_sender: ChatSender = send_whatsapp_message,
    ) -> None:
        self._store = store
        self._send_email = email_sender
        self._send_chat = chat_sender

    async def email(self, to: str | None, message: tuple[str, str], *, recipient: str) -> str | None:
        """Send one email.

        Args:
            to: Address; skipped when missing or malformed.
            message: `(subject, html_body)`.
            recipient: Who this is for, used in the warning text.

        Returns:
            A warning when delivery failed, None otherwise.
        """
        if not is_valid_email(to):
            logger.warning("Skipping email to %s: invalid address %r", recipient, to)
            return None

        subject, body = message
        try:
            delivered = await self._send_email(to, subject, body)
        except Exception:
            logger.exception("Email sender raised for %s", to)
            delivered = False
        if delivered:
            return None
        return f"Não foi possível enviar o e-mail para {recipient}."

    async def chat(
        self,
        phone: str | None,
        text: str,
        *,
        recipient: str,
        church_id: str | None,
        campaign: str,
    ) -> str | None:
        """Log and send one chat message.

        The message is written to the message log as pending before the send
        and marked sent once the sender reports success.
        """
        if not normalize_phone(phone):
            logger.warning("Skipping chat message to %s: no phone number", recipient)
            return None

        log_id: str | None = None
        try:
            row = await self._store.insert(MESSAGE_TABLE, {
                "church_id": church_id,
                "campaign_id": f"{campaign}-{int(time.time() * 1000)}",
                "member_name": recipient,
                "member_phone": phone,
                "message_body": text,
                "status": MessageStatus.PENDING.value,
                "sent_by": "System",
            })
            log_id = row["id"]
        except RecordStoreError:
            logger.exception("Could not log chat message to %s", recipient)

        try:
            delivered = await self._send_chat(phone, text)
        except Exception:
            logger.exception("Chat sender raised for %s", recipient)
            delivered = False

        if not delivered:
            return f"Não foi possível enviar a mensagem de WhatsApp para {recipient}."

        if log_id is not None:
            try:
                await self._store.update(MESSAGE_TABLE, {"id": log_id}, {"status": MessageStatus.SENT.value})
            except RecordStoreError:
                logger.exception("Could not mark chat message %s as sent", log_id)
        return None
