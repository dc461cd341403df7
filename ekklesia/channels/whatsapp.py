"""Outbound WhatsApp messages through the relay webhook.

The webhook belongs to an automation workflow that forwards the text to
WhatsApp. It expects `{"data": {"telefone": ..., "mensagem": ...}}`.
"""

from __future__ import annotations

import logging
import re

import httpx

from ekklesia.config import settings

logger = logging.getLogger(__name__)

# Numbers without a country code are assumed Brazilian.
DEFAULT_COUNTRY_CODE = "55"


def normalize_phone(phone: str | None) -> str:
    """Digits only, with the country code prefixed when missing."""
    digits = re.sub(r"\D", "", phone or "")
    if digits and len(digits) <= 11:
        digits = DEFAULT_COUNTRY_CODE + digits
    return digits


def whatsapp_link(phone: str | None) -> str | None:
    """`wa.me` click-to-chat link, or None when there is no usable number."""
    digits = normalize_phone(phone)
    return f"https://wa.me/{digits}" if digits else None


def _is_configured() -> bool:
    return bool(settings.whatsapp.whatsapp_webhook_url)


async def send_whatsapp_message(to: str, text: str) -> bool:
    """Send a plain text message.

    Returns True on success, False on failure.
    """
    phone = normalize_phone(to)
    if not phone:
        logger.warning("Skipping WhatsApp message without a phone number")
        return False
    if not _is_configured():
        logger.warning("WhatsApp webhook not configured; dropping message to %s", phone)
        return False

    payload = {"data": {"telefone": phone, "mensagem": text}}
    try:
        async with httpx.AsyncClient(timeout=settings.whatsapp.whatsapp_timeout) as client:
            resp = await client.post(settings.whatsapp.whatsapp_webhook_url, json=payload)
            resp.raise_for_status()
            return True
    except httpx.HTTPError:
        logger.exception("Failed to send WhatsApp message to %s", phone)
        return False
