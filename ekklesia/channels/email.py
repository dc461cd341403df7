"""Transactional email via the Resend API.

`send_email` never raises: it returns False on any failure so the caller can
surface a warning without losing an already-committed change.
"""

from __future__ import annotations

import html
import logging
import re

import httpx

from ekklesia.config import settings

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def is_valid_email(address: str | None) -> bool:
    """Cheap shape check run before every send."""
    return bool(address) and _EMAIL_RE.match(address.strip()) is not None


def _html_to_text(content: str) -> str:
    """Plain-text alternative for inbox previews."""
    text = re.sub(r"<(br|/p|/div|/li)[^>]*>", "\n", content, flags=re.I)
    text = re.sub(r"<[^>]+>", "", text)
    text = re.sub(r"[ \t]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text).strip()
    return html.unescape(text)


def _is_configured() -> bool:
    return bool(settings.email.resend_api_key)


async def send_email(to: str, subject: str, body_html: str) -> bool:
    """Send one email.

    Returns True on success, False on failure, invalid recipient, or missing
    configuration.
    """
    if not is_valid_email(to):
        logger.warning("Skipping email with invalid recipient: %r", to)
        return False
    if not _is_configured():
        logger.warning("Email not configured; dropping message to %s (%s)", to, subject)
        return False

    payload = {
        "from": settings.email.email_from,
        "to": [to.strip()],
        "subject": subject,
        "html": body_html,
        "text": _html_to_text(body_html),
    }
    headers = {
        "Authorization": f"Bearer {settings.email.resend_api_key}",
        "Content-Type": "application/json",
    }

    try:
        async with httpx.AsyncClient(timeout=settings.email.email_timeout) as client:
            resp = await client.post(settings.email.resend_api_url, json=payload, headers=headers)
            resp.raise_for_status()
            logger.info("Email sent to %s: %s", to, subject)
            return True
    except httpx.HTTPError:
        logger.exception("Failed to send email to %s", to)
        return False
