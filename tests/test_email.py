"""Tests for the Resend email channel and message templates."""

from __future__ import annotations

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ekklesia.channels.email import _html_to_text, is_valid_email, send_email
from ekklesia.counseling import messages


@pytest.fixture()
def _email_configured():
    with patch("ekklesia.channels.email.settings") as mock_settings:
        mock_settings.email.resend_api_url = "https://api.resend.com/emails"
        mock_settings.email.resend_api_key = "re_test"
        mock_settings.email.email_from = "Ekklesia Hub <nao-responda@ekklesiahub.com.br>"
        mock_settings.email.email_timeout = 20.0
        yield mock_settings


def _mock_http(mock_client_cls, *, post=None):
    mock_client = AsyncMock()
    mock_resp = MagicMock()
    mock_resp.raise_for_status = lambda: None
    mock_client.post = post or AsyncMock(return_value=mock_resp)
    mock_client_cls.return_value.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client_cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return mock_client


class TestIsValidEmail:
    @pytest.mark.parametrize("address", ["ana@x.com", " ana.silva@igreja.org.br "])
    def test_valid(self, address):
        assert is_valid_email(address)

    @pytest.mark.parametrize("address", [None, "", "ana", "ana@x", "ana @x.com"])
    def test_invalid(self, address):
        assert not is_valid_email(address)


class TestHtmlToText:
    def test_strips_tags(self):
        assert _html_to_text("<p>Olá</p><p>Ana &amp; Bruno</p>") == "Olá\nAna & Bruno"


class TestSendEmail:
    @pytest.mark.asyncio()
    @pytest.mark.usefixtures("_email_configured")
    async def test_posts_to_resend(self):
        with patch("ekklesia.channels.email.httpx.AsyncClient") as mock_client_cls:
            mock_client = _mock_http(mock_client_cls)

            assert await send_email("ana@x.com", "Assunto", "<p>Corpo</p>") is True

        kwargs = mock_client.post.call_args.kwargs
        assert kwargs["json"]["to"] == ["ana@x.com"]
        assert kwargs["json"]["subject"] == "Assunto"
        assert kwargs["json"]["text"] == "Corpo"
        assert kwargs["headers"]["Authorization"] == "Bearer re_test"

    @pytest.mark.asyncio()
    @pytest.mark.usefixtures("_email_configured")
    async def test_http_error_returns_false(self):
        with patch("ekklesia.channels.email.httpx.AsyncClient") as mock_client_cls:
            _mock_http(mock_client_cls, post=AsyncMock(side_effect=httpx.ReadTimeout("slow")))

            assert await send_email("ana@x.com", "Assunto", "<p>Corpo</p>") is False

    @pytest.mark.asyncio()
    @pytest.mark.usefixtures("_email_configured")
    async def test_invalid_recipient(self):
        with patch("ekklesia.channels.email.httpx.AsyncClient") as mock_client_cls:
            assert await send_email("not-an-email", "Assunto", "<p>Corpo</p>") is False
            mock_client_cls.assert_not_called()

    @pytest.mark.asyncio()
    async def test_not_configured(self):
        with patch("ekklesia.channels.email.settings") as mock_settings:
            mock_settings.email.resend_api_key = ""
            assert await send_email("ana@x.com", "Assunto", "<p>Corpo</p>") is False


class TestTemplates:
    def test_request_received_escapes_values(self):
        subject, body = messages.request_received("Ana <b>", "Família", "Bruno", datetime(2030, 3, 4, 10, 0))

        assert subject.startswith("Confirmação de Agendamento")
        assert "Ana &lt;b&gt;" in body
        assert "04/03/2030 às 10:00" in body

    def test_new_request_chat_uses_first_name(self):
        text = messages.new_request_chat("Bruno Lima", "Ana", datetime(2030, 3, 4, 10, 0))

        assert text.startswith("Olá, Bruno!")
        assert "04/03/2030 às 10:00" in text
