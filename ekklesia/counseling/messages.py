"""Outbound message templates (Portuguese, user-facing).

Each email builder returns `(subject, html_body)`; chat builders return plain
text. Interpolated values are HTML-escaped.
"""

from __future__ import annotations

from datetime import datetime
from html import escape

from ekklesia.config import settings
from ekklesia.counseling.dates import display

_QUOTE_STYLE = "border-left: 4px solid #ccc; padding-left: 1rem; margin-left: 1rem; font-style: italic;"


def church_name() -> str:
    return settings.branding.default_church_name


def _when(value: datetime) -> tuple[str, str]:
    return value.strftime("%d/%m/%Y"), value.strftime("%H:%M")


# ── Request intake ───────────────────────────────────────────────────


def request_received(member: str, topic: str, counselor: str, when: datetime) -> tuple[str, str]:
    church = escape(church_name())
    day, hour = _when(when)
    return (
        f"Confirmação de Agendamento - {church_name()}",
        f"<h1>Olá, {escape(member)}!</h1>"
        f"<p>Recebemos seu pedido de agendamento de atendimento pastoral na igreja {church}.</p>"
        f"<p><strong>Assunto:</strong> {escape(topic)}</p>"
        f"<p><strong>Conselheiro(a):</strong> {escape(counselor)}</p>"
        f"<p><strong>Data e Hora Solicitada:</strong> {day} às {hour}</p>"
        "<p>Seu pedido está pendente de aprovação. Você receberá um novo e-mail assim que "
        "o conselheiro(a) confirmar o horário.</p>"
        "<p>Fique na paz!</p><br/>"
        f"<p><strong>Equipe de Aconselhamento</strong></p><p>{church}</p>",
    )


def waiting_list(member: str) -> tuple[str, str]:
    church = escape(church_name())
    return (
        f"Confirmação de Fila de Espera - {church_name()}",
        f"<h1>Olá, {escape(member)}!</h1>"
        f"<p>Recebemos sua solicitação de atendimento pastoral na igreja {church}.</p>"
        "<p>No momento, não há conselheiros disponíveis para o tópico/horário selecionado, "
        "mas colocamos você em nossa <strong>fila de espera</strong>.</p>"
        "<p>Assim que um conselheiro estiver disponível para assumir seu caso, você será "
        "notificado por e-mail.</p>"
        "<p>Agradecemos sua paciência.</p>",
    )


def new_request_chat(counselor: str, member: str, when: datetime) -> str:
    day, hour = _when(when)
    return (
        f"Olá, {counselor.split(' ')[0]}! Você recebeu um novo pedido de aconselhamento de "
        f"{member} para {day} às {hour}. Acesse a plataforma para aprovar ou recusar."
    )


# ── Confirmation ─────────────────────────────────────────────────────


def confirmed_member(member: str, counselor: str, when: datetime) -> tuple[str, str]:
    church = escape(church_name())
    day, hour = _when(when)
    return (
        f"Seu agendamento foi confirmado - {church_name()}",
        f"<h1>Olá, {escape(member)}!</h1>"
        f"<p>Boas notícias! Seu agendamento de atendimento pastoral na igreja <strong>{church}</strong> "
        "foi confirmado.</p>"
        f"<p><strong>Conselheiro(a):</strong> {escape(counselor)}</p>"
        f"<p><strong>Data:</strong> {day}</p>"
        f"<p><strong>Hora:</strong> {hour}</p>"
        "<p>Se precisar reagendar, por favor, entre em contato com a secretaria da igreja.</p>"
        "<p>Fique na paz!</p>",
    )


def confirmed_counselor(counselor: str, member: str, when: datetime) -> tuple[str, str]:
    day, hour = _when(when)
    return (
        f"Agendamento Confirmado: {member}",
        f"<h1>Olá, {escape(counselor)}!</h1>"
        f"<p>Você confirmou o agendamento com <strong>{escape(member)}</strong>.</p>"
        f"<p><strong>Data:</strong> {day}</p>"
        f"<p><strong>Hora:</strong> {hour}</p>"
        "<p>O atendimento já está na sua agenda na plataforma.</p><br/>"
        f"<p><strong>{escape(settings.branding.app_name)}</strong></p>",
    )


def scheduled_chat(counselor: str, member: str, when: datetime) -> str:
    day, hour = _when(when)
    return (
        f"Olá, {counselor.split(' ')[0]}! Um atendimento com {member} está confirmado na sua "
        f"agenda para {day} às {hour}."
    )


# ── Rejection ────────────────────────────────────────────────────────


def rejected_member(member: str, counselor: str, reason: str) -> tuple[str, str]:
    church = escape(church_name())
    return (
        f"Atualização sobre seu agendamento - {church_name()}",
        f"<h1>Olá, {escape(member)}!</h1>"
        "<p>Houve uma atualização sobre seu pedido de agendamento de atendimento pastoral na "
        f"igreja <strong>{church}</strong>.</p>"
        f"<p>O(a) conselheiro(a) {escape(counselor)} não poderá atendê-lo(a) neste momento, e sua "
        "solicitação foi movida para a fila de espera para que outro conselheiro possa assumir.</p>"
        "<p><strong>Justificativa do conselheiro(a):</strong></p>"
        f'<blockquote style="{_QUOTE_STYLE}">{escape(reason)}</blockquote>'
        "<p>Agradecemos sua paciência. Assim que um novo conselheiro aceitar seu pedido, você será "
        "notificado(a).</p>"
        "<p>Fique na paz!</p>",
    )


# ── Reschedule ───────────────────────────────────────────────────────


def rescheduled_member(member: str, when: datetime) -> tuple[str, str]:
    return (
        "Seu atendimento foi reagendado",
        f"<p>Olá, {escape(member)}.</p>"
        f"<p>Seu atendimento pastoral foi reagendado para <strong>{display(when)}</strong>.</p>",
    )


def rescheduled_counselor(counselor: str, member: str, when: datetime) -> tuple[str, str]:
    return (
        f"Atendimento reagendado: {member}",
        f"<p>Olá, {escape(counselor)}.</p>"
        f"<p>O atendimento com <strong>{escape(member)}</strong> foi reagendado para "
        f"<strong>{display(when)}</strong>.</p>",
    )


# ── Cancellation ─────────────────────────────────────────────────────


def canceled_member(member: str, reason: str) -> tuple[str, str]:
    return (
        "Seu atendimento pastoral foi cancelado",
        f"<p>Olá, {escape(member)}.</p>"
        "<p>Informamos que seu atendimento pastoral foi cancelado.</p>"
        f"<p><strong>Motivo:</strong> {escape(reason)}</p>"
        "<p>Se precisar, você pode solicitar um novo agendamento na plataforma.</p>",
    )


def canceled_counselor(counselor: str, member: str, reason: str) -> tuple[str, str]:
    return (
        f"Atendimento cancelado: {member}",
        f"<p>Olá, {escape(counselor)}.</p>"
        f"<p>O atendimento com {escape(member)} foi cancelado.</p>"
        f"<p><strong>Motivo:</strong> {escape(reason)}</p>"
        "<p>Este é um e-mail de confirmação para seus registros.</p>",
    )
