"""Scheduling service — every counseling operation, composed over the record store.

Each write follows the same cycle:

1. validate the input (nothing is read or written on failure);
2. load the appointment and let the state machine check the event;
3. when a time is involved, re-check the slot against a fresh read of the
   counselor's other appointments;
4. commit with a compare-and-swap on the appointment's version;
5. emit one SystemEvent;
6. notify the affected people. Delivery failures come back as warnings on
   the result; they never undo the committed change.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from pydantic import ValidationError

from ekklesia.channels.email import is_valid_email
from ekklesia.channels.whatsapp import whatsapp_link
from ekklesia.counseling import messages
from ekklesia.counseling.availability import WeeklyAvailability
from ekklesia.counseling.dates import combine, display, now_local, to_hhmm
from ekklesia.counseling.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    SlotUnavailableError,
    StoreError,
    ValidationFailedError,
)
from ekklesia.counseling.history import HistoryEntry, build_histories, history_for
from ekklesia.counseling.machine import AppointmentStateMachine, appointment_machine
from ekklesia.counseling.notifications import Notifier
from ekklesia.counseling.slots import HOLDING_STATUSES, TimeSlot, compute_slots, consumed_times, find_slot
from ekklesia.counseling.states import Event
from ekklesia.counseling.views import (
    AppointmentView,
    CounselingStats,
    CounselorAgenda,
    compute_stats,
    decorate,
    filter_appointments,
    parse_month,
    split_agenda,
)
from ekklesia.counseling.visibility import can_edit_meeting
from ekklesia.db.store import DuplicateRecordError, RecordStoreError, record_store
from ekklesia.events import emit
from ekklesia.models.enums import ActivityAction, AppointmentStatus
from ekklesia.schemas.counseling import (
    Activity,
    Actor,
    Appointment,
    BookingRequestIn,
    CounselorIn,
    CounselorProfile,
    CounselorUpdateIn,
    DirectBookingIn,
    Meeting,
    MeetingInput,
    decode_appointments,
)
from ekklesia.schemas.events import EventType, SystemEvent

logger = logging.getLogger(__name__)

APPOINTMENTS = "counseling_appointments"
COUNSELORS = "counselors"

SYSTEM_USER = "Sistema"

# A person may hold only one of these at a time.
ACTIVE_REQUEST_STATUSES = HOLDING_STATUSES | {AppointmentStatus.QUEUED}

SLOT_TAKEN = "O horário selecionado não está mais disponível. Atualize a agenda e escolha outro horário."
STALE_WRITE = "Este atendimento foi alterado por outra pessoa. Atualize a página e tente novamente."
STORE_FAILED = "Não foi possível salvar as alterações. Tente novamente em instantes."


@dataclass
class OperationResult:
    """Outcome of a write: the saved appointment plus any delivery warnings."""

    appointment: Appointment | None
    warnings: list[str] = field(default_factory=list)
    deleted: bool = False
    link: str | None = None

    @property
    def fully_notified(self) -> bool:
        return not self.warnings


def _require_text(value: str | None, message: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailedError(message)
    return text


def _slot_instant(day: date | None, hhmm: str | None) -> datetime:
    if day is None or not hhmm:
        raise ValidationFailedError("Selecione a data e o horário do atendimento.")
    try:
        return combine(day, hhmm)
    except ValueError:
        raise ValidationFailedError(f"Horário inválido: {hhmm}.") from None


def _clean_topics(topics: list[str] | None) -> list[str]:
    seen: list[str] = []
    for topic in topics or []:
        topic = topic.strip()
        if topic and topic not in seen:
            seen.append(topic)
    return seen


def _same_requester(appointment: Appointment, name: str, email: str | None, phone: str | None) -> bool:
    """Same name and the same email (case-insensitive) or the same phone."""
    if (appointment.member_name or "").strip() != name:
        return False
    if email and (appointment.member_email or "").strip().lower() == email.lower():
        return True
    return bool(phone) and (appointment.member_phone or "").strip() == phone


def _counselor_snapshot(counselor: CounselorProfile) -> dict[str, Any]:
    return {
        "counselor_id": counselor.id,
        "counselor_name": counselor.name,
        "counselor_email": counselor.email,
        "counselor_phone": counselor.phone,
    }


class SchedulingService:
    """Counseling appointment operations."""

    def __init__(
        self,
        store: Any = record_store,
        notifier: Notifier | None = None,
        machine: AppointmentStateMachine = appointment_machine,
    ) -> None:
        self._store = store
        self._notifier = notifier or Notifier(store)
        self._machine = machine

    # ── Store access ─────────────────────────────────────────────────

    async def _find(self, table: str, filters: dict[str, Any]) -> list[dict[str, Any]]:
        try:
            return await self._store.find(table, filters)
        except RecordStoreError as exc:
            raise StoreError("Não foi possível carregar os dados. Tente novamente em instantes.") from exc

    async def _insert(self, appointment: Appointment) -> Appointment:
        try:
            row = await self._store.insert(APPOINTMENTS, appointment.to_record())
        except DuplicateRecordError as exc:
            raise SlotUnavailableError(SLOT_TAKEN) from exc
        except RecordStoreError as exc:
            raise StoreError(STORE_FAILED) from exc
        return Appointment.from_record(row)

    async def _commit(self, before: Appointment, after: Appointment) -> Appointment:
        """Write `after` only if the stored version is still `before.version`.

        Raises:
            SlotUnavailableError: If the live-slot unique index rejected the write.
            ConflictError: If someone else wrote the appointment first.
            StoreError: If the write failed.
        """
        patch = {**after.to_patch(), "version": before.version + 1}
        try:
            rows = await self._store.update(APPOINTMENTS, {"id": before.id, "version": before.version}, patch)
        except DuplicateRecordError as exc:
            raise SlotUnavailableError(SLOT_TAKEN) from exc
        except RecordStoreError as exc:
            logger.error("Commit failed for appointment %s", before.id)
            raise StoreError(STORE_FAILED) from exc

        if not rows:
            logger.warning("Lost compare-and-swap on appointment %s (v%s)", before.id, before.version)
            raise ConflictError(STALE_WRITE)
        return Appointment.from_record(rows[0])

    async def _emit(
        self,
        event_type: EventType,
        appointment: Appointment,
        actor: Actor | None,
        **data: Any,
    ) -> None:
        await emit(SystemEvent(
            event_type=event_type,
            appointment_id=appointment.id,
            church_id=appointment.church_id,
            actor_id=actor.id if actor else "system",
            actor_role=actor.role.value if actor else "system",
            data={"status": appointment.status.value, **data},
            source_module="counseling.service",
        ))

    # ── Reads ────────────────────────────────────────────────────────

    async def get_appointment(self, appointment_id: str, actor: Actor | None = None) -> Appointment:
        """Load and decode one appointment.

        Raises:
            NotFoundError: If it does not exist, or belongs to another church than the actor's.
        """
        rows = await self._find(APPOINTMENTS, {"id": appointment_id})
        if not rows:
            raise NotFoundError("Atendimento não encontrado.")
        try:
            appointment = Appointment.from_record(rows[0])
        except ValidationError as exc:
            logger.error("Appointment %s cannot be decoded: %s", appointment_id, exc)
            raise StoreError("O registro deste atendimento está corrompido.") from exc
        if actor and actor.church_id and appointment.church_id and actor.church_id != appointment.church_id:
            raise NotFoundError("Atendimento não encontrado.")
        return appointment

    async def get_counselor(self, counselor_id: str) -> CounselorProfile:
        rows = await self._find(COUNSELORS, {"id": counselor_id})
        if not rows:
            raise NotFoundError("Conselheiro não encontrado.")
        return CounselorProfile.from_record(rows[0])

    async def list_counselors(self, church_id: str, *, include_inactive: bool = False) -> list[CounselorProfile]:
        filters: dict[str, Any] = {"church_id": church_id}
        if not include_inactive:
            filters["is_active"] = True
        rows = await self._find(COUNSELORS, filters)
        return sorted((CounselorProfile.from_record(r) for r in rows), key=lambda c: c.name)

    async def church_appointments(self, church_id: str) -> list[Appointment]:
        return decode_appointments(await self._find(APPOINTMENTS, {"church_id": church_id}))

    async def _counselor_holds(self, counselor_id: str) -> list[Appointment]:
        """Fresh read of the counselor's appointments that hold a slot."""
        rows = await self._find(APPOINTMENTS, {
            "form_data.counselor_id": counselor_id,
            "status__in": [s.value for s in HOLDING_STATUSES],
        })
        return decode_appointments(rows)

    async def available_slots(
        self,
        counselor_id: str,
        day: date,
        *,
        exclude_id: str | None = None,
    ) -> list[TimeSlot]:
        """Slots for one counselor and day, each flagged booked or free."""
        counselor = await self.get_counselor(counselor_id)
        holds = await self._counselor_holds(counselor_id)
        return compute_slots(counselor.availability, day, holds, exclude_id=exclude_id)

    async def appointment_history(self, appointment_id: str, actor: Actor | None = None) -> list[HistoryEntry]:
        appointment = await self.get_appointment(appointment_id, actor)
        histories = build_histories(await self.church_appointments(appointment.church_id))
        return history_for(appointment, histories)

    async def appointment_detail(self, appointment_id: str, viewer: Actor) -> AppointmentView:
        appointment = await self.get_appointment(appointment_id, viewer)
        church = await self.church_appointments(appointment.church_id)
        return decorate([appointment], church, viewer)[0]

    async def list_appointments(
        self,
        church_id: str,
        viewer: Actor,
        *,
        counselor_id: str | None = None,
        search: str | None = None,
        statuses: list[AppointmentStatus] | None = None,
    ) -> list[AppointmentView]:
        """Church-wide list, newest first, decorated with history."""
        church = await self.church_appointments(church_id)
        selected = filter_appointments(church, counselor_id=counselor_id, search=search, statuses=statuses)
        return decorate(selected, church, viewer)

    async def counselor_agenda(self, actor: Actor) -> CounselorAgenda:
        """The acting counselor's own schedule split into pending / upcoming / past."""
        if actor.church_id is None:
            return CounselorAgenda()
        church = await self.church_appointments(actor.church_id)
        own = [a for a in church if a.counselor_id == actor.id]
        pending, upcoming, past = split_agenda(own, now_local())
        return CounselorAgenda(
            pending=decorate(pending, church, actor),
            upcoming=decorate(upcoming, church, actor),
            past=decorate(past, church, actor),
        )

    async def transfer_candidates(self, appointment_id: str, actor: Actor | None = None) -> list[CounselorProfile]:
        """Active counselors of the same church, excluding the current one."""
        appointment = await self.get_appointment(appointment_id, actor)
        if appointment.church_id is None:
            return []
        return [
            c for c in await self.list_counselors(appointment.church_id)
            if c.id != appointment.counselor_id
        ]

    async def queue(self, church_id: str, viewer: Actor) -> list[AppointmentView]:
        """Unassigned appointments awaiting a counselor."""
        return await self.list_appointments(church_id, viewer, statuses=[AppointmentStatus.QUEUED])

    async def counseling_stats(self, church_id: str | None, month: str | None = None) -> CounselingStats:
        """Statistics for the church, limited to `month` ('YYYY-MM') when given."""
        if month:
            try:
                parse_month(month)
            except ValueError:
                raise ValidationFailedError("Informe o mês no formato AAAA-MM.") from None
        if not church_id:
            return CounselingStats()
        return compute_stats(await self.church_appointments(church_id), month)

    # ── Shared checks ────────────────────────────────────────────────

    async def _ensure_slot_free(self, counselor: CounselorProfile, when: datetime, exclude_id: str | None) -> None:
        holds = await self._counselor_holds(counselor.id)
        slot = find_slot(counselor.availability, when.date(), to_hhmm(when), holds, exclude_id=exclude_id)
        if slot is None:
            raise ValidationFailedError("O horário escolhido não faz parte da agenda do conselheiro.")
        if slot.is_booked:
            logger.info("Stale slot %s for counselor %s", when, counselor.id)
            raise SlotUnavailableError(SLOT_TAKEN)

    async def _ensure_counselor_free_at(self, counselor: CounselorProfile, when: datetime, exclude_id: str) -> None:
        """The counselor holds nothing else at that exact instant (offered or not)."""
        holds = await self._counselor_holds(counselor.id)
        if to_hhmm(when) in consumed_times(when.date(), holds, exclude_id=exclude_id):
            raise SlotUnavailableError(f"{counselor.name} já possui um atendimento neste horário.")

    async def _assignable_counselor(self, counselor_id: str | None, church_id: str | None) -> CounselorProfile:
        if not counselor_id:
            raise ValidationFailedError("Selecione um conselheiro.")
        try:
            counselor = await self.get_counselor(counselor_id)
        except NotFoundError:
            raise ValidationFailedError("Conselheiro não encontrado.") from None
        if not counselor.is_active or (church_id and counselor.church_id != church_id):
            raise ValidationFailedError("Este conselheiro não está disponível para esta igreja.")
        return counselor

    async def _acting_counselor(self, actor: Actor) -> CounselorProfile:
        try:
            counselor = await self.get_counselor(actor.id)
        except NotFoundError:
            raise PermissionDeniedError("Apenas conselheiros podem assumir atendimentos.") from None
        if not counselor.is_active:
            raise PermissionDeniedError("Seu perfil de conselheiro está inativo.")
        return counselor

    async def _counselor_phone(self, appointment: Appointment) -> str | None:
        if appointment.counselor_phone or not appointment.counselor_id:
            return appointment.counselor_phone
        try:
            return (await self.get_counselor(appointment.counselor_id)).phone
        except (NotFoundError, StoreError):
            return None

    # ── Intake ───────────────────────────────────────────────────────

    async def submit_request(self, request: BookingRequestIn) -> OperationResult:
        """Public self-service request.

        With a counselor and slot the request is `Pendente` and holds the slot;
        without them it goes to the waiting list (`Na Fila`).

        Raises:
            ValidationFailedError: Missing name/contact, half-filled slot, bad counselor.
            ConflictError: The person already has an active request.
            SlotUnavailableError: The chosen slot was taken meanwhile.
        """
        member = request.member
        name = _require_text(member.name, "Informe seu nome.")
        if not is_valid_email(member.email) and not (member.phone or "").strip():
            raise ValidationFailedError("Informe um e-mail válido ou um telefone para contato.")

        waiting_list = request.counselor_id is None and request.date is None and not request.time
        when = now_local() if waiting_list else _slot_instant(request.date, request.time)

        candidate = Appointment(
            id=str(uuid.uuid4()),
            church_id=request.church_id,
            status=AppointmentStatus.QUEUED if waiting_list else AppointmentStatus.PENDING,
            member_name=name,
            member_email=(member.email or "").strip() or None,
            member_phone=(member.phone or "").strip() or None,
            member_age=member.age,
            member_gender=member.gender,
            member_marital_status=member.marital_status,
            date=when,
            topic=request.topic or None,
            details=request.details,
            activities=[Activity(
                user=SYSTEM_USER,
                action=ActivityAction.CREATED.value,
                details="Solicitação de atendimento recebida através do formulário público.",
            )],
        )

        active = decode_appointments(await self._find(APPOINTMENTS, {
            "church_id": request.church_id,
            "status__in": [s.value for s in ACTIVE_REQUEST_STATUSES],
        }))
        if any(_same_requester(a, name, candidate.member_email, candidate.member_phone) for a in active):
            raise ConflictError("Você já possui uma solicitação de atendimento ativa.")

        counselor: CounselorProfile | None = None
        if not waiting_list:
            counselor = await self._assignable_counselor(request.counselor_id, request.church_id)
            candidate = candidate.model_copy(update=_counselor_snapshot(counselor))
            await self._ensure_slot_free(counselor, when, None)

        saved = await self._insert(candidate)
        await self._emit(EventType.APPOINTMENT_REQUESTED, saved, None, waiting_list=waiting_list)
        logger.info("Counseling request %s created (%s)", saved.id, saved.status.value)

        if counselor is None:
            warnings = [await self._notifier.email(saved.member_email, messages.waiting_list(name), recipient=name)]
        else:
            warnings = [
                await self._notifier.email(
                    saved.member_email,
                    messages.request_received(name, saved.topic or "", counselor.name, when),
                    recipient=name,
                ),
                await self._notifier.chat(
                    counselor.phone,
                    messages.new_request_chat(counselor.name, name, when),
                    recipient=counselor.name,
                    church_id=saved.church_id,
                    campaign="new-request",
                ),
            ]
        return OperationResult(saved, [w for w in warnings if w])

    async def book_directly(self, actor: Actor, booking: DirectBookingIn) -> OperationResult:
        """A counselor puts an appointment straight onto their own agenda as `Marcado`."""
        name = _require_text(booking.member.name, "Informe o nome da pessoa atendida.")
        when = _slot_instant(booking.date, booking.time)
        counselor = await self._acting_counselor(actor)

        candidate = Appointment(
            id=str(uuid.uuid4()),
            church_id=counselor.church_id,
            status=AppointmentStatus.SCHEDULED,
            **_counselor_snapshot(counselor),
            member_name=name,
            member_email=(booking.member.email or "").strip() or None,
            member_phone=(booking.member.phone or "").strip() or None,
            member_age=booking.member.age,
            member_gender=booking.member.gender,
            member_marital_status=booking.member.marital_status,
            date=when,
            topic=booking.topic or None,
            details=booking.details,
            activities=[Activity(
                user=actor.name,
                action=ActivityAction.CREATED.value,
                details=f"Atendimento adicionado diretamente à agenda por {actor.name}.",
            )],
        )
        await self._ensure_slot_free(counselor, when, None)
        saved = await self._insert(candidate)
        await self._emit(EventType.APPOINTMENT_BOOKED, saved, actor)

        warnings = [
            w
            for w in (
                await self._notifier.email(
                    saved.member_email,
                    messages.confirmed_member(name, counselor.name, when),
                    recipient=name,
                ),
                await self._notifier.chat(
                    counselor.phone,
                    messages.scheduled_chat(counselor.name, name, when),
                    recipient=counselor.name,
                    church_id=saved.church_id,
                    campaign="direct-booking",
                ),
            )
            if w
        ]
        return OperationResult(saved, warnings)

    # ── Counselor decisions ──────────────────────────────────────────

    async def approve(self, appointment_id: str, actor: Actor) -> OperationResult:
        """Assigned counselor confirms a pending request (`Pendente` → `Marcado`)."""
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.APPROVE, actor)
        if appointment.date is None:
            raise ValidationFailedError("Este atendimento não possui uma data válida. Reagende antes de aprovar.")

        updated = self._machine.apply(appointment, Event.APPROVE, actor)
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.APPOINTMENT_APPROVED, saved, actor)

        counselor_name = saved.counselor_name or actor.name
        warnings = [
            w
            for w in (
                await self._notifier.email(
                    saved.member_email,
                    messages.confirmed_member(saved.member_name, counselor_name, saved.date),
                    recipient=saved.member_name,
                ),
                await self._notifier.email(
                    saved.counselor_email,
                    messages.confirmed_counselor(counselor_name, saved.member_name, saved.date),
                    recipient=counselor_name,
                ),
                await self._notifier.chat(
                    await self._counselor_phone(saved),
                    messages.scheduled_chat(counselor_name, saved.member_name, saved.date),
                    recipient=counselor_name,
                    church_id=saved.church_id,
                    campaign="approved-booking",
                ),
            )
            if w
        ]
        return OperationResult(saved, warnings)

    async def reject(self, appointment_id: str, actor: Actor, reason: str | None) -> OperationResult:
        """Assigned counselor declines a pending request; it moves to the waiting list."""
        reason = _require_text(reason, "Informe o motivo da recusa.")
        appointment = await self.get_appointment(appointment_id, actor)
        updated = self._machine.apply(
            appointment,
            Event.REJECT,
            actor,
            details=f'Status alterado de "{appointment.status.value}" para "{AppointmentStatus.QUEUED.value}". '
            f'Motivo: "{reason}"',
            changes={"rejection_reason": reason, "rejected_by": actor.name},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.APPOINTMENT_REJECTED, saved, actor, reason=reason)

        warning = await self._notifier.email(
            saved.member_email,
            messages.rejected_member(saved.member_name, saved.counselor_name or actor.name, reason),
            recipient=saved.member_name,
        )
        return OperationResult(saved, [warning] if warning else [])

    async def return_to_queue(self, appointment_id: str, actor: Actor, reason: str | None) -> OperationResult:
        """Counselor gives a confirmed appointment back to the unassigned queue."""
        reason = _require_text(reason, "Informe o motivo da devolução.")
        appointment = await self.get_appointment(appointment_id, actor)
        updated = self._machine.apply(
            appointment,
            Event.RETURN_TO_QUEUE,
            actor,
            details=f'Atendimento devolvido para a fila por {actor.name}. Motivo: "{reason}"',
            changes={
                "counselor_id": None,
                "counselor_name": None,
                "counselor_email": None,
                "counselor_phone": None,
                "rejection_reason": reason,
                "rejected_by": actor.name,
            },
        )
        saved = await self._commit(appointment, updated)
        await self._emit(
            EventType.APPOINTMENT_RETURNED_TO_QUEUE,
            saved,
            actor,
            previous_counselor_id=appointment.counselor_id,
            reason=reason,
        )
        return OperationResult(saved)

    # ── Time changes ─────────────────────────────────────────────────

    async def reschedule(self, appointment_id: str, actor: Actor, day: date, hhmm: str) -> OperationResult:
        """Move a live appointment to another free slot of the same counselor."""
        when = _slot_instant(day, hhmm)
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.RESCHEDULE, actor)
        if not appointment.counselor_id:
            raise ValidationFailedError("Este atendimento não possui conselheiro atribuído.")
        if appointment.date == when:
            raise ValidationFailedError("Escolha um horário diferente do atual.")

        counselor = await self.get_counselor(appointment.counselor_id)
        await self._ensure_slot_free(counselor, when, appointment.id)

        updated = self._machine.apply(
            appointment,
            Event.RESCHEDULE,
            actor,
            details=f"Atendimento reagendado para {display(when)}.",
            changes={"date": when},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(
            EventType.APPOINTMENT_RESCHEDULED,
            saved,
            actor,
            previous_date=appointment.date.isoformat() if appointment.date else None,
            new_date=when.isoformat(),
        )

        counselor_name = saved.counselor_name or counselor.name
        warnings = [
            w
            for w in (
                await self._notifier.email(
                    saved.member_email,
                    messages.rescheduled_member(saved.member_name, when),
                    recipient=saved.member_name,
                ),
                await self._notifier.email(
                    saved.counselor_email,
                    messages.rescheduled_counselor(counselor_name, saved.member_name, when),
                    recipient=counselor_name,
                ),
            )
            if w
        ]
        return OperationResult(saved, warnings)

    # ── Cancellation ─────────────────────────────────────────────────

    async def cancel(self, appointment_id: str, actor: Actor, reason: str | None) -> OperationResult:
        """Cancel with a reason. Irreversible; the record is kept."""
        reason = _require_text(reason, "Informe o motivo do cancelamento.")
        appointment = await self.get_appointment(appointment_id, actor)
        updated = self._machine.apply(
            appointment,
            Event.CANCEL,
            actor,
            details=f'Atendimento cancelado pelo motivo: "{reason}".',
            changes={"cancellation_reason": reason},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.APPOINTMENT_CANCELLED, saved, actor, reason=reason)

        counselor_name = saved.counselor_name or ""
        warnings = [
            w
            for w in (
                await self._notifier.email(
                    saved.member_email,
                    messages.canceled_member(saved.member_name, reason),
                    recipient=saved.member_name,
                ),
                await self._notifier.email(
                    saved.counselor_email,
                    messages.canceled_counselor(counselor_name, saved.member_name, reason),
                    recipient=counselor_name or "o conselheiro",
                ),
            )
            if w
        ]
        return OperationResult(saved, warnings)

    async def cancel_definitively(self, appointment_id: str, actor: Actor) -> OperationResult:
        """Remove the appointment record entirely. Unrecoverable."""
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.DELETE, actor)
        try:
            removed = await self._store.delete(APPOINTMENTS, {"id": appointment.id, "version": appointment.version})
        except RecordStoreError as exc:
            raise StoreError(STORE_FAILED) from exc
        if not removed:
            raise ConflictError(STALE_WRITE)

        await self._emit(
            EventType.APPOINTMENT_DELETED,
            appointment,
            actor,
            member_name=appointment.member_name,
            counselor_id=appointment.counselor_id,
        )
        logger.info("Appointment %s deleted by %s", appointment.id, actor.id)
        return OperationResult(None, deleted=True)

    # ── Reassignment ─────────────────────────────────────────────────

    async def transfer(
        self,
        appointment_id: str,
        actor: Actor,
        counselor_id: str | None,
        reason: str | None,
    ) -> OperationResult:
        """Hand a confirmed appointment to another counselor of the same church."""
        reason = _require_text(reason, "Informe o motivo da transferência.")
        if not counselor_id:
            raise ValidationFailedError("Selecione o conselheiro que receberá o atendimento.")
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.TRANSFER, actor)
        if counselor_id == appointment.counselor_id:
            raise ValidationFailedError("O atendimento já está com este conselheiro.")

        target = await self._assignable_counselor(counselor_id, appointment.church_id)
        if appointment.date is not None:
            await self._ensure_counselor_free_at(target, appointment.date, appointment.id)

        previous = appointment.counselor_name or "Não atribuído"
        updated = self._machine.apply(
            appointment,
            Event.TRANSFER,
            actor,
            details=f'Atendimento transferido de {previous} para {target.name}. Motivo: "{reason}"',
            changes=_counselor_snapshot(target),
        )
        saved = await self._commit(appointment, updated)
        await self._emit(
            EventType.APPOINTMENT_TRANSFERRED,
            saved,
            actor,
            from_counselor_id=appointment.counselor_id,
            to_counselor_id=target.id,
            reason=reason,
        )
        return OperationResult(saved)

    async def assign_from_queue(
        self,
        appointment_id: str,
        actor: Actor,
        counselor_id: str,
        day: date,
        hhmm: str,
    ) -> OperationResult:
        """Leadership assigns a queued appointment to a counselor at a free slot."""
        when = _slot_instant(day, hhmm)
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.ASSIGN, actor)
        counselor = await self._assignable_counselor(counselor_id, appointment.church_id)
        await self._ensure_slot_free(counselor, when, appointment.id)

        updated = self._machine.apply(
            appointment,
            Event.ASSIGN,
            actor,
            details=f"Atendimento atribuído a {counselor.name} por {actor.name}.",
            changes={**_counselor_snapshot(counselor), "date": when},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.APPOINTMENT_ASSIGNED, saved, actor, counselor_id=counselor.id)
        return OperationResult(saved, await self._notify_scheduled(saved, counselor, "assigned-booking"))

    async def claim_from_queue(self, appointment_id: str, actor: Actor, day: date, hhmm: str) -> OperationResult:
        """A counselor takes a queued appointment onto their own agenda."""
        when = _slot_instant(day, hhmm)
        appointment = await self.get_appointment(appointment_id, actor)
        self._machine.check(appointment, Event.CLAIM, actor)
        counselor = await self._acting_counselor(actor)
        if appointment.church_id and counselor.church_id != appointment.church_id:
            raise NotFoundError("Atendimento não encontrado.")
        await self._ensure_slot_free(counselor, when, appointment.id)

        updated = self._machine.apply(
            appointment,
            Event.CLAIM,
            actor,
            details=f"{actor.name} assumiu o atendimento para {display(when)}.",
            changes={**_counselor_snapshot(counselor), "date": when},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.APPOINTMENT_CLAIMED, saved, actor, counselor_id=counselor.id)
        return OperationResult(saved, await self._notify_scheduled(saved, counselor, "claimed-booking"))

    async def _notify_scheduled(self, saved: Appointment, counselor: CounselorProfile, campaign: str) -> list[str]:
        return [
            w
            for w in (
                await self._notifier.email(
                    saved.member_email,
                    messages.confirmed_member(saved.member_name, counselor.name, saved.date),
                    recipient=saved.member_name,
                ),
                await self._notifier.chat(
                    counselor.phone,
                    messages.scheduled_chat(counselor.name, saved.member_name, saved.date),
                    recipient=counselor.name,
                    church_id=saved.church_id,
                    campaign=campaign,
                ),
            )
            if w
        ]

    # ── Administrative override ──────────────────────────────────────

    async def change_status(
        self,
        appointment_id: str,
        actor: Actor,
        status: AppointmentStatus,
        reason: str | None = None,
    ) -> OperationResult:
        """Status dropdown. `Cancelado` goes through `cancel` and needs a reason."""
        if status is AppointmentStatus.CANCELED:
            return await self.cancel(appointment_id, actor, reason)

        appointment = await self.get_appointment(appointment_id, actor)
        updated = self._machine.apply(appointment, Event.OVERRIDE, actor, target=status)
        saved = await self._commit(appointment, updated)
        await self._emit(
            EventType.APPOINTMENT_STATUS_OVERRIDDEN,
            saved,
            actor,
            previous_status=appointment.status.value,
        )
        return OperationResult(saved)

    # ── Session notes and contact ────────────────────────────────────

    def _ensure_can_annotate(self, appointment: Appointment, actor: Actor) -> None:
        if appointment.status is AppointmentStatus.CANCELED:
            raise ValidationFailedError("Não é possível alterar um atendimento cancelado.")
        if not (actor.is_leadership or appointment.counselor_id == actor.id):
            raise PermissionDeniedError("Apenas o conselheiro responsável pode registrar sessões.")

    async def register_meeting(self, appointment_id: str, actor: Actor, data: MeetingInput) -> OperationResult:
        topic = _require_text(data.topic, "Informe o tema da sessão.")
        notes = _require_text(data.notes, "Informe as anotações da sessão.")
        appointment = await self.get_appointment(appointment_id, actor)
        self._ensure_can_annotate(appointment, actor)

        meeting = Meeting(
            date=data.date,
            topic=topic,
            notes=notes,
            next_steps=data.next_steps,
            recorded_by=actor.name,
            recorded_by_id=actor.id,
            is_confidential=data.is_confidential,
        )
        updated = self._machine.annotate(
            appointment,
            ActivityAction.ADD_MEETING,
            actor.name,
            details=f'Sessão registrada: "{topic}" em {data.date.strftime("%d/%m/%Y")}.',
            changes={"meetings": [*appointment.meetings, meeting]},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.MEETING_RECORDED, saved, actor, meeting_id=meeting.id)
        return OperationResult(saved)

    async def update_meeting(
        self,
        appointment_id: str,
        actor: Actor,
        meeting_id: str,
        data: MeetingInput,
    ) -> OperationResult:
        """Edit a session. Only the counselor who recorded it may do so."""
        topic = _require_text(data.topic, "Informe o tema da sessão.")
        notes = _require_text(data.notes, "Informe as anotações da sessão.")
        appointment = await self.get_appointment(appointment_id, actor)
        current = next((m for m in appointment.meetings if m.id == meeting_id), None)
        if current is None:
            raise NotFoundError("Sessão não encontrada.")
        if not can_edit_meeting(current, actor):
            raise PermissionDeniedError("Apenas quem registrou a sessão pode editá-la.")

        edited = current.model_copy(update={
            "date": data.date,
            "topic": topic,
            "notes": notes,
            "next_steps": data.next_steps,
            "is_confidential": data.is_confidential,
        })
        updated = self._machine.annotate(
            appointment,
            ActivityAction.EDIT_MEETING,
            actor.name,
            details=f'Sessão "{topic}" atualizada.',
            changes={"meetings": [edited if m.id == meeting_id else m for m in appointment.meetings]},
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.MEETING_UPDATED, saved, actor, meeting_id=meeting_id)
        return OperationResult(saved)

    async def register_whatsapp_contact(self, appointment_id: str, actor: Actor) -> OperationResult:
        """Log a WhatsApp contact attempt and return the click-to-chat link."""
        appointment = await self.get_appointment(appointment_id, actor)
        link = whatsapp_link(appointment.member_phone)
        if link is None:
            raise ValidationFailedError("Este atendimento não possui telefone para contato.")
        self._ensure_can_annotate(appointment, actor)

        updated = self._machine.annotate(
            appointment,
            ActivityAction.WHATSAPP_CONTACT,
            actor.name,
            details=f"Contato via WhatsApp iniciado por {actor.name}.",
        )
        saved = await self._commit(appointment, updated)
        await self._emit(EventType.CONTACT_LOGGED, saved, actor)
        return OperationResult(saved, link=link)

    # ── Counselor roster ─────────────────────────────────────────────

    async def _emit_roster(self, event_type: EventType, counselor: CounselorProfile, actor: Actor) -> None:
        await emit(SystemEvent(
            event_type=event_type,
            church_id=counselor.church_id,
            actor_id=actor.id,
            actor_role=actor.role.value,
            data={"counselor_id": counselor.id, "name": counselor.name},
            source_module="counseling.service",
        ))

    async def create_counselor(
        self,
        actor: Actor,
        data: CounselorIn,
        *,
        user_id: str | None = None,
    ) -> CounselorProfile:
        """Register a counselor profile.

        Without `user_id`, or with the actor's own id, this is self-registration
        into `data.church_id`. Leadership may register another user into their
        own church. Availability is stored in its canonical shape whatever
        shape it arrives in.

        Raises:
            PermissionDeniedError: Registering someone else without being leadership.
            ValidationFailedError: Missing name or church, invalid email.
            ConflictError: The user already has a counselor profile.
        """
        target_id = user_id or actor.id
        if target_id == actor.id:
            church_id = actor.church_id or data.church_id
        elif actor.is_leadership:
            church_id = actor.church_id
        else:
            raise PermissionDeniedError("Apenas a liderança pode cadastrar outros conselheiros.")
        if not church_id:
            raise ValidationFailedError("Informe a igreja do conselheiro.")
        name = _require_text(data.name, "Informe o nome do conselheiro.")
        if not is_valid_email(data.email):
            raise ValidationFailedError("Informe um e-mail válido.")
        if await self._find(COUNSELORS, {"id": target_id}):
            raise ConflictError("Este usuário já possui um perfil de conselheiro.")

        record = {
            "id": target_id,
            "church_id": church_id,
            "name": name,
            "email": data.email.strip(),
            "phone": (data.phone or "").strip() or None,
            "gender": data.gender or None,
            "topics": _clean_topics(data.topics),
            "availability": WeeklyAvailability.decode(data.availability).to_dict(),
            "is_active": True,
        }
        try:
            row = await self._store.insert(COUNSELORS, record)
        except DuplicateRecordError as exc:
            raise ConflictError("Este usuário já possui um perfil de conselheiro.") from exc
        except RecordStoreError as exc:
            raise StoreError(STORE_FAILED) from exc

        profile = CounselorProfile.from_record(row)
        await self._emit_roster(EventType.COUNSELOR_REGISTERED, profile, actor)
        logger.info("Counselor %s registered by %s", profile.id, actor.id)
        return profile

    async def update_counselor(
        self,
        counselor_id: str,
        actor: Actor,
        changes: CounselorUpdateIn,
    ) -> CounselorProfile:
        """Edit contact fields, topics or availability.

        Only the counselor or the leadership of the same church may edit a profile.
        An `availability` sent explicitly as null clears the agenda.
        """
        counselor = await self.get_counselor(counselor_id)
        if actor.id != counselor.id:
            if not actor.is_leadership:
                raise PermissionDeniedError("Apenas o próprio conselheiro ou a liderança podem alterar este perfil.")
            if actor.church_id and counselor.church_id != actor.church_id:
                raise NotFoundError("Conselheiro não encontrado.")

        patch: dict[str, Any] = {}
        if changes.name is not None:
            patch["name"] = _require_text(changes.name, "Informe o nome do conselheiro.")
        if changes.email is not None:
            if not is_valid_email(changes.email):
                raise ValidationFailedError("Informe um e-mail válido.")
            patch["email"] = changes.email.strip()
        if changes.phone is not None:
            patch["phone"] = changes.phone.strip() or None
        if changes.gender is not None:
            patch["gender"] = changes.gender or None
        if changes.topics is not None:
            patch["topics"] = _clean_topics(changes.topics)
        if "availability" in changes.model_fields_set:
            patch["availability"] = WeeklyAvailability.decode(changes.availability).to_dict()
        if not patch:
            return counselor

        try:
            rows = await self._store.update(COUNSELORS, {"id": counselor_id}, patch)
        except RecordStoreError as exc:
            raise StoreError(STORE_FAILED) from exc
        if not rows:
            raise NotFoundError("Conselheiro não encontrado.")

        profile = CounselorProfile.from_record(rows[0])
        await self._emit_roster(EventType.COUNSELOR_UPDATED, profile, actor)
        logger.info("Counselor %s updated by %s (%s)", counselor_id, actor.id, ", ".join(sorted(patch)))
        return profile

    async def deactivate_counselor(self, counselor_id: str, actor: Actor) -> CounselorProfile:
        """Logical deletion. The profile stays so past appointments keep resolving.

        Raises:
            PermissionDeniedError: If the actor is not part of the church leadership.
            NotFoundError: If the counselor does not exist in the actor's church.
        """
        if not actor.is_leadership:
            raise PermissionDeniedError("Apenas a liderança pode remover conselheiros.")
        counselor = await self.get_counselor(counselor_id)
        if actor.church_id and counselor.church_id != actor.church_id:
            raise NotFoundError("Conselheiro não encontrado.")

        try:
            rows = await self._store.update(COUNSELORS, {"id": counselor_id}, {"is_active": False})
        except RecordStoreError as exc:
            raise StoreError(STORE_FAILED) from exc
        if not rows:
            raise NotFoundError("Conselheiro não encontrado.")

        profile = CounselorProfile.from_record(rows[0])
        await self._emit_roster(EventType.COUNSELOR_DEACTIVATED, profile, actor)
        logger.info("Counselor %s deactivated by %s", counselor_id, actor.id)
        return profile


# Module-level singleton
scheduling_service = SchedulingService()
