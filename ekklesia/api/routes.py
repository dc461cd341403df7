"""Counseling API — FastAPI router over the scheduling service.

Every write returns the saved appointment (meetings masked for the caller)
plus any delivery warnings, so the client can show "saved, but the email
was not sent" instead of an error.
"""
# ruff: noqa: B008

from __future__ import annotations

import logging
from datetime import date

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ekklesia.api.auth import current_actor, verify_token
from ekklesia.counseling.errors import ErrorKind, SchedulingError
from ekklesia.counseling.history import HistoryEntry
from ekklesia.counseling.service import OperationResult, SchedulingService, scheduling_service
from ekklesia.counseling.slots import TimeSlot
from ekklesia.counseling.views import AppointmentView, CounselingStats, CounselorAgenda
from ekklesia.counseling.visibility import present_meetings
from ekklesia.db.store import RecordStoreError
from ekklesia.models.enums import AppointmentStatus
from ekklesia.schemas.counseling import (
    Actor,
    Appointment,
    AssignIn,
    BookingRequestIn,
    CounselorIn,
    CounselorProfile,
    CounselorUpdateIn,
    DirectBookingIn,
    MeetingInput,
    ReasonIn,
    SlotIn,
    StatusIn,
    TransferIn,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/counseling", tags=["counseling"])

STATUS_FOR_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 422,
    ErrorKind.CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.STORE: 502,
}


class OperationOut(BaseModel):
    appointment: Appointment | None = None
    warnings: list[str] = Field(default_factory=list)
    deleted: bool = False
    link: str | None = None


class SlotOut(BaseModel):
    time: str
    is_booked: bool


class CounselorOut(BaseModel):
    id: str
    name: str
    email: str | None = None
    phone: str | None = None
    gender: str | None = None
    topics: list[str] = Field(default_factory=list)
    availability: dict[str, list[str]] = Field(default_factory=dict)


class HistoryEntryOut(BaseModel):
    id: str
    date: str
    counselor: str


def get_scheduling_service() -> SchedulingService:
    return scheduling_service


def _out(result: OperationResult, viewer: Actor | None) -> OperationOut:
    appointment = result.appointment
    if appointment is not None:
        meetings = present_meetings(appointment.meetings, viewer) if viewer else []
        appointment = appointment.model_copy(update={"meetings": meetings})
    return OperationOut(appointment=appointment, warnings=result.warnings, deleted=result.deleted, link=result.link)


def _slot_out(slot: TimeSlot) -> SlotOut:
    return SlotOut(time=slot.time, is_booked=slot.is_booked)


def _counselor_out(counselor: CounselorProfile) -> CounselorOut:
    return CounselorOut(
        **counselor.model_dump(include={"id", "name", "email", "phone", "gender", "topics"}),
        availability=counselor.availability.to_dict(),
    )


def _history_out(entry: HistoryEntry) -> HistoryEntryOut:
    return HistoryEntryOut(id=entry.id, date=entry.date.isoformat(), counselor=entry.counselor)


# ── Error mapping ────────────────────────────────────────────────────


def install_error_handlers(app: FastAPI) -> None:
    """Map operation errors to `{kind, message}` JSON bodies."""

    @app.exception_handler(SchedulingError)
    async def _scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
        logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.kind.value, exc.message)
        return JSONResponse(status_code=STATUS_FOR_KIND[exc.kind], content=exc.to_dict())

    @app.exception_handler(RecordStoreError)
    async def _store_error(request: Request, exc: RecordStoreError) -> JSONResponse:
        logger.error("%s %s -> store failure: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=STATUS_FOR_KIND[ErrorKind.STORE],
            content={"kind": ErrorKind.STORE.value, "message": "Serviço de dados indisponível."},
        )


# ── Reads ────────────────────────────────────────────────────────────


@router.get("/appointments", response_model=list[AppointmentView])
async def list_appointments(
    counselor_id: str | None = Query(None),
    search: str | None = Query(None),
    status: list[AppointmentStatus] | None = Query(None),
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[AppointmentView]:
    if actor.church_id is None:
        return []
    return await service.list_appointments(
        actor.church_id, actor, counselor_id=counselor_id, search=search, statuses=status
    )


@router.get("/queue", response_model=list[AppointmentView])
async def list_queue(
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[AppointmentView]:
    if actor.church_id is None:
        return []
    return await service.queue(actor.church_id, actor)


@router.get("/agenda", response_model=CounselorAgenda)
async def my_agenda(
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CounselorAgenda:
    return await service.counselor_agenda(actor)


@router.get("/appointments/{appointment_id}", response_model=AppointmentView)
async def get_appointment(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> AppointmentView:
    return await service.appointment_detail(appointment_id, actor)


@router.get("/appointments/{appointment_id}/history", response_model=list[HistoryEntryOut])
async def get_history(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[HistoryEntryOut]:
    return [_history_out(e) for e in await service.appointment_history(appointment_id, actor)]


@router.get("/appointments/{appointment_id}/transfer-candidates", response_model=list[CounselorOut])
async def get_transfer_candidates(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[CounselorOut]:
    return [_counselor_out(c) for c in await service.transfer_candidates(appointment_id, actor)]


@router.get("/statistics", response_model=CounselingStats)
async def get_statistics(
    month: str | None = Query(None, description="YYYY-MM"),
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CounselingStats:
    return await service.counseling_stats(actor.church_id, month)


@router.get("/counselors", response_model=list[CounselorOut])
async def list_counselors(
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[CounselorOut]:
    if actor.church_id is None:
        return []
    return [_counselor_out(c) for c in await service.list_counselors(actor.church_id)]


@router.get("/counselors/{counselor_id}/slots", response_model=list[SlotOut])
async def get_slots(
    counselor_id: str,
    day: date = Query(...),
    exclude_id: str | None = Query(None),
    _: None = Depends(verify_token),
    service: SchedulingService = Depends(get_scheduling_service),
) -> list[SlotOut]:
    return [_slot_out(s) for s in await service.available_slots(counselor_id, day, exclude_id=exclude_id)]


# ── Intake ───────────────────────────────────────────────────────────


@router.post("/requests", response_model=OperationOut, status_code=201)
async def submit_request(
    body: BookingRequestIn,
    _: None = Depends(verify_token),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.submit_request(body), None)


@router.post("/appointments", response_model=OperationOut, status_code=201)
async def book_directly(
    body: DirectBookingIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.book_directly(actor, body), actor)


# ── Transitions ──────────────────────────────────────────────────────


@router.post("/appointments/{appointment_id}/approve", response_model=OperationOut)
async def approve(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.approve(appointment_id, actor), actor)


@router.post("/appointments/{appointment_id}/reject", response_model=OperationOut)
async def reject(
    appointment_id: str,
    body: ReasonIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.reject(appointment_id, actor, body.reason), actor)


@router.post("/appointments/{appointment_id}/return-to-queue", response_model=OperationOut)
async def return_to_queue(
    appointment_id: str,
    body: ReasonIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.return_to_queue(appointment_id, actor, body.reason), actor)


@router.post("/appointments/{appointment_id}/reschedule", response_model=OperationOut)
async def reschedule(
    appointment_id: str,
    body: SlotIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.reschedule(appointment_id, actor, body.date, body.time), actor)


@router.post("/appointments/{appointment_id}/cancel", response_model=OperationOut)
async def cancel(
    appointment_id: str,
    body: ReasonIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.cancel(appointment_id, actor, body.reason), actor)


@router.delete("/appointments/{appointment_id}", response_model=OperationOut)
async def cancel_definitively(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.cancel_definitively(appointment_id, actor), actor)


@router.post("/appointments/{appointment_id}/transfer", response_model=OperationOut)
async def transfer(
    appointment_id: str,
    body: TransferIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.transfer(appointment_id, actor, body.counselor_id, body.reason), actor)


@router.post("/appointments/{appointment_id}/assign", response_model=OperationOut)
async def assign(
    appointment_id: str,
    body: AssignIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    result = await service.assign_from_queue(appointment_id, actor, body.counselor_id, body.date, body.time)
    return _out(result, actor)


@router.post("/appointments/{appointment_id}/claim", response_model=OperationOut)
async def claim(
    appointment_id: str,
    body: SlotIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.claim_from_queue(appointment_id, actor, body.date, body.time), actor)


@router.post("/appointments/{appointment_id}/status", response_model=OperationOut)
async def change_status(
    appointment_id: str,
    body: StatusIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.change_status(appointment_id, actor, body.status, body.reason), actor)


# ── Session notes and contact ────────────────────────────────────────


@router.post("/appointments/{appointment_id}/meetings", response_model=OperationOut, status_code=201)
async def register_meeting(
    appointment_id: str,
    body: MeetingInput,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.register_meeting(appointment_id, actor, body), actor)


@router.put("/appointments/{appointment_id}/meetings/{meeting_id}", response_model=OperationOut)
async def update_meeting(
    appointment_id: str,
    meeting_id: str,
    body: MeetingInput,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.update_meeting(appointment_id, actor, meeting_id, body), actor)


@router.post("/appointments/{appointment_id}/whatsapp-contact", response_model=OperationOut)
async def whatsapp_contact(
    appointment_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> OperationOut:
    return _out(await service.register_whatsapp_contact(appointment_id, actor), actor)


# ── Counselor roster ─────────────────────────────────────────────────


@router.delete("/counselors/{counselor_id}", response_model=CounselorOut)
async def deactivate_counselor(
    counselor_id: str,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CounselorOut:
    return _counselor_out(await service.deactivate_counselor(counselor_id, actor))


@router.post("/counselors", response_model=CounselorOut, status_code=201)
async def register_counselor(
    body: CounselorIn,
    user_id: str | None = Query(None, description="Register another user (leadership only)"),
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CounselorOut:
    return _counselor_out(await service.create_counselor(actor, body, user_id=user_id))


@router.patch("/counselors/{counselor_id}", response_model=CounselorOut)
async def update_counselor(
    counselor_id: str,
    body: CounselorUpdateIn,
    actor: Actor = Depends(current_actor),
    service: SchedulingService = Depends(get_scheduling_service),
) -> CounselorOut:
    return _counselor_out(await service.update_counselor(counselor_id, actor, body))
