from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator

from clinicbook.auth.dependencies import get_current_user_id
from clinicbook.models.appointment import Appointment
from clinicbook.models.user import ROLE_PATIENT
from clinicbook.routes.dependencies import get_booking_service, to_http_exception
from clinicbook.scheduling.errors import SchedulingError, ValidationError
from clinicbook.scheduling.intervals import CLOCK_PATTERN, Interval
from clinicbook.services.booking_service import (
    CONSULTATION_TYPES,
    DEFAULT_PAGE_LIMIT,
    MAX_NOTES_LENGTH,
    MAX_REASON_LENGTH,
    BookingService,
)

router = APIRouter(tags=['appointments'])

DEFAULT_APPOINTMENT_DURATION_MINUTES = 30


def _normalize_optional_text(value: str | None, limit: int, label: str) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > limit:
        raise ValueError(f'{label} must be {limit} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    patient_id: int | None = None
    date: date
    time: str
    duration_minutes: int = DEFAULT_APPOINTMENT_DURATION_MINUTES
    consultation_type: str = 'in_clinic'
    reason: str | None = None

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        normalized = value.strip()
        if not CLOCK_PATTERN.match(normalized):
            raise ValueError('Time must be in HH:MM format (24-hour clock).')
        return normalized

    @field_validator('consultation_type')
    @classmethod
    def validate_consultation_type(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in CONSULTATION_TYPES:
            raise ValueError('Invalid consultation type.')
        return normalized

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')


class CancelAppointmentRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_optional_text(value, MAX_REASON_LENGTH, 'Reason')


class RescheduleAppointmentRequest(BaseModel):
    new_start: datetime
    new_end: datetime

    @field_validator('new_end')
    @classmethod
    def validate_new_end(cls, value: datetime, info) -> datetime:
        new_start = info.data.get('new_start')
        if new_start is not None and value <= new_start:
            raise ValueError('End time must be after start time.')
        return value


class AdminNoteRequest(BaseModel):
    note: str

    @field_validator('note')
    @classmethod
    def validate_note(cls, value: str) -> str:
        normalized = _normalize_optional_text(value, MAX_NOTES_LENGTH, 'Notes')
        if normalized is None:
            raise ValueError('Note text is required.')
        return normalized


class TimeRangeResponse(BaseModel):
    start: datetime
    end: datetime


class StatusHistoryResponse(BaseModel):
    status: str
    changed_at: datetime
    changed_by: str
    notes: str | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    date: date
    start: str
    end: str
    time_slot: TimeRangeResponse
    duration_minutes: int
    status: str
    consultation_type: str
    reason: str | None = None
    admin_notes: str | None = None
    cancellation_reason: str | None = None
    status_history: list[StatusHistoryResponse] = []


class AppointmentPageResponse(BaseModel):
    total: int
    page: int
    limit: int
    total_pages: int
    items: list[AppointmentResponse]


def serialize_appointment(appointment: Appointment) -> AppointmentResponse:
    interval = Interval(appointment.start_time, appointment.end_time)
    clock = interval.as_clock()
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        date=appointment.appointment_date,
        start=clock['start'],
        end=clock['end'],
        time_slot=TimeRangeResponse(start=interval.start, end=interval.end),
        duration_minutes=appointment.duration_minutes,
        status=appointment.status,
        consultation_type=appointment.consultation_type,
        reason=appointment.reason,
        admin_notes=appointment.admin_notes,
        cancellation_reason=appointment.cancellation_reason,
        status_history=[StatusHistoryResponse.model_validate(entry) for entry in appointment.status_history],
    )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        actor = service.resolve_actor(actor_id)
        patient_id = actor.id if actor.role == ROLE_PATIENT else data.patient_id
        if patient_id is None:
            raise ValidationError('Patient ID is required.')

        appointment = service.create(
            doctor_id=data.doctor_id,
            patient_id=patient_id,
            on_date=data.date,
            start=data.time,
            duration_minutes=data.duration_minutes,
            consultation_type=data.consultation_type,
            reason=data.reason,
            requested_by=actor.id,
        )
        return serialize_appointment(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('', response_model=AppointmentPageResponse)
def list_appointments(
    doctor_id: int | None = Query(default=None),
    patient_id: int | None = Query(default=None),
    appointment_status: str | None = Query(default=None, alias='status'),
    appointment_date: date | None = Query(default=None, alias='date'),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=DEFAULT_PAGE_LIMIT, ge=1, le=100),
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        result = service.list_appointments(
            actor_id,
            doctor_id=doctor_id,
            patient_id=patient_id,
            status=appointment_status,
            on_date=appointment_date,
            page=page,
            limit=limit,
        )
        return AppointmentPageResponse(
            total=result['total'],
            page=result['page'],
            limit=result['limit'],
            total_pages=result['total_pages'],
            items=[serialize_appointment(appointment) for appointment in result['items']],
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return serialize_appointment(service.get_appointment(appointment_id, actor_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return serialize_appointment(service.confirm(appointment_id, actor_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return serialize_appointment(service.complete(appointment_id, actor_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return serialize_appointment(service.cancel(appointment_id, actor_id, data.reason))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleAppointmentRequest,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        appointment = service.reschedule(appointment_id, data.new_start, data.new_end, actor_id)
        return serialize_appointment(appointment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/notes', response_model=AppointmentResponse)
def add_admin_note(
    appointment_id: int,
    data: AdminNoteRequest,
    actor_id: int = Depends(get_current_user_id),
    service: BookingService = Depends(get_booking_service),
):
    try:
        return serialize_appointment(service.add_admin_note(appointment_id, actor_id, data.note))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
