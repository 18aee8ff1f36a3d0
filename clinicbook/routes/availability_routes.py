from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator

from clinicbook.auth.dependencies import get_current_user_id
from clinicbook.routes.dependencies import get_availability_service, get_booking_service, to_http_exception
from clinicbook.scheduling.calendar import (
    DEFAULT_SLOT_DURATION_MINUTES,
    WEEKDAYS,
    AvailabilityCalendar,
    normalize_weekday,
)
from clinicbook.scheduling.errors import SchedulingError
from clinicbook.scheduling.intervals import CLOCK_PATTERN, format_minute
from clinicbook.services.availability_service import AvailabilityService
from clinicbook.services.booking_service import BookingService

router = APIRouter(tags=['availability'])


class TimeWindowPayload(BaseModel):
    start: str
    end: str

    @field_validator('start', 'end')
    @classmethod
    def validate_clock(cls, value: str) -> str:
        normalized = value.strip()
        if normalized != '24:00' and not CLOCK_PATTERN.match(normalized):
            raise ValueError(f'{value} is not a valid time format! Use HH:MM format.')
        return normalized


class UpdateAvailabilityRequest(BaseModel):
    available_days: list[str]
    daily_time_windows: list[TimeWindowPayload]
    slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    max_bookings_per_slot: int = 1

    @field_validator('available_days')
    @classmethod
    def validate_available_days(cls, value: list[str]) -> list[str]:
        normalized = []
        for day in value:
            try:
                normalized.append(normalize_weekday(day))
            except SchedulingError as exc:
                raise ValueError(exc.message) from exc
        return normalized


class AvailabilityResponse(BaseModel):
    doctor_id: int
    available_days: list[str]
    daily_time_windows: list[TimeWindowPayload]
    slot_duration_minutes: int
    max_bookings_per_slot: int


class SlotResponse(BaseModel):
    date: date
    start: str
    end: str
    start_time: datetime
    end_time: datetime


def serialize_calendar(doctor_id: int, calendar: AvailabilityCalendar) -> AvailabilityResponse:
    return AvailabilityResponse(
        doctor_id=doctor_id,
        available_days=[day for day in WEEKDAYS if day in calendar.available_days],
        daily_time_windows=[
            TimeWindowPayload(start=format_minute(window.start_minute), end=format_minute(window.end_minute))
            for window in calendar.windows
        ],
        slot_duration_minutes=calendar.slot_duration_minutes,
        max_bookings_per_slot=calendar.max_bookings_per_slot,
    )


@router.get('/{doctor_id}/availability', response_model=AvailabilityResponse)
def get_doctor_availability(
    doctor_id: int,
    service: AvailabilityService = Depends(get_availability_service),
):
    try:
        return serialize_calendar(doctor_id, service.get_calendar(doctor_id))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.put('/{doctor_id}/availability', response_model=AvailabilityResponse)
def update_doctor_availability(
    doctor_id: int,
    data: UpdateAvailabilityRequest,
    actor_id: int = Depends(get_current_user_id),
    service: AvailabilityService = Depends(get_availability_service),
):
    try:
        calendar = service.save_availability(
            doctor_id,
            actor_id,
            available_days=data.available_days,
            windows=[(window.start, window.end) for window in data.daily_time_windows],
            slot_duration_minutes=data.slot_duration_minutes,
            max_bookings_per_slot=data.max_bookings_per_slot,
        )
        return serialize_calendar(doctor_id, calendar)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/{doctor_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    doctor_id: int,
    slot_date: date = Query(..., alias='date'),
    duration: int | None = Query(default=None, ge=5, le=240),
    service: BookingService = Depends(get_booking_service),
):
    try:
        slots = service.list_available_slots(doctor_id, slot_date, duration)
        responses = []
        for slot in slots:
            clock = slot.interval.as_clock()
            responses.append(
                SlotResponse(
                    date=slot.start.date(),
                    start=clock['start'],
                    end=clock['end'],
                    start_time=slot.start,
                    end_time=slot.end,
                )
            )
        return responses
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
