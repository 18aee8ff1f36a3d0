from datetime import date, datetime

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from clinicbook.routes.availability_routes import (
    TimeWindowPayload,
    UpdateAvailabilityRequest,
    get_doctor_availability,
    list_available_slots,
    update_doctor_availability,
)
from clinicbook.services.availability_service import AvailabilityService

NEXT_MONDAY = date(2026, 1, 5)


def _update_request(**overrides) -> UpdateAvailabilityRequest:
    fields = {
        'available_days': ['Mon', 'Wed'],
        'daily_time_windows': [{'start': '09:00', 'end': '12:00'}],
        'slot_duration_minutes': 30,
    }
    fields.update(overrides)
    return UpdateAvailabilityRequest(**fields)


def test_update_availability_request_normalizes_days() -> None:
    request = _update_request(available_days=[' monday', 'FRI'])

    assert request.available_days == ['Mon', 'Fri']
    assert request.max_bookings_per_slot == 1


@pytest.mark.parametrize(
    'overrides',
    [
        {'available_days': ['Funday']},
        {'daily_time_windows': [{'start': '9am', 'end': '12:00'}]},
        {'daily_time_windows': [{'start': '09:00', 'end': '24:30'}]},
    ],
)
def test_update_availability_request_rejects_malformed_input(overrides) -> None:
    with pytest.raises(ValidationError):
        _update_request(**overrides)


def test_time_window_payload_allows_midnight_end() -> None:
    assert TimeWindowPayload(start='22:00', end='24:00').end == '24:00'


def test_doctor_updates_and_reads_availability(db, users) -> None:
    service = AvailabilityService(db)
    doctor_id = users['dr_a'].id

    updated = update_doctor_availability(
        doctor_id=doctor_id,
        data=_update_request(available_days=['Wed', 'Mon']),
        actor_id=doctor_id,
        service=service,
    )
    fetched = get_doctor_availability(doctor_id=doctor_id, service=service)

    assert updated == fetched
    assert fetched.available_days == ['Mon', 'Wed']
    assert [(window.start, window.end) for window in fetched.daily_time_windows] == [('09:00', '12:00')]
    assert fetched.slot_duration_minutes == 30


def test_availability_midnight_window_round_trips_as_24_00(db, users) -> None:
    service = AvailabilityService(db)
    doctor_id = users['dr_a'].id

    response = update_doctor_availability(
        doctor_id=doctor_id,
        data=_update_request(daily_time_windows=[{'start': '22:00', 'end': '24:00'}]),
        actor_id=doctor_id,
        service=service,
    )

    assert response.daily_time_windows[0].end == '24:00'


def test_other_doctor_cannot_update_availability(db, users) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_doctor_availability(
            doctor_id=users['dr_a'].id,
            data=_update_request(),
            actor_id=users['dr_b'].id,
            service=AvailabilityService(db),
        )

    assert exception_info.value.status_code == 403


def test_inverted_window_is_rejected_with_422(db, users) -> None:
    with pytest.raises(HTTPException) as exception_info:
        update_doctor_availability(
            doctor_id=users['dr_a'].id,
            data=_update_request(daily_time_windows=[{'start': '12:00', 'end': '09:00'}]),
            actor_id=users['dr_a'].id,
            service=AvailabilityService(db),
        )

    assert exception_info.value.status_code == 422


def test_availability_of_unknown_doctor_is_404(db, users) -> None:
    with pytest.raises(HTTPException) as exception_info:
        get_doctor_availability(doctor_id=users['p1'].id, service=AvailabilityService(db))

    assert exception_info.value.status_code == 404


def test_list_available_slots_route(service, users, monday_calendar) -> None:
    slots = list_available_slots(doctor_id=users['dr_a'].id, slot_date=NEXT_MONDAY, duration=None, service=service)

    assert [(slot.start, slot.end) for slot in slots] == [
        ('09:00', '09:15'),
        ('09:15', '09:30'),
        ('09:30', '09:45'),
        ('09:45', '10:00'),
    ]
    assert slots[0].date == NEXT_MONDAY
    assert slots[0].start_time == datetime(2026, 1, 5, 9, 0)


def test_list_available_slots_route_skips_booked_time(service, users, monday_calendar) -> None:
    service.create(users['dr_a'].id, users['p1'].id, NEXT_MONDAY, '09:00', 30, 'in_clinic')

    slots = list_available_slots(doctor_id=users['dr_a'].id, slot_date=NEXT_MONDAY, duration=15, service=service)

    assert [slot.start for slot in slots] == ['09:30', '09:45']


def test_list_available_slots_route_rejects_past_date(service, users, monday_calendar) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=users['dr_a'].id, slot_date=date(2025, 12, 29), duration=15, service=service)

    assert exception_info.value.status_code == 422


def test_list_available_slots_route_unknown_doctor(service, users) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=999, slot_date=NEXT_MONDAY, duration=15, service=service)

    assert exception_info.value.status_code == 404


def test_storage_failure_reading_availability_returns_503(db, users, monkeypatch) -> None:
    service = AvailabilityService(db)
    doctor_id = users['dr_a'].id

    def failing_query(*args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('connection reset'))

    monkeypatch.setattr(db, 'query', failing_query)

    with pytest.raises(HTTPException) as exception_info:
        get_doctor_availability(doctor_id=doctor_id, service=service)

    assert exception_info.value.status_code == 503
