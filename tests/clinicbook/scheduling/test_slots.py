from datetime import date, datetime, time

import pytest

from clinicbook.scheduling.calendar import AvailabilityCalendar, TimeWindow, weekday_name
from clinicbook.scheduling.errors import ValidationError
from clinicbook.scheduling.intervals import Interval
from clinicbook.scheduling.slots import generate_slots

NEXT_MONDAY = date(2026, 1, 5)
NOW = datetime(2026, 1, 1, 8, 0)


def _clock_pairs(slots) -> list[tuple[time, time]]:
    return [(slot.start.time(), slot.end.time()) for slot in slots]


def _monday_calendar(*windows) -> AvailabilityCalendar:
    return AvailabilityCalendar(available_days=frozenset({'Mon'}), windows=windows, slot_duration_minutes=15)


def test_calendar_only_exposes_windows_on_enabled_days() -> None:
    calendar = _monday_calendar((540, 600))

    assert calendar.is_day_available('Mon')
    assert not calendar.is_day_available('Tue')
    assert calendar.windows_for('Mon') == (TimeWindow(540, 600),)
    assert calendar.windows_for('Tue') == ()


def test_calendar_rejects_window_that_ends_before_it_starts() -> None:
    with pytest.raises(ValidationError):
        _monday_calendar((600, 540))


def test_calendar_rejects_unknown_weekday() -> None:
    with pytest.raises(ValidationError):
        AvailabilityCalendar(available_days=frozenset({'Funday'}))


def test_weekday_name_uses_three_letter_names() -> None:
    assert weekday_name(NEXT_MONDAY) == 'Mon'
    assert weekday_name(date(2026, 1, 4)) == 'Sun'


def test_generates_duration_sized_slots_across_a_window() -> None:
    slots = list(generate_slots(_monday_calendar((540, 600)), NEXT_MONDAY, 15, [], NOW))

    assert _clock_pairs(slots) == [
        (time(9, 0), time(9, 15)),
        (time(9, 15), time(9, 30)),
        (time(9, 30), time(9, 45)),
        (time(9, 45), time(10, 0)),
    ]


def test_trailing_partial_slot_is_dropped() -> None:
    slots = list(generate_slots(_monday_calendar((540, 590)), NEXT_MONDAY, 15, [], NOW))

    assert _clock_pairs(slots)[-1] == (time(9, 30), time(9, 45))
    assert len(slots) == 3


def test_booked_intervals_remove_every_overlapping_slot() -> None:
    booked = [Interval(datetime(2026, 1, 5, 9, 5), datetime(2026, 1, 5, 9, 20))]

    slots = list(generate_slots(_monday_calendar((540, 600)), NEXT_MONDAY, 15, booked, NOW))

    assert _clock_pairs(slots) == [(time(9, 30), time(9, 45)), (time(9, 45), time(10, 0))]
    for slot in slots:
        assert not any(slot.interval.overlaps(existing) for existing in booked)


def test_overlapping_windows_are_not_deduplicated() -> None:
    slots = list(generate_slots(_monday_calendar((540, 570), (555, 585)), NEXT_MONDAY, 15, [], NOW))

    assert _clock_pairs(slots) == [
        (time(9, 0), time(9, 15)),
        (time(9, 15), time(9, 30)),
        (time(9, 15), time(9, 30)),
        (time(9, 30), time(9, 45)),
    ]


def test_disabled_weekday_yields_nothing() -> None:
    assert list(generate_slots(_monday_calendar((540, 600)), date(2026, 1, 6), 15, [], NOW)) == []


def test_past_slots_are_skipped_for_today() -> None:
    now = datetime(2026, 1, 5, 9, 20)

    slots = list(generate_slots(_monday_calendar((540, 600)), NEXT_MONDAY, 15, [], now))

    assert _clock_pairs(slots) == [(time(9, 30), time(9, 45)), (time(9, 45), time(10, 0))]


def test_invalid_duration_is_a_validation_error() -> None:
    with pytest.raises(ValidationError):
        list(generate_slots(_monday_calendar((540, 600)), NEXT_MONDAY, 0, [], NOW))
