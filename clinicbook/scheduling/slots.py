"""Slot generation from a doctor's calendar.

For every window of the target weekday, walk forward in duration-sized steps
from the window start. A candidate is kept when it fits inside the window, is
not already in the past, and does not overlap any booked interval.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator

from clinicbook.scheduling.calendar import AvailabilityCalendar, weekday_name
from clinicbook.scheduling.errors import ValidationError
from clinicbook.scheduling.intervals import Interval, validate_duration


@dataclass(frozen=True)
class Slot:
    start: datetime
    end: datetime

    @property
    def interval(self) -> Interval:
        return Interval(self.start, self.end)

    def to_dict(self) -> dict:
        return {'start': self.start.isoformat(), 'end': self.end.isoformat()}


def generate_slots(
    calendar: AvailabilityCalendar,
    target_date: date,
    duration_minutes: int,
    booked: Iterable[Interval],
    now: datetime,
) -> Iterator[Slot]:
    if not isinstance(target_date, date) or isinstance(target_date, datetime):
        raise ValidationError('A calendar date is required.')
    validate_duration(duration_minutes)

    booked = list(booked)
    step = timedelta(minutes=duration_minutes)
    is_today = target_date == now.date()

    for window in calendar.windows_for(weekday_name(target_date)):
        window_interval = Interval.from_window(target_date, window.start_minute, window.end_minute)
        current_start = window_interval.start

        while current_start + step <= window_interval.end:
            current_end = current_start + step

            if is_today and current_start < now:
                current_start = current_end
                continue

            candidate = Interval(current_start, current_end)
            if not any(candidate.overlaps(existing) for existing in booked):
                yield Slot(current_start, current_end)

            current_start = current_end
