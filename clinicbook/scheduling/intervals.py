"""Half-open time interval shared by the scheduling components.

Appointments and slots are both represented as ``Interval`` internally. The two
external shapes (a date plus ``HH:MM`` strings, or a ``{start, end}`` timestamp
pair) are produced only at the API boundary via ``as_clock`` and ``as_range``.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from clinicbook.scheduling.errors import ValidationError

MINUTES_PER_DAY = 24 * 60
CLOCK_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


def parse_clock(value: str) -> time:
    match = CLOCK_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValidationError(f'{value!r} is not a valid time, use HH:MM (24-hour clock).')
    return time(int(match.group(1)), int(match.group(2)))


def format_minute(minute_of_day: int) -> str:
    hours, minutes = divmod(minute_of_day, 60)
    return f'{hours:02d}:{minutes:02d}'


def minute_of_day(value: time) -> int:
    return value.hour * 60 + value.minute


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Touching boundaries (a_end == b_start) are not a conflict.
    return a_start < b_end and b_start < a_end


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        if self.start.tzinfo is not None or self.end.tzinfo is not None:
            raise ValidationError('Times must be local (naive) datetimes.')
        if self.start >= self.end:
            raise ValidationError('End time must be after start time.')
        day_end = datetime.combine(self.start.date(), time()) + timedelta(days=1)
        if self.end > day_end:
            raise ValidationError('An appointment must start and end on the same date.')

    @classmethod
    def from_clock(cls, on_date: date, start: time | str, duration_minutes: int) -> 'Interval':
        if isinstance(start, str):
            start = parse_clock(start)
        start_dt = datetime.combine(on_date, start.replace(second=0, microsecond=0))
        return cls(start_dt, start_dt + timedelta(minutes=duration_minutes))

    @classmethod
    def from_window(cls, on_date: date, start_minute: int, end_minute: int) -> 'Interval':
        midnight = datetime.combine(on_date, time())
        return cls(midnight + timedelta(minutes=start_minute), midnight + timedelta(minutes=end_minute))

    @property
    def date(self) -> date:
        return self.start.date()

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() // 60)

    def overlaps(self, other: 'Interval') -> bool:
        return overlaps(self.start, self.end, other.start, other.end)

    def as_clock(self) -> dict:
        end_minute = minute_of_day(self.end.time())
        if self.end.date() != self.start.date():
            end_minute = MINUTES_PER_DAY
        return {
            'date': self.date.isoformat(),
            'start': format_minute(minute_of_day(self.start.time())),
            'end': format_minute(end_minute),
        }

    def as_range(self) -> dict:
        return {'start': self.start.isoformat(), 'end': self.end.isoformat()}


MIN_APPOINTMENT_MINUTES = 5
MAX_APPOINTMENT_MINUTES = 240


def validate_duration(duration_minutes) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError('Duration must be an integer number of minutes.')
    if not MIN_APPOINTMENT_MINUTES <= duration_minutes <= MAX_APPOINTMENT_MINUTES:
        raise ValidationError(
            f'Duration must be between {MIN_APPOINTMENT_MINUTES} and {MAX_APPOINTMENT_MINUTES} minutes.'
        )
    return duration_minutes
