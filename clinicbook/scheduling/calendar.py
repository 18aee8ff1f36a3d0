"""A doctor's recurring weekly availability."""

from dataclasses import dataclass, field
from datetime import date

from clinicbook.scheduling.errors import ValidationError
from clinicbook.scheduling.intervals import MINUTES_PER_DAY, format_minute

WEEKDAYS = ('Mon', 'Tue', 'Wed', 'Thu', 'Fri', 'Sat', 'Sun')
MIN_SLOT_DURATION_MINUTES = 5
MAX_SLOT_DURATION_MINUTES = 120
DEFAULT_SLOT_DURATION_MINUTES = 15


def weekday_name(value: date) -> str:
    return WEEKDAYS[value.weekday()]


def normalize_weekday(value: str) -> str:
    normalized = value.strip()[:3].capitalize() if isinstance(value, str) else ''
    if normalized not in WEEKDAYS:
        raise ValidationError(f'Invalid weekday {value!r}, expected one of {", ".join(WEEKDAYS)}.')
    return normalized


@dataclass(frozen=True)
class TimeWindow:
    start_minute: int
    end_minute: int

    def __post_init__(self) -> None:
        if not (0 <= self.start_minute < MINUTES_PER_DAY and 0 < self.end_minute <= MINUTES_PER_DAY):
            raise ValidationError('Window bounds must fall within a single day.')
        if self.start_minute >= self.end_minute:
            raise ValidationError(
                f'Window {format_minute(self.start_minute)}-{format_minute(self.end_minute)} '
                'must start before it ends.'
            )


@dataclass(frozen=True)
class AvailabilityCalendar:
    """Enabled weekdays plus one window list applied to each of them.

    Windows keep the order they were entered in and may overlap each other.
    """

    available_days: frozenset = field(default_factory=frozenset)
    windows: tuple = ()
    slot_duration_minutes: int = DEFAULT_SLOT_DURATION_MINUTES
    max_bookings_per_slot: int = 1

    def __post_init__(self) -> None:
        object.__setattr__(self, 'available_days', frozenset(normalize_weekday(day) for day in self.available_days))
        object.__setattr__(
            self,
            'windows',
            tuple(
                window if isinstance(window, TimeWindow) else TimeWindow(*window)
                for window in self.windows
            ),
        )
        validate_slot_duration(self.slot_duration_minutes)

    @classmethod
    def from_model(cls, availability) -> 'AvailabilityCalendar':
        days = [day for day in (availability.available_days or '').split(',') if day]
        return cls(
            available_days=frozenset(days),
            windows=tuple(TimeWindow(window.start_minute, window.end_minute) for window in availability.windows),
            slot_duration_minutes=availability.slot_duration_minutes,
            max_bookings_per_slot=availability.max_bookings_per_slot or 1,
        )

    def is_day_available(self, weekday: str) -> bool:
        return normalize_weekday(weekday) in self.available_days

    def windows_for(self, weekday: str) -> tuple:
        if not self.is_day_available(weekday):
            return ()
        return self.windows


def validate_slot_duration(duration_minutes) -> int:
    if isinstance(duration_minutes, bool) or not isinstance(duration_minutes, int):
        raise ValidationError('Slot duration must be an integer number of minutes.')
    if not MIN_SLOT_DURATION_MINUTES <= duration_minutes <= MAX_SLOT_DURATION_MINUTES:
        raise ValidationError(
            f'Slot duration must be between {MIN_SLOT_DURATION_MINUTES} and {MAX_SLOT_DURATION_MINUTES} minutes.'
        )
    return duration_minutes
