"""Doctor-side editing of recurring availability."""

import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicbook.models.availability import AvailabilityWindow, DoctorAvailability
from clinicbook.models.user import ROLE_DOCTOR
from clinicbook.scheduling.calendar import WEEKDAYS, AvailabilityCalendar, TimeWindow
from clinicbook.scheduling.errors import ForbiddenError, InternalError, ValidationError
from clinicbook.scheduling.intervals import minute_of_day, parse_clock
from clinicbook.services.directory import UserDirectory

logger = logging.getLogger(__name__)

MIN_BOOKINGS_PER_SLOT = 1
MAX_BOOKINGS_PER_SLOT = 10


def parse_window(start: str, end: str) -> TimeWindow:
    # "24:00" closes a window at midnight.
    end_minute = 24 * 60 if end.strip() == '24:00' else minute_of_day(parse_clock(end))
    return TimeWindow(minute_of_day(parse_clock(start)), end_minute)


class AvailabilityService:
    def __init__(self, db: Session):
        self.db = db
        self.directory = UserDirectory(db)

    @contextmanager
    def _reading(self, doctor_id: int):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Reading availability for doctor %s failed', doctor_id)
            raise InternalError('Availability storage is unavailable.') from exc

    def get_calendar(self, doctor_id: int) -> AvailabilityCalendar:
        with self._reading(doctor_id):
            self.directory.require_role(doctor_id, ROLE_DOCTOR)
            availability = self.db.query(DoctorAvailability).filter(
                DoctorAvailability.doctor_id == doctor_id,
            ).first()
            if availability is None:
                return AvailabilityCalendar()
            return AvailabilityCalendar.from_model(availability)

    def save_availability(
        self,
        doctor_id: int,
        actor_id: int,
        available_days,
        windows,
        slot_duration_minutes: int,
        max_bookings_per_slot: int = 1,
    ) -> AvailabilityCalendar:
        with self._reading(doctor_id):
            self.directory.require_role(doctor_id, ROLE_DOCTOR)
            actor = self.directory.actor(actor_id)
        if not (actor.is_admin or (actor.role == ROLE_DOCTOR and actor.id == doctor_id)):
            raise ForbiddenError('Only the doctor can edit their availability.')

        if isinstance(max_bookings_per_slot, bool) or not isinstance(max_bookings_per_slot, int):
            raise ValidationError('Max bookings per slot must be an integer.')
        if not MIN_BOOKINGS_PER_SLOT <= max_bookings_per_slot <= MAX_BOOKINGS_PER_SLOT:
            raise ValidationError(
                f'Max bookings per slot must be between {MIN_BOOKINGS_PER_SLOT} and {MAX_BOOKINGS_PER_SLOT}.'
            )

        parsed_windows = tuple(
            window if isinstance(window, TimeWindow) else parse_window(*window)
            for window in windows
        )
        calendar = AvailabilityCalendar(
            available_days=frozenset(available_days),
            windows=parsed_windows,
            slot_duration_minutes=slot_duration_minutes,
            max_bookings_per_slot=max_bookings_per_slot,
        )

        try:
            availability = self.db.query(DoctorAvailability).filter(
                DoctorAvailability.doctor_id == doctor_id,
            ).first()
            if availability is None:
                availability = DoctorAvailability(doctor_id=doctor_id)
                self.db.add(availability)

            availability.available_days = ','.join(day for day in WEEKDAYS if day in calendar.available_days)
            availability.slot_duration_minutes = calendar.slot_duration_minutes
            availability.max_bookings_per_slot = calendar.max_bookings_per_slot
            availability.windows = [
                AvailabilityWindow(position=index, start_minute=window.start_minute, end_minute=window.end_minute)
                for index, window in enumerate(calendar.windows)
            ]
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Saving availability for doctor %s failed', doctor_id)
            raise InternalError('Availability storage is unavailable.') from exc

        logger.info('Availability for doctor %s updated by %s', doctor_id, actor.label)
        return calendar
