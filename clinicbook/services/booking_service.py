"""Booking orchestration.

Reads go through the calendar and slot generator; writes go through the
lifecycle guards and the conflict checker, all under the booking locks of the
doctor and patient involved. Every guard runs before the session is touched,
so a rejected request leaves no partial update and no history entry.
"""

import logging
import math
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicbook.core import config
from clinicbook.models.appointment import Appointment, AppointmentStatusHistory
from clinicbook.models.availability import DoctorAvailability
from clinicbook.models.user import ROLE_DOCTOR, ROLE_PATIENT
from clinicbook.scheduling import lifecycle
from clinicbook.scheduling.calendar import AvailabilityCalendar
from clinicbook.scheduling.conflicts import ConflictChecker
from clinicbook.scheduling.errors import (
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from clinicbook.scheduling.intervals import Interval, validate_duration
from clinicbook.scheduling.locks import BookingLocks, doctor_key, patient_key
from clinicbook.scheduling.slots import generate_slots
from clinicbook.services.directory import UserDirectory

logger = logging.getLogger(__name__)

CONSULTATION_TYPES = ('online', 'in_clinic', 'home_visit')
MAX_REASON_LENGTH = 500
MAX_NOTES_LENGTH = 1000
DEFAULT_PAGE_LIMIT = 20
MAX_PAGE_LIMIT = 100


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError as exc:
        raise ValidationError(f'Invalid date {value!r}, use YYYY-MM-DD.') from exc


def _as_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value.replace(second=0, microsecond=0)
    try:
        return datetime.fromisoformat(str(value)).replace(second=0, microsecond=0)
    except ValueError as exc:
        raise ValidationError(f'Invalid timestamp {value!r}, use ISO 8601.') from exc


def _clean_text(value: str | None, limit: int, label: str) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if not normalized:
        return None
    if len(normalized) > limit:
        raise ValidationError(f'{label} must be {limit} characters or fewer.')
    return normalized


def _interval_of(appointment: Appointment) -> Interval:
    return Interval(appointment.start_time, appointment.end_time)


class AvailableSlots:
    """Advisory slot listing for one doctor and date.

    Iterating recomputes the slots from the current calendar and bookings, so
    the same object can be iterated again after other bookings land. A slot is
    not a reservation; ``create`` may still raise ``ConflictError``.
    """

    def __init__(self, service: 'BookingService', doctor_id: int, on_date: date, duration_minutes: int | None):
        self.service = service
        self.doctor_id = doctor_id
        self.date = on_date
        self.duration_minutes = duration_minutes

    def __iter__(self):
        if self.date < self.service.now().date():
            return iter(())
        with self.service._reading('list_available_slots', doctor_id=self.doctor_id, date=self.date):
            calendar = self.service.load_calendar(self.doctor_id)
            booked = self.service.conflicts.booked_intervals(self.doctor_id, self.date)
        duration = self.duration_minutes or calendar.slot_duration_minutes
        return generate_slots(calendar, self.date, duration, booked, self.service.now())


class BookingService:
    def __init__(
        self,
        db: Session,
        locks: BookingLocks | None = None,
        clock=None,
        min_lead_time: timedelta | None = None,
        no_show_grace: timedelta | None = None,
    ):
        self.db = db
        # A private registry only serializes calls made through this instance.
        self.locks = locks or BookingLocks()
        self.clock = clock or datetime.now
        self.min_lead_time = (
            min_lead_time if min_lead_time is not None else timedelta(hours=config.MIN_LEAD_TIME_HOURS)
        )
        self.no_show_grace = (
            no_show_grace if no_show_grace is not None else timedelta(minutes=config.NO_SHOW_GRACE_MINUTES)
        )
        self.directory = UserDirectory(db)
        self.conflicts = ConflictChecker(db)

    def now(self) -> datetime:
        return self.clock().replace(microsecond=0)

    @contextmanager
    def _reading(self, operation: str, **context):
        try:
            yield
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('%s failed while reading: %s', operation, context)
            raise InternalError('Appointment storage is unavailable.') from exc

    @contextmanager
    def _writing(self, operation: str, keys: tuple, **context):
        with self.locks.hold(*keys):
            try:
                yield
                self.db.commit()
            except SchedulingError:
                self.db.rollback()
                raise
            except SQLAlchemyError as exc:
                self.db.rollback()
                logger.exception('%s failed while writing: %s', operation, context)
                raise InternalError('Appointment storage is unavailable.') from exc

    def load_calendar(self, doctor_id: int) -> AvailabilityCalendar:
        availability = self.db.query(DoctorAvailability).filter(
            DoctorAvailability.doctor_id == doctor_id,
        ).first()
        if availability is None:
            return AvailabilityCalendar()
        return AvailabilityCalendar.from_model(availability)

    def _load_appointment(self, appointment_id: int, for_update: bool = False) -> Appointment:
        query = self.db.query(Appointment).filter(Appointment.id == appointment_id)
        if for_update:
            query = query.populate_existing().with_for_update()
        appointment = query.first()
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def resolve_actor(self, actor_id: int) -> lifecycle.Actor:
        with self._reading('resolve_actor', actor_id=actor_id):
            return self.directory.actor(actor_id)

    def _locate(self, appointment_id: int, actor_id: int, operation: str):
        with self._reading(operation, appointment_id=appointment_id):
            appointment = self._load_appointment(appointment_id)
            actor = self.directory.actor(actor_id)
        return appointment, actor

    # ----- read operations -----

    def list_available_slots(self, doctor_id: int, on_date, duration_minutes: int | None = None) -> AvailableSlots:
        target_date = _as_date(on_date)
        if duration_minutes is not None:
            validate_duration(duration_minutes)
        if target_date < self.now().date():
            raise ValidationError('Cannot list availability for a past date.')
        with self._reading('list_available_slots', doctor_id=doctor_id, date=target_date):
            self.directory.require_role(doctor_id, ROLE_DOCTOR)
        return AvailableSlots(self, doctor_id, target_date, duration_minutes)

    def get_appointment(self, appointment_id: int, actor_id: int) -> Appointment:
        appointment, actor = self._locate(appointment_id, actor_id, 'get_appointment')
        if not actor.can_view(appointment):
            raise ForbiddenError('User not authorized to access this appointment.')
        return appointment

    def list_appointments(
        self,
        actor_id: int,
        doctor_id: int | None = None,
        patient_id: int | None = None,
        status: str | None = None,
        on_date=None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_LIMIT,
    ) -> dict:
        if status is not None and status not in lifecycle.ALL_STATUSES:
            raise ValidationError('Invalid status value.')
        if page < 1:
            raise ValidationError('Page must be a positive integer.')
        if not 1 <= limit <= MAX_PAGE_LIMIT:
            raise ValidationError(f'Limit must be between 1 and {MAX_PAGE_LIMIT}.')
        target_date = _as_date(on_date) if on_date is not None else None

        with self._reading('list_appointments', actor_id=actor_id):
            actor = self.directory.actor(actor_id)
            query = self.db.query(Appointment)

            if actor.role == ROLE_PATIENT:
                patient_id = actor.id
            elif actor.role == ROLE_DOCTOR:
                doctor_id = actor.id
            elif not actor.is_admin:
                raise ForbiddenError('User not authorized to list appointments.')

            if doctor_id is not None:
                query = query.filter(Appointment.doctor_id == doctor_id)
            if patient_id is not None:
                query = query.filter(Appointment.patient_id == patient_id)
            if status is not None:
                query = query.filter(Appointment.status == status)
            if target_date is not None:
                query = query.filter(Appointment.appointment_date == target_date)

            total = query.count()
            items = query.order_by(
                Appointment.start_time.asc(),
                Appointment.id.asc(),
            ).offset((page - 1) * limit).limit(limit).all()

        return {
            'total': total,
            'page': page,
            'limit': limit,
            'total_pages': math.ceil(total / limit),
            'items': items,
        }

    # ----- write operations -----

    def create(
        self,
        doctor_id: int,
        patient_id: int,
        on_date,
        start: time | str,
        duration_minutes: int,
        consultation_type: str = 'in_clinic',
        reason: str | None = None,
        requested_by: int | None = None,
    ) -> Appointment:
        """Book a pending appointment.

        ``requested_by`` is the user recorded on the first history entry;
        it defaults to the patient.
        """
        validate_duration(duration_minutes)
        consultation_type = (consultation_type or '').strip().lower()
        if consultation_type not in CONSULTATION_TYPES:
            raise ValidationError('Invalid consultation type.')
        reason = _clean_text(reason, MAX_REASON_LENGTH, 'Reason')
        interval = Interval.from_clock(_as_date(on_date), start, duration_minutes)

        keys = (doctor_key(doctor_id), patient_key(patient_id))
        with self._writing('create', keys, doctor_id=doctor_id, patient_id=patient_id, interval=interval.as_range()):
            self.directory.require_role(doctor_id, ROLE_DOCTOR)
            self.directory.require_role(patient_id, ROLE_PATIENT)

            now = self.now()
            lifecycle.ensure_lead_time(interval.start, now, self.min_lead_time)

            self.directory.lock_users((doctor_id, patient_id))
            self.conflicts.check(interval, doctor_id, patient_id)

            appointment = Appointment(
                doctor_id=doctor_id,
                patient_id=patient_id,
                appointment_date=interval.date,
                start_time=interval.start,
                end_time=interval.end,
                duration_minutes=interval.duration_minutes,
                status=lifecycle.PENDING,
                consultation_type=consultation_type,
                reason=reason,
                created_at=now,
                updated_at=now,
            )
            appointment.status_history.append(
                AppointmentStatusHistory(
                    status=lifecycle.PENDING,
                    changed_at=now,
                    changed_by=str(requested_by if requested_by is not None else patient_id),
                    notes='Appointment requested.',
                )
            )
            self.db.add(appointment)
            self.db.flush()

        logger.info(
            'Appointment %s created for doctor %s and patient %s at %s',
            appointment.id, doctor_id, patient_id, interval.as_range(),
        )
        return appointment

    def _transition(self, appointment_id: int, actor_id: int, operation: str, guard, target: str, notes=None):
        appointment, actor = self._locate(appointment_id, actor_id, operation)
        keys = (doctor_key(appointment.doctor_id), patient_key(appointment.patient_id))

        with self._writing(operation, keys, appointment_id=appointment_id, actor_id=actor_id):
            appointment = self._load_appointment(appointment_id, for_update=True)
            guard(appointment, actor)
            record_notes = notes(appointment) if callable(notes) else notes
            lifecycle.record_transition(appointment, target, actor, self.now(), record_notes)

        logger.info('Appointment %s moved to %s by %s', appointment_id, target, actor.label)
        return appointment

    def confirm(self, appointment_id: int, actor_id: int) -> Appointment:
        return self._transition(
            appointment_id, actor_id, 'confirm', lifecycle.ensure_can_confirm, lifecycle.CONFIRMED,
        )

    def complete(self, appointment_id: int, actor_id: int) -> Appointment:
        return self._transition(
            appointment_id, actor_id, 'complete', lifecycle.ensure_can_complete, lifecycle.COMPLETED,
        )

    def cancel(self, appointment_id: int, actor_id: int, reason: str | None = None) -> Appointment:
        reason = _clean_text(reason, MAX_REASON_LENGTH, 'Cancellation reason')

        def guard(appointment, actor):
            lifecycle.ensure_can_cancel(appointment, actor, self.now())
            appointment.cancellation_reason = reason

        return self._transition(
            appointment_id, actor_id, 'cancel', guard, lifecycle.CANCELLED, notes=reason,
        )

    def reschedule(self, appointment_id: int, new_start, new_end, actor_id: int) -> Appointment:
        interval = Interval(_as_datetime(new_start), _as_datetime(new_end))
        validate_duration(interval.duration_minutes)

        appointment, actor = self._locate(appointment_id, actor_id, 'reschedule')
        keys = (doctor_key(appointment.doctor_id), patient_key(appointment.patient_id))

        with self._writing('reschedule', keys, appointment_id=appointment_id, interval=interval.as_range()):
            appointment = self._load_appointment(appointment_id, for_update=True)
            lifecycle.ensure_can_reschedule(appointment, actor)

            now = self.now()
            lifecycle.ensure_lead_time(interval.start, now, self.min_lead_time)

            self.directory.lock_users((appointment.doctor_id, appointment.patient_id))
            self.conflicts.check(interval, appointment.doctor_id, appointment.patient_id, exclude_id=appointment.id)

            previous = _interval_of(appointment).as_range()
            appointment.appointment_date = interval.date
            appointment.start_time = interval.start
            appointment.end_time = interval.end
            appointment.duration_minutes = interval.duration_minutes
            lifecycle.record_transition(
                appointment,
                appointment.status,
                actor,
                now,
                f"Rescheduled from {previous['start']} to {interval.start.isoformat()}.",
            )

        logger.info('Appointment %s rescheduled to %s by %s', appointment_id, interval.as_range(), actor.label)
        return appointment

    def add_admin_note(self, appointment_id: int, actor_id: int, note: str) -> Appointment:
        note = _clean_text(note, MAX_NOTES_LENGTH, 'Notes')
        if note is None:
            raise ValidationError('Note text is required.')

        appointment, actor = self._locate(appointment_id, actor_id, 'add_admin_note')
        if not actor.is_admin:
            raise ForbiddenError('Only administrators can annotate appointments.')

        keys = (doctor_key(appointment.doctor_id),)
        with self._writing('add_admin_note', keys, appointment_id=appointment_id):
            # Append to the notes as stored now, not as read before the lock.
            appointment = self._load_appointment(appointment_id, for_update=True)
            combined = f'{appointment.admin_notes}\n{note}' if appointment.admin_notes else note
            if len(combined) > MAX_NOTES_LENGTH:
                raise ValidationError(f'Notes must be {MAX_NOTES_LENGTH} characters or fewer.')
            appointment.admin_notes = combined
            appointment.updated_at = self.now()

        return appointment

    def sweep_no_shows(self) -> int:
        now = self.now()
        cutoff = now - self.no_show_grace
        with self._reading('sweep_no_shows'):
            candidates = self.db.query(Appointment.id, Appointment.doctor_id).filter(
                Appointment.status == lifecycle.CONFIRMED,
                Appointment.end_time < cutoff,
            ).order_by(Appointment.end_time.asc()).all()

        system = lifecycle.Actor.system()
        marked = 0
        for appointment_id, doctor_id in candidates:
            try:
                with self._writing('sweep_no_shows', (doctor_key(doctor_id),), appointment_id=appointment_id):
                    appointment = self._load_appointment(appointment_id, for_update=True)
                    lifecycle.ensure_can_mark_no_show(appointment, system, now, self.no_show_grace)
                    lifecycle.record_transition(
                        appointment, lifecycle.NO_SHOW, system, now, 'Marked as no-show after grace period.',
                    )
            except InvalidStateError:
                # Changed status since the candidate query ran.
                continue
            marked += 1
            logger.info('Appointment %s marked as no_show', appointment_id)

        if marked:
            logger.info('sweep_no_shows: %s appointments marked as no_show', marked)
        return marked
