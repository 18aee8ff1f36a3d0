"""Appointment state machine.

    pending --confirm--> confirmed --complete--> completed
    pending/confirmed --cancel--> cancelled
    confirmed --(sweep, end + grace passed)--> no_show

Terminal states have no outgoing edges. Rescheduling keeps the status and
only replaces the interval. Guards check the actor first, then the status,
and raise before anything is mutated. ``record_transition`` applies a
transition once its guard has passed.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta

from clinicbook.models.appointment import Appointment, AppointmentStatusHistory
from clinicbook.models.user import ROLE_ADMIN, ROLE_DOCTOR, ROLE_PATIENT
from clinicbook.scheduling.errors import ForbiddenError, InvalidStateError, ValidationError

PENDING = 'pending'
CONFIRMED = 'confirmed'
COMPLETED = 'completed'
CANCELLED = 'cancelled'
NO_SHOW = 'no_show'

ALL_STATUSES = (PENDING, CONFIRMED, COMPLETED, CANCELLED, NO_SHOW)
ACTIVE_STATUSES = (PENDING, CONFIRMED)
TERMINAL_STATUSES = (COMPLETED, CANCELLED, NO_SHOW)

TRANSITIONS = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({COMPLETED, CANCELLED, NO_SHOW}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    NO_SHOW: frozenset(),
}

SYSTEM_ROLE = 'system'


@dataclass(frozen=True)
class Actor:
    id: int | None
    role: str

    @classmethod
    def system(cls) -> 'Actor':
        return cls(id=None, role=SYSTEM_ROLE)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def label(self) -> str:
        return SYSTEM_ROLE if self.id is None else str(self.id)

    def is_assigned_doctor(self, appointment: Appointment) -> bool:
        return self.role == ROLE_DOCTOR and self.id == appointment.doctor_id

    def is_patient_of(self, appointment: Appointment) -> bool:
        return self.role == ROLE_PATIENT and self.id == appointment.patient_id

    def can_view(self, appointment: Appointment) -> bool:
        return self.is_admin or self.is_assigned_doctor(appointment) or self.is_patient_of(appointment)


def ensure_lead_time(start: datetime, now: datetime, min_lead: timedelta) -> None:
    if start - now < min_lead:
        hours = int(min_lead.total_seconds() // 3600)
        raise ValidationError(f'Appointment must be scheduled at least {hours} hours in advance.')


def ensure_transition(appointment: Appointment, target: str) -> None:
    allowed = TRANSITIONS.get(appointment.status, frozenset())
    if target not in allowed:
        raise InvalidStateError(f'Cannot move a {appointment.status} appointment to {target}.')


def ensure_can_confirm(appointment: Appointment, actor: Actor) -> None:
    if not (actor.is_admin or actor.is_assigned_doctor(appointment)):
        raise ForbiddenError('Only the assigned doctor can confirm this appointment.')
    ensure_transition(appointment, CONFIRMED)


def ensure_can_complete(appointment: Appointment, actor: Actor) -> None:
    if not (actor.is_admin or actor.is_assigned_doctor(appointment)):
        raise ForbiddenError('Only the assigned doctor can complete this appointment.')
    ensure_transition(appointment, COMPLETED)


def ensure_can_cancel(appointment: Appointment, actor: Actor, now: datetime) -> None:
    if not actor.can_view(appointment):
        raise ForbiddenError('User not authorized to cancel this appointment.')
    if appointment.status not in ACTIVE_STATUSES:
        raise InvalidStateError(f'Cannot cancel a {appointment.status} appointment.')
    # Cancellation policy: the appointment must not have started yet.
    if appointment.start_time <= now:
        raise InvalidStateError('Cannot cancel an appointment that has already started.')


def ensure_can_reschedule(appointment: Appointment, actor: Actor) -> None:
    if not (actor.is_admin or actor.is_patient_of(appointment)):
        raise ForbiddenError('Only the patient can reschedule this appointment.')
    if appointment.status not in ACTIVE_STATUSES:
        raise InvalidStateError(f'Cannot reschedule a {appointment.status} appointment.')


def ensure_can_mark_no_show(appointment: Appointment, actor: Actor, now: datetime, grace: timedelta) -> None:
    ensure_transition(appointment, NO_SHOW)
    if actor.role != SYSTEM_ROLE:
        raise ForbiddenError('No-shows are only recorded by the scheduled sweep.')
    if now <= appointment.end_time + grace:
        raise InvalidStateError('The no-show grace period has not elapsed yet.')


def record_transition(
    appointment: Appointment,
    status: str,
    actor: Actor,
    now: datetime,
    notes: str | None = None,
) -> AppointmentStatusHistory:
    entry = AppointmentStatusHistory(
        status=status,
        changed_at=now,
        changed_by=actor.label,
        notes=notes,
    )
    appointment.status = status
    appointment.updated_at = now
    appointment.status_history.append(entry)
    return entry
