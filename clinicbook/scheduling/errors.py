"""Errors raised by the scheduling engine.

Every guard failure is reported with one of these before anything is written.
The HTTP layer maps them to status codes; the engine itself never does.
"""


class SchedulingError(Exception):
    """Base class for all scheduling errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    """Malformed input, an empty interval, or a lead-time violation."""


class NotFoundError(SchedulingError):
    """Unknown doctor, patient or appointment."""


class ForbiddenError(SchedulingError):
    """The actor lacks the role or ownership the operation requires."""


class InvalidStateError(SchedulingError):
    """The transition is not legal from the appointment's current status."""


class ConflictError(SchedulingError):
    """The proposed interval overlaps another active appointment."""

    scope = 'appointment'

    def __init__(self, message: str, appointment_id: int):
        super().__init__(message)
        self.appointment_id = appointment_id


class DoctorConflict(ConflictError):
    scope = 'doctor'


class PatientConflict(ConflictError):
    scope = 'patient'


class InternalError(SchedulingError):
    """Opaque wrapper for persistence failures."""
