"""Overlap detection against a doctor's and a patient's active appointments."""

import logging

from sqlalchemy.orm import Session

from clinicbook.models.appointment import Appointment
from clinicbook.scheduling.errors import DoctorConflict, PatientConflict
from clinicbook.scheduling.intervals import Interval
from clinicbook.scheduling.lifecycle import ACTIVE_STATUSES

logger = logging.getLogger(__name__)


class ConflictChecker:
    """Read-then-decide conflict check.

    This does not give exclusivity on its own; callers hold the booking locks
    for the doctor and the patient while checking and writing.
    """

    def __init__(self, db: Session):
        self.db = db

    def _overlapping(self, owner_column, owner_id: int, interval: Interval, exclude_id: int | None):
        query = self.db.query(Appointment).filter(
            owner_column == owner_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.appointment_date == interval.date,
            Appointment.start_time < interval.end,
            Appointment.end_time > interval.start,
        )
        if exclude_id is not None:
            query = query.filter(Appointment.id != exclude_id)
        return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).first()

    def find_doctor_conflict(self, doctor_id: int, interval: Interval, exclude_id: int | None = None):
        return self._overlapping(Appointment.doctor_id, doctor_id, interval, exclude_id)

    def find_patient_conflict(self, patient_id: int, interval: Interval, exclude_id: int | None = None):
        return self._overlapping(Appointment.patient_id, patient_id, interval, exclude_id)

    def check(
        self,
        interval: Interval,
        doctor_id: int,
        patient_id: int,
        exclude_id: int | None = None,
    ) -> None:
        doctor_conflict = self.find_doctor_conflict(doctor_id, interval, exclude_id)
        if doctor_conflict is not None:
            logger.warning(
                'Doctor %s already has appointment %s overlapping %s',
                doctor_id, doctor_conflict.id, interval.as_range(),
            )
            raise DoctorConflict(
                f'Doctor has conflicting appointment {doctor_conflict.id} at this time.',
                appointment_id=doctor_conflict.id,
            )

        patient_conflict = self.find_patient_conflict(patient_id, interval, exclude_id)
        if patient_conflict is not None:
            logger.warning(
                'Patient %s already has appointment %s overlapping %s',
                patient_id, patient_conflict.id, interval.as_range(),
            )
            raise PatientConflict(
                f'Patient has conflicting appointment {patient_conflict.id} at this time.',
                appointment_id=patient_conflict.id,
            )

    def booked_intervals(self, doctor_id: int, on_date) -> list[Interval]:
        rows = self.db.query(Appointment.start_time, Appointment.end_time).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.appointment_date == on_date,
        ).order_by(Appointment.start_time.asc()).all()
        return [Interval(start_time, end_time) for start_time, end_time in rows]
