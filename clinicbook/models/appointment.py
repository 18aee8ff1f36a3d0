"""Appointment model definitions."""

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from clinicbook.database import Base


class Appointment(Base):
    """Represents a booked appointment between a doctor and a patient."""
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_date = Column(Date, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default="pending")
    consultation_type = Column(String, nullable=False, default="in_clinic")
    reason = Column(String)
    admin_notes = Column(String)
    cancellation_reason = Column(String)
    created_at = Column(DateTime)
    updated_at = Column(DateTime)

    status_history = relationship(
        "AppointmentStatusHistory",
        order_by="AppointmentStatusHistory.id",
        cascade="all, delete-orphan",
        back_populates="appointment",
    )


class AppointmentStatusHistory(Base):
    """Append-only log entry written on every appointment transition."""
    __tablename__ = "appointment_status_history"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    status = Column(String, nullable=False)
    changed_at = Column(DateTime, nullable=False)
    changed_by = Column(String, nullable=False)
    notes = Column(String)

    appointment = relationship("Appointment", back_populates="status_history")
