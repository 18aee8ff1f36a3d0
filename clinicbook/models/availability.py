"""Doctor availability model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from clinicbook.database import Base


class DoctorAvailability(Base):
    """Recurring weekly availability of a single doctor."""
    __tablename__ = "doctor_availability"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    available_days = Column(String, nullable=False, default="")  # "Mon,Tue,..."
    slot_duration_minutes = Column(Integer, nullable=False, default=15)
    max_bookings_per_slot = Column(Integer, nullable=False, default=1)

    windows = relationship(
        "AvailabilityWindow",
        order_by="AvailabilityWindow.position",
        cascade="all, delete-orphan",
        back_populates="availability",
    )


class AvailabilityWindow(Base):
    """A daily time window, stored as minutes since midnight."""
    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True)
    availability_id = Column(Integer, ForeignKey("doctor_availability.id"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    start_minute = Column(Integer, nullable=False)
    end_minute = Column(Integer, nullable=False)

    availability = relationship("DoctorAvailability", back_populates="windows")
