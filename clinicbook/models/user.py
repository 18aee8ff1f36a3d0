"""User model definitions."""

from sqlalchemy import Column, Integer, String
from clinicbook.database import Base

ROLE_DOCTOR = "doctor"
ROLE_PATIENT = "patient"
ROLE_ADMIN = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True)
    full_name = Column(String)
    role = Column(String)  # doctor/patient/admin
