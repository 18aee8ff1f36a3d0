from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinicbook.database import SessionLocal, ensure_appointment_schema
from clinicbook.scheduling.errors import (
    ConflictError,
    ForbiddenError,
    InternalError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from clinicbook.services.availability_service import AvailabilityService
from clinicbook.services.booking_service import BookingService

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_BY_ERROR = (
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
)


def ensure_database_ready() -> None:
    try:
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_booking_service(request: Request, db: Session = Depends(get_db)) -> BookingService:
    ensure_database_ready()
    return BookingService(db, locks=request.app.state.booking_locks)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    ensure_database_ready()
    return AvailabilityService(db)


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, InternalError):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=DATABASE_UNAVAILABLE_DETAIL)

    if isinstance(exc, ConflictError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                'message': exc.message,
                'conflict_scope': exc.scope,
                'appointment_id': exc.appointment_id,
            },
        )

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)

    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
