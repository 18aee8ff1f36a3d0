import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from clinicbook.core import config
from clinicbook.database import Base, engine, ensure_appointment_schema
from clinicbook.models import appointment, availability, user  # noqa: F401
from clinicbook.routes import appointment_routes, availability_routes
from clinicbook.scheduling.locks import BookingLocks

config.validate_runtime_config()

app = FastAPI()
app.state.booking_locks = BookingLocks()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Appointment Scheduling API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(availability_routes.router, prefix='/doctors')
