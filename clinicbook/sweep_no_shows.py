"""Mark elapsed confirmed appointments as no-shows.

Meant to run from cron, e.g. every 15 minutes.

Usage:
    python -m clinicbook.sweep_no_shows
"""
import logging
import sys

from clinicbook.database import SessionLocal, ensure_appointment_schema
from clinicbook.scheduling.errors import InternalError
from clinicbook.services.booking_service import BookingService


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    ensure_appointment_schema()

    db = SessionLocal()
    try:
        marked = BookingService(db).sweep_no_shows()
    except InternalError as exc:
        print("No-show sweep failed:", exc.message, file=sys.stderr)
        sys.exit(1)
    finally:
        db.close()

    print(f"{marked} appointments marked as no_show")


if __name__ == "__main__":
    main()
