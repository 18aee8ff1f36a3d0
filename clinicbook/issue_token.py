"""Print a bearer token for an existing user.

Login is handled outside this service; this is for local development and
integration testing.

Usage:
    python -m clinicbook.issue_token <user_id> [expires_minutes]
"""
import sys

from clinicbook.auth.jwt_handler import create_access_token
from clinicbook.database import SessionLocal
from clinicbook.services.directory import UserDirectory


def main(argv: list[str] | None = None) -> None:
    args = sys.argv[1:] if argv is None else argv
    if not args or not args[0].isdigit():
        print("Usage: python -m clinicbook.issue_token <user_id> [expires_minutes]", file=sys.stderr)
        sys.exit(2)

    user_id = int(args[0])
    expires_minutes = int(args[1]) if len(args) > 1 else None

    db = SessionLocal()
    try:
        user = UserDirectory(db).get(user_id)
    finally:
        db.close()
    if user is None:
        print(f"User {user_id} not found.", file=sys.stderr)
        sys.exit(1)

    print(create_access_token(str(user.id), expires_minutes))


if __name__ == "__main__":
    main()
