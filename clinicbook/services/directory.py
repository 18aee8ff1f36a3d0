"""Resolves user ids to roles for the booking engine."""

from sqlalchemy.orm import Session

from clinicbook.models.user import User
from clinicbook.scheduling.errors import ForbiddenError, NotFoundError
from clinicbook.scheduling.lifecycle import Actor


class UserDirectory:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: int) -> User | None:
        return self.db.query(User).filter(User.id == user_id).first()

    def require_role(self, user_id: int, role: str) -> User:
        user = self.get(user_id)
        if user is None or user.role != role:
            raise NotFoundError(f'{role.capitalize()} {user_id} not found.')
        return user

    def actor(self, user_id: int) -> Actor:
        user = self.get(user_id)
        if user is None:
            raise ForbiddenError('Unknown user.')
        return Actor(id=user.id, role=user.role)

    def lock_users(self, user_ids) -> list[User]:
        # Row locks in id order; SQLite ignores FOR UPDATE.
        ids = sorted({user_id for user_id in user_ids if user_id is not None})
        if not ids:
            return []
        return self.db.query(User).filter(User.id.in_(ids)).order_by(User.id.asc()).with_for_update().all()
