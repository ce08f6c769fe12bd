from datetime import datetime
from typing import Dict, Iterable, List, Optional
from sqlalchemy.orm import Session
from afisha.models.user import User, UserRole, UserStatus


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class UserRepository:
    """Queries and writes for users. Flushes only; the calling service commits."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[User]:
        if not user_id:
            return None
        return self.db.get(User, str(user_id))

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def email_exists(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def admin_exists(self) -> bool:
        return self.db.query(User.id).filter(User.role == UserRole.ADMIN).first() is not None

    def get_many(self, user_ids: Iterable[str]) -> Dict[str, User]:
        ids = {str(uid) for uid in user_ids if uid}
        if not ids:
            return {}
        users = self.db.query(User).filter(User.id.in_(ids)).all()
        return {user.id: user for user in users}

    def search(
        self,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        query: Optional[str] = None,
        registered_from: Optional[datetime] = None,
        registered_to: Optional[datetime] = None,
    ) -> List[User]:
        q = self.db.query(User)
        if role is not None:
            q = q.filter(User.role == role)
        if status is not None:
            q = q.filter(User.status == status)
        if registered_from is not None:
            q = q.filter(User.registered_at >= registered_from)
        if registered_to is not None:
            q = q.filter(User.registered_at <= registered_to)
        users = q.order_by(User.registered_at).all()
        # Case-insensitive substring match done in Python: SQLite's lower()
        # only folds ASCII, and names are Cyrillic
        if query and query.strip():
            needle = query.strip().casefold()
            users = [u for u in users if needle in u.full_name.casefold()]
        return users

    def add(self, user: User) -> User:
        user.email = normalize_email(user.email)
        self.db.add(user)
        self.db.flush()
        return user
