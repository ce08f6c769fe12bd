from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from afisha.models.token import EmailVerificationToken, PasswordResetToken


class _OneTimeTokenRepository:
    """Shared logic for single-use tokens looked up by their secret value."""

    model = None
    value_attr = None

    def __init__(self, db: Session):
        self.db = db

    @property
    def _value_column(self):
        return getattr(self.model, self.value_attr)

    def find(self, value: str):
        if not value:
            return None
        return self.db.query(self.model).filter(self._value_column == value.strip()).first()

    def exists(self, value: str) -> bool:
        return self.db.query(self.model.id).filter(self._value_column == value).first() is not None

    def active_for_user(self, user_id: str) -> List:
        return (
            self.db.query(self.model)
            .filter(self.model.user_id == user_id, self.model.consumed_at.is_(None))
            .all()
        )

    def create(self, user_id: str, value: str, expires_at: datetime):
        token = self.model(user_id=user_id, expires_at=expires_at, **{self.value_attr: value})
        self.db.add(token)
        self.db.flush()
        return token

    def consume(self, token, now: datetime) -> None:
        token.consumed_at = now

    def close_active(self, user_id: str, now: datetime, except_id: Optional[str] = None) -> int:
        """Mark every unconsumed token of the user as consumed, keeping ``except_id``."""
        closed = 0
        for token in self.active_for_user(user_id):
            if except_id is not None and token.id == except_id:
                continue
            token.consumed_at = now
            closed += 1
        return closed


class VerificationTokenRepository(_OneTimeTokenRepository):
    model = EmailVerificationToken
    value_attr = "code"


class ResetTokenRepository(_OneTimeTokenRepository):
    model = PasswordResetToken
    value_attr = "token"
