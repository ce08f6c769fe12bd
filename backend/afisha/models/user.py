import enum
import uuid
from sqlalchemy import Column, String, DateTime, Boolean, Enum as SAEnum
from afisha.core.database import Base
from afisha.utils.time_utils import utcnow


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class UserStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    DELETED = "DELETED"


class User(Base):
    """
    Registered account.

    Users are never physically deleted - an admin flips status to DELETED,
    which blocks login and token refresh.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    full_name = Column(String(255), nullable=False)
    # Stored lower-cased so lookups are case-insensitive
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=False)
    role = Column(SAEnum(UserRole), nullable=False, default=UserRole.USER)
    status = Column(SAEnum(UserStatus), nullable=False, default=UserStatus.ACTIVE)
    registered_at = Column(DateTime, nullable=False, default=utcnow)
    email_verified = Column(Boolean, nullable=False, default=False)
    email_verified_at = Column(DateTime, nullable=True)
    must_change_password = Column(Boolean, nullable=False, default=False)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    @property
    def is_deleted(self) -> bool:
        return self.status == UserStatus.DELETED
