import enum
import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Enum as SAEnum
from afisha.core.database import Base
from afisha.utils.time_utils import utcnow


class ParticipationStatus(str, enum.Enum):
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


class EventParticipant(Base):
    """
    A user's RSVP for an event.

    One row per (event, user): confirm/cancel cycles flip ``status`` and
    overwrite the timestamps instead of inserting new rows.
    """
    __tablename__ = "event_participants"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_participants_event_user"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(SAEnum(ParticipationStatus), nullable=False, default=ParticipationStatus.CONFIRMED)
    confirmed_at = Column(DateTime, nullable=False, default=utcnow)
    cancelled_at = Column(DateTime, nullable=True)
