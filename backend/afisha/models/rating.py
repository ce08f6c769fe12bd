import uuid
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, UniqueConstraint, CheckConstraint
from afisha.core.database import Base
from afisha.utils.time_utils import utcnow


class EventRating(Base):
    """Score left by a confirmed participant after the event. One per user per event."""
    __tablename__ = "event_ratings"
    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_event_ratings_event_user"),
        CheckConstraint("score BETWEEN 1 AND 5", name="ck_event_ratings_score"),
    )

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    score = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
