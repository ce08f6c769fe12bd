import enum
import uuid
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey, Enum as SAEnum
from afisha.core.database import Base


class EventStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    PAST = "PAST"
    REJECTED = "REJECTED"
    PENDING = "PENDING"


class Event(Base):
    """
    Listed event.

    ``status`` is partly derived: ACTIVE/PAST follow the clock (see
    services/status_service.py) while REJECTED and PENDING stay put until an
    admin acts. Events are never physically deleted.
    """
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(255), nullable=False)
    short_description = Column(String(500), nullable=True)
    full_description = Column(Text, nullable=False)
    start_at = Column(DateTime, nullable=False, index=True)
    end_at = Column(DateTime, nullable=False)
    # Base64 payload of the uploaded image, served by GET /events/{id}/image
    image_data = Column(Text, nullable=True)
    image_content_type = Column(String(100), nullable=True)
    # Alternative to an uploaded payload
    external_image_url = Column(String(1000), nullable=True)
    payment_info = Column(String(500), nullable=True)
    max_participants = Column(Integer, nullable=True)
    status = Column(SAEnum(EventStatus), nullable=False, default=EventStatus.ACTIVE)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    @property
    def image_url(self):
        if self.external_image_url:
            return self.external_image_url
        if self.image_data and self.id:
            return f"/events/{self.id}/image"
        return None

    @property
    def has_image(self) -> bool:
        return bool(self.image_data or self.external_image_url)
