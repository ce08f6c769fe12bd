"""Event payloads and the enriched views returned by the event endpoints."""
from datetime import datetime
from typing import List, Optional
from pydantic import Field, field_validator
from afisha.models.event import EventStatus
from afisha.models.participant import ParticipationStatus
from afisha.schemas.base import CamelModel
from afisha.utils.time_utils import to_naive_utc


class EventRequest(CamelModel):
    """Body of POST /events and PUT /events/{id}."""
    title: str = Field(min_length=1, max_length=255)
    short_description: Optional[str] = Field(default=None, max_length=500)
    full_description: str = Field(min_length=1)
    start_at: datetime
    end_at: datetime
    image_base64: Optional[str] = None
    image_type: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=1000)
    payment_info: Optional[str] = Field(default=None, max_length=500)
    max_participants: Optional[int] = Field(default=None, ge=1)
    participant_ids: List[str] = []

    @field_validator("start_at", "end_at")
    @classmethod
    def _as_naive_utc(cls, value: datetime) -> datetime:
        return to_naive_utc(value)

    @field_validator("title", "full_description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Поле не может быть пустым")
        return value.strip()


class AdminEventRequest(EventRequest):
    """Admin variant: may set status and creator, and sync the roster.

    ``participant_ids`` of None leaves the roster untouched on update.
    """
    status: Optional[EventStatus] = None
    created_by: Optional[str] = None
    participant_ids: Optional[List[str]] = None


class EventDto(CamelModel):
    id: str
    title: str
    short_description: Optional[str] = None
    full_description: str
    start_at: datetime
    end_at: datetime
    image_url: Optional[str] = None
    payment_info: Optional[str] = None
    max_participants: Optional[int] = None
    status: EventStatus
    created_by: str
    created_by_full_name: Optional[str] = None
    participants_count: int = 0
    participation_status: Optional[ParticipationStatus] = None
    average_rating: Optional[float] = None
    ratings_count: int = 0


class EventSummary(CamelModel):
    id: str
    title: str
    status: EventStatus
    start_at: datetime
    end_at: datetime
    participants: int


class ParticipantView(CamelModel):
    id: str
    user_id: str
    full_name: Optional[str] = None
    email: Optional[str] = None
    status: ParticipationStatus
    confirmed_at: datetime
    cancelled_at: Optional[datetime] = None


class EventDetails(CamelModel):
    event: EventDto
    participants: List[ParticipantView]
    warnings: List[str] = []


class RatingRequest(CamelModel):
    user_id: Optional[str] = None
    # Range is enforced by the service so the message matches the other rules
    score: int
    comment: Optional[str] = Field(default=None, max_length=2000)


class RatingView(CamelModel):
    user_id: str
    user_name: Optional[str] = None
    score: int
    comment: Optional[str] = None
    created_at: datetime


class RatingsResponse(CamelModel):
    average: Optional[float] = None
    count: int = 0
    ratings: List[RatingView] = []
