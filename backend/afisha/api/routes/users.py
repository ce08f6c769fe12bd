from typing import List
from fastapi import APIRouter, Depends
from afisha.api.dependencies import get_event_service
from afisha.schemas.event import EventDto
from afisha.services.event_service import EventService

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}/events", response_model=List[EventDto])
async def user_events(user_id: str, service: EventService = Depends(get_event_service)):
    """Events the user created or confirmed, as on the "my" tab"""
    return service.list_events("my", user_id)
