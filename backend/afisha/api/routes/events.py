import base64
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Response, status
from afisha.api.dependencies import (
    get_current_user,
    get_current_user_optional,
    get_event_service,
    require_admin,
    resolve_acting_user_id,
    resolve_user_id,
)
from afisha.core.exceptions import ForbiddenError, NotFoundError
from afisha.models.participant import ParticipationStatus
from afisha.models.user import User
from afisha.schemas.base import MessageResponse
from afisha.schemas.event import EventDto, EventRequest, RatingRequest, RatingsResponse
from afisha.services.event_service import EventService

router = APIRouter(prefix="/events", tags=["events"])


def _require_owner_or_admin(event, user: User) -> None:
    if event.created_by != user.id and not user.is_admin:
        raise ForbiddenError("Недостаточно прав")


@router.get("", response_model=List[EventDto])
async def list_events(
    tab: str = "my",
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: EventService = Depends(get_event_service)
):
    """List events for a tab: active, past or my"""
    return service.list_events(tab, resolve_user_id(user_id, current_user))


@router.get("/active", response_model=List[EventDto])
async def list_active(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: EventService = Depends(get_event_service)
):
    return service.list_events("active", resolve_user_id(user_id, current_user))


@router.get("/past", response_model=List[EventDto])
async def list_past(
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: EventService = Depends(get_event_service)
):
    return service.list_events("past", resolve_user_id(user_id, current_user))


@router.post("", response_model=EventDto, status_code=status.HTTP_201_CREATED)
async def create_event(
    payload: EventRequest,
    creator_id: Optional[str] = Query(default=None, alias="creatorId"),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Create an event. Events from regular users start as PENDING."""
    event = service.create_event(payload, resolve_acting_user_id(creator_id, current_user))
    return service.get_event_details(event.id, current_user.id)


@router.get("/{event_id}", response_model=EventDto)
async def get_event(
    event_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: EventService = Depends(get_event_service)
):
    return service.get_event_details(event_id, resolve_user_id(user_id, current_user))


@router.get("/{event_id}/image")
async def get_event_image(event_id: str, service: EventService = Depends(get_event_service)):
    """Stream the stored image payload"""
    event = service.get_event(event_id)
    if not event.image_data:
        raise NotFoundError("Изображение не найдено")
    return Response(
        content=base64.b64decode(event.image_data),
        media_type=event.image_content_type or "image/jpeg",
    )


@router.get("/{event_id}/status", response_model=Optional[ParticipationStatus])
async def get_participation_status(
    event_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: Optional[User] = Depends(get_current_user_optional),
    service: EventService = Depends(get_event_service)
):
    return service.participation_status(event_id, resolve_user_id(user_id, current_user))


@router.post("/{event_id}/confirm", response_model=MessageResponse)
async def confirm_participation(
    event_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    service.confirm_participation(event_id, resolve_acting_user_id(user_id, current_user))
    return MessageResponse(message="Участие подтверждено", warnings=service.warnings)


@router.post("/{event_id}/cancel", response_model=MessageResponse)
async def cancel_participation(
    event_id: str,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    service.cancel_participation(event_id, resolve_acting_user_id(user_id, current_user))
    return MessageResponse(message="Участие отменено", warnings=service.warnings)


@router.put("/{event_id}", response_model=MessageResponse)
async def update_event(
    event_id: str,
    payload: EventRequest,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Edit an event. Only its creator or an admin may do this."""
    event = service.get_event(event_id)
    _require_owner_or_admin(event, current_user)
    service.update_event(event_id, payload)
    return MessageResponse(message="Обновлено", warnings=service.warnings)


@router.post("/{event_id}/reject", response_model=MessageResponse)
async def reject_event(
    event_id: str,
    admin: User = Depends(require_admin),
    service: EventService = Depends(get_event_service)
):
    service.reject_event(event_id)
    return MessageResponse(message="Событие отклонено", warnings=service.warnings)


@router.post("/{event_id}/rate", response_model=MessageResponse)
@router.post("/{event_id}/ratings", response_model=MessageResponse)
async def rate_event(
    event_id: str,
    payload: RatingRequest,
    user_id: Optional[str] = Query(default=None, alias="userId"),
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    author_id = resolve_acting_user_id(payload.user_id or user_id, current_user)
    service.add_rating(event_id, author_id, payload.score, payload.comment)
    return MessageResponse(message="Оценка сохранена")


@router.get("/{event_id}/ratings", response_model=RatingsResponse)
async def get_ratings(event_id: str, service: EventService = Depends(get_event_service)):
    return service.get_ratings(event_id)


@router.get("/{event_id}/export", response_model=List[str])
async def export_participants(
    event_id: str,
    current_user: User = Depends(get_current_user),
    service: EventService = Depends(get_event_service)
):
    """Confirmed participants as "fullName;email" lines, for the creator or an admin"""
    event = service.get_event(event_id)
    _require_owner_or_admin(event, current_user)
    return service.export_participants(event_id)
