from datetime import datetime
from typing import List, Literal, Optional
from fastapi import APIRouter, Depends, Query, Response
from afisha.api.dependencies import get_admin_service, require_admin
from afisha.models.event import EventStatus
from afisha.models.user import User, UserRole, UserStatus
from afisha.schemas.base import CamelModel, MessageResponse
from afisha.schemas.event import AdminEventRequest, EventDetails, EventSummary
from afisha.schemas.user import UserAdminView, UserUpdate
from afisha.services.admin_service import AdminService, export_filename
from afisha.utils.export_utils import CSV_MEDIA_TYPE, XLSX_MEDIA_TYPE
from afisha.utils.time_utils import to_naive_utc

# Every route here goes through the same gate
router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])

ExportFormat = Literal["csv", "xlsx"]
MEDIA_TYPES = {"csv": CSV_MEDIA_TYPE, "xlsx": XLSX_MEDIA_TYPE}


class PasswordResetRequest(CamelModel):
    password: str


def _download(content: bytes, fmt: str, prefix: str) -> Response:
    return Response(
        content=content,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{export_filename(prefix, fmt)}"'},
    )


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------

@router.get("/users", response_model=List[UserAdminView])
async def list_users(
    role: Optional[UserRole] = None,
    status: Optional[UserStatus] = None,
    query: Optional[str] = None,
    registered_from: Optional[datetime] = Query(default=None, alias="registeredFrom"),
    registered_to: Optional[datetime] = Query(default=None, alias="registeredTo"),
    service: AdminService = Depends(get_admin_service)
):
    """Filter users by role, status, name substring and registration window"""
    return service.search_users(
        role=role,
        status=status,
        query=query,
        registered_from=to_naive_utc(registered_from) if registered_from else None,
        registered_to=to_naive_utc(registered_to) if registered_to else None,
    )


@router.patch("/users/{user_id}", response_model=UserAdminView)
async def update_user(user_id: str, payload: UserUpdate, service: AdminService = Depends(get_admin_service)):
    return service.update_user(user_id, payload)


@router.post("/users/{user_id}/reset-password", response_model=MessageResponse)
async def reset_user_password(
    user_id: str,
    payload: PasswordResetRequest,
    service: AdminService = Depends(get_admin_service)
):
    service.force_password_reset(user_id, payload.password)
    return MessageResponse(message="Пароль обновлен", warnings=service.warnings)


@router.delete("/users/{user_id}", response_model=MessageResponse)
async def delete_user(user_id: str, service: AdminService = Depends(get_admin_service)):
    service.delete_user(user_id)
    return MessageResponse(message="Пользователь удален")


# ----------------------------------------------------------------------
# Events
# ----------------------------------------------------------------------

@router.get("/events", response_model=List[EventSummary])
async def list_events(
    status: Optional[EventStatus] = None,
    service: AdminService = Depends(get_admin_service)
):
    return service.list_events(status)


@router.get("/events/export/{fmt}")
async def export_events(fmt: ExportFormat, service: AdminService = Depends(get_admin_service)):
    return _download(service.export_events(fmt), fmt, "events")


@router.post("/events", response_model=EventDetails, status_code=201)
async def create_event(
    payload: AdminEventRequest,
    admin: User = Depends(require_admin),
    service: AdminService = Depends(get_admin_service)
):
    return service.create_event(payload, admin)


@router.get("/events/{event_id}", response_model=EventDetails)
async def get_event(event_id: str, service: AdminService = Depends(get_admin_service)):
    return service.get_event_details(event_id)


@router.put("/events/{event_id}", response_model=EventDetails)
async def update_event(
    event_id: str,
    payload: AdminEventRequest,
    service: AdminService = Depends(get_admin_service)
):
    """Update an event; a present ``participantIds`` list replaces the roster"""
    return service.update_event(event_id, payload)


@router.post("/events/{event_id}/approve", response_model=EventDetails)
async def approve_event(event_id: str, service: AdminService = Depends(get_admin_service)):
    return service.approve_event(event_id)


@router.post("/events/{event_id}/reject", response_model=EventDetails)
async def reject_event(event_id: str, service: AdminService = Depends(get_admin_service)):
    return service.reject_event(event_id)


@router.delete("/events/{event_id}", response_model=EventDetails)
async def delete_event(event_id: str, service: AdminService = Depends(get_admin_service)):
    """Events are never removed; deleting rejects them"""
    return service.reject_event(event_id)


@router.get("/events/{event_id}/export/{fmt}")
async def export_roster(event_id: str, fmt: ExportFormat, service: AdminService = Depends(get_admin_service)):
    return _download(service.export_roster(event_id, fmt), fmt, f"participants-{event_id}")
