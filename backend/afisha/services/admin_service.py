"""
Admin moderation: user management, event moderation and exports.

Callers are expected to have passed the ``require_admin`` gate already.
"""
import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from afisha.core.exceptions import NotFoundError, ValidationError
from afisha.core.security import get_password_hash
from afisha.core.validation import validate_full_name, validate_password
from afisha.models.event import EventStatus
from afisha.models.participant import ParticipationStatus
from afisha.models.user import User, UserRole, UserStatus
from afisha.repositories.user_repository import UserRepository
from afisha.schemas.event import AdminEventRequest, EventDetails, EventSummary
from afisha.schemas.user import UserUpdate
from afisha.services.event_service import EventService
from afisha.services.notifications import Notifier
from afisha.utils import export_utils
from afisha.utils.time_utils import utcnow

logger = logging.getLogger(__name__)


class AdminService:

    def __init__(self, db: Session, mailer):
        self.db = db
        self.users = UserRepository(db)
        self.notifier = Notifier(mailer)
        self.event_service = EventService(db, mailer)
        # One warnings list for both user and event notifications
        self.event_service.notifier = self.notifier

    @property
    def warnings(self):
        return self.notifier.warnings

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def search_users(
        self,
        role: Optional[UserRole] = None,
        status: Optional[UserStatus] = None,
        query: Optional[str] = None,
        registered_from: Optional[datetime] = None,
        registered_to: Optional[datetime] = None,
    ) -> List[User]:
        return self.users.search(role, status, query, registered_from, registered_to)

    def get_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None:
            raise NotFoundError("Пользователь не найден")
        return user

    def update_user(self, user_id: str, changes: UserUpdate) -> User:
        user = self.get_user(user_id)
        if changes.full_name is not None:
            full_name = changes.full_name.strip()
            validate_full_name(full_name)
            user.full_name = full_name
        if changes.role is not None:
            user.role = changes.role
        if changes.status is not None:
            user.status = changes.status
        self.db.commit()
        logger.info("Admin updated user %s", user.id)
        return user

    def force_password_reset(self, user_id: str, new_password: str) -> User:
        validate_password(new_password)
        user = self.get_user(user_id)
        user.password_hash = get_password_hash(new_password)
        user.must_change_password = True
        self.db.commit()
        logger.info("Admin reset password for user %s", user.id)

        self.notifier.notify(
            user.email,
            "Пароль изменен администратором",
            "Администратор установил вам новый пароль. Смените его после входа.",
        )
        return user

    def delete_user(self, user_id: str) -> User:
        user = self.get_user(user_id)
        user.status = UserStatus.DELETED
        self.db.commit()
        logger.info("Admin soft-deleted user %s", user.id)
        return user

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def list_events(self, status: Optional[EventStatus] = None) -> List[EventSummary]:
        events = self.event_service.refresh_statuses(self.event_service.events.list_all(), commit=False)
        if status is not None:
            events = [e for e in events if e.status == status]
        counts = self.event_service.participants.count_confirmed_by_event(e.id for e in events)
        summaries = [
            EventSummary(
                id=e.id,
                title=e.title,
                status=e.status,
                start_at=e.start_at,
                end_at=e.end_at,
                participants=counts.get(e.id, 0),
            )
            for e in events
        ]
        self.db.commit()
        return summaries

    def get_event_details(self, event_id: str) -> EventDetails:
        event = self.event_service.get_event_details(event_id)
        return EventDetails(
            event=event,
            participants=self.event_service.roster(event_id),
            warnings=list(self.warnings),
        )

    def create_event(self, data: AdminEventRequest, admin: User) -> EventDetails:
        creator_id = data.created_by or admin.id
        event = self.event_service.create_event(data, creator_id)
        return self.get_event_details(event.id)

    def update_event(self, event_id: str, data: AdminEventRequest) -> EventDetails:
        event = self.event_service.update_event(event_id, data, data.participant_ids)
        return self.get_event_details(event.id)

    def approve_event(self, event_id: str) -> EventDetails:
        self.event_service.approve_event(event_id)
        return self.get_event_details(event_id)

    def reject_event(self, event_id: str) -> EventDetails:
        self.event_service.reject_event(event_id)
        return self.get_event_details(event_id)

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def _event_rows(self) -> List[dict]:
        return [
            {
                "id": s.id,
                "title": s.title,
                "status": s.status.value,
                "start_at": s.start_at.isoformat(),
                "end_at": s.end_at.isoformat(),
                "participants": s.participants,
            }
            for s in self.list_events()
        ]

    def _roster_rows(self, event_id: str, confirmed_only: bool) -> List[dict]:
        self.event_service.get_event(event_id)
        rows = []
        for p in self.event_service.roster(event_id):
            if confirmed_only and p.status != ParticipationStatus.CONFIRMED:
                continue
            rows.append({
                "full_name": p.full_name,
                "email": p.email,
                "status": p.status.value,
                "confirmed_at": _fmt(p.confirmed_at),
                "cancelled_at": _fmt(p.cancelled_at),
            })
        return rows

    def export_events(self, fmt: str) -> bytes:
        rows = self._event_rows()
        if fmt == "csv":
            return export_utils.events_to_csv(rows)
        if fmt == "xlsx":
            return export_utils.events_to_xlsx(rows)
        raise ValidationError(f"Неподдерживаемый формат: {fmt}", field="format")

    def export_roster(self, event_id: str, fmt: str) -> bytes:
        if fmt == "csv":
            return export_utils.roster_to_csv(self._roster_rows(event_id, confirmed_only=True))
        if fmt == "xlsx":
            return export_utils.roster_to_xlsx(self._roster_rows(event_id, confirmed_only=False))
        raise ValidationError(f"Неподдерживаемый формат: {fmt}", field="format")


def _fmt(value: Optional[datetime]) -> Optional[str]:
    return value.strftime("%Y-%m-%d %H:%M") if value else None


def export_filename(prefix: str, fmt: str) -> str:
    return f"{prefix}-{utcnow().strftime('%Y%m%d-%H%M%S')}.{fmt}"
