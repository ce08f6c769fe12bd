"""
Event lifecycle and participation.

Responsibilities:
- Event create/update with date and image validation
- Status reconciliation on every read (see status_service)
- Capacity-gated RSVP confirm/cancel on a single row per (event, user)
- Rating eligibility: PAST events, CONFIRMED participants, score 1-5
- Enriched DTOs: confirmed count, creator name, caller's RSVP, rating aggregate
"""
import logging
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Set
from sqlalchemy.orm import Session
from afisha.core.exceptions import NotFoundError, ValidationError
from afisha.models.event import Event, EventStatus
from afisha.models.participant import EventParticipant, ParticipationStatus
from afisha.models.rating import EventRating
from afisha.models.user import User, UserRole, UserStatus
from afisha.repositories.event_repository import EventRepository
from afisha.repositories.participant_repository import ParticipantRepository
from afisha.repositories.rating_repository import RatingRepository
from afisha.repositories.user_repository import UserRepository
from afisha.schemas.event import EventDto, EventRequest, ParticipantView, RatingView, RatingsResponse
from afisha.services.notifications import Notifier
from afisha.services.status_service import apply_decisions
from afisha.utils.image_utils import decode_image, validate_image_url
from afisha.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

TABS = ("active", "past", "my")
EVENT_NOT_FOUND = "Событие не найдено"


class EventService:

    def __init__(self, db: Session, mailer, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock
        self.events = EventRepository(db)
        self.participants = ParticipantRepository(db)
        self.ratings = RatingRepository(db)
        self.users = UserRepository(db)
        self.notifier = Notifier(mailer)

    @property
    def warnings(self):
        return self.notifier.warnings

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list_events(self, tab: str, user_id: Optional[str] = None) -> List[EventDto]:
        if tab not in TABS:
            raise ValidationError(f"Неизвестная вкладка: {tab}", field="tab")
        events = self.refresh_statuses(self.events.list_all(), commit=False)

        if tab == "active":
            selected = [e for e in events if e.status == EventStatus.ACTIVE]
        elif tab == "past":
            selected = [e for e in events if e.status == EventStatus.PAST]
        elif user_id:
            mine = self.participants.confirmed_event_ids_for_user(user_id)
            selected = [
                e for e in events
                if (e.id in mine or e.created_by == user_id)
                and e.status != EventStatus.REJECTED
                and (e.status != EventStatus.PENDING or e.created_by == user_id)
            ]
        else:
            selected = []

        selected.sort(key=lambda e: e.start_at)
        dtos = self._to_dtos(selected, user_id)
        self.db.commit()
        return dtos

    def get_event(self, event_id: str) -> Event:
        event = self.events.get(event_id)
        if event is None:
            raise NotFoundError(EVENT_NOT_FOUND)
        self.refresh_statuses([event])
        return event

    def get_event_details(self, event_id: str, user_id: Optional[str] = None) -> EventDto:
        event = self.get_event(event_id)
        return self._to_dtos([event], user_id)[0]

    def participation_status(self, event_id: str, user_id: Optional[str]) -> Optional[ParticipationStatus]:
        self.get_event(event_id)
        if not user_id:
            return None
        participant = self.participants.get(event_id, user_id)
        return participant.status if participant else None

    def get_ratings(self, event_id: str) -> RatingsResponse:
        self.get_event(event_id)
        ratings = self.ratings.list_for_event(event_id)
        if not ratings:
            return RatingsResponse(average=None, count=0, ratings=[])
        users = self.users.get_many(r.user_id for r in ratings)
        views = [
            RatingView(
                user_id=r.user_id,
                user_name=users[r.user_id].full_name if r.user_id in users else None,
                score=r.score,
                comment=r.comment,
                created_at=r.created_at,
            )
            for r in ratings
        ]
        average = sum(r.score for r in ratings) / len(ratings)
        return RatingsResponse(average=average, count=len(ratings), ratings=views)

    def roster(self, event_id: str, status: Optional[ParticipationStatus] = None) -> List[ParticipantView]:
        participants = self.participants.list_for_event(event_id, status)
        users = self.users.get_many(p.user_id for p in participants)
        views = []
        for p in participants:
            user = users.get(p.user_id)
            views.append(ParticipantView(
                id=p.id,
                user_id=p.user_id,
                full_name=user.full_name if user else None,
                email=user.email if user else None,
                status=p.status,
                confirmed_at=p.confirmed_at,
                cancelled_at=p.cancelled_at,
            ))
        return views

    def export_participants(self, event_id: str) -> List[str]:
        """Confirmed participants as "fullName;email" lines."""
        self.get_event(event_id)
        return [
            f"{p.full_name or p.user_id};{p.email or ''}"
            for p in self.roster(event_id, ParticipationStatus.CONFIRMED)
        ]

    # ------------------------------------------------------------------
    # Participation
    # ------------------------------------------------------------------

    def confirm_participation(self, event_id: str, user_id: str) -> EventParticipant:
        user = self._require_active_user(user_id)
        # Row lock serializes concurrent confirmations of the same event
        event = self.events.get_for_update(event_id)
        if event is None:
            raise NotFoundError(EVENT_NOT_FOUND)
        self.refresh_statuses([event])
        if event.status != EventStatus.ACTIVE:
            raise ValidationError("Событие не активно")

        existing = self.participants.get(event.id, user.id)
        if existing is not None and existing.status == ParticipationStatus.CONFIRMED:
            self.db.commit()
            return existing

        if event.max_participants is not None:
            if self.participants.count_confirmed(event.id) >= event.max_participants:
                raise ValidationError("Достигнут максимальный лимит участников")

        participant = self.participants.confirm(event.id, user.id, self.clock())
        self.db.commit()
        logger.info("User %s confirmed participation in event %s", user.id, event.id)

        self._notify_creator(event, "Новый участник", f"{user.full_name} подтвердил(а) участие в «{event.title}»")
        return participant

    def cancel_participation(self, event_id: str, user_id: str) -> EventParticipant:
        event = self.get_event(event_id)
        participant = self.participants.get(event.id, user_id)
        if participant is None:
            raise NotFoundError("Участие не найдено")

        self.participants.cancel(participant, self.clock())
        self.db.commit()
        logger.info("User %s cancelled participation in event %s", user_id, event.id)

        user = self.users.get(user_id)
        who = user.full_name if user else "Пользователь"
        self._notify_creator(event, "Отмена участия", f"{who} отменил(а) участие в «{event.title}»")
        return participant

    def add_rating(self, event_id: str, user_id: str, score: int, comment: Optional[str] = None) -> EventRating:
        if score is None or not 1 <= score <= 5:
            raise ValidationError("Оценка должна быть от 1 до 5", field="score")
        event = self.get_event(event_id)
        if event.status != EventStatus.PAST:
            raise ValidationError("Оценивать можно только прошедшие события")
        participant = self.participants.get(event.id, user_id)
        if participant is None or participant.status != ParticipationStatus.CONFIRMED:
            raise ValidationError(
                "Вы не можете оставить отзыв, так как не являетесь подтвержденным участником этого события."
            )

        comment = comment.strip() if comment and comment.strip() else None
        rating = self.ratings.upsert(event.id, user_id, score, comment, self.clock())
        self.db.commit()
        logger.info("User %s rated event %s with %s", user_id, event.id, score)
        return rating

    # ------------------------------------------------------------------
    # Create / update / moderation
    # ------------------------------------------------------------------

    def create_event(self, data: EventRequest, creator_id: str) -> Event:
        creator = self.users.get(creator_id)
        if creator is None:
            raise NotFoundError("Создатель не найден")
        self._validate_dates(data.start_at, data.end_at)
        invitees = self._resolve_invitees(data.participant_ids, exclude=creator.id)

        event = Event(
            title=data.title,
            short_description=data.short_description,
            full_description=data.full_description,
            start_at=data.start_at,
            end_at=data.end_at,
            payment_info=data.payment_info,
            max_participants=data.max_participants,
            status=self._initial_status(creator, getattr(data, "status", None)),
            created_by=creator.id,
        )
        self._apply_image(event, data, required=True)
        self.events.add(event)

        now = self.clock()
        for user in [creator] + invitees:
            self.participants.confirm(event.id, user.id, now)
        self.db.commit()
        logger.info("User %s created event %s (%s)", creator.id, event.id, event.status.value)

        for user in invitees:
            self.notifier.notify(user.email, "Новое событие", f"Вас пригласили на «{event.title}»")
        return event

    def update_event(
        self, event_id: str, data: EventRequest, participant_ids: Optional[Iterable[str]] = None
    ) -> Event:
        """
        Edit the event and, when ``participant_ids`` is given, sync its
        confirmed roster to that set plus the creator.

        Input is checked before the first write and the edit is committed once.
        """
        event = self.get_event(event_id)
        self._validate_dates(data.start_at, data.end_at)
        desired = self._desired_roster(event, participant_ids) if participant_ids is not None else None
        self._apply_image(event, data, required=False)

        event.title = data.title
        event.short_description = data.short_description
        event.full_description = data.full_description
        event.start_at = data.start_at
        event.end_at = data.end_at
        event.payment_info = data.payment_info
        event.max_participants = data.max_participants
        requested_status = getattr(data, "status", None)
        if requested_status is not None:
            event.status = requested_status
        self.refresh_statuses([event], commit=False)
        if desired is not None:
            self._sync_roster(event, desired)
        self.db.commit()
        logger.info("Updated event %s", event.id)
        if desired is not None:
            logger.info("Synced roster of event %s to %d participants", event.id, len(desired))

        self._notify_creator(event, "Событие обновлено", f"Изменены данные события «{event.title}»")
        return event

    def reject_event(self, event_id: str) -> Event:
        event = self.get_event(event_id)
        self.events.set_status(event, EventStatus.REJECTED)
        self.db.commit()
        logger.info("Rejected event %s", event.id)

        self._notify_creator(event, "Событие отклонено", f"Событие «{event.title}» отклонено модератором")
        return event

    def approve_event(self, event_id: str) -> Event:
        event = self.get_event(event_id)
        self.events.set_status(event, EventStatus.ACTIVE)
        # An approved event that has already finished goes straight to PAST
        self.refresh_statuses([event])
        self.db.commit()
        logger.info("Approved event %s (%s)", event.id, event.status.value)

        self._notify_creator(event, "Событие одобрено", f"Событие «{event.title}» опубликовано")
        return event

    def _desired_roster(self, event: Event, desired_ids: Iterable[str]) -> Set[str]:
        desired = {str(uid) for uid in desired_ids}
        desired.add(event.created_by)
        if desired - set(self.users.get_many(desired)):
            raise ValidationError("Участник не найден", field="participantIds")
        return desired

    def _sync_roster(self, event: Event, desired: Set[str]) -> None:
        """
        Missing users are confirmed, extras are flipped to CANCELLED. No
        capacity check: this is an admin override. The caller commits.
        """
        now = self.clock()
        for participant in self.participants.list_for_event(event.id, ParticipationStatus.CONFIRMED):
            if participant.user_id not in desired:
                self.participants.cancel(participant, now)
        for user_id in desired:
            current = self.participants.get(event.id, user_id)
            if current is None or current.status != ParticipationStatus.CONFIRMED:
                self.participants.confirm(event.id, user_id, now)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def refresh_statuses(self, events: List[Event], commit: bool = True) -> List[Event]:
        if apply_decisions(self.events, events, self.clock()) and commit:
            self.db.commit()
        return events

    def _to_dtos(self, events: List[Event], user_id: Optional[str]) -> List[EventDto]:
        ids = [e.id for e in events]
        counts = self.participants.count_confirmed_by_event(ids)
        aggregates = self.ratings.aggregate(ids)
        creators = self.users.get_many(e.created_by for e in events)
        mine = self.participants.for_user_in_events(user_id, ids) if user_id else {}

        dtos = []
        for event in events:
            creator = creators.get(event.created_by)
            average, ratings_count = aggregates.get(event.id, (None, 0))
            participation = mine.get(event.id)
            dtos.append(EventDto(
                id=event.id,
                title=event.title,
                short_description=event.short_description,
                full_description=event.full_description,
                start_at=event.start_at,
                end_at=event.end_at,
                image_url=event.image_url,
                payment_info=event.payment_info,
                max_participants=event.max_participants,
                status=event.status,
                created_by=event.created_by,
                created_by_full_name=creator.full_name if creator else None,
                participants_count=counts.get(event.id, 0),
                participation_status=participation.status if participation else None,
                average_rating=average,
                ratings_count=ratings_count,
            ))
        return dtos

    def _validate_dates(self, start_at: datetime, end_at: datetime) -> None:
        if start_at <= self.clock():
            raise ValidationError("Дата начала должна быть в будущем", field="startAt")
        if end_at <= start_at:
            raise ValidationError("Дата окончания должна быть позже даты начала", field="endAt")

    @staticmethod
    def _initial_status(creator: User, requested: Optional[EventStatus]) -> EventStatus:
        # Events from regular users wait for moderation
        if creator.role != UserRole.ADMIN:
            return EventStatus.PENDING
        return requested or EventStatus.ACTIVE

    @staticmethod
    def _apply_image(event: Event, data: EventRequest, required: bool) -> None:
        if data.image_base64 and data.image_base64.strip():
            event.image_data, event.image_content_type = decode_image(data.image_base64, data.image_type)
            event.external_image_url = None
        elif data.image_url and data.image_url.strip():
            event.external_image_url = validate_image_url(data.image_url)
            event.image_data = None
            event.image_content_type = None
        elif required and not event.has_image:
            raise ValidationError("Требуется изображение", field="imageBase64")

    def _resolve_invitees(self, participant_ids: Optional[Iterable[str]], exclude: str) -> List[User]:
        ids = [str(uid) for uid in (participant_ids or []) if str(uid) != exclude]
        if not ids:
            return []
        users = self.users.get_many(ids)
        if set(ids) - set(users):
            raise ValidationError("Участник не найден", field="participantIds")
        # Preserve request order, drop duplicates
        return [users[uid] for uid in dict.fromkeys(ids)]

    def _require_active_user(self, user_id: str) -> User:
        user = self.users.get(user_id)
        if user is None or user.status == UserStatus.DELETED:
            raise NotFoundError("Пользователь не найден")
        return user

    def _notify_creator(self, event: Event, subject: str, body: str) -> None:
        creator = self.users.get(event.created_by)
        if creator is None:
            return
        self.notifier.notify(creator.email, subject, body)

