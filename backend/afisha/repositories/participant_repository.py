from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set
from sqlalchemy import func
from sqlalchemy.orm import Session
from afisha.models.event import Event
from afisha.models.participant import EventParticipant, ParticipationStatus


class ParticipantRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str, user_id: str) -> Optional[EventParticipant]:
        return (
            self.db.query(EventParticipant)
            .filter(EventParticipant.event_id == event_id, EventParticipant.user_id == user_id)
            .first()
        )

    def list_for_event(self, event_id: str, status: Optional[ParticipationStatus] = None) -> List[EventParticipant]:
        q = self.db.query(EventParticipant).filter(EventParticipant.event_id == event_id)
        if status is not None:
            q = q.filter(EventParticipant.status == status)
        return q.order_by(EventParticipant.confirmed_at).all()

    # Seat counts leave out the organizer: the creator is enrolled but holds no seat
    def count_confirmed(self, event_id: str) -> int:
        return (
            self.db.query(func.count(EventParticipant.id))
            .join(Event, Event.id == EventParticipant.event_id)
            .filter(
                EventParticipant.event_id == event_id,
                EventParticipant.status == ParticipationStatus.CONFIRMED,
                EventParticipant.user_id != Event.created_by,
            )
            .scalar()
        ) or 0

    def count_confirmed_by_event(self, event_ids: Iterable[str]) -> Dict[str, int]:
        ids = list(event_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(EventParticipant.event_id, func.count(EventParticipant.id))
            .join(Event, Event.id == EventParticipant.event_id)
            .filter(
                EventParticipant.event_id.in_(ids),
                EventParticipant.status == ParticipationStatus.CONFIRMED,
                EventParticipant.user_id != Event.created_by,
            )
            .group_by(EventParticipant.event_id)
            .all()
        )
        return {event_id: count for event_id, count in rows}

    def confirmed_event_ids_for_user(self, user_id: str) -> Set[str]:
        rows = (
            self.db.query(EventParticipant.event_id)
            .filter(
                EventParticipant.user_id == user_id,
                EventParticipant.status == ParticipationStatus.CONFIRMED,
            )
            .all()
        )
        return {row[0] for row in rows}

    def for_user_in_events(self, user_id: str, event_ids: Iterable[str]) -> Dict[str, EventParticipant]:
        ids = list(event_ids)
        if not user_id or not ids:
            return {}
        rows = (
            self.db.query(EventParticipant)
            .filter(EventParticipant.user_id == user_id, EventParticipant.event_id.in_(ids))
            .all()
        )
        return {row.event_id: row for row in rows}

    def confirm(self, event_id: str, user_id: str, now: datetime) -> EventParticipant:
        """Confirm the (event, user) pair, reusing its row when one exists."""
        participant = self.get(event_id, user_id)
        if participant is None:
            participant = EventParticipant(event_id=event_id, user_id=user_id)
            self.db.add(participant)
        participant.status = ParticipationStatus.CONFIRMED
        participant.confirmed_at = now
        participant.cancelled_at = None
        self.db.flush()
        return participant

    def cancel(self, participant: EventParticipant, now: datetime) -> EventParticipant:
        participant.status = ParticipationStatus.CANCELLED
        participant.cancelled_at = now
        self.db.flush()
        return participant
