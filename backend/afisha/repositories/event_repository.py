from typing import List, Optional
from sqlalchemy.orm import Session
from afisha.models.event import Event, EventStatus


class EventRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str) -> Optional[Event]:
        if not event_id:
            return None
        return self.db.get(Event, str(event_id))

    def get_for_update(self, event_id: str) -> Optional[Event]:
        """Load the event row locked until commit (FOR UPDATE; a no-op on SQLite)."""
        if not event_id:
            return None
        return (
            self.db.query(Event)
            .filter(Event.id == str(event_id))
            .with_for_update()
            .populate_existing()
            .first()
        )

    def list_all(self) -> List[Event]:
        return self.db.query(Event).order_by(Event.start_at).all()

    def list_reconcilable(self) -> List[Event]:
        """Events whose status still follows the clock."""
        return (
            self.db.query(Event)
            .filter(Event.status.notin_([EventStatus.REJECTED, EventStatus.PENDING]))
            .all()
        )

    def add(self, event: Event) -> Event:
        self.db.add(event)
        self.db.flush()
        return event

    def set_status(self, event: Event, status: EventStatus) -> bool:
        if event.status == status:
            return False
        event.status = status
        return True
