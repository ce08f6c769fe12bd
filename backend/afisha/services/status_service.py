"""
Event status reconciliation.

ACTIVE and PAST follow the clock; REJECTED and PENDING only change through
admin moderation. ``derive_status`` is the pure rule, ``reconcile`` turns it
into a decision for one event, and the event repository applies decisions.
Read paths reconcile the events they return, and the background scheduler
sweeps everything periodically.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from sqlalchemy.orm import Session
from afisha.models.event import Event, EventStatus
from afisha.repositories.event_repository import EventRepository
from afisha.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

STICKY_STATUSES = frozenset({EventStatus.REJECTED, EventStatus.PENDING})


@dataclass(frozen=True)
class StatusDecision:
    event_id: str
    previous: EventStatus
    new: EventStatus

    @property
    def changed(self) -> bool:
        return self.previous != self.new


def derive_status(now: datetime, start_at: datetime, end_at: datetime, current: EventStatus) -> EventStatus:
    if current in STICKY_STATUSES:
        return current
    if now > end_at:
        return EventStatus.PAST
    if now <= start_at:
        return EventStatus.ACTIVE
    # Running right now: keep whatever was computed last
    return current


def reconcile(event: Event, now: Optional[datetime] = None) -> StatusDecision:
    now = now or utcnow()
    new_status = derive_status(now, event.start_at, event.end_at, event.status)
    return StatusDecision(event_id=event.id, previous=event.status, new=new_status)


def apply_decisions(repo: EventRepository, events: List[Event], now: Optional[datetime] = None) -> List[StatusDecision]:
    """Reconcile ``events`` in place and return the decisions that changed something."""
    now = now or utcnow()
    changed = []
    for event in events:
        decision = reconcile(event, now)
        if decision.changed:
            repo.set_status(event, decision.new)
            changed.append(decision)
            logger.info("Event %s status %s -> %s", decision.event_id, decision.previous.value, decision.new.value)
    return changed


def sweep_event_statuses(db: Session, now: Optional[datetime] = None) -> int:
    """Reconcile every clock-driven event and commit. Returns the number changed."""
    repo = EventRepository(db)
    changed = apply_decisions(repo, repo.list_reconcilable(), now)
    if changed:
        db.commit()
    return len(changed)
