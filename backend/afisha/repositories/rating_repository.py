from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple
from sqlalchemy import func
from sqlalchemy.orm import Session
from afisha.models.rating import EventRating


class RatingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get(self, event_id: str, user_id: str) -> Optional[EventRating]:
        return (
            self.db.query(EventRating)
            .filter(EventRating.event_id == event_id, EventRating.user_id == user_id)
            .first()
        )

    def list_for_event(self, event_id: str) -> List[EventRating]:
        return (
            self.db.query(EventRating)
            .filter(EventRating.event_id == event_id)
            .order_by(EventRating.created_at.desc())
            .all()
        )

    def aggregate(self, event_ids: Iterable[str]) -> Dict[str, Tuple[float, int]]:
        """Map event id to (average score, number of ratings) for rated events."""
        ids = list(event_ids)
        if not ids:
            return {}
        rows = (
            self.db.query(EventRating.event_id, func.avg(EventRating.score), func.count(EventRating.id))
            .filter(EventRating.event_id.in_(ids))
            .group_by(EventRating.event_id)
            .all()
        )
        return {event_id: (float(avg), int(count)) for event_id, avg, count in rows}

    def upsert(self, event_id: str, user_id: str, score: int, comment: Optional[str], now: datetime) -> EventRating:
        rating = self.get(event_id, user_id)
        if rating is None:
            rating = EventRating(event_id=event_id, user_id=user_id)
            self.db.add(rating)
        rating.score = score
        rating.comment = comment
        rating.created_at = now
        self.db.flush()
        return rating
