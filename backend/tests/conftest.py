import os
import re
from datetime import timedelta

# Must be set before anything from afisha is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["SEED_ADMIN"] = "true"
os.environ["MAIL_ENABLED"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["SECRET_KEY"] = "test_secret"

import pytest
from fastapi.testclient import TestClient

from afisha.api.dependencies import get_mailer
from afisha.core.config import settings
from afisha.core.database import Base, SessionLocal, engine
from afisha.core.exceptions import MailDeliveryError
from afisha.core.security import create_access_token, get_password_hash
from afisha.main import app
from afisha.models.event import Event, EventStatus
from afisha.models.user import User, UserRole
from afisha.repositories.participant_repository import ParticipantRepository
from afisha.utils.time_utils import utcnow

PASSWORD = "Secret1!"
# 1x1 transparent PNG
PNG_BASE64 = (
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNkYPhfDwAChwGA60e6kgAAAABJRU5ErkJggg=="
)


class Outbox:
    """Mailer stand-in that records messages; set ``fail`` to simulate SMTP errors."""

    def __init__(self):
        self.messages = []
        self.fail = False

    def send(self, to, subject, body):
        if self.fail:
            raise MailDeliveryError("smtp unavailable")
        self.messages.append({"to": to, "subject": subject, "body": body})

    def to(self, email):
        return [m for m in self.messages if m["to"] == email]

    def last_code(self, email):
        for message in reversed(self.to(email)):
            match = re.search(r"\b(\d{6})\b", message["body"])
            if match:
                return match.group(1)
        return None

    def last_reset_token(self, email):
        for message in reversed(self.to(email)):
            match = re.search(r"/auth/reset/(\S+)", message["body"])
            if match:
                return match.group(1)
        return None


@pytest.fixture(autouse=True)
def fresh_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def outbox():
    return Outbox()


@pytest.fixture
def client(outbox):
    app.dependency_overrides[get_mailer] = lambda: outbox
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(full_name="Иван Петров", email=None, role=UserRole.USER, verified=True, password=PASSWORD):
        counter["n"] += 1
        user = User(
            full_name=full_name,
            email=email or f"user{counter['n']}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            email_verified=verified,
            registered_at=utcnow(),
        )
        db.add(user)
        db.commit()
        return user

    return _make


@pytest.fixture
def make_event(db):
    """Insert an event directly, bypassing date validation, with its creator enrolled."""

    def _make(creator, start_in=timedelta(days=1), duration=timedelta(hours=2),
              status=EventStatus.ACTIVE, max_participants=None, title="Концерт"):
        start_at = utcnow() + start_in
        event = Event(
            title=title,
            full_description="Описание события",
            start_at=start_at,
            end_at=start_at + duration,
            image_data=PNG_BASE64,
            image_content_type="image/png",
            max_participants=max_participants,
            status=status,
            created_by=creator.id,
        )
        db.add(event)
        db.flush()
        ParticipantRepository(db).confirm(event.id, creator.id, utcnow())
        db.commit()
        return event

    return _make


def auth_headers(user):
    return {"Authorization": f"Bearer {create_access_token(user)}"}


def admin_user(db):
    return db.query(User).filter(User.email == settings.ADMIN_EMAIL).one()


def event_payload(**overrides):
    start_at = utcnow() + timedelta(days=3)
    payload = {
        "title": "Лекция",
        "shortDescription": "Коротко",
        "fullDescription": "Подробное описание",
        "startAt": start_at.isoformat(),
        "endAt": (start_at + timedelta(hours=2)).isoformat(),
        "imageBase64": PNG_BASE64,
        "imageType": "image/png",
    }
    payload.update(overrides)
    return payload
