import io
from datetime import timedelta

import pandas as pd
from openpyxl import load_workbook

from afisha.core.security import create_access_token
from afisha.models.event import EventStatus
from afisha.models.user import User, UserRole, UserStatus
from afisha.utils.time_utils import utcnow
from conftest import PASSWORD, admin_user, auth_headers, event_payload


def test_admin_routes_require_admin(client, make_user):
    user = make_user()
    assert client.get("/admin/users").status_code == 401
    assert client.get("/admin/users", headers=auth_headers(user)).status_code == 403


def test_demoted_admin_loses_access(client, db, make_user):
    former = make_user(role=UserRole.ADMIN)
    token = create_access_token(former)
    former.role = UserRole.USER
    db.commit()
    response = client.get("/admin/users", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403


def test_user_search_filters(client, db, make_user):
    make_user(full_name="Анна Смирнова")
    make_user(full_name="Борис Иванов")
    deleted = make_user(full_name="Анна Козлова")
    deleted.status = UserStatus.DELETED
    db.commit()
    headers = auth_headers(admin_user(db))

    names = [u["fullName"] for u in client.get("/admin/users?query=анна", headers=headers).json()]
    assert sorted(names) == ["Анна Козлова", "Анна Смирнова"]

    active = client.get("/admin/users?query=анна&status=ACTIVE", headers=headers).json()
    assert [u["fullName"] for u in active] == ["Анна Смирнова"]

    admins = client.get("/admin/users?role=ADMIN", headers=headers).json()
    assert [u["role"] for u in admins] == ["ADMIN"]

    tomorrow = (utcnow() + timedelta(days=1)).isoformat()
    assert client.get(f"/admin/users?registeredFrom={tomorrow}", headers=headers).json() == []


def test_update_user_validates_name(client, db, make_user):
    user = make_user()
    headers = auth_headers(admin_user(db))

    response = client.patch(f"/admin/users/{user.id}", json={"fullName": "John"}, headers=headers)
    assert response.status_code == 400

    response = client.patch(f"/admin/users/{user.id}", json={"fullName": "Пётр Сидоров", "role": "ADMIN"},
                            headers=headers)
    assert response.status_code == 200
    assert response.json()["fullName"] == "Пётр Сидоров"
    assert response.json()["role"] == "ADMIN"


def test_forced_password_reset(client, db, make_user, outbox):
    user = make_user(email="victim@example.com")
    headers = auth_headers(admin_user(db))

    weak = client.post(f"/admin/users/{user.id}/reset-password", json={"password": "short"}, headers=headers)
    assert weak.status_code == 400

    response = client.post(f"/admin/users/{user.id}/reset-password", json={"password": "Fresh123!"},
                           headers=headers)
    assert response.status_code == 200
    db.expire_all()
    assert user.must_change_password is True
    assert outbox.to("victim@example.com")

    login = client.post("/auth/login", json={"email": "victim@example.com", "password": "Fresh123!"})
    assert login.status_code == 200


def test_soft_delete_user(client, db, make_user):
    user = make_user(email="gone@example.com")
    response = client.delete(f"/admin/users/{user.id}", headers=auth_headers(admin_user(db)))
    assert response.status_code == 200

    db.expire_all()
    assert db.query(User).filter(User.id == user.id).one().status == UserStatus.DELETED
    login = client.post("/auth/login", json={"email": "gone@example.com", "password": PASSWORD})
    assert login.status_code == 401


def test_approve_and_reject_pending_event(client, db, make_user, outbox):
    author = make_user(email="author@example.com")
    event = client.post("/events", json=event_payload(), headers=auth_headers(author)).json()
    headers = auth_headers(admin_user(db))

    pending = client.get("/admin/events?status=PENDING", headers=headers).json()
    assert [e["id"] for e in pending] == [event["id"]]

    approved = client.post(f"/admin/events/{event['id']}/approve", headers=headers)
    assert approved.status_code == 200
    assert approved.json()["event"]["status"] == "ACTIVE"
    assert "Событие одобрено" in [m["subject"] for m in outbox.to("author@example.com")]

    rejected = client.delete(f"/admin/events/{event['id']}", headers=headers)
    assert rejected.json()["event"]["status"] == "REJECTED"
    assert event["id"] not in [e["id"] for e in client.get("/events?tab=active").json()]


def test_approving_finished_event_makes_it_past(client, db, make_user, make_event):
    author = make_user()
    event = make_event(author, start_in=timedelta(days=-3), duration=timedelta(hours=1),
                       status=EventStatus.PENDING)
    response = client.post(f"/admin/events/{event.id}/approve", headers=auth_headers(admin_user(db)))
    assert response.json()["event"]["status"] == "PAST"


def test_roster_sync(client, db, make_user):
    keep = make_user(email="keep@example.com")
    drop = make_user(email="drop@example.com")
    add = make_user(email="add@example.com")
    admin = admin_user(db)
    headers = auth_headers(admin)

    created = client.post("/admin/events", json=event_payload(participantIds=[keep.id, drop.id]),
                          headers=headers).json()
    event_id = created["event"]["id"]

    update = event_payload(participantIds=[keep.id, add.id], imageBase64=None, imageType=None)
    details = client.put(f"/admin/events/{event_id}", json=update, headers=headers).json()

    statuses = {p["email"]: p["status"] for p in details["participants"]}
    assert statuses["keep@example.com"] == "CONFIRMED"
    assert statuses["add@example.com"] == "CONFIRMED"
    assert statuses["drop@example.com"] == "CANCELLED"
    # The creator is never dropped
    assert statuses[admin.email] == "CONFIRMED"
    assert details["event"]["participantsCount"] == 2


def test_update_without_participant_ids_keeps_roster(client, db, make_user):
    guest = make_user()
    headers = auth_headers(admin_user(db))
    created = client.post("/admin/events", json=event_payload(participantIds=[guest.id]), headers=headers).json()
    event_id = created["event"]["id"]

    update = event_payload(title="Другое", imageBase64=None, imageType=None, status="REJECTED")
    details = client.put(f"/admin/events/{event_id}", json=update, headers=headers).json()
    assert details["event"]["status"] == "REJECTED"
    assert details["event"]["participantsCount"] == 1


def test_failed_roster_sync_leaves_event_unchanged(client, db, outbox):
    headers = auth_headers(admin_user(db))
    created = client.post("/admin/events", json=event_payload(title="Исходное"), headers=headers).json()
    event_id = created["event"]["id"]
    sent = len(outbox.messages)

    update = event_payload(title="Изменено", participantIds=["no-such-user"], imageBase64=None, imageType=None)
    response = client.put(f"/admin/events/{event_id}", json=update, headers=headers)
    assert response.status_code == 400
    assert response.json()["message"] == "Участник не найден"

    details = client.get(f"/admin/events/{event_id}", headers=headers).json()
    assert details["event"]["title"] == "Исходное"
    assert len(outbox.messages) == sent


def test_admin_can_create_on_behalf_of_user(client, db, make_user):
    author = make_user()
    payload = event_payload(createdBy=author.id, status="ACTIVE")
    details = client.post("/admin/events", json=payload, headers=auth_headers(admin_user(db))).json()
    assert details["event"]["createdBy"] == author.id
    # Status follows the creator's role
    assert details["event"]["status"] == "PENDING"


def test_events_export_csv_and_xlsx(client, db):
    headers = auth_headers(admin_user(db))
    client.post("/admin/events", json=event_payload(title="Выставка"), headers=headers)

    csv = client.get("/admin/events/export/csv", headers=headers)
    assert csv.status_code == 200
    assert csv.headers["content-type"].startswith("text/csv")
    frame = pd.read_csv(io.BytesIO(csv.content), sep=";")
    assert list(frame.columns) == ["id", "title", "status", "startAt", "endAt", "participants"]
    assert frame.loc[0, "title"] == "Выставка"

    xlsx = client.get("/admin/events/export/xlsx", headers=headers)
    assert xlsx.status_code == 200
    sheet = load_workbook(io.BytesIO(xlsx.content))["Events"]
    assert sheet["B2"].value == "Выставка"

    assert client.get("/admin/events/export/pdf", headers=headers).status_code == 400


def test_roster_export(client, db, make_user):
    guest = make_user(full_name="Анна Смирнова", email="anna@example.com")
    quitter = make_user(full_name="Олег Орлов", email="oleg@example.com")
    headers = auth_headers(admin_user(db))
    event_id = client.post("/admin/events", json=event_payload(participantIds=[guest.id, quitter.id]),
                           headers=headers).json()["event"]["id"]
    client.post(f"/events/{event_id}/cancel", headers=auth_headers(quitter))

    csv = client.get(f"/admin/events/{event_id}/export/csv", headers=headers)
    lines = csv.content.decode("utf-8").splitlines()
    assert lines[0] == "fullName;email"
    assert "Анна Смирнова;anna@example.com" in lines
    assert not any("oleg@example.com" in line for line in lines)

    xlsx = client.get(f"/admin/events/{event_id}/export/xlsx", headers=headers)
    sheet = load_workbook(io.BytesIO(xlsx.content))["Participants"]
    assert [c.value for c in sheet[1]] == ["ФИО", "Email", "Статус", "Подтверждено", "Отменено"]
    statuses = {row[1]: row[2] for row in sheet.iter_rows(min_row=2, values_only=True)}
    assert statuses["oleg@example.com"] == "CANCELLED"
