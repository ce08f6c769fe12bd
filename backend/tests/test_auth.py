from datetime import timedelta

from afisha.core.config import settings
from afisha.core.security import create_refresh_token, verify_password
from afisha.models.token import EmailVerificationToken, PasswordResetToken
from afisha.models.user import User, UserRole, UserStatus
from afisha.services.auth_service import AuthService
from afisha.utils.time_utils import utcnow
from conftest import PASSWORD, Outbox, auth_headers


def register(client, email="ivan@example.com", full_name="Иван Петров", password=PASSWORD, confirm=None):
    return client.post("/auth/register", json={
        "fullName": full_name,
        "email": email,
        "password": password,
        "confirmPassword": confirm if confirm is not None else password,
    })


def test_register_sends_code_and_blocks_login_until_verified(client, outbox):
    response = register(client)
    assert response.status_code == 201
    assert response.json()["user"]["email"] == "ivan@example.com"
    assert outbox.last_code("ivan@example.com") is not None

    response = client.post("/auth/login", json={"email": "ivan@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["message"] == "Email не подтвержден"


def test_register_verify_login_flow(client, outbox):
    register(client)
    code = outbox.last_code("ivan@example.com")

    response = client.post("/auth/verify-email", json={"email": "ivan@example.com", "code": code})
    assert response.status_code == 200
    body = response.json()
    assert body["tokens"]["accessToken"]
    assert "access_token" in response.cookies

    client.cookies.clear()
    response = client.post("/auth/login", json={"email": "ivan@example.com", "password": PASSWORD})
    assert response.status_code == 200
    token = response.json()["tokens"]["accessToken"]

    client.cookies.clear()
    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["fullName"] == "Иван Петров"
    assert me.json()["role"] == "USER"


def test_register_rejects_latin_name(client):
    response = register(client, full_name="Ivan Petrov")
    assert response.status_code == 400
    assert "fullName" in response.json()["errors"]


def test_register_rejects_weak_password(client):
    response = register(client, password="password")
    assert response.status_code == 400
    assert "password" in response.json()["errors"]


def test_register_rejects_mismatched_confirmation(client):
    response = register(client, confirm="Other123!")
    assert response.status_code == 400
    assert "confirmPassword" in response.json()["errors"]


def test_duplicate_email_is_case_insensitive(client):
    assert register(client, email="ivan@example.com").status_code == 201
    response = register(client, email="IVAN@example.com")
    assert response.status_code == 400
    assert response.json()["errors"]["email"] == "Пользователь с таким email уже существует"


def test_verification_code_cannot_be_reused(client, outbox):
    register(client)
    code = outbox.last_code("ivan@example.com")
    payload = {"email": "ivan@example.com", "code": code}

    assert client.post("/auth/verify-email", json=payload).status_code == 200
    response = client.post("/auth/verify-email", json=payload)
    assert response.status_code == 400
    assert response.json()["message"] == "Код уже использован"


def test_wrong_verification_code(client, outbox):
    register(client)
    code = outbox.last_code("ivan@example.com")
    wrong = "000000" if code != "000000" else "111111"
    response = client.post("/auth/verify-email", json={"email": "ivan@example.com", "code": wrong})
    assert response.status_code == 400
    assert response.json()["message"] == "Неверный код"


def test_login_failures(client, make_user, db):
    user = make_user(email="petr@example.com")
    response = client.post("/auth/login", json={"email": "petr@example.com", "password": "Wrong123!"})
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"

    user.status = UserStatus.DELETED
    db.commit()
    response = client.post("/auth/login", json={"email": "petr@example.com", "password": PASSWORD})
    assert response.status_code == 401
    assert response.json()["message"] == "Учетная запись удалена"


def test_refresh_rotates_tokens_and_rejects_access_tokens(client, make_user):
    user = make_user()
    response = client.post("/auth/refresh", json={"refreshToken": create_refresh_token(user)})
    assert response.status_code == 200
    assert response.json()["tokens"]["refreshToken"]

    client.cookies.clear()
    access = auth_headers(user)["Authorization"].split(" ", 1)[1]
    response = client.post("/auth/refresh", json={"refreshToken": access})
    assert response.status_code == 401


def test_refresh_token_does_not_authenticate_requests(client, make_user):
    user = make_user()
    headers = {"Authorization": f"Bearer {create_refresh_token(user)}"}
    assert client.get("/auth/me", headers=headers).status_code == 401


def test_password_reset_flow(client, outbox, make_user):
    make_user(email="olga@example.com")
    assert client.post("/auth/forgot-password", json={"email": "olga@example.com"}).status_code == 200
    token = outbox.last_reset_token("olga@example.com")
    assert token

    response = client.post("/auth/reset-password", json={
        "token": token, "password": "NewPass1!", "confirmPassword": "NewPass1!",
    })
    assert response.status_code == 200

    response = client.post("/auth/login", json={"email": "olga@example.com", "password": "NewPass1!"})
    assert response.status_code == 200

    # Consumed link cannot be used twice
    response = client.post("/auth/reset-password", json={
        "token": token, "password": "Other12!", "confirmPassword": "Other12!",
    })
    assert response.status_code == 400


def test_expired_reset_token_is_rejected(client, outbox, make_user, db):
    make_user(email="olga@example.com")
    client.post("/auth/forgot-password", json={"email": "olga@example.com"})
    token = outbox.last_reset_token("olga@example.com")

    reset = db.query(PasswordResetToken).filter(PasswordResetToken.token == token).one()
    reset.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.post("/auth/reset-password", json={
        "token": token, "password": "NewPass1!", "confirmPassword": "NewPass1!",
    })
    assert response.status_code == 400
    assert response.json()["message"] == "Срок действия ссылки истёк"


def test_new_reset_request_supersedes_previous_token(client, outbox, make_user):
    make_user(email="olga@example.com")
    client.post("/auth/forgot-password", json={"email": "olga@example.com"})
    first = outbox.last_reset_token("olga@example.com")
    client.post("/auth/forgot-password", json={"email": "olga@example.com"})

    response = client.post("/auth/reset-password", json={
        "token": first, "password": "NewPass1!", "confirmPassword": "NewPass1!",
    })
    assert response.status_code == 400


def test_forgot_password_for_unknown_email(client):
    response = client.post("/auth/forgot-password", json={"email": "nobody@example.com"})
    assert response.status_code == 400


def test_mail_failure_is_reported_as_warning(client, outbox):
    outbox.fail = True
    response = register(client)
    assert response.status_code == 201
    assert response.json()["warnings"] == ["Не удалось отправить письмо на ivan@example.com"]


def test_admin_is_seeded_on_startup(client, db):
    admin = db.query(User).filter(User.email == settings.ADMIN_EMAIL).one()
    assert admin.is_admin
    response = client.post("/auth/login", json={"email": settings.ADMIN_EMAIL, "password": settings.ADMIN_PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["role"] == "ADMIN"


def test_missing_fields_are_reported_in_russian(client):
    response = client.post("/auth/register", json={"email": "ivan@example.com"})
    assert response.status_code == 400
    errors = response.json()["errors"]
    assert errors["fullName"] == "Обязательное поле"
    assert errors["password"] == "Обязательное поле"


def test_expired_verification_code_is_rejected(client, outbox, db):
    register(client)
    code = outbox.last_code("ivan@example.com")

    token = db.query(EmailVerificationToken).filter(EmailVerificationToken.code == code).one()
    token.expires_at = utcnow() - timedelta(minutes=1)
    db.commit()

    response = client.post("/auth/verify-email", json={"email": "ivan@example.com", "code": code})
    assert response.status_code == 400
    assert response.json()["message"] == "Срок действия кода истёк"


def test_verification_code_of_another_user_is_rejected(client, outbox):
    register(client, email="ivan@example.com")
    register(client, email="maria@example.com", full_name="Мария Иванова")
    marias_code = outbox.last_code("maria@example.com")

    response = client.post("/auth/verify-email", json={"email": "ivan@example.com", "code": marias_code})
    assert response.status_code == 400
    assert response.json()["message"] == "Неверный код"

    # The code still works for its owner
    response = client.post("/auth/verify-email", json={"email": "maria@example.com", "code": marias_code})
    assert response.status_code == 200


def test_refresh_for_unverified_user(client, make_user):
    user = make_user(verified=False)
    response = client.post("/auth/refresh", json={"refreshToken": create_refresh_token(user)})
    assert response.status_code == 401
    assert response.json()["message"] == "Email не подтвержден"


def test_refresh_for_deleted_user(client, make_user, db):
    user = make_user()
    token = create_refresh_token(user)
    user.status = UserStatus.DELETED
    db.commit()

    response = client.post("/auth/refresh", json={"refreshToken": token})
    assert response.status_code == 401
    assert response.json()["message"] == "Учетная запись удалена"


def test_seeding_existing_account_resets_its_password(db, make_user):
    existing = make_user(email=settings.ADMIN_EMAIL, password="Other123!")
    existing.status = UserStatus.DELETED
    db.commit()

    admin = AuthService(db, Outbox()).seed_admin_if_missing()
    assert admin.id == existing.id
    assert admin.role == UserRole.ADMIN
    assert admin.status == UserStatus.ACTIVE
    assert admin.must_change_password is True
    assert verify_password(settings.ADMIN_PASSWORD, admin.password_hash)
    assert not verify_password("Other123!", admin.password_hash)

    # Idempotent once an admin exists
    assert AuthService(db, Outbox()).seed_admin_if_missing() is None
