"""
Registration, email verification, login, token refresh and password reset.

Every operation validates first, then writes, commits, and only then sends
mail through the notifier.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
from afisha.core.config import settings
from afisha.core.exceptions import AuthError, ValidationError
from afisha.core.security import (
    REFRESH_TOKEN_TYPE,
    create_access_token,
    create_refresh_token,
    decode_token,
    get_password_hash,
    verify_password,
)
from afisha.core.validation import validate_full_name, validate_password, validate_password_confirmation
from afisha.models.user import User, UserRole, UserStatus
from afisha.repositories.token_repository import ResetTokenRepository, VerificationTokenRepository
from afisha.repositories.user_repository import UserRepository, normalize_email
from afisha.schemas.user import AuthTokens
from afisha.services.notifications import Notifier
from afisha.utils.time_utils import utcnow

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Неверные учетные данные"
ACCOUNT_DELETED = "Учетная запись удалена"
EMAIL_NOT_VERIFIED = "Email не подтвержден"
USER_NOT_FOUND = "Пользователь не найден"


@dataclass
class AuthResult:
    user: User
    tokens: AuthTokens


def issue_tokens(user: User) -> AuthTokens:
    return AuthTokens(access_token=create_access_token(user), refresh_token=create_refresh_token(user))


class AuthService:

    def __init__(self, db: Session, mailer):
        self.db = db
        self.users = UserRepository(db)
        self.verification_tokens = VerificationTokenRepository(db)
        self.reset_tokens = ResetTokenRepository(db)
        self.notifier = Notifier(mailer)

    @property
    def warnings(self):
        return self.notifier.warnings

    def register(self, full_name: str, email: str, password: str, confirm_password: str) -> User:
        full_name = (full_name or "").strip()
        validate_full_name(full_name)
        validate_password(password)
        validate_password_confirmation(password, confirm_password)
        if self.users.email_exists(email):
            raise ValidationError("Пользователь с таким email уже существует", field="email")

        now = utcnow()
        user = self.users.add(User(
            full_name=full_name,
            email=normalize_email(email),
            password_hash=get_password_hash(password),
            registered_at=now,
        ))
        self.verification_tokens.close_active(user.id, now)
        code = self._generate_code()
        self.verification_tokens.create(
            user.id, code, now + timedelta(hours=settings.VERIFICATION_CODE_TTL_HOURS)
        )
        self.db.commit()
        logger.info("Registered user %s (%s)", user.id, user.email)

        self.notifier.notify(user.email, "Код подтверждения", f"Ваш код: {code}")
        return user

    def verify_email(self, email: str, code: str) -> AuthResult:
        user = self.users.get_by_email(email)
        if user is None:
            raise ValidationError(USER_NOT_FOUND, field="email")
        token = self.verification_tokens.find(code)
        if token is None or token.user_id != user.id:
            raise ValidationError("Неверный код", field="code")
        if token.consumed_at is not None:
            raise ValidationError("Код уже использован", field="code")
        now = utcnow()
        if token.expires_at < now:
            raise ValidationError("Срок действия кода истёк", field="code")

        self.verification_tokens.consume(token, now)
        self.verification_tokens.close_active(user.id, now, except_id=token.id)
        user.email_verified = True
        user.email_verified_at = now
        self.db.commit()
        logger.info("Verified email for user %s", user.id)

        self.notifier.notify(user.email, "Регистрация подтверждена", f"Добро пожаловать, {user.full_name}")
        return AuthResult(user=user, tokens=issue_tokens(user))

    def login(self, email: str, password: str) -> AuthResult:
        user = self.users.get_by_email(email)
        if user is None:
            raise AuthError(INVALID_CREDENTIALS)
        if user.status == UserStatus.DELETED:
            raise AuthError(ACCOUNT_DELETED)
        if not user.email_verified:
            raise AuthError(EMAIL_NOT_VERIFIED)
        if not verify_password(password, user.password_hash):
            raise AuthError(INVALID_CREDENTIALS)
        logger.info("User %s logged in", user.id)
        return AuthResult(user=user, tokens=issue_tokens(user))

    def refresh(self, refresh_token: Optional[str]) -> AuthResult:
        if not refresh_token:
            raise AuthError("Отсутствует refresh токен")
        claims = decode_token(refresh_token)
        if claims is None or claims.get("type") != REFRESH_TOKEN_TYPE:
            raise AuthError("Неверный токен обновления")
        user = self.users.get(claims.get("sub"))
        if user is None:
            raise AuthError(USER_NOT_FOUND)
        if user.status == UserStatus.DELETED:
            raise AuthError(ACCOUNT_DELETED)
        if not user.email_verified:
            raise AuthError(EMAIL_NOT_VERIFIED)
        return AuthResult(user=user, tokens=issue_tokens(user))

    def request_password_reset(self, email: str) -> None:
        user = self.users.get_by_email(email)
        if user is None:
            raise ValidationError(USER_NOT_FOUND, field="email")

        now = utcnow()
        self.reset_tokens.close_active(user.id, now)
        token = secrets.token_urlsafe(32)
        self.reset_tokens.create(user.id, token, now + timedelta(hours=settings.RESET_TOKEN_TTL_HOURS))
        self.db.commit()
        logger.info("Password reset requested for user %s", user.id)

        link = f"{settings.FRONTEND_URL.rstrip('/')}/auth/reset/{token}"
        self.notifier.notify(user.email, "Сброс пароля", f"Перейдите по ссылке {link} для смены пароля")

    def reset_password(self, token: str, new_password: str, confirm_password: str) -> None:
        validate_password(new_password)
        validate_password_confirmation(new_password, confirm_password)
        reset = self.reset_tokens.find(token)
        if reset is None:
            raise ValidationError("Неверная ссылка", field="token")
        if reset.consumed_at is not None:
            raise ValidationError("Ссылка уже использована", field="token")
        now = utcnow()
        if reset.expires_at < now:
            raise ValidationError("Срок действия ссылки истёк", field="token")
        user = self.users.get(reset.user_id)
        if user is None:
            raise ValidationError(USER_NOT_FOUND)

        user.password_hash = get_password_hash(new_password)
        user.must_change_password = False
        self.reset_tokens.consume(reset, now)
        self.reset_tokens.close_active(user.id, now, except_id=reset.id)
        self.db.commit()
        logger.info("Password reset completed for user %s", user.id)

        self.notifier.notify(user.email, "Пароль обновлен", "Пароль был успешно изменен")

    def seed_admin_if_missing(self) -> Optional[User]:
        """Make sure an ADMIN account exists. Returns the account when one was created or promoted."""
        if self.users.admin_exists():
            return None

        now = utcnow()
        admin = self.users.get_by_email(settings.ADMIN_EMAIL)
        if admin is None:
            admin = self.users.add(User(
                full_name=settings.ADMIN_FULL_NAME,
                email=settings.ADMIN_EMAIL,
                password_hash=get_password_hash(settings.ADMIN_PASSWORD),
                registered_at=now,
            ))
        else:
            # An existing account only becomes admin with the bootstrap credential
            logger.warning("Promoting existing account %s to administrator, password reset", admin.email)
            admin.password_hash = get_password_hash(settings.ADMIN_PASSWORD)
            admin.must_change_password = True
        admin.role = UserRole.ADMIN
        admin.status = UserStatus.ACTIVE
        admin.email_verified = True
        admin.email_verified_at = admin.email_verified_at or now
        self.db.commit()
        logger.info("Seeded administrator account %s", admin.email)
        return admin

    def _generate_code(self) -> str:
        # Codes are unique across all issued tokens
        while True:
            code = f"{secrets.randbelow(1_000_000):06d}"
            if not self.verification_tokens.exists(code):
                return code
