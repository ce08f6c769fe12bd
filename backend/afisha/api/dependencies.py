from typing import Optional
from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from afisha.core.database import get_db
from afisha.core.exceptions import AuthError, ForbiddenError
from afisha.core.security import ACCESS_TOKEN_TYPE, decode_token
from afisha.models.user import User, UserRole
from afisha.services.admin_service import AdminService
from afisha.services.auth_service import AuthService
from afisha.services.event_service import EventService
from afisha.services.mail_service import mail_service

# Extracts the token from the Authorization header; the cookie is checked as a fallback
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login", auto_error=False)

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"


def get_mailer():
    """Overridden in tests with a recording outbox."""
    return mail_service


def get_auth_service(db: Session = Depends(get_db), mailer=Depends(get_mailer)) -> AuthService:
    return AuthService(db, mailer)


def get_event_service(db: Session = Depends(get_db), mailer=Depends(get_mailer)) -> EventService:
    return EventService(db, mailer)


def get_admin_service(db: Session = Depends(get_db), mailer=Depends(get_mailer)) -> AdminService:
    return AdminService(db, mailer)


def _access_claims(request: Request, token: Optional[str]) -> Optional[dict]:
    token = token or request.cookies.get(ACCESS_COOKIE)
    if not token:
        return None
    claims = decode_token(token)
    # Refresh tokens never authenticate a request
    if claims is None or claims.get("type") != ACCESS_TOKEN_TYPE or not claims.get("sub"):
        return None
    return claims


async def get_current_user_optional(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """Authenticated user, or None for anonymous requests and unusable tokens."""
    claims = _access_claims(request, token)
    if claims is None:
        return None
    user = db.query(User).filter(User.id == claims["sub"]).first()
    if user is None or user.is_deleted:
        return None
    return user


async def get_current_user(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from the access token.

    Raises AuthError (401) when the token is missing, invalid, expired, or
    belongs to a user that no longer exists or was deleted.
    """
    claims = _access_claims(request, token)
    if claims is None:
        raise AuthError("Требуется авторизация")

    user = db.query(User).filter(User.id == claims["sub"]).first()
    if user is None:
        raise AuthError("Пользователь не найден")
    if user.is_deleted:
        raise AuthError("Учетная запись удалена")
    return user


async def require_admin(
    request: Request,
    token: Optional[str] = Depends(oauth2_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    Single authorization gate for admin operations.

    Both the signed role claim and the stored role must say ADMIN, so a
    demoted admin loses access before their token expires.
    """
    user = await get_current_user(request, token, db)
    claims = _access_claims(request, token)
    if claims.get("role") != UserRole.ADMIN.value or not user.is_admin:
        raise ForbiddenError("Недостаточно прав")
    return user


def resolve_user_id(explicit: Optional[str], current: Optional[User]) -> Optional[str]:
    """Read endpoints: an explicit ``userId`` query parameter wins over the authenticated user."""
    if explicit:
        return explicit
    return current.id if current else None


def resolve_acting_user_id(explicit: Optional[str], current: User) -> str:
    """Write endpoints: only admins may act on behalf of another user."""
    if explicit and explicit != current.id:
        if not current.is_admin:
            raise ForbiddenError("Недостаточно прав")
        return explicit
    return current.id
