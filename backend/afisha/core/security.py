from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt
from passlib.context import CryptContext
from afisha.core.config import settings

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

# CryptContext handles password hashing using bcrypt
# 'deprecated="auto"' lets passlib rehash outdated schemes transparently
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against a hash using constant-time comparison"""
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """Hash a password using bcrypt"""
    return pwd_context.hash(password)


def create_token(data: dict, expires_delta: timedelta) -> str:
    """Create a signed JWT with issued-at and expiration claims"""
    # Copy so the caller's dict is left untouched
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    to_encode.update({"iat": now, "exp": now + expires_delta})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def _user_claims(user, token_type: str) -> dict:
    return {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role.value,
        "type": token_type,
    }


def create_access_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Short-lived token used to authenticate API requests"""
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return create_token(_user_claims(user, ACCESS_TOKEN_TYPE), expires_delta)


def create_refresh_token(user, expires_delta: Optional[timedelta] = None) -> str:
    """Long-lived token exchanged for a fresh pair at /auth/refresh"""
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return create_token(_user_claims(user, REFRESH_TOKEN_TYPE), expires_delta)


def decode_token(token: str) -> Optional[dict]:
    """Decode and verify a JWT token"""
    try:
        # Verify signature and expiration automatically
        # Returns None if token is invalid, expired, or tampered with
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None
