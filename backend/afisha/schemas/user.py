from datetime import datetime
from typing import List, Optional
from afisha.models.user import UserRole, UserStatus
from afisha.schemas.base import CamelModel


class UserProfile(CamelModel):
    id: str
    full_name: str
    email: str
    role: UserRole


class UserAdminView(UserProfile):
    status: UserStatus
    registered_at: datetime
    email_verified: bool
    must_change_password: bool


class AuthTokens(CamelModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthResponse(CamelModel):
    message: str
    user: UserProfile
    tokens: AuthTokens
    warnings: List[str] = []


class RegistrationResponse(CamelModel):
    message: str
    user: UserProfile
    warnings: List[str] = []


class UserUpdate(CamelModel):
    full_name: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None
