from typing import Optional
from fastapi import APIRouter, Depends, Request, Response, status
from pydantic import EmailStr
from afisha.api.dependencies import (
    ACCESS_COOKIE,
    REFRESH_COOKIE,
    get_auth_service,
    get_current_user,
)
from afisha.core.config import settings
from afisha.models.user import User
from afisha.schemas.base import CamelModel, MessageResponse
from afisha.schemas.user import AuthResponse, AuthTokens, RegistrationResponse, UserProfile
from afisha.services.auth_service import AuthResult, AuthService

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterRequest(CamelModel):
    full_name: str
    email: EmailStr
    password: str
    confirm_password: str


class VerifyEmailRequest(CamelModel):
    email: EmailStr
    code: str


class LoginRequest(CamelModel):
    email: EmailStr
    password: str


class RefreshRequest(CamelModel):
    refresh_token: Optional[str] = None


class ForgotPasswordRequest(CamelModel):
    email: EmailStr


class ResetPasswordRequest(CamelModel):
    token: str
    password: str
    confirm_password: str


def _set_auth_cookies(response: Response, tokens: AuthTokens) -> None:
    # HttpOnly so page scripts never see the tokens; the body copy is for API clients
    response.set_cookie(
        ACCESS_COOKIE,
        tokens.access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )
    response.set_cookie(
        REFRESH_COOKIE,
        tokens.refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 3600,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        path="/",
    )


def _auth_response(response: Response, result: AuthResult, message: str, service: AuthService) -> AuthResponse:
    _set_auth_cookies(response, result.tokens)
    return AuthResponse(
        message=message,
        user=UserProfile.model_validate(result.user),
        tokens=result.tokens,
        warnings=service.warnings,
    )


@router.post("/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, service: AuthService = Depends(get_auth_service)):
    """Register a new user and email them a verification code"""
    user = service.register(payload.full_name, payload.email, payload.password, payload.confirm_password)
    return RegistrationResponse(
        message="Код подтверждения отправлен на email",
        user=UserProfile.model_validate(user),
        warnings=service.warnings,
    )


@router.post("/verify-email", response_model=AuthResponse)
async def verify_email(
    payload: VerifyEmailRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service)
):
    """Consume the verification code and sign the user in"""
    result = service.verify_email(payload.email, payload.code.strip())
    return _auth_response(response, result, "Email подтвержден", service)


@router.post("/login", response_model=AuthResponse)
async def login(payload: LoginRequest, response: Response, service: AuthService = Depends(get_auth_service)):
    result = service.login(payload.email, payload.password)
    return _auth_response(response, result, "Вход выполнен", service)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(
    request: Request,
    response: Response,
    payload: Optional[RefreshRequest] = None,
    service: AuthService = Depends(get_auth_service)
):
    """Rotate the token pair. The refresh token comes from the body or the cookie."""
    token = (payload.refresh_token if payload else None) or request.cookies.get(REFRESH_COOKIE)
    result = service.refresh(token)
    return _auth_response(response, result, "Токены обновлены", service)


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    response.delete_cookie(ACCESS_COOKIE, path="/")
    response.delete_cookie(REFRESH_COOKIE, path="/")
    return MessageResponse(message="Выход выполнен")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(payload: ForgotPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.request_password_reset(payload.email)
    return MessageResponse(message="Ссылка для сброса пароля отправлена на email", warnings=service.warnings)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)):
    service.reset_password(payload.token, payload.password, payload.confirm_password)
    return MessageResponse(message="Пароль успешно изменен", warnings=service.warnings)


@router.get("/me", response_model=UserProfile)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
    """Get current user information"""
    return current_user
