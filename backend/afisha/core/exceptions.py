"""
Error taxonomy and the single translator that turns it into HTTP responses.

Services raise these exceptions; nothing below the route layer knows about
status codes. Every error body has a human-readable ``message`` and, for
field-level failures, an ``errors`` map keyed by the camelCase field name.
"""
import logging
from typing import Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AfishaError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, errors: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or {}

    def to_body(self) -> dict:
        body = {"message": self.message}
        if self.errors:
            body["errors"] = self.errors
        return body


class ValidationError(AfishaError):
    """Bad input or a violated business rule."""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field: Optional[str] = None, errors: Optional[Dict[str, str]] = None):
        if field and not errors:
            errors = {field: message}
        super().__init__(message, errors)


class NotFoundError(AfishaError):
    status_code = status.HTTP_404_NOT_FOUND


class AuthError(AfishaError):
    """Bad credentials, or a missing, expired or malformed token."""
    status_code = status.HTTP_401_UNAUTHORIZED


class ForbiddenError(AfishaError):
    status_code = status.HTTP_403_FORBIDDEN


class MailDeliveryError(Exception):
    """Raised by the mailer; callers log it and carry on."""


async def afisha_error_handler(request: Request, exc: AfishaError) -> JSONResponse:
    logger.info("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthError) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


# Russian text for the pydantic error types a client can trigger
VALIDATION_MESSAGES = {
    "missing": "Обязательное поле",
    "string_type": "Ожидается строка",
    "string_too_short": "Значение слишком короткое",
    "string_too_long": "Значение слишком длинное",
    "int_type": "Ожидается целое число",
    "int_parsing": "Ожидается целое число",
    "greater_than": "Значение слишком мало",
    "greater_than_equal": "Значение слишком мало",
    "less_than": "Значение слишком велико",
    "less_than_equal": "Значение слишком велико",
    "datetime_type": "Некорректная дата",
    "datetime_parsing": "Некорректная дата",
    "datetime_from_date_parsing": "Некорректная дата",
    "enum": "Недопустимое значение",
    "literal_error": "Недопустимое значение",
    "list_type": "Ожидается список",
    "bool_parsing": "Ожидается логическое значение",
    "json_invalid": "Некорректный JSON",
    "model_attributes_type": "Некорректные данные",
    "dict_type": "Некорректные данные",
}
DEFAULT_VALIDATION_MESSAGE = "Некорректное значение"


def localize_validation_error(error: dict) -> str:
    error_type = error.get("type")
    if error_type == "value_error":
        # ValueError raised by our own validators already carries a Russian message
        raised = (error.get("ctx") or {}).get("error")
        return str(raised) if raised else DEFAULT_VALIDATION_MESSAGE
    return VALIDATION_MESSAGES.get(error_type, DEFAULT_VALIDATION_MESSAGE)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors: Dict[str, str] = {}
    for error in exc.errors():
        # loc looks like ("body", "fullName") or ("query", "userId")
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(loc) or "request"
        errors.setdefault(field, localize_validation_error(error))
    message = next(iter(errors.values()), "Некорректные данные")
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"message": message, "errors": errors},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AfishaError, afisha_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
