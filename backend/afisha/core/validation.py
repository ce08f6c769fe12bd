import re
from afisha.core.exceptions import ValidationError

# Cyrillic letters (including Ё/ё) and whitespace only
FULL_NAME_PATTERN = re.compile(r"^[А-Яа-яЁё\s]+$")
# At least 8 chars with a Latin letter, a digit and a symbol
PASSWORD_PATTERN = re.compile(r"^(?=.*[A-Za-z])(?=.*\d)(?=.*[!@#$%^&*()_+=\-]).{8,}$")

FULL_NAME_MESSAGE = "ФИО должно содержать только русские буквы"
PASSWORD_MESSAGE = "Пароль должен быть от 8 символов с латиницей, цифрами и символами"


def validate_full_name(full_name: str, field: str = "fullName") -> None:
    if not full_name or not full_name.strip() or not FULL_NAME_PATTERN.match(full_name):
        raise ValidationError(FULL_NAME_MESSAGE, field=field)


def validate_password(password: str, field: str = "password") -> None:
    if not password or not PASSWORD_PATTERN.match(password):
        raise ValidationError(PASSWORD_MESSAGE, field=field)


def validate_password_confirmation(password: str, confirm: str, field: str = "confirmPassword") -> None:
    if password != confirm:
        raise ValidationError("Пароли не совпадают", field=field)
