import base64
import binascii
import re
from typing import Optional, Tuple
from afisha.core.config import settings
from afisha.core.exceptions import ValidationError

# "data:image/png;base64,...." as produced by FileReader.readAsDataURL
_DATA_URL_PATTERN = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$", re.DOTALL)


def decode_image(image_base64: str, image_type: Optional[str]) -> Tuple[str, str]:
    """
    Validate an uploaded image and return (normalized base64, content type).

    Raises ValidationError when the type is not an accepted image type, the
    payload is not valid base64, or it exceeds MAX_IMAGE_SIZE once decoded.
    """
    payload = image_base64.strip()
    match = _DATA_URL_PATTERN.match(payload)
    if match:
        payload = match.group("data")
        image_type = image_type or match.group("mime")

    content_type = (image_type or "").strip().lower()
    if content_type not in settings.get_allowed_image_types():
        raise ValidationError("Поддерживаются только изображения", field="imageType")

    try:
        decoded = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Некорректные данные изображения", field="imageBase64")

    if not decoded:
        raise ValidationError("Некорректные данные изображения", field="imageBase64")
    if len(decoded) > settings.MAX_IMAGE_SIZE:
        raise ValidationError("Размер изображения не должен превышать 2 МБ", field="imageBase64")

    return base64.b64encode(decoded).decode("ascii"), content_type


def validate_image_url(url: str) -> str:
    url = url.strip()
    if not url.lower().startswith(("http://", "https://")):
        raise ValidationError("Ссылка на изображение должна начинаться с http:// или https://", field="imageUrl")
    return url
