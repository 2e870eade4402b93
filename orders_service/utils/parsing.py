from urllib.parse import urlparse

from ..errors import ValidationError

MAX_NOTE_LEN = 1000
MAX_MESSAGE_LEN = 2000


def pick(d: dict, *keys, default=None):
    """First non-None value among `keys` (clients send camelCase or snake_case)."""
    for k in keys:
        v = d.get(k)
        if v is not None:
            return v
    return default


def clean_text(value, field: str, required: bool = False, max_len: int = MAX_NOTE_LEN):
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{field} is required")
    if len(value) > max_len:
        raise ValidationError(f"{field} must be at most {max_len} characters")
    return value or None


def require_url(value, field: str) -> str:
    value = clean_text(value, field, required=True, max_len=500)
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValidationError(f"{field} must be an http(s) URL")
    return value


def parse_bool(value) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def parse_score(value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError("score must be 1 or -1")
    try:
        score = int(value)
    except (TypeError, ValueError):
        raise ValidationError("score must be 1 or -1")
    if score not in (1, -1) or str(value).strip() not in ("1", "-1", "+1"):
        raise ValidationError("score must be 1 or -1")
    return score
