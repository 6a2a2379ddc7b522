import secrets
from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer
from werkzeug.security import check_password_hash, generate_password_hash

from config import get_settings

MIN_PASSWORD_LENGTH = 8


def _serializer() -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt="session-token")


def hash_password(password: str) -> str:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValueError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )
    return generate_password_hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    if not password_hash or not password:
        return False
    return check_password_hash(password_hash, password)


def new_session_key() -> str:
    return secrets.token_hex(32)


def issue_token(user_id: int, session_key: str) -> str:
    return _serializer().dumps({"u": user_id, "s": session_key})


def read_token(token: str, max_age_hours: Optional[int] = None) -> Optional[dict]:
    """Return the token payload, or ``None`` for tampered or expired tokens."""
    if not token:
        return None
    max_age = (max_age_hours or get_settings().session_hours) * 3600
    try:
        data = _serializer().loads(token, max_age=max_age)
    except BadSignature:
        return None
    if not isinstance(data, dict) or "u" not in data or "s" not in data:
        return None
    return data


def detect_device_type(user_agent: Optional[str]) -> str:
    agent = (user_agent or "").lower()
    if "ipad" in agent or "tablet" in agent:
        return "tablet"
    if "mobile" in agent or "android" in agent or "iphone" in agent:
        return "mobile"
    return "desktop"
