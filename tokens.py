from typing import Optional

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import get_settings
from errors import InvalidToken, Unauthorized

SESSION_SALT = "session-token"
VERIFY_SALT = "verify-email"
RESET_SALT = "reset-password"


def _serializer(salt: str) -> URLSafeTimedSerializer:
    settings = get_settings()
    return URLSafeTimedSerializer(settings.secret_key, salt=salt)


def generate_session_token(user_id: int, role: str) -> str:
    return _serializer(SESSION_SALT).dumps({"u": user_id, "r": role})


def read_session_token(token: Optional[str]) -> int:
    """Return the user id carried by a session token.

    Raises Unauthorized for a missing, tampered or expired token.
    """
    if not token:
        raise Unauthorized("Authentication required")
    max_age = get_settings().session_max_age_secs
    try:
        data = _serializer(SESSION_SALT).loads(token, max_age=max_age)
    except BadSignature as exc:
        raise Unauthorized("Invalid or expired session") from exc
    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int):
        raise Unauthorized("Invalid or expired session")
    return user_id


def generate_email_token(
    user_id: int, email: str, purpose: str, fingerprint: str = ""
) -> str:
    return _serializer(purpose).dumps({"u": user_id, "e": email, "f": fingerprint})


def read_email_token(token: Optional[str], purpose: str, max_age_hours: int) -> dict:
    if not token:
        raise InvalidToken("Missing token")
    try:
        data = _serializer(purpose).loads(token, max_age=max_age_hours * 3600)
    except SignatureExpired as exc:
        raise InvalidToken("Token has expired") from exc
    except BadSignature as exc:
        raise InvalidToken("Invalid token") from exc
    if not isinstance(data, dict) or "u" not in data:
        raise InvalidToken("Invalid token")
    return data
