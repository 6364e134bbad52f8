import time
from typing import Optional

from itsdangerous import BadSignature, URLSafeSerializer

from config import get_settings


def _serializer() -> URLSafeSerializer:
    settings = get_settings()
    return URLSafeSerializer(settings.session_secret, salt="session-token")


def issue_session_token(user_id: int, max_age_hours: int = 24 * 7) -> str:
    serializer = _serializer()
    timestamp = int(time.time())
    expiry = timestamp + (max_age_hours * 3600)

    token_data = {"u": user_id, "ts": timestamp, "exp": expiry}

    return serializer.dumps(token_data)


def resolve_session_token(token: Optional[str]) -> Optional[int]:
    """Return the user id carried by ``token``, or None if it is not valid."""
    if not token:
        return None
    serializer = _serializer()
    try:
        data = serializer.loads(token)
    except BadSignature:
        return None

    if not isinstance(data, dict):
        return None

    current_time = int(time.time())
    expiry_time = data.get("exp", 0)

    if current_time > expiry_time:
        return None

    user_id = data.get("u")
    if not isinstance(user_id, int) or user_id <= 0:
        return None
    return user_id
