from typing import Optional

from itsdangerous import BadSignature, URLSafeTimedSerializer

from config import Settings


class InvalidToken(ValueError):
    pass


def _serializer(settings: Settings) -> URLSafeTimedSerializer:
    return URLSafeTimedSerializer(settings.auth_secret, salt="auth-token")


def generate_token(user_id: int, settings: Settings) -> str:
    return _serializer(settings).dumps({"u": user_id})


def verify_token(token: str, settings: Settings) -> int:
    """Return the user id carried by a signed token."""
    max_age = settings.token_max_age_hours * 3600
    try:
        data = _serializer(settings).loads(token, max_age=max_age)
    except BadSignature as exc:
        raise InvalidToken("Invalid or expired token") from exc

    user_id = data.get("u") if isinstance(data, dict) else None
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise InvalidToken("Invalid or expired token")
    return user_id


def bearer_token(header: Optional[str]) -> Optional[str]:
    if not header or not header.startswith("Bearer "):
        return None
    token = header.split(" ", 1)[1].strip()
    return token or None
