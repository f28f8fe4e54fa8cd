"""JWT handling: tokens are issued by the identity layer, we verify them."""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from load_insights.app.config import get_settings


def create_access_token(email: str, expires_minutes: int = 60 * 24) -> str:
    """Issue a token for ``email`` (used by local tooling and tests)."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {"sub": email, "email": email, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def account_from_payload(payload: dict) -> str | None:
    """The tenant key: the ``email`` claim, falling back to ``sub``."""
    account = payload.get("email") or payload.get("sub")
    if not account or not isinstance(account, str):
        return None
    return account.strip().lower()
