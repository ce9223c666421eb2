import uuid
from datetime import datetime, timedelta, timezone

import jwt

from .config import ServerSettings, get_settings


def create_access_token(
    user_id: int, expires_in: int | None = None, settings: ServerSettings | None = None,
) -> str:
    """Signed JWT for *user_id*; *expires_in* seconds (0 = already expired)."""
    settings = settings or get_settings()
    if expires_in is None:
        expires_in = settings.access_token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "userId": user_id,
        "exp": now + timedelta(seconds=expires_in),
        "iat": now,
        # two tokens minted in the same second must still differ
        "jti": uuid.uuid4().hex,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def create_refresh_token() -> str:
    return str(uuid.uuid4())


def refresh_token_expiry(settings: ServerSettings | None = None) -> datetime:
    settings = settings or get_settings()
    return datetime.now(timezone.utc) + timedelta(days=settings.refresh_token_expire_days)


def decode_token(token: str, settings: ServerSettings | None = None) -> dict | None:
    settings = settings or get_settings()
    try:
        return jwt.decode(
            token, settings.jwt_secret, algorithms=[settings.jwt_algorithm]
        )
    except jwt.PyJWTError:
        return None


def bearer_token(header: str | None) -> str | None:
    """Token part of an `Authorization: Bearer <token>` header."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()
