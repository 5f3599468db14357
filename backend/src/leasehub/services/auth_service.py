"""Authentication service: JWT issue and verification.

Tokens are issued by the account service; this side only needs to verify
them (and issue them in tests and scripts).
"""

from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from leasehub.app.config import get_settings

settings = get_settings()


def create_access_token(user_id: str, role: str, expires_minutes: int | None = None) -> str:
    minutes = settings.jwt_expiration_minutes if expires_minutes is None else expires_minutes
    expire = datetime.now(timezone.utc) + timedelta(minutes=minutes)
    payload = {"sub": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict | None:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
