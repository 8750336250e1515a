"""Identity provider token helpers.

Sessions are issued by the external identity provider; this service only
verifies its HS256 access tokens. ``create_access_token`` exists so that
tooling and tests can mint tokens in the same shape the provider does:
``sub`` is the auth user id, ``email`` the verified email address.
"""

from datetime import datetime, timedelta, timezone

from jose import jwt

from coparent.config import settings


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """Encode an access token carrying ``data`` plus expiry and type claims."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire, "type": "access"})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and verify a token. Raises ``JWTError`` when invalid or expired."""
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
