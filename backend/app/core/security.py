"""Admin login check and JWT utilities."""

import hmac
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.core.config import settings
from app.core.exceptions import InvalidCredentialsError, InvalidTokenError


def verify_admin_credentials(username: str, password: str) -> bool:
    """Compare against the single configured admin account."""
    user_ok = hmac.compare_digest(username.encode("utf-8"), settings.admin_username.encode("utf-8"))
    pass_ok = hmac.compare_digest(password.encode("utf-8"), settings.admin_password.encode("utf-8"))
    return user_ok and pass_ok


def create_jwt_token(
    data: dict[str, Any],
    expires_delta: timedelta | None = None,
) -> str:
    """Create a JWT token with optional expiry."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(hours=settings.jwt_expiry_hours)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


def decode_jwt_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT token. Raises JWTError on failure."""
    return jwt.decode(
        token,
        settings.jwt_secret_key,
        algorithms=[settings.jwt_algorithm],
    )


def issue_admin_token(username: str, password: str) -> str:
    """Return a signed admin token or raise InvalidCredentialsError."""
    if not verify_admin_credentials(username, password):
        raise InvalidCredentialsError()
    return create_jwt_token({"sub": username, "role": "admin"})


def admin_subject(token: str) -> str:
    """Validate an admin bearer token and return its subject."""
    try:
        claims = decode_jwt_token(token)
    except JWTError as e:
        raise InvalidTokenError() from e
    if claims.get("role") != "admin" or not claims.get("sub"):
        raise InvalidTokenError()
    return str(claims["sub"])
