"""Authentication utilities for the Gigmarket backend.

Tokens are issued by the external identity service; the backend only
verifies them with the shared secret. The ``sub`` claim is the acting user,
and every authorization decision downstream is made against that id.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from .config import Settings, get_settings

# Missing credentials are reported as 401 by get_current_user, not 403
security = HTTPBearer(auto_error=False)

TOKEN_TYPE = "access"


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


def create_access_token(
    user_id: str,
    settings: Settings,
    expires_delta: timedelta | None = None,
    email: str | None = None,
) -> str:
    """Sign a token for ``user_id``.

    Production tokens come from the identity service; this exists for local
    development and the API test suite.
    """
    issued_at = datetime.now(timezone.utc)
    lifetime = expires_delta if expires_delta is not None else timedelta(minutes=settings.jwt_expire_minutes)
    claims = {
        "sub": user_id,
        "iat": issued_at,
        "exp": issued_at + lifetime,
        "type": TOKEN_TYPE,
    }
    if email:
        claims["email"] = email
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str, settings: Settings) -> dict:
    try:
        claims = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        raise _unauthorized("Invalid or expired token")
    if claims.get("type", TOKEN_TYPE) != TOKEN_TYPE:
        raise _unauthorized("Invalid or expired token")
    return claims


@dataclass(frozen=True)
class Actor:
    """The user a request acts on behalf of."""

    user_id: str
    email: str | None = None


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Actor:
    """Resolve the acting user from the Authorization header."""
    if credentials is None:
        raise _unauthorized("Not authenticated - provide Authorization header")

    claims = decode_token(credentials.credentials, settings)
    subject = claims.get("sub")
    if not subject:
        raise _unauthorized("Token has no subject")
    return Actor(user_id=subject, email=claims.get("email"))


CurrentUser = Annotated[Actor, Depends(get_current_user)]
