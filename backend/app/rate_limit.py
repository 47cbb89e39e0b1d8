"""Rate limiting configuration for the Gigmarket backend.

Authenticated requests are limited per user (the token subject), anonymous
ones per client address.
"""

from jose import JWTError, jwt
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import get_settings


def rate_limit_key(request) -> str:
    """Key requests by token subject when a valid bearer token is present."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token:
        settings = get_settings()
        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except JWTError:
            payload = {}
        subject = payload.get("sub")
        if subject:
            return f"user:{subject}"
    return get_remote_address(request)


limiter = Limiter(key_func=rate_limit_key, enabled=get_settings().rate_limit_enabled)
