"""JWT helpers for resolving the acting user."""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from .config import settings


def create_token(subject: str, expires_delta: timedelta, token_type: str) -> str:
    """Create a signed JWT for the given subject and token type."""
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": subject,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def create_access_token(subject: str | uuid.UUID, minutes: int = 30) -> str:
    """Create an access token for a user id."""
    return create_token(str(subject), timedelta(minutes=minutes), "access")


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a JWT and return its payload if valid."""
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None
