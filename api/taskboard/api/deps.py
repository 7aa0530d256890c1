import hmac
import uuid

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.core.config import settings
from taskboard.core.security import decode_token
from taskboard.db.session import get_session

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.api_prefix}/auth/login", auto_error=False)


async def get_db() -> AsyncSession:
    async for session in get_session():
        yield session


async def get_current_user_id(token: str | None = Depends(oauth2_scheme)) -> uuid.UUID:
    """Resolve the acting user from a bearer JWT; sessions are issued elsewhere."""
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    try:
        return uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token") from None


async def require_automation_secret(
    x_automation_secret: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
) -> None:
    """Guard machine-to-machine endpoints (sweeps, event ingest) with a shared secret."""
    secret = settings.automation_cron_secret
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Automation secret is not configured"
        )
    bearer = None
    if authorization and authorization.lower().startswith("bearer "):
        bearer = authorization[7:].strip()
    for candidate in (x_automation_secret, bearer):
        if candidate and hmac.compare_digest(candidate, secret):
            return
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid automation secret")
