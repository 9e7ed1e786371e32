"""
Auth Dependencies

FastAPI dependencies for authentication.
"""

import hashlib
from datetime import datetime, timezone
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from civic_api.core.database import get_db
from civic_api.governance.models import User, UserSession

security = HTTPBearer(auto_error=False)


def hash_token(token: str) -> str:
    """SHA-256 hex digest under which session tokens are stored."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_principal(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> UUID:
    """
    Get the id of the authenticated user.

    The bearer token must match a session that is neither revoked nor
    expired and belongs to an active user.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized()

    result = await db.execute(
        select(UserSession.user_id)
        .join(User, User.id == UserSession.user_id)
        .where(UserSession.token_hash == hash_token(credentials.credentials))
        .where(UserSession.revoked_at.is_(None))
        .where(UserSession.expires_at > datetime.now(timezone.utc))
        .where(User.is_active.is_(True))
    )
    user_id = result.scalar_one_or_none()
    if user_id is None:
        raise _unauthorized()

    return user_id
