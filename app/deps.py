"""
FastAPI dependencies for authentication, database, and shared services.
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db import get_db, get_session_factory
from app.models.user import User
from app.services.push import WebPushTransport
from app.services.shop_status import ShopStatusService
from app.settings import settings

# Type alias for database dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]
SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def _session_token(request: Request) -> str | None:
    """Session token from the cookie, else from an ``Authorization: Bearer`` header."""
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        return token
    auth_header = request.headers.get("Authorization", "")
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return None


async def get_current_user_optional(request: Request, db: DBSession) -> User | None:
    """Get current user from the session token (None if anonymous or expired)."""
    token = _session_token(request)
    if not token:
        return None

    result = await db.execute(select(User).where(User.session_token == token))
    user = result.scalar_one_or_none()
    if user is None or not user.is_session_valid():
        return None

    request.state.user = user
    return user


async def get_current_user(
    user: Annotated[User | None, Depends(get_current_user_optional)],
) -> User:
    """Get current user (raises 401 if not authenticated)."""
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


async def require_admin(user: CurrentUser) -> User:
    """Require the shop admin role."""
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


# Type aliases for authenticated user dependencies
CurrentUserOptional = Annotated[User | None, Depends(get_current_user_optional)]
AdminUser = Annotated[User, Depends(require_admin)]


def get_status_service(request: Request) -> ShopStatusService:
    """The process-wide status service created in the app lifespan."""
    return request.app.state.status_service


def get_push_transport(request: Request) -> WebPushTransport:
    return request.app.state.push_transport


StatusService = Annotated[ShopStatusService, Depends(get_status_service)]
PushTransport = Annotated[WebPushTransport, Depends(get_push_transport)]
