from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.config import Settings
from talenthub.core.errors import AppError
from talenthub.db.session import get_db
from talenthub.integrations.mailer import ResendEmail
from talenthub.integrations.realtime import PusherRealtime
from talenthub.integrations.storage import SupabaseStorage
from talenthub.models import Server, ServerMember, User
from talenthub.services import auth_service


def get_settings_dep(request: Request) -> Settings:
    return request.app.state.settings


def get_realtime(request: Request) -> PusherRealtime:
    return request.app.state.realtime


def get_storage(request: Request) -> SupabaseStorage:
    return request.app.state.storage


def get_mailer(request: Request) -> ResendEmail:
    return request.app.state.mailer


def read_session_token(request: Request, authorization: str | None, settings: Settings) -> str | None:
    if authorization and authorization.lower().startswith("bearer "):
        return authorization.split(" ", 1)[1].strip() or None
    return request.cookies.get(settings.cookie_name) or None


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    authorization: str | None = Header(default=None),
) -> User:
    token = read_session_token(request, authorization, settings)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return await auth_service.authenticate(db, settings, token)


async def get_optional_user(
    request: Request,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    authorization: str | None = Header(default=None),
) -> User | None:
    token = read_session_token(request, authorization, settings)
    if not token:
        return None
    try:
        return await auth_service.authenticate(db, settings, token)
    except (AppError, HTTPException):
        return None


async def require_server_member(db: AsyncSession, server_id: UUID, user_id: UUID) -> ServerMember:
    stmt = select(ServerMember).where(ServerMember.server_id == server_id, ServerMember.user_id == user_id)
    member = (await db.execute(stmt)).scalar_one_or_none()
    if member is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not a server member")
    return member


async def require_server_owner(db: AsyncSession, server_id: UUID, user_id: UUID) -> Server:
    server = await db.get(Server, server_id)
    if server is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Server not found")
    if server.owner_user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only server owner can perform this action")
    return server
