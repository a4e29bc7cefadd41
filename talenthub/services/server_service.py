import logging
import math
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import Conflict, Forbidden, InvalidInput, NotFound
from talenthub.core.security import generate_token_key
from talenthub.models import (
    Channel,
    ChannelConversation,
    ConversationMember,
    Message,
    Server,
    ServerBan,
    ServerMember,
    User,
)
from talenthub.models.enums import MemberRole
from talenthub.services.channel_service import add_channel, list_channels
from talenthub.services.conversation_service import ensure_channel_key

logger = logging.getLogger(__name__)

DEFAULT_CHANNELS = ("general", "random")


@dataclass(slots=True)
class JoinResult:
    server_id: UUID
    name: str
    first_channel_key: str | None


async def create_server(
    db: AsyncSession, owner_id: UUID, name: str, is_public: bool = False
) -> tuple[Server, list[Channel]]:
    name = name.strip()
    if not name:
        raise InvalidInput("name is required")

    server = Server(name=name, owner_user_id=owner_id, is_public=is_public, invite_key=generate_token_key())
    db.add(server)
    await db.flush()

    db.add(ServerMember(server_id=server.id, user_id=owner_id, roles=[MemberRole.OWNER.value]))
    channels = [
        await add_channel(db, server.id, channel_name, position)
        for position, channel_name in enumerate(DEFAULT_CHANNELS)
    ]
    await db.commit()
    await db.refresh(server)
    logger.info("Server %s created by %s", server.id, owner_id)
    return server, channels


async def get_server(db: AsyncSession, server_id: UUID) -> Server:
    server = await db.get(Server, server_id)
    if server is None:
        raise NotFound("Server not found")
    return server


async def list_servers_for_user(db: AsyncSession, user_id: UUID) -> list[Server]:
    stmt = (
        select(Server)
        .join(ServerMember, ServerMember.server_id == Server.id)
        .where(ServerMember.user_id == user_id)
        .order_by(Server.created_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def update_server(
    db: AsyncSession,
    server: Server,
    name: str | None = None,
    is_public: bool | None = None,
    icon_url: str | None = None,
) -> Server:
    if name is not None:
        if not name.strip():
            raise InvalidInput("name cannot be empty")
        server.name = name.strip()
    if is_public is not None:
        server.is_public = is_public
    if icon_url is not None:
        server.icon_url = icon_url
    await db.commit()
    await db.refresh(server)
    return server


async def rotate_invite_key(db: AsyncSession, server: Server) -> Server:
    server.invite_key = generate_token_key()
    await db.commit()
    await db.refresh(server)
    return server


async def delete_server(db: AsyncSession, server: Server) -> None:
    server_id = server.id
    conversation_ids = select(ChannelConversation.id).where(ChannelConversation.server_id == server_id)

    await db.execute(delete(Message).where(Message.conversation_id.in_(conversation_ids)))
    await db.execute(delete(ConversationMember).where(ConversationMember.conversation_id.in_(conversation_ids)))
    await db.execute(delete(ChannelConversation).where(ChannelConversation.server_id == server_id))
    await db.execute(delete(Channel).where(Channel.server_id == server_id))
    await db.execute(delete(ServerMember).where(ServerMember.server_id == server_id))
    await db.execute(delete(ServerBan).where(ServerBan.server_id == server_id))
    await db.delete(server)
    await db.commit()
    logger.info("Server %s deleted", server_id)


async def member_count(db: AsyncSession, server_id: UUID) -> int:
    stmt = select(func.count()).select_from(ServerMember).where(ServerMember.server_id == server_id)
    return (await db.execute(stmt)).scalar_one()


async def discover_servers(
    db: AsyncSession, page: int, limit: int, search: str = "", sort: str = "members"
) -> tuple[list[tuple[Server, int]], int]:
    counts = (
        select(ServerMember.server_id, func.count(ServerMember.id).label("member_count"))
        .group_by(ServerMember.server_id)
        .subquery()
    )
    member_count_col = func.coalesce(counts.c.member_count, 0)

    base = select(Server, member_count_col).outerjoin(counts, counts.c.server_id == Server.id).where(Server.is_public.is_(True))
    total_stmt = select(func.count()).select_from(Server).where(Server.is_public.is_(True))
    if search.strip():
        pattern = f"%{search.strip()}%"
        base = base.where(Server.name.ilike(pattern))
        total_stmt = total_stmt.where(Server.name.ilike(pattern))

    ordering = {
        "newest": [Server.created_at.desc()],
        "oldest": [Server.created_at.asc()],
        "name": [Server.name.asc()],
        "members": [member_count_col.desc(), Server.created_at.desc()],
    }[sort]

    total = (await db.execute(total_stmt)).scalar_one()
    rows = (await db.execute(base.order_by(*ordering).offset((page - 1) * limit).limit(limit))).all()
    return [(server, count) for server, count in rows], total


def page_count(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit))


async def get_server_by_invite(db: AsyncSession, invite_key: str) -> Server:
    server = (await db.execute(select(Server).where(Server.invite_key == invite_key))).scalar_one_or_none()
    if server is None:
        raise NotFound("Invite not found or expired")
    return server


async def get_membership(db: AsyncSession, server_id: UUID, user_id: UUID) -> ServerMember | None:
    stmt = select(ServerMember).where(ServerMember.server_id == server_id, ServerMember.user_id == user_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def is_banned(db: AsyncSession, server_id: UUID, user_id: UUID) -> bool:
    stmt = select(ServerBan.id).where(ServerBan.server_id == server_id, ServerBan.banned_user_id == user_id)
    return (await db.execute(stmt)).first() is not None


async def join_server(db: AsyncSession, invite_key: str, user_id: UUID) -> JoinResult:
    server = await get_server_by_invite(db, invite_key)
    server_id, name = server.id, server.name

    if await is_banned(db, server_id, user_id):
        raise Forbidden("You are banned from this server")

    if await get_membership(db, server_id, user_id) is None:
        db.add(ServerMember(server_id=server_id, user_id=user_id, roles=[MemberRole.MEMBER.value]))
        try:
            await db.commit()
            logger.info("User %s joined server %s", user_id, server_id)
        except IntegrityError:
            # Joined concurrently from another tab; membership exists either way.
            await db.rollback()

    channels = await list_channels(db, server_id)
    first_channel_key = None
    if channels:
        first_channel_key = (await ensure_channel_key(db, channels[0].id)).channel_key
    return JoinResult(server_id=server_id, name=name, first_channel_key=first_channel_key)


async def leave_server(db: AsyncSession, server_id: UUID, user_id: UUID) -> None:
    server = await get_server(db, server_id)
    if server.owner_user_id == user_id:
        raise InvalidInput("Owner cannot leave; delete the server instead")
    await db.execute(delete(ServerMember).where(ServerMember.server_id == server_id, ServerMember.user_id == user_id))
    await db.commit()


async def list_members(db: AsyncSession, server_id: UUID) -> list[tuple[ServerMember, User]]:
    stmt = (
        select(ServerMember, User)
        .join(User, User.id == ServerMember.user_id)
        .where(ServerMember.server_id == server_id)
        .order_by(ServerMember.joined_at.asc())
    )
    return [(member, user) for member, user in (await db.execute(stmt)).all()]


def _guard_target(server: Server, actor_id: UUID, target_id: UUID, action: str) -> None:
    if target_id == server.owner_user_id:
        raise InvalidInput(f"Cannot {action} the server owner")
    if target_id == actor_id:
        raise InvalidInput(f"Cannot {action} yourself")


async def _require_target_membership(db: AsyncSession, server_id: UUID, target_id: UUID) -> ServerMember:
    membership = await get_membership(db, server_id, target_id)
    if membership is None:
        raise NotFound("Member not found")
    return membership


async def kick_member(db: AsyncSession, server: Server, actor_id: UUID, target_id: UUID) -> None:
    _guard_target(server, actor_id, target_id, "kick")
    membership = await _require_target_membership(db, server.id, target_id)
    await db.delete(membership)
    await db.commit()
    logger.info("User %s kicked from server %s by %s", target_id, server.id, actor_id)


async def ban_member(db: AsyncSession, server: Server, actor_id: UUID, target_id: UUID, reason: str = "") -> ServerBan:
    _guard_target(server, actor_id, target_id, "ban")
    server_id = server.id
    if await is_banned(db, server_id, target_id):
        raise Conflict("User is already banned")

    ban = ServerBan(server_id=server_id, banned_user_id=target_id, banned_by_user_id=actor_id, reason=reason.strip())
    db.add(ban)
    await db.execute(delete(ServerMember).where(ServerMember.server_id == server_id, ServerMember.user_id == target_id))
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("User is already banned") from exc
    logger.info("User %s banned from server %s by %s", target_id, server_id, actor_id)
    return ban


async def mute_member(db: AsyncSession, server: Server, actor_id: UUID, target_id: UUID, muted: bool) -> ServerMember:
    _guard_target(server, actor_id, target_id, "mute")
    membership = await _require_target_membership(db, server.id, target_id)
    membership.muted = muted
    await db.commit()
    await db.refresh(membership)
    return membership
