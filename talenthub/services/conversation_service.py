"""Conversation resolution and read state.

Every place messages are exchanged maps to exactly one conversation row:
one per channel, one per unordered pair of users for DMs. Resolution is
idempotent under concurrent callers; the unique indexes on
``conversations.channel_id`` and ``conversations.dm_key`` are the only
concurrency guard, and a lost race is settled by re-reading the winner.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import ResolutionFailed, SelfConversationError
from talenthub.core.security import generate_token_key
from talenthub.db.base import as_utc, utc_now
from talenthub.models import (
    Channel,
    ChannelConversation,
    Conversation,
    ConversationMember,
    DirectConversation,
    Server,
    User,
)

logger = logging.getLogger(__name__)

DM_KEY_SEPARATOR = "_"
CONVERSATION_LIST_LIMIT = 100
NEVER = datetime.min.replace(tzinfo=UTC)


@dataclass(slots=True)
class ResolvedChannel:
    conversation_id: UUID
    server_id: UUID
    channel_id: UUID
    channel_key: str
    channel_name: str


@dataclass(slots=True)
class ResolvedDm:
    conversation_id: UUID
    dm_key: str


def make_dm_key(user_a: UUID, user_b: UUID) -> str:
    return DM_KEY_SEPARATOR.join(sorted([str(user_a), str(user_b)]))


def compute_unread(last_message_at: datetime | None, last_read_at: datetime | None) -> bool:
    if last_message_at is None:
        return False
    if last_read_at is None:
        return True
    return as_utc(last_message_at) > as_utc(last_read_at)


async def upsert_conversation_member(
    db: AsyncSession, conversation_id: UUID, user_id: UUID, **values: Any
) -> None:
    """Create the member row if missing, then apply ``values``.

    With no values this is a pure idempotent "ensure exists".
    """
    stmt = select(ConversationMember).where(
        ConversationMember.conversation_id == conversation_id, ConversationMember.user_id == user_id
    )
    member = (await db.execute(stmt)).scalar_one_or_none()
    if member is None:
        db.add(ConversationMember(conversation_id=conversation_id, user_id=user_id, **values))
        try:
            await db.commit()
            return
        except IntegrityError:
            # A concurrent first touch created the row.
            await db.rollback()
        if not values:
            return
        member = (await db.execute(stmt)).scalar_one()
    elif not values:
        return

    for field, value in values.items():
        setattr(member, field, value)
    member.updated_at = utc_now()
    await db.commit()


async def _find_channel_conversation(db: AsyncSession, channel_id: UUID) -> ChannelConversation | None:
    stmt = select(ChannelConversation).where(ChannelConversation.channel_id == channel_id)
    return (await db.execute(stmt)).scalar_one_or_none()


async def _adopt_orphan(db: AsyncSession, server_id: UUID, channel_id: UUID) -> ChannelConversation | None:
    orphan_stmt = (
        select(ChannelConversation.id)
        .where(ChannelConversation.server_id == server_id, ChannelConversation.channel_id.is_(None))
        .order_by(ChannelConversation.created_at.asc())
        .limit(5)
    )
    orphan_ids = (await db.execute(orphan_stmt)).scalars().all()

    for orphan_id in orphan_ids:
        claim = (
            update(ChannelConversation)
            .where(ChannelConversation.id == orphan_id, ChannelConversation.channel_id.is_(None))
            .values(channel_id=channel_id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await db.execute(claim)
            await db.commit()
        except IntegrityError:
            # Another resolver already linked a conversation to this channel.
            await db.rollback()
            return await _find_channel_conversation(db, channel_id)

        if result.rowcount == 1:
            logger.info("Adopted legacy conversation %s for channel %s", orphan_id, channel_id)
            return await _find_channel_conversation(db, channel_id)

    return None


async def _create_channel_conversation(db: AsyncSession, server_id: UUID, channel_id: UUID) -> ChannelConversation:
    conversation = ChannelConversation(server_id=server_id, channel_id=channel_id)
    db.add(conversation)
    try:
        await db.commit()
        return conversation
    except IntegrityError:
        await db.rollback()
        logger.info("Channel %s conversation created concurrently, re-reading", channel_id)

    winner = await _find_channel_conversation(db, channel_id)
    if winner is None:
        raise ResolutionFailed()
    return winner


async def ensure_channel_key(db: AsyncSession, channel_id: UUID) -> Channel:
    """Backfill ``channel_key`` on channels created before keys existed."""
    channel = await db.get(Channel, channel_id, populate_existing=True)
    if channel is None:
        raise ResolutionFailed("Channel disappeared during resolution")
    if channel.channel_key:
        return channel

    stmt = (
        update(Channel)
        .where(Channel.id == channel_id, Channel.channel_key.is_(None))
        .values(channel_key=generate_token_key())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    await db.commit()
    if result.rowcount == 1:
        logger.info("Backfilled channel key for channel %s", channel_id)
    await db.refresh(channel)
    return channel


async def resolve_channel_conversation(db: AsyncSession, channel: Channel, user_id: UUID) -> ResolvedChannel:
    channel_id, server_id = channel.id, channel.server_id
    try:
        conversation = await _find_channel_conversation(db, channel_id)
        if conversation is None:
            conversation = await _adopt_orphan(db, server_id, channel_id)
        if conversation is None:
            conversation = await _create_channel_conversation(db, server_id, channel_id)
        conversation_id = conversation.id

        channel = await ensure_channel_key(db, channel_id)
        channel_key, channel_name = channel.channel_key, channel.name
        await upsert_conversation_member(db, conversation_id, user_id)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Resolving conversation for channel %s failed: %s", channel_id, exc)
        raise ResolutionFailed() from exc

    return ResolvedChannel(
        conversation_id=conversation_id,
        server_id=server_id,
        channel_id=channel_id,
        channel_key=channel_key,
        channel_name=channel_name,
    )


async def _find_dm(db: AsyncSession, dm_key: str) -> DirectConversation | None:
    stmt = select(DirectConversation).where(DirectConversation.dm_key == dm_key)
    return (await db.execute(stmt)).scalar_one_or_none()


async def resolve_or_create_dm(db: AsyncSession, user_a: UUID, user_b: UUID) -> ResolvedDm:
    if user_a == user_b:
        raise SelfConversationError()

    dm_key = make_dm_key(user_a, user_b)
    try:
        conversation = await _find_dm(db, dm_key)
        if conversation is not None:
            return ResolvedDm(conversation_id=conversation.id, dm_key=dm_key)

        conversation = DirectConversation(dm_key=dm_key)
        db.add(conversation)
        try:
            await db.flush()
            db.add_all(
                [
                    ConversationMember(conversation_id=conversation.id, user_id=user_a),
                    ConversationMember(conversation_id=conversation.id, user_id=user_b),
                ]
            )
            await db.commit()
            return ResolvedDm(conversation_id=conversation.id, dm_key=dm_key)
        except IntegrityError:
            await db.rollback()
            logger.info("DM %s created concurrently, re-reading", dm_key)

        winner = await _find_dm(db, dm_key)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Resolving DM %s failed: %s", dm_key, exc)
        raise ResolutionFailed() from exc

    if winner is None:
        raise ResolutionFailed()
    return ResolvedDm(conversation_id=winner.id, dm_key=dm_key)


async def mark_read(db: AsyncSession, conversation_id: UUID, user_id: UUID, last_read_message_id: UUID) -> None:
    await upsert_conversation_member(
        db,
        conversation_id,
        user_id,
        last_read_message_id=last_read_message_id,
        last_read_at=utc_now(),
    )


async def list_conversations(db: AsyncSession, user_id: UUID) -> list[dict[str, Any]]:
    memberships = (
        await db.execute(
            select(ConversationMember)
            .where(ConversationMember.user_id == user_id)
            .order_by(ConversationMember.updated_at.desc())
            .limit(CONVERSATION_LIST_LIMIT)
            .execution_options(populate_existing=True)
        )
    ).scalars().all()
    if not memberships:
        return []

    conversation_ids = [member.conversation_id for member in memberships]
    conversations = {
        conv.id: conv
        for conv in (
            await db.execute(
                select(Conversation)
                .where(Conversation.id.in_(conversation_ids))
                .execution_options(populate_existing=True)
            )
        ).scalars()
    }

    dm_ids = [conv.id for conv in conversations.values() if isinstance(conv, DirectConversation)]
    other_by_conversation: dict[UUID, UUID] = {}
    if dm_ids:
        rows = await db.execute(
            select(ConversationMember.conversation_id, ConversationMember.user_id).where(
                ConversationMember.conversation_id.in_(dm_ids), ConversationMember.user_id != user_id
            )
        )
        other_by_conversation = {conversation_id: other_id for conversation_id, other_id in rows.all()}
    users: dict[UUID, User] = {}
    if other_by_conversation:
        stmt = select(User).where(User.id.in_(set(other_by_conversation.values())))
        users = {user.id: user for user in (await db.execute(stmt)).scalars()}

    channel_convs = [conv for conv in conversations.values() if isinstance(conv, ChannelConversation)]
    channels: dict[UUID, Channel] = {}
    servers: dict[UUID, Server] = {}
    if channel_convs:
        channel_ids = [conv.channel_id for conv in channel_convs if conv.channel_id is not None]
        server_ids = {conv.server_id for conv in channel_convs}
        if channel_ids:
            channels = {c.id: c for c in (await db.execute(select(Channel).where(Channel.id.in_(channel_ids)))).scalars()}
        servers = {s.id: s for s in (await db.execute(select(Server).where(Server.id.in_(server_ids)))).scalars()}

    results: list[dict[str, Any]] = []
    for member in memberships:
        conv = conversations.get(member.conversation_id)
        if conv is None:
            continue

        title, avatar_url, other_user_id = "", None, None
        server_id = channel_id = None
        if isinstance(conv, DirectConversation):
            other = users.get(other_by_conversation.get(conv.id))
            if other is not None:
                title, avatar_url, other_user_id = other.display_name, other.avatar_url, other.id
        else:
            server_id, channel_id = conv.server_id, conv.channel_id
            channel, server = channels.get(channel_id), servers.get(server_id)
            if channel is not None and server is not None:
                title, avatar_url = f"#{channel.name}", server.icon_url

        results.append(
            {
                "conversation_id": conv.id,
                "type": conv.type,
                "title": title,
                "avatar_url": avatar_url,
                "other_user_id": other_user_id,
                "server_id": server_id,
                "channel_id": channel_id,
                "last_message_at": conv.last_message_at,
                "unread": compute_unread(conv.last_message_at, member.last_read_at),
            }
        )

    # Newest activity first, conversations without messages last.
    results.sort(key=lambda item: as_utc(item["last_message_at"]) or NEVER, reverse=True)
    return results
