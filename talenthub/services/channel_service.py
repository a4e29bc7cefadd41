from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import InvalidInput, NotFound
from talenthub.core.security import generate_token_key
from talenthub.models import Channel, ChannelConversation


def normalize_channel_name(name: str) -> str:
    normalized = "-".join(name.strip().lower().split())
    if not normalized:
        raise InvalidInput("serverId and name are required")
    return normalized


async def add_channel(db: AsyncSession, server_id: UUID, name: str, position: int) -> Channel:
    """Stage a channel and its conversation; the caller commits."""
    channel = Channel(
        server_id=server_id,
        name=normalize_channel_name(name),
        channel_key=generate_token_key(),
        position=position,
    )
    db.add(channel)
    await db.flush()
    db.add(ChannelConversation(server_id=server_id, channel_id=channel.id))
    return channel


async def create_channel(db: AsyncSession, server_id: UUID, name: str) -> Channel:
    count_stmt = select(func.count()).select_from(Channel).where(Channel.server_id == server_id)
    position = (await db.execute(count_stmt)).scalar_one()
    channel = await add_channel(db, server_id, name, position)
    await db.commit()
    return channel


async def list_channels(db: AsyncSession, server_id: UUID) -> list[Channel]:
    stmt = (
        select(Channel)
        .where(Channel.server_id == server_id)
        .order_by(Channel.position.asc(), Channel.created_at.asc())
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_channel(db: AsyncSession, channel_id: UUID) -> Channel:
    channel = await db.get(Channel, channel_id)
    if channel is None:
        raise NotFound("Channel not found")
    return channel


async def get_channel_by_key(db: AsyncSession, channel_key: str) -> Channel:
    channel = (await db.execute(select(Channel).where(Channel.channel_key == channel_key))).scalar_one_or_none()
    if channel is None:
        raise NotFound("Channel not found")
    return channel
