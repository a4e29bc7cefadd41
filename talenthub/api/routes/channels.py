from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user, require_server_member
from talenthub.db.session import get_db
from talenthub.models import User
from talenthub.schemas.channel import ChannelByKeyIn, ChannelOut, CreateChannelIn, ListChannelsIn, ResolvedChannelOut
from talenthub.schemas.common import Envelope
from talenthub.services import channel_service, conversation_service

router = APIRouter(prefix="/channels", tags=["channels"])


@router.post("/list", response_model=Envelope[list[ChannelOut]])
async def list_channels(
    payload: ListChannelsIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[ChannelOut]]:
    await require_server_member(db, payload.server_id, current_user.id)
    channels = await channel_service.list_channels(db, payload.server_id)
    return Envelope(data=[ChannelOut.model_validate(channel, from_attributes=True) for channel in channels])


@router.post("/create", response_model=Envelope[ChannelOut])
async def create_channel(
    payload: CreateChannelIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ChannelOut]:
    await require_server_member(db, payload.server_id, current_user.id)
    channel = await channel_service.create_channel(db, payload.server_id, payload.name)
    return Envelope(data=ChannelOut.model_validate(channel, from_attributes=True))


@router.post("/by-key", response_model=Envelope[ResolvedChannelOut])
async def channel_by_key(
    payload: ChannelByKeyIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ResolvedChannelOut]:
    channel = await channel_service.get_channel_by_key(db, payload.channel_key)
    await require_server_member(db, channel.server_id, current_user.id)
    resolved = await conversation_service.resolve_channel_conversation(db, channel, current_user.id)
    return Envelope(data=ResolvedChannelOut.model_validate(resolved, from_attributes=True))
