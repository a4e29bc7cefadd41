from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user, require_server_member
from talenthub.core.errors import NotFound
from talenthub.db.session import get_db
from talenthub.models import User
from talenthub.schemas.channel import ResolvedChannelOut
from talenthub.schemas.common import Ack, Envelope
from talenthub.schemas.conversation import ConversationSummaryOut, FromChannelIn, MarkReadIn
from talenthub.services import access, channel_service, conversation_service

router = APIRouter(prefix="/conversations", tags=["conversations"])


@router.post("/list", response_model=Envelope[list[ConversationSummaryOut]])
async def list_conversations(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[ConversationSummaryOut]]:
    rows = await conversation_service.list_conversations(db, current_user.id)
    return Envelope(data=[ConversationSummaryOut(**row) for row in rows])


@router.post("/from-channel", response_model=Envelope[ResolvedChannelOut])
async def from_channel(
    payload: FromChannelIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ResolvedChannelOut]:
    await require_server_member(db, payload.server_id, current_user.id)
    channel = await channel_service.get_channel(db, payload.channel_id)
    if channel.server_id != payload.server_id:
        raise NotFound("Channel not found")
    resolved = await conversation_service.resolve_channel_conversation(db, channel, current_user.id)
    return Envelope(data=ResolvedChannelOut.model_validate(resolved, from_attributes=True))


@router.post("/read", response_model=Ack)
async def mark_read(
    payload: MarkReadIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    await access.require_conversation_access(db, payload.conversation_id, current_user.id)
    await conversation_service.mark_read(db, payload.conversation_id, current_user.id, payload.last_read_message_id)
    return Ack()
