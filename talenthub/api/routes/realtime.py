from typing import Any

from fastapi import APIRouter, Depends, Form, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user, get_realtime
from talenthub.db.session import get_db
from talenthub.integrations.realtime import PusherRealtime, conversation_id_from_channel
from talenthub.models import Conversation, User
from talenthub.services import access

router = APIRouter(prefix="/pusher", tags=["realtime"])


@router.post("/auth")
async def authorize_channel(
    socket_id: str = Form(...),
    channel_name: str = Form(...),
    db: AsyncSession = Depends(get_db),
    realtime: PusherRealtime = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
) -> dict[str, Any]:
    conversation_id = conversation_id_from_channel(channel_name)
    conversation = await db.get(Conversation, conversation_id) if conversation_id else None
    if conversation is None or not await access.can_access_conversation(db, conversation, current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return realtime.authorize(channel_name, socket_id)
