from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user
from talenthub.core.errors import NotFound
from talenthub.db.session import get_db
from talenthub.models import User
from talenthub.schemas.common import Envelope
from talenthub.schemas.conversation import DmOut, UpsertDmIn
from talenthub.services import conversation_service

router = APIRouter(prefix="/dms", tags=["dms"])


@router.post("/upsert", response_model=Envelope[DmOut])
async def upsert_dm(
    payload: UpsertDmIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[DmOut]:
    if payload.other_user_id != current_user.id and await db.get(User, payload.other_user_id) is None:
        raise NotFound("User not found")
    resolved = await conversation_service.resolve_or_create_dm(db, current_user.id, payload.other_user_id)
    return Envelope(data=DmOut(conversation_id=resolved.conversation_id, dm_key=resolved.dm_key))
