from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import AccessDenied, NotFound
from talenthub.models import ChannelConversation, Conversation, ConversationMember, ServerMember


async def get_conversation(db: AsyncSession, conversation_id: UUID) -> Conversation:
    conversation = await db.get(Conversation, conversation_id)
    if conversation is None:
        raise NotFound("Conversation not found")
    return conversation


async def can_access_conversation(db: AsyncSession, conversation: Conversation, user_id: UUID) -> bool:
    if isinstance(conversation, ChannelConversation):
        stmt = select(ServerMember.id).where(
            ServerMember.server_id == conversation.server_id, ServerMember.user_id == user_id
        )
    else:
        stmt = select(ConversationMember.id).where(
            ConversationMember.conversation_id == conversation.id, ConversationMember.user_id == user_id
        )
    return (await db.execute(stmt)).first() is not None


async def require_conversation_access(db: AsyncSession, conversation_id: UUID, user_id: UUID) -> Conversation:
    conversation = await get_conversation(db, conversation_id)
    if not await can_access_conversation(db, conversation, user_id):
        raise AccessDenied()
    return conversation
