import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import EmptyMessageError, Forbidden, InvalidInput, NotFound
from talenthub.db.base import utc_now
from talenthub.models import ChannelConversation, Conversation, Message, ServerMember, User
from talenthub.models.enums import MessageKind
from talenthub.schemas.common import PublicUserOut
from talenthub.schemas.message import AttachmentOut, MessageOut

logger = logging.getLogger(__name__)


def derive_kind(attachments: list[dict]) -> str:
    # Only the first attachment decides the kind of a multi-attachment message.
    if not attachments:
        return MessageKind.TEXT.value
    if str(attachments[0].get("mimeType", "")).startswith("image/"):
        return MessageKind.IMAGE.value
    return MessageKind.FILE.value


async def _ensure_can_post(db: AsyncSession, conversation: Conversation, sender_id: UUID) -> None:
    if not isinstance(conversation, ChannelConversation):
        return
    stmt = select(ServerMember.muted).where(
        ServerMember.server_id == conversation.server_id, ServerMember.user_id == sender_id
    )
    if (await db.execute(stmt)).scalar_one_or_none():
        raise Forbidden("You are muted in this server")


async def create_message(
    db: AsyncSession,
    conversation: Conversation,
    sender_id: UUID,
    content: str,
    attachments: list[dict] | None = None,
    reply_to_message_id: UUID | None = None,
) -> Message:
    attachments = attachments or []
    content = content.strip()
    if not content and not attachments:
        raise EmptyMessageError()

    conversation_id = conversation.id
    await _ensure_can_post(db, conversation, sender_id)

    if reply_to_message_id is not None:
        target = await db.get(Message, reply_to_message_id)
        if target is None or target.conversation_id != conversation_id:
            raise NotFound("Reply target not found")

    message = Message(
        conversation_id=conversation_id,
        sender_user_id=sender_id,
        content=content,
        kind=derive_kind(attachments),
        reply_to_message_id=reply_to_message_id,
        attachments=attachments,
    )
    db.add(message)
    await db.commit()

    # Separate write: a failure here leaves last_message_at stale, never the message unsaved.
    try:
        await db.execute(
            update(Conversation)
            .where(Conversation.id == conversation_id)
            .values(last_message_id=message.id, last_message_at=message.created_at)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("Could not update last message of conversation %s: %s", conversation_id, exc)
        await db.refresh(message)

    return message


async def get_message(db: AsyncSession, message_id: UUID) -> Message | None:
    return await db.get(Message, message_id)


async def edit_message(db: AsyncSession, message: Message, content: str) -> Message:
    if message.kind == MessageKind.DELETED.value:
        raise InvalidInput("Cannot edit a deleted message")
    content = content.strip()
    if not content:
        raise InvalidInput("messageId and content are required")

    message.content = content
    message.edited_at = utc_now()
    await db.commit()
    await db.refresh(message)
    return message


async def soft_delete_message(db: AsyncSession, message: Message) -> Message:
    """Tombstone a message; repeat calls keep the first ``deleted_at``."""
    if message.kind == MessageKind.DELETED.value and message.deleted_at is not None:
        return message

    message.kind = MessageKind.DELETED.value
    message.content = ""
    message.deleted_at = utc_now()
    await db.commit()
    await db.refresh(message)
    return message


async def list_messages(
    db: AsyncSession,
    conversation_id: UUID,
    limit: int,
    before: datetime | None,
) -> tuple[list[Message], datetime | None]:
    """Newest-first page of a conversation plus the cursor for the next one.

    Fetches one extra row to learn whether an older page exists.
    """
    stmt = (
        select(Message)
        .where(Message.conversation_id == conversation_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit + 1)
    )
    if before:
        if before.tzinfo is not None:
            before = before.astimezone(UTC)
        stmt = stmt.where(Message.created_at < before)

    rows = list((await db.execute(stmt)).scalars().all())
    page = rows[:limit]
    next_before = page[-1].created_at if len(rows) > limit else None
    return page, next_before


async def load_senders(db: AsyncSession, messages: list[Message]) -> dict[UUID, User]:
    sender_ids = {message.sender_user_id for message in messages}
    if not sender_ids:
        return {}
    users = (await db.execute(select(User).where(User.id.in_(sender_ids)))).scalars().all()
    return {user.id: user for user in users}


def to_message_out(message: Message, sender: User | None) -> MessageOut:
    return MessageOut(
        id=message.id,
        conversation_id=message.conversation_id,
        content="" if message.kind == MessageKind.DELETED.value else message.content,
        kind=message.kind,
        reply_to_message_id=message.reply_to_message_id,
        attachments=[AttachmentOut.model_validate(item) for item in message.attachments or []],
        edited_at=message.edited_at,
        deleted_at=message.deleted_at,
        created_at=message.created_at,
        sender=PublicUserOut.model_validate(sender) if sender is not None else None,
    )
