from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user, get_realtime, get_settings_dep, get_storage
from talenthub.api.uploads import read_upload, unique_object_path
from talenthub.core.config import Settings
from talenthub.db.session import get_db
from talenthub.integrations.realtime import (
    EVENT_MESSAGE_DELETED,
    EVENT_MESSAGE_EDITED,
    EVENT_MESSAGE_NEW,
    PusherRealtime,
    conversation_channel,
    publish_best_effort,
)
from talenthub.integrations.storage import SupabaseStorage
from talenthub.models import Message, User
from talenthub.models.enums import MessageKind
from talenthub.schemas.common import Envelope
from talenthub.schemas.files import UploadedFileOut
from talenthub.schemas.message import (
    CreateMessageIn,
    ListMessagesIn,
    MessageCursor,
    MessageDeletedOut,
    MessageEditedOut,
    MessageOut,
    MessagePageOut,
    MessageRefIn,
    UpdateMessageIn,
)
from talenthub.services import access, message_service

router = APIRouter(prefix="/messages", tags=["messages"])


async def _own_message(db: AsyncSession, message_id: UUID, user_id: UUID, action: str) -> Message:
    message = await message_service.get_message(db, message_id)
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    if message.sender_user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Cannot {action} another user's message")
    await access.require_conversation_access(db, message.conversation_id, user_id)
    return message


@router.post("/list", response_model=MessagePageOut)
async def list_messages(
    payload: ListMessagesIn,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: User = Depends(get_current_user),
) -> MessagePageOut:
    await access.require_conversation_access(db, payload.conversation_id, current_user.id)
    limit = min(payload.limit or settings.message_page_default, settings.message_page_max)
    before = payload.cursor.before_created_at if payload.cursor else None

    page, next_before = await message_service.list_messages(db, payload.conversation_id, limit, before)
    senders = await message_service.load_senders(db, page)
    return MessagePageOut(
        data=[message_service.to_message_out(message, senders.get(message.sender_user_id)) for message in page],
        next_cursor=MessageCursor(before_created_at=next_before) if next_before else None,
    )


@router.post("/send", response_model=Envelope[MessageOut])
async def send_message(
    payload: CreateMessageIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    realtime: PusherRealtime = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
) -> Envelope[MessageOut]:
    conversation = await access.require_conversation_access(db, payload.conversation_id, current_user.id)
    message = await message_service.create_message(
        db,
        conversation,
        current_user.id,
        payload.content,
        attachments=[item.model_dump(by_alias=True) for item in payload.attachments],
        reply_to_message_id=payload.reply_to_message_id,
    )
    out = message_service.to_message_out(message, current_user)
    background_tasks.add_task(
        publish_best_effort,
        realtime,
        conversation_channel(message.conversation_id),
        EVENT_MESSAGE_NEW,
        out.model_dump(mode="json", by_alias=True),
    )
    return Envelope(data=out)


@router.post("/edit", response_model=Envelope[MessageEditedOut])
async def edit_message(
    payload: UpdateMessageIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    realtime: PusherRealtime = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
) -> Envelope[MessageEditedOut]:
    message = await _own_message(db, payload.message_id, current_user.id, "edit")
    message = await message_service.edit_message(db, message, payload.content)

    out = MessageEditedOut(message_id=message.id, content=message.content, edited_at=message.edited_at)
    background_tasks.add_task(
        publish_best_effort,
        realtime,
        conversation_channel(message.conversation_id),
        EVENT_MESSAGE_EDITED,
        out.model_dump(mode="json", by_alias=True),
    )
    return Envelope(data=out)


@router.post("/delete", response_model=Envelope[MessageDeletedOut])
async def delete_message(
    payload: MessageRefIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    realtime: PusherRealtime = Depends(get_realtime),
    current_user: User = Depends(get_current_user),
) -> Envelope[MessageDeletedOut]:
    message = await _own_message(db, payload.message_id, current_user.id, "delete")
    already_deleted = message.kind == MessageKind.DELETED.value
    message = await message_service.soft_delete_message(db, message)

    out = MessageDeletedOut(message_id=message.id, deleted_at=message.deleted_at)
    if not already_deleted:
        background_tasks.add_task(
            publish_best_effort,
            realtime,
            conversation_channel(message.conversation_id),
            EVENT_MESSAGE_DELETED,
            out.model_dump(mode="json", by_alias=True),
        )
    return Envelope(data=out)


@router.post("/upload", response_model=Envelope[UploadedFileOut])
async def upload_attachment(
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Envelope[UploadedFileOut]:
    data = await read_upload(file, settings.max_upload_bytes)
    content_type = file.content_type or "application/octet-stream"
    path = unique_object_path("messenger", file.filename)
    await storage.upload(settings.attachments_bucket, path, data, content_type)
    return Envelope(
        data=UploadedFileOut(
            url=storage.public_url(settings.attachments_bucket, path),
            name=file.filename or path.rsplit("/", 1)[1],
            mime_type=content_type,
            size=len(data),
        )
    )
