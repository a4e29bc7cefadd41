from datetime import datetime
from uuid import UUID

from pydantic import Field

from talenthub.schemas.common import CamelModel, PublicUserOut


class AttachmentIn(CamelModel):
    url: str = Field(min_length=1)
    name: str = Field(min_length=1)
    mime_type: str = Field(min_length=1)
    size: int = Field(ge=0)


class AttachmentOut(AttachmentIn):
    pass


class MessageCursor(CamelModel):
    before_created_at: datetime


class ListMessagesIn(CamelModel):
    conversation_id: UUID
    limit: int | None = Field(default=None, ge=1)
    cursor: MessageCursor | None = None


class CreateMessageIn(CamelModel):
    conversation_id: UUID
    content: str = Field(default="", max_length=4000)
    reply_to_message_id: UUID | None = None
    attachments: list[AttachmentIn] = Field(default_factory=list)


class UpdateMessageIn(CamelModel):
    message_id: UUID
    content: str = Field(min_length=1, max_length=4000)


class MessageRefIn(CamelModel):
    message_id: UUID


class MessageOut(CamelModel):
    id: UUID
    conversation_id: UUID
    content: str
    kind: str
    reply_to_message_id: UUID | None = None
    attachments: list[AttachmentOut]
    edited_at: datetime | None = None
    deleted_at: datetime | None = None
    created_at: datetime
    sender: PublicUserOut | None = None


class MessagePageOut(CamelModel):
    success: bool = True
    data: list[MessageOut]
    next_cursor: MessageCursor | None = None


class MessageEditedOut(CamelModel):
    message_id: UUID
    content: str
    edited_at: datetime


class MessageDeletedOut(CamelModel):
    message_id: UUID
    deleted_at: datetime
