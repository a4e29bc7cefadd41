from datetime import datetime
from uuid import UUID

from talenthub.schemas.common import CamelModel


class FromChannelIn(CamelModel):
    server_id: UUID
    channel_id: UUID


class UpsertDmIn(CamelModel):
    other_user_id: UUID


class DmOut(CamelModel):
    conversation_id: UUID
    dm_key: str


class MarkReadIn(CamelModel):
    conversation_id: UUID
    last_read_message_id: UUID


class ConversationSummaryOut(CamelModel):
    conversation_id: UUID
    type: str
    title: str
    avatar_url: str | None = None
    other_user_id: UUID | None = None
    server_id: UUID | None = None
    channel_id: UUID | None = None
    last_message_at: datetime | None = None
    unread: bool
