import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    Uuid,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from talenthub.db.base import Base
from talenthub.models.enums import ConversationType


class Conversation(Base):
    """A place messages are exchanged.

    Stored single-table. Loads through the base class always include the
    columns of both variants so no attribute is lazily fetched later.
    """

    __tablename__ = "conversations"
    __table_args__ = (
        CheckConstraint(
            "(type = 'channel' AND server_id IS NOT NULL AND dm_key IS NULL)"
            " OR (type = 'dm' AND dm_key IS NOT NULL AND server_id IS NULL AND channel_id IS NULL)",
            name="ck_conversation_variant",
        ),
    )
    __mapper_args__ = {"polymorphic_on": "type", "polymorphic_abstract": True, "with_polymorphic": "*"}

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    type: Mapped[str] = mapped_column(String(16))
    last_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_message_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ChannelConversation(Conversation):
    __mapper_args__ = {"polymorphic_identity": ConversationType.CHANNEL.value}

    server_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True, index=True)
    # Null only on legacy rows that predate the channel link; see resolver adoption.
    channel_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("channels.id", ondelete="CASCADE"), nullable=True
    )


class DirectConversation(Conversation):
    __mapper_args__ = {"polymorphic_identity": ConversationType.DM.value}

    dm_key: Mapped[str | None] = mapped_column(String(80), nullable=True)


Index(
    "uq_conversations_channel_id",
    Conversation.__table__.c.channel_id,
    unique=True,
    postgresql_where=text("channel_id IS NOT NULL"),
    sqlite_where=text("channel_id IS NOT NULL"),
)
Index(
    "uq_conversations_dm_key",
    Conversation.__table__.c.dm_key,
    unique=True,
    postgresql_where=text("dm_key IS NOT NULL"),
    sqlite_where=text("dm_key IS NOT NULL"),
)


class ConversationMember(Base):
    __tablename__ = "conversation_members"
    __table_args__ = (UniqueConstraint("conversation_id", "user_id", name="uq_conversation_user"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("conversations.id", ondelete="CASCADE"), index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    last_read_message_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, nullable=True)
    last_read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    muted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    pinned: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )
