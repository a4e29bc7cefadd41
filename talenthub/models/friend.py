import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from talenthub.db.base import Base
from talenthub.models.enums import FriendRequestStatus


def make_pair_key(user_a: uuid.UUID, user_b: uuid.UUID) -> str:
    return "_".join(sorted([str(user_a), str(user_b)]))


class FriendRequest(Base):
    __tablename__ = "friend_requests"
    __table_args__ = (
        UniqueConstraint("sender_id", "receiver_id", name="uq_friend_request_direction"),
        UniqueConstraint("pair_key", name="uq_friend_request_pair"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    receiver_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)
    pair_key: Mapped[str] = mapped_column(String(80))
    status: Mapped[str] = mapped_column(String(16), default=FriendRequestStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
