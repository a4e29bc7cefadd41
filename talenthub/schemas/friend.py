from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from talenthub.schemas.common import CamelModel, PublicUserOut


class SendFriendRequestIn(CamelModel):
    query: str = Field(min_length=1)


class RespondFriendRequestIn(CamelModel):
    request_id: UUID
    action: Literal["accept", "deny"]


class ListFriendRequestsIn(CamelModel):
    type: Literal["received", "sent"]


class RemoveFriendIn(CamelModel):
    friend_id: UUID


class FriendStatusIn(CamelModel):
    other_user_id: UUID


class FriendRequestOut(CamelModel):
    id: UUID
    status: str
    created_at: datetime
    sender: PublicUserOut
    receiver: PublicUserOut


class FriendOut(PublicUserOut):
    request_id: UUID


class FriendStatusOut(CamelModel):
    status: Literal["none", "friends", "pending_sent", "pending_received"]
    request_id: UUID | None = None
