from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import Field

from talenthub.schemas.channel import ChannelOut
from talenthub.schemas.common import CamelModel


class CreateServerIn(CamelModel):
    name: str = Field(min_length=1, max_length=100)
    is_public: bool = False


class ServerRefIn(CamelModel):
    server_id: UUID


class InviteKeyIn(CamelModel):
    invite_key: str = Field(min_length=1)


class DiscoverServersIn(CamelModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=12, ge=1, le=50)
    search: str = ""
    sort: Literal["newest", "oldest", "members", "name"] = "members"


class MemberActionIn(ServerRefIn):
    user_id: UUID


class BanMemberIn(MemberActionIn):
    reason: str = Field(default="", max_length=500)


class MuteMemberIn(MemberActionIn):
    muted: bool


class ServerOut(CamelModel):
    id: UUID
    name: str
    icon_url: str | None = None
    owner_user_id: UUID
    is_public: bool
    invite_key: str | None = None
    is_owner: bool = False
    created_at: datetime | None = None


class CreatedServerOut(ServerOut):
    channels: list[ChannelOut]


class ServerPreviewOut(CamelModel):
    id: UUID
    name: str
    icon_url: str | None = None
    invite_key: str | None = None
    member_count: int


class DiscoverPageOut(CamelModel):
    success: bool = True
    data: list[ServerPreviewOut]
    page: int
    pages: int
    total: int


class JoinedServerOut(CamelModel):
    server_id: UUID
    name: str
    first_channel_key: str | None = None


class ServerMemberOut(CamelModel):
    user_id: UUID
    username: str
    display_name: str
    avatar_url: str | None = None
    roles: list[str]
    muted: bool
    joined_at: datetime
