from uuid import UUID

from pydantic import Field

from talenthub.schemas.common import CamelModel


class ListChannelsIn(CamelModel):
    server_id: UUID


class CreateChannelIn(CamelModel):
    server_id: UUID
    name: str = Field(min_length=1, max_length=80)


class ChannelByKeyIn(CamelModel):
    channel_key: str = Field(min_length=1)


class ChannelOut(CamelModel):
    id: UUID
    name: str
    channel_type: str
    channel_key: str | None = None


class ResolvedChannelOut(CamelModel):
    conversation_id: UUID
    server_id: UUID
    channel_id: UUID
    channel_key: str
    channel_name: str
