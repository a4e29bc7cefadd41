from datetime import datetime
from typing import Generic, TypeVar
from uuid import UUID

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class Envelope(CamelModel, Generic[T]):
    success: bool = True
    data: T | None = None
    message: str | None = None


class Ack(CamelModel):
    success: bool = True
    message: str | None = None


class PublicUserOut(CamelModel):
    id: UUID
    username: str
    display_name: str
    avatar_url: str | None = None


class UserOut(PublicUserOut):
    email: str


class ProfileOut(PublicUserOut):
    created_at: datetime
