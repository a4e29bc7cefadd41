from datetime import datetime
from uuid import UUID

from pydantic import Field

from talenthub.schemas.common import CamelModel


class CreatePortfolioIn(CamelModel):
    name: str = Field(min_length=1, max_length=120)
    title: str = Field(min_length=1, max_length=200)
    summary: str = Field(min_length=1)


class UpdatePortfolioIn(CamelModel):
    id: UUID
    name: str | None = Field(default=None, min_length=1, max_length=120)
    title: str | None = Field(default=None, min_length=1, max_length=200)
    summary: str | None = Field(default=None, min_length=1)


class PortfolioRefIn(CamelModel):
    id: UUID


class SlugIn(CamelModel):
    slug: str = Field(min_length=1)


class PortfolioOut(CamelModel):
    id: UUID
    user_id: UUID
    slug: str
    name: str
    title: str
    summary: str
    created_at: datetime


class PublicPortfolioOut(PortfolioOut):
    owner_display_name: str | None = None
