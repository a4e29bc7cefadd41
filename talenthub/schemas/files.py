from pydantic import Field

from talenthub.schemas.common import CamelModel


class SignedUrlIn(CamelModel):
    path: str = Field(min_length=1)


class SignedUrlOut(CamelModel):
    signed_url: str


class UploadedFileOut(CamelModel):
    url: str
    name: str
    mime_type: str
    size: int
