from pydantic import Field

from talenthub.schemas.common import CamelModel, UserOut

USERNAME_PATTERN = r"^[a-zA-Z0-9_]{3,20}$"


class CheckUsernameIn(CamelModel):
    username: str = Field(min_length=1)


class UsernameAvailabilityOut(CamelModel):
    available: bool
    reason: str | None = None


class SignupIn(CamelModel):
    email: str = Field(min_length=3, max_length=320)
    username: str
    display_name: str = Field(min_length=1, max_length=50)
    password: str


class VerifyOtpIn(CamelModel):
    email: str = Field(min_length=3)
    otp: str = Field(min_length=1)


class SigninIn(CamelModel):
    email: str = Field(min_length=1)
    password: str = Field(min_length=1)


class SessionOut(UserOut):
    token: str


class ChangePasswordIn(CamelModel):
    current_password: str = Field(min_length=1)
    new_password: str


class ChangeDisplayNameIn(CamelModel):
    display_name: str


class ChangeUsernameIn(CamelModel):
    username: str


class DeleteAccountIn(CamelModel):
    password: str = Field(min_length=1)


class ProfileLookupIn(CamelModel):
    username: str = Field(min_length=1)
