import time

from fastapi import APIRouter, BackgroundTasks, Depends, File, Header, HTTPException, Request, Response, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import (
    get_current_user,
    get_mailer,
    get_optional_user,
    get_settings_dep,
    get_storage,
    read_session_token,
)
from talenthub.api.uploads import file_extension, read_upload
from talenthub.core.config import Settings
from talenthub.core.errors import AppError, InvalidInput
from talenthub.core.security import create_session_token
from talenthub.db.session import get_db
from talenthub.integrations.mailer import ResendEmail, otp_email_html, send_best_effort
from talenthub.integrations.storage import SupabaseStorage, delete_best_effort
from talenthub.models import User
from talenthub.schemas.auth import (
    ChangeDisplayNameIn,
    ChangePasswordIn,
    ChangeUsernameIn,
    CheckUsernameIn,
    DeleteAccountIn,
    SessionOut,
    SigninIn,
    SignupIn,
    UsernameAvailabilityOut,
    VerifyOtpIn,
)
from talenthub.schemas.common import Ack, Envelope, UserOut
from talenthub.services import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


def _issue_session(response: Response, settings: Settings, user: User) -> SessionOut:
    token = create_session_token(settings, user.id, user.session_epoch)
    response.set_cookie(
        settings.cookie_name,
        token,
        max_age=settings.session_max_age_seconds,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="lax",
        path="/",
    )
    return SessionOut(
        id=user.id,
        email=user.email,
        username=user.username,
        display_name=user.display_name,
        avatar_url=user.avatar_url,
        token=token,
    )


def _clear_session(response: Response, settings: Settings) -> None:
    response.delete_cookie(settings.cookie_name, path="/")


@router.post("/check-username", response_model=Envelope[UsernameAvailabilityOut])
async def check_username(payload: CheckUsernameIn, db: AsyncSession = Depends(get_db)) -> Envelope[UsernameAvailabilityOut]:
    available, reason = await auth_service.check_username(db, payload.username)
    return Envelope(data=UsernameAvailabilityOut(available=available, reason=reason))


@router.post("/signup", response_model=Ack)
async def signup(
    payload: SignupIn,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    mailer: ResendEmail = Depends(get_mailer),
) -> Ack:
    email, otp = await auth_service.start_signup(
        db, settings, payload.email, payload.username, payload.display_name, payload.password
    )
    background_tasks.add_task(
        send_best_effort,
        mailer,
        email,
        "Your Talent Code Hub verification code",
        otp_email_html(otp, settings.otp_ttl_seconds // 60),
    )
    return Ack(message="Verification code sent to your email")


@router.post("/verify-otp", response_model=Envelope[SessionOut])
async def verify_otp(
    payload: VerifyOtpIn,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[SessionOut]:
    user = await auth_service.verify_signup(db, payload.email, payload.otp)
    return Envelope(data=_issue_session(response, settings, user), message="Account created")


@router.post("/signin", response_model=Envelope[SessionOut])
async def signin(
    payload: SigninIn,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
) -> Envelope[SessionOut]:
    user = await auth_service.signin(db, payload.email, payload.password)
    return Envelope(data=_issue_session(response, settings, user))


@router.post("/signout", response_model=Ack)
async def signout(
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    authorization: str | None = Header(default=None),
) -> Ack:
    token = read_session_token(request, authorization, settings)
    if token:
        try:
            user = await auth_service.authenticate(db, settings, token)
        except (AppError, HTTPException):
            user = None
        if user is not None:
            await auth_service.invalidate_all_sessions(db, user.id)
    _clear_session(response, settings)
    return Ack(message="Signed out")


@router.post("/me", response_model=Envelope[UserOut])
async def me(current_user: User | None = Depends(get_optional_user)) -> Envelope[UserOut]:
    if current_user is None:
        return Envelope(data=None)
    return Envelope(data=UserOut.model_validate(current_user, from_attributes=True))


@router.post("/change-password", response_model=Envelope[SessionOut])
async def change_password(
    payload: ChangePasswordIn,
    response: Response,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    current_user: User = Depends(get_current_user),
) -> Envelope[SessionOut]:
    user = await auth_service.change_password(
        db, settings, current_user.id, payload.current_password, payload.new_password
    )
    return Envelope(data=_issue_session(response, settings, user), message="Password updated")


@router.post("/change-display-name", response_model=Envelope[UserOut])
async def change_display_name(
    payload: ChangeDisplayNameIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[UserOut]:
    user = await auth_service.change_display_name(db, current_user.id, payload.display_name)
    return Envelope(data=UserOut.model_validate(user, from_attributes=True))


@router.post("/change-username", response_model=Envelope[UserOut])
async def change_username(
    payload: ChangeUsernameIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[UserOut]:
    user = await auth_service.change_username(db, current_user.id, payload.username)
    return Envelope(data=UserOut.model_validate(user, from_attributes=True))


@router.post("/delete-account", response_model=Ack)
async def delete_account(
    payload: DeleteAccountIn,
    response: Response,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Ack:
    avatar_url = await auth_service.delete_account(db, current_user.id, payload.password)
    avatar_path = storage.path_from_public_url(settings.avatars_bucket, avatar_url) if avatar_url else None
    if avatar_path:
        background_tasks.add_task(delete_best_effort, storage, settings.avatars_bucket, [avatar_path])
    _clear_session(response, settings)
    return Ack(message="Account deleted successfully")


@router.post("/upload-avatar", response_model=Envelope[UserOut])
async def upload_avatar(
    avatar: UploadFile = File(...),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Envelope[UserOut]:
    data = await read_upload(avatar, settings.max_upload_bytes, images_only=True)
    path = f"avatars/{current_user.id}.{file_extension(avatar.filename)}"
    await storage.upload(settings.avatars_bucket, path, data, avatar.content_type or "image/png", upsert=True)

    # Cache-bust so clients reload an avatar replaced at the same path.
    avatar_url = f"{storage.public_url(settings.avatars_bucket, path)}?t={int(time.time() * 1000)}"
    user, _ = await auth_service.set_avatar(db, current_user.id, avatar_url)
    return Envelope(data=UserOut.model_validate(user, from_attributes=True))


@router.post("/delete-avatar", response_model=Envelope[UserOut])
async def delete_avatar(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Envelope[UserOut]:
    if not current_user.avatar_url:
        raise InvalidInput("No avatar to delete")

    user, previous = await auth_service.set_avatar(db, current_user.id, None)
    path = storage.path_from_public_url(settings.avatars_bucket, previous) if previous else None
    if path:
        background_tasks.add_task(delete_best_effort, storage, settings.avatars_bucket, [path])
    return Envelope(data=UserOut.model_validate(user, from_attributes=True))
