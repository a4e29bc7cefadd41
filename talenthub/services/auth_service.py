"""Accounts, email verification and session epochs.

A session token embeds the user's ``session_epoch``; bumping the epoch
signs the user out everywhere.
"""

import logging
import re
from datetime import timedelta
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.config import Settings
from talenthub.core.errors import Conflict, InvalidInput, NotFound, Unauthenticated
from talenthub.core.security import decode_session_token, generate_otp, hash_password, verify_password
from talenthub.db.base import as_utc, utc_now
from talenthub.models import PendingVerification, User
from talenthub.schemas.auth import USERNAME_PATTERN

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8
MAX_DISPLAY_NAME_LENGTH = 50
INVALID_CREDENTIALS = "Invalid email or password"

_username_re = re.compile(USERNAME_PATTERN)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def normalize_username(username: str) -> str:
    return username.strip().lower()


def validate_username(username: str) -> str:
    username = username.strip()
    if not _username_re.match(username):
        raise InvalidInput("Username must be 3-20 characters: letters, numbers and underscores")
    return username.lower()


def validate_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise InvalidInput(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def validate_display_name(display_name: str) -> str:
    display_name = display_name.strip()
    if not display_name or len(display_name) > MAX_DISPLAY_NAME_LENGTH:
        raise InvalidInput(f"Display name must be 1-{MAX_DISPLAY_NAME_LENGTH} characters")
    return display_name


async def authenticate(db: AsyncSession, settings: Settings, token: str) -> User:
    payload = decode_session_token(settings, token)
    try:
        user_id = UUID(payload["sub"])
    except ValueError as exc:
        raise Unauthenticated("Invalid user id in token") from exc

    user = await db.get(User, user_id)
    if user is None or user.session_epoch != payload["ver"]:
        raise Unauthenticated("Session expired")
    # Detached so later rollbacks in the request never expire the caller's identity.
    db.expunge(user)
    return user


async def invalidate_all_sessions(db: AsyncSession, user_id: UUID) -> int:
    await db.execute(update(User).where(User.id == user_id).values(session_epoch=User.session_epoch + 1))
    await db.commit()
    epoch = (await db.execute(select(User.session_epoch).where(User.id == user_id))).scalar_one()
    logger.info("Sessions invalidated for user %s", user_id)
    return epoch


async def _username_taken(db: AsyncSession, username: str) -> bool:
    stmt = select(User.id).where(func.lower(User.username) == normalize_username(username))
    return (await db.execute(stmt)).first() is not None


async def _email_taken(db: AsyncSession, email: str) -> bool:
    return (await db.execute(select(User.id).where(User.email == email))).first() is not None


async def check_username(db: AsyncSession, username: str) -> tuple[bool, str | None]:
    try:
        username = validate_username(username)
    except InvalidInput as exc:
        return False, exc.message
    if await _username_taken(db, username):
        return False, "Username is already taken"
    return True, None


async def start_signup(
    db: AsyncSession, settings: Settings, email: str, username: str, display_name: str, password: str
) -> tuple[str, str]:
    """Stage a pending account and return ``(email, otp)`` for delivery."""
    email = normalize_email(email)
    if "@" not in email:
        raise InvalidInput("A valid email is required")
    username = validate_username(username)
    display_name = validate_display_name(display_name)
    validate_password(password)

    if await _email_taken(db, email):
        raise Conflict("Email is already registered")
    if await _username_taken(db, username):
        raise Conflict("Username is already taken")

    otp = generate_otp()
    values = {
        "username": username,
        "display_name": display_name,
        "password_hash": hash_password(password, settings.bcrypt_rounds),
        "otp": otp,
        "expires_at": utc_now() + timedelta(seconds=settings.otp_ttl_seconds),
    }
    pending = await db.get(PendingVerification, email)
    if pending is None:
        db.add(PendingVerification(email=email, **values))
    else:
        for field, value in values.items():
            setattr(pending, field, value)
    await db.commit()
    logger.info("Verification code issued for %s", email)
    return email, otp


async def verify_signup(db: AsyncSession, email: str, otp: str) -> User:
    email = normalize_email(email)
    pending = await db.get(PendingVerification, email)
    if pending is None:
        raise InvalidInput("No pending verification for this email")
    if as_utc(pending.expires_at) < utc_now():
        await db.delete(pending)
        await db.commit()
        raise InvalidInput("Verification code has expired")
    if pending.otp != otp.strip():
        raise InvalidInput("Invalid verification code")

    user = User(
        email=email,
        username=pending.username,
        display_name=pending.display_name,
        password_hash=pending.password_hash,
    )
    db.add(user)
    await db.delete(pending)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Email or username was taken in the meantime") from exc
    await db.refresh(user)
    logger.info("User %s registered", user.id)
    return user


async def signin(db: AsyncSession, email: str, password: str) -> User:
    user = (await db.execute(select(User).where(User.email == normalize_email(email)))).scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        raise Unauthenticated(INVALID_CREDENTIALS)
    return user


async def _load_user(db: AsyncSession, user_id: UUID) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise Unauthenticated("Session expired")
    return user


async def change_password(
    db: AsyncSession, settings: Settings, user_id: UUID, current_password: str, new_password: str
) -> User:
    user = await _load_user(db, user_id)
    if not verify_password(current_password, user.password_hash):
        raise InvalidInput("Current password is incorrect")
    validate_password(new_password)

    user.password_hash = hash_password(new_password, settings.bcrypt_rounds)
    user.session_epoch += 1
    await db.commit()
    await db.refresh(user)
    logger.info("Password changed for user %s", user_id)
    return user


async def change_display_name(db: AsyncSession, user_id: UUID, display_name: str) -> User:
    user = await _load_user(db, user_id)
    user.display_name = validate_display_name(display_name)
    await db.commit()
    await db.refresh(user)
    return user


async def change_username(db: AsyncSession, user_id: UUID, username: str) -> User:
    username = validate_username(username)
    user = await _load_user(db, user_id)
    if user.username.lower() == username:
        raise InvalidInput("That is already your username")
    if await _username_taken(db, username):
        raise Conflict("Username is already taken")

    user.username = username
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("Username is already taken") from exc
    await db.refresh(user)
    return user


async def delete_account(db: AsyncSession, user_id: UUID, password: str) -> str | None:
    """Hard-delete the user; returns the avatar URL so the caller can clean it up."""
    user = await _load_user(db, user_id)
    if not verify_password(password, user.password_hash):
        raise InvalidInput("Password is incorrect")
    avatar_url = user.avatar_url
    await db.execute(delete(User).where(User.id == user_id))
    await db.commit()
    logger.info("User %s deleted their account", user_id)
    return avatar_url


async def set_avatar(db: AsyncSession, user_id: UUID, avatar_url: str | None) -> tuple[User, str | None]:
    """Store the new avatar URL and return the user with the replaced one."""
    user = await _load_user(db, user_id)
    previous = user.avatar_url
    user.avatar_url = avatar_url
    await db.commit()
    await db.refresh(user)
    return user, previous


async def public_profile(db: AsyncSession, username: str) -> User:
    stmt = select(User).where(func.lower(User.username) == normalize_username(username))
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise NotFound("User not found")
    return user
