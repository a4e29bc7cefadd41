import logging
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.core.errors import Conflict, Forbidden, InvalidInput, NotFound
from talenthub.models import FriendRequest, User
from talenthub.models.enums import FriendRequestStatus
from talenthub.models.friend import make_pair_key

logger = logging.getLogger(__name__)


async def find_user_by_query(db: AsyncSession, query: str) -> User | None:
    query = query.strip()
    if "@" in query:
        stmt = select(User).where(User.email == query.lower())
    else:
        stmt = select(User).where(func.lower(User.username) == query.lower())
    return (await db.execute(stmt)).scalar_one_or_none()


async def _find_pair_request(db: AsyncSession, user_a: UUID, user_b: UUID) -> FriendRequest | None:
    stmt = select(FriendRequest).where(FriendRequest.pair_key == make_pair_key(user_a, user_b))
    return (await db.execute(stmt)).scalar_one_or_none()


async def send_request(db: AsyncSession, sender_id: UUID, query: str) -> FriendRequest:
    target = await find_user_by_query(db, query)
    if target is None:
        raise NotFound("User not found")
    receiver_id = target.id
    if receiver_id == sender_id:
        raise InvalidInput("You cannot send a friend request to yourself")

    existing = await _find_pair_request(db, sender_id, receiver_id)
    if existing is not None:
        if existing.status == FriendRequestStatus.ACCEPTED.value:
            raise Conflict("You are already friends")
        if existing.status == FriendRequestStatus.PENDING.value:
            raise Conflict("A friend request is already pending")
        # A denied request may be retried by either side.
        await db.delete(existing)
        await db.flush()

    request = FriendRequest(
        sender_id=sender_id,
        receiver_id=receiver_id,
        pair_key=make_pair_key(sender_id, receiver_id),
        status=FriendRequestStatus.PENDING.value,
    )
    db.add(request)
    try:
        await db.commit()
    except IntegrityError as exc:
        await db.rollback()
        raise Conflict("A friend request is already pending") from exc
    await db.refresh(request)
    logger.info("Friend request %s sent from %s to %s", request.id, sender_id, receiver_id)
    return request


async def respond_request(db: AsyncSession, request_id: UUID, user_id: UUID, accept: bool) -> FriendRequest:
    request = await db.get(FriendRequest, request_id)
    if request is None:
        raise NotFound("Friend request not found")
    if request.receiver_id != user_id:
        raise Forbidden("Only the receiver can respond to this request")
    if request.status != FriendRequestStatus.PENDING.value:
        raise InvalidInput("This request has already been handled")

    request.status = (FriendRequestStatus.ACCEPTED if accept else FriendRequestStatus.DENIED).value
    await db.commit()
    await db.refresh(request)
    return request


async def list_requests(db: AsyncSession, user_id: UUID, direction: str) -> list[tuple[FriendRequest, User, User]]:
    column = FriendRequest.receiver_id if direction == "received" else FriendRequest.sender_id
    stmt = (
        select(FriendRequest)
        .where(column == user_id, FriendRequest.status == FriendRequestStatus.PENDING.value)
        .order_by(FriendRequest.created_at.desc())
    )
    requests = list((await db.execute(stmt)).scalars().all())
    users = await _load_users(db, {r.sender_id for r in requests} | {r.receiver_id for r in requests})
    return [
        (r, users[r.sender_id], users[r.receiver_id])
        for r in requests
        if r.sender_id in users and r.receiver_id in users
    ]


async def list_friends(db: AsyncSession, user_id: UUID) -> list[tuple[FriendRequest, User]]:
    stmt = (
        select(FriendRequest)
        .where(
            FriendRequest.status == FriendRequestStatus.ACCEPTED.value,
            or_(FriendRequest.sender_id == user_id, FriendRequest.receiver_id == user_id),
        )
        .order_by(FriendRequest.created_at.desc())
    )
    requests = list((await db.execute(stmt)).scalars().all())
    other_ids = {r.receiver_id if r.sender_id == user_id else r.sender_id for r in requests}
    users = await _load_users(db, other_ids)

    friends = []
    for r in requests:
        other = users.get(r.receiver_id if r.sender_id == user_id else r.sender_id)
        if other is not None:
            friends.append((r, other))
    return friends


async def remove_friend(db: AsyncSession, user_id: UUID, friend_id: UUID) -> None:
    request = await _find_pair_request(db, user_id, friend_id)
    if request is None or request.status != FriendRequestStatus.ACCEPTED.value:
        raise NotFound("Friendship not found")
    await db.delete(request)
    await db.commit()


async def friend_status(db: AsyncSession, user_id: UUID, other_user_id: UUID) -> tuple[str, UUID | None]:
    request = await _find_pair_request(db, user_id, other_user_id)
    if request is None or request.status == FriendRequestStatus.DENIED.value:
        return "none", None
    if request.status == FriendRequestStatus.ACCEPTED.value:
        return "friends", request.id
    if request.sender_id == user_id:
        return "pending_sent", request.id
    return "pending_received", request.id


async def _load_users(db: AsyncSession, user_ids: set[UUID]) -> dict[UUID, User]:
    if not user_ids:
        return {}
    users = (await db.execute(select(User).where(User.id.in_(user_ids)))).scalars().all()
    return {user.id: user for user in users}
