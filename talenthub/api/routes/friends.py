from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user
from talenthub.db.session import get_db
from talenthub.models import User
from talenthub.schemas.common import Ack, Envelope, PublicUserOut
from talenthub.schemas.friend import (
    FriendOut,
    FriendRequestOut,
    FriendStatusIn,
    FriendStatusOut,
    ListFriendRequestsIn,
    RemoveFriendIn,
    RespondFriendRequestIn,
    SendFriendRequestIn,
)
from talenthub.services import friend_service

router = APIRouter(prefix="/friends", tags=["friends"])


@router.post("/send", response_model=Ack)
async def send_request(
    payload: SendFriendRequestIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    await friend_service.send_request(db, current_user.id, payload.query)
    return Ack(message="Friend request sent")


@router.post("/respond", response_model=Ack)
async def respond_request(
    payload: RespondFriendRequestIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    accept = payload.action == "accept"
    await friend_service.respond_request(db, payload.request_id, current_user.id, accept)
    return Ack(message="Friend request accepted" if accept else "Friend request denied")


@router.post("/requests", response_model=Envelope[list[FriendRequestOut]])
async def list_requests(
    payload: ListFriendRequestsIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[FriendRequestOut]]:
    rows = await friend_service.list_requests(db, current_user.id, payload.type)
    return Envelope(
        data=[
            FriendRequestOut(
                id=request.id,
                status=request.status,
                created_at=request.created_at,
                sender=PublicUserOut.model_validate(sender, from_attributes=True),
                receiver=PublicUserOut.model_validate(receiver, from_attributes=True),
            )
            for request, sender, receiver in rows
        ]
    )


@router.post("/list", response_model=Envelope[list[FriendOut]])
async def list_friends(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[FriendOut]]:
    rows = await friend_service.list_friends(db, current_user.id)
    return Envelope(
        data=[
            FriendOut(
                id=friend.id,
                username=friend.username,
                display_name=friend.display_name,
                avatar_url=friend.avatar_url,
                request_id=request.id,
            )
            for request, friend in rows
        ]
    )


@router.post("/remove", response_model=Ack)
async def remove_friend(
    payload: RemoveFriendIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    await friend_service.remove_friend(db, current_user.id, payload.friend_id)
    return Ack(message="Friend removed")


@router.post("/status", response_model=Envelope[FriendStatusOut])
async def friend_status(
    payload: FriendStatusIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[FriendStatusOut]:
    state, request_id = await friend_service.friend_status(db, current_user.id, payload.other_user_id)
    return Envelope(data=FriendStatusOut(status=state, request_id=request_id))
