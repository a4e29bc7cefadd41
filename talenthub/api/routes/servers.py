import time
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from talenthub.api.deps import get_current_user, get_settings_dep, get_storage, require_server_member, require_server_owner
from talenthub.api.uploads import file_extension, read_upload
from talenthub.core.config import Settings
from talenthub.db.session import get_db
from talenthub.integrations.storage import SupabaseStorage
from talenthub.models import Server, User
from talenthub.schemas.channel import ChannelOut
from talenthub.schemas.common import Ack, Envelope
from talenthub.schemas.server import (
    BanMemberIn,
    CreatedServerOut,
    CreateServerIn,
    DiscoverPageOut,
    DiscoverServersIn,
    InviteKeyIn,
    JoinedServerOut,
    MemberActionIn,
    MuteMemberIn,
    ServerMemberOut,
    ServerOut,
    ServerPreviewOut,
    ServerRefIn,
)
from talenthub.services import server_service

router = APIRouter(prefix="/servers", tags=["servers"])


def _server_out(server: Server, user_id: UUID) -> ServerOut:
    out = ServerOut.model_validate(server, from_attributes=True)
    out.is_owner = server.owner_user_id == user_id
    return out


@router.post("/create", response_model=Envelope[CreatedServerOut])
async def create_server(
    payload: CreateServerIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[CreatedServerOut]:
    server, channels = await server_service.create_server(db, current_user.id, payload.name, payload.is_public)
    out = CreatedServerOut(
        **_server_out(server, current_user.id).model_dump(),
        channels=[ChannelOut.model_validate(channel, from_attributes=True) for channel in channels],
    )
    return Envelope(data=out)


@router.post("/list", response_model=Envelope[list[ServerOut]])
async def list_servers(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[ServerOut]]:
    servers = await server_service.list_servers_for_user(db, current_user.id)
    return Envelope(data=[_server_out(server, current_user.id) for server in servers])


@router.post("/update", response_model=Envelope[ServerOut])
async def update_server(
    server_id: UUID = Form(alias="serverId"),
    name: str | None = Form(default=None),
    is_public: bool | None = Form(default=None, alias="isPublic"),
    icon: UploadFile | None = File(default=None),
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_settings_dep),
    storage: SupabaseStorage = Depends(get_storage),
    current_user: User = Depends(get_current_user),
) -> Envelope[ServerOut]:
    server = await require_server_owner(db, server_id, current_user.id)

    icon_url = None
    if icon is not None and icon.filename:
        data = await read_upload(icon, settings.max_upload_bytes, images_only=True)
        path = f"icons/{server_id}.{file_extension(icon.filename)}"
        await storage.upload(settings.server_icons_bucket, path, data, icon.content_type or "image/png", upsert=True)
        icon_url = f"{storage.public_url(settings.server_icons_bucket, path)}?t={int(time.time() * 1000)}"

    server = await server_service.update_server(db, server, name=name, is_public=is_public, icon_url=icon_url)
    return Envelope(data=_server_out(server, current_user.id))


@router.post("/rotate-invite", response_model=Envelope[ServerOut])
async def rotate_invite(
    payload: ServerRefIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[ServerOut]:
    server = await require_server_owner(db, payload.server_id, current_user.id)
    server = await server_service.rotate_invite_key(db, server)
    return Envelope(data=_server_out(server, current_user.id))


@router.post("/delete", response_model=Ack)
async def delete_server(
    payload: ServerRefIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    server = await require_server_owner(db, payload.server_id, current_user.id)
    await server_service.delete_server(db, server)
    return Ack(message="Server deleted")


@router.post("/discover", response_model=DiscoverPageOut)
async def discover_servers(
    payload: DiscoverServersIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> DiscoverPageOut:
    rows, total = await server_service.discover_servers(db, payload.page, payload.limit, payload.search, payload.sort)
    return DiscoverPageOut(
        data=[
            ServerPreviewOut(
                id=server.id,
                name=server.name,
                icon_url=server.icon_url,
                invite_key=server.invite_key,
                member_count=count,
            )
            for server, count in rows
        ],
        page=payload.page,
        pages=server_service.page_count(total, payload.limit),
        total=total,
    )


@router.post("/invite-info", response_model=Envelope[ServerPreviewOut])
async def invite_info(payload: InviteKeyIn, db: AsyncSession = Depends(get_db)) -> Envelope[ServerPreviewOut]:
    server = await server_service.get_server_by_invite(db, payload.invite_key)
    count = await server_service.member_count(db, server.id)
    return Envelope(
        data=ServerPreviewOut(
            id=server.id, name=server.name, icon_url=server.icon_url, invite_key=server.invite_key, member_count=count
        )
    )


@router.post("/join", response_model=Envelope[JoinedServerOut])
async def join_server(
    payload: InviteKeyIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[JoinedServerOut]:
    result = await server_service.join_server(db, payload.invite_key, current_user.id)
    return Envelope(
        data=JoinedServerOut(
            server_id=result.server_id, name=result.name, first_channel_key=result.first_channel_key
        )
    )


@router.post("/leave", response_model=Ack)
async def leave_server(
    payload: ServerRefIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    await require_server_member(db, payload.server_id, current_user.id)
    await server_service.leave_server(db, payload.server_id, current_user.id)
    return Ack(message="Left server")


@router.post("/members", response_model=Envelope[list[ServerMemberOut]])
async def list_members(
    payload: ServerRefIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Envelope[list[ServerMemberOut]]:
    await require_server_member(db, payload.server_id, current_user.id)
    rows = await server_service.list_members(db, payload.server_id)
    return Envelope(
        data=[
            ServerMemberOut(
                user_id=user.id,
                username=user.username,
                display_name=user.display_name,
                avatar_url=user.avatar_url,
                roles=member.roles or [],
                muted=member.muted,
                joined_at=member.joined_at,
            )
            for member, user in rows
        ]
    )


@router.post("/kick", response_model=Ack)
async def kick_member(
    payload: MemberActionIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    server = await require_server_owner(db, payload.server_id, current_user.id)
    await server_service.kick_member(db, server, current_user.id, payload.user_id)
    return Ack(message="Member kicked")


@router.post("/ban", response_model=Ack)
async def ban_member(
    payload: BanMemberIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    server = await require_server_owner(db, payload.server_id, current_user.id)
    await server_service.ban_member(db, server, current_user.id, payload.user_id, payload.reason)
    return Ack(message="Member banned")


@router.post("/mute", response_model=Ack)
async def mute_member(
    payload: MuteMemberIn,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Ack:
    server = await require_server_owner(db, payload.server_id, current_user.id)
    membership = await server_service.mute_member(db, server, current_user.id, payload.user_id, payload.muted)
    return Ack(message="Member muted" if membership.muted else "Member unmuted")
