from uuid import UUID

from sqlalchemy import func, select

from talenthub.models import Channel, ChannelConversation, Message, ServerBan, ServerMember


async def _server(client, headers, name="Acme", is_public=False):
    response = await client.post("/api/servers/create", json={"name": name, "isPublic": is_public}, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()["data"]


async def _join(client, server, headers):
    return await client.post("/api/servers/join", json={"inviteKey": server["inviteKey"]}, headers=headers)


async def test_list_servers_marks_ownership(client, make_user, auth_for):
    owner, member = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))
    await _join(client, server, auth_for(member))

    owned = (await client.post("/api/servers/list", headers=auth_for(owner))).json()["data"]
    joined = (await client.post("/api/servers/list", headers=auth_for(member))).json()["data"]
    assert [item["isOwner"] for item in owned] == [True]
    assert [item["isOwner"] for item in joined] == [False]
    assert joined[0]["id"] == server["id"]


async def test_join_is_idempotent(client, db, make_user, auth_for):
    owner, member = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))
    first = await _join(client, server, auth_for(member))
    second = await _join(client, server, auth_for(member))
    assert first.json()["data"] == second.json()["data"]

    stmt = select(func.count()).select_from(ServerMember).where(ServerMember.server_id == UUID(server["id"]))
    assert (await db.execute(stmt)).scalar_one() == 2


async def test_unknown_invite(client, make_user, auth_for):
    user = await make_user()
    response = await client.post("/api/servers/join", json={"inviteKey": "nope"}, headers=auth_for(user))
    assert response.status_code == 404


async def test_invite_info_preview(client, make_user, auth_for):
    owner = await make_user()
    server = await _server(client, auth_for(owner), name="Preview")
    response = await client.post("/api/servers/invite-info", json={"inviteKey": server["inviteKey"]})
    data = response.json()["data"]
    assert data["name"] == "Preview"
    assert data["memberCount"] == 1


async def test_rotate_invite_key_retires_old_link(client, make_user, auth_for):
    owner, member = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))

    forbidden = await client.post("/api/servers/rotate-invite", json={"serverId": server["id"]}, headers=auth_for(member))
    assert forbidden.status_code == 403

    rotated = await client.post("/api/servers/rotate-invite", json={"serverId": server["id"]}, headers=auth_for(owner))
    new_key = rotated.json()["data"]["inviteKey"]
    assert new_key != server["inviteKey"]

    assert (await _join(client, server, auth_for(member))).status_code == 404
    ok = await client.post("/api/servers/join", json={"inviteKey": new_key}, headers=auth_for(member))
    assert ok.status_code == 200


async def test_ban_blocks_rejoin(client, db, make_user, auth_for):
    owner, member = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))
    await _join(client, server, auth_for(member))
    body = {"serverId": server["id"], "userId": str(member.id), "reason": "spam"}

    banned = await client.post("/api/servers/ban", json=body, headers=auth_for(owner))
    assert banned.status_code == 200
    again = await client.post("/api/servers/ban", json=body, headers=auth_for(owner))
    assert again.status_code == 409

    rejoin = await _join(client, server, auth_for(member))
    assert rejoin.status_code == 403
    ban = (await db.execute(select(ServerBan))).scalar_one()
    assert ban.reason == "spam"
    assert ban.banned_by_user_id == owner.id
    members = select(ServerMember).where(ServerMember.user_id == member.id)
    assert (await db.execute(members)).scalars().all() == []


async def test_owner_cannot_be_moderated_or_leave(client, make_user, auth_for):
    owner, member = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))
    await _join(client, server, auth_for(member))
    target_owner = {"serverId": server["id"], "userId": str(owner.id)}

    assert (await client.post("/api/servers/kick", json=target_owner, headers=auth_for(owner))).status_code == 400
    assert (await client.post("/api/servers/kick", json=target_owner, headers=auth_for(member))).status_code == 403
    left = await client.post("/api/servers/leave", json={"serverId": server["id"]}, headers=auth_for(owner))
    assert left.status_code == 400


async def test_kick_and_leave(client, make_user, auth_for):
    owner, kicked, leaver = await make_user(), await make_user(), await make_user()
    server = await _server(client, auth_for(owner))
    await _join(client, server, auth_for(kicked))
    await _join(client, server, auth_for(leaver))

    kick = await client.post(
        "/api/servers/kick", json={"serverId": server["id"], "userId": str(kicked.id)}, headers=auth_for(owner)
    )
    assert kick.status_code == 200
    left = await client.post("/api/servers/leave", json={"serverId": server["id"]}, headers=auth_for(leaver))
    assert left.status_code == 200

    members = await client.post("/api/servers/members", json={"serverId": server["id"]}, headers=auth_for(owner))
    assert [item["userId"] for item in members.json()["data"]] == [str(owner.id)]
    assert members.json()["data"][0]["roles"] == ["owner"]

    outsider = await client.post("/api/servers/members", json={"serverId": server["id"]}, headers=auth_for(kicked))
    assert outsider.status_code == 403


async def test_delete_server_removes_everything(client, db, make_user, auth_for):
    owner = await make_user()
    server = await _server(client, auth_for(owner))
    key = server["channels"][0]["channelKey"]
    resolved = await client.post("/api/channels/by-key", json={"channelKey": key}, headers=auth_for(owner))
    conversation_id = resolved.json()["data"]["conversationId"]
    await client.post(
        "/api/messages/send", json={"conversationId": conversation_id, "content": "bye"}, headers=auth_for(owner)
    )

    deleted = await client.post("/api/servers/delete", json={"serverId": server["id"]}, headers=auth_for(owner))
    assert deleted.status_code == 200

    server_id = UUID(server["id"])
    for stmt in [
        select(func.count()).select_from(Channel).where(Channel.server_id == server_id),
        select(func.count()).select_from(ChannelConversation).where(ChannelConversation.server_id == server_id),
        select(func.count()).select_from(ServerMember).where(ServerMember.server_id == server_id),
        select(func.count()).select_from(Message).where(Message.conversation_id == UUID(conversation_id)),
    ]:
        assert (await db.execute(stmt)).scalar_one() == 0


async def test_discover_public_servers(client, make_user, auth_for):
    owner, fan = await make_user(), await make_user()
    busy = await _server(client, auth_for(owner), name="Busy Place", is_public=True)
    await _server(client, auth_for(owner), name="Quiet Place", is_public=True)
    await _server(client, auth_for(owner), name="Hidden Place", is_public=False)
    await _join(client, busy, auth_for(fan))

    page = await client.post("/api/servers/discover", json={"limit": 1}, headers=auth_for(fan))
    body = page.json()
    assert body["total"] == 2
    assert body["pages"] == 2
    assert [item["name"] for item in body["data"]] == ["Busy Place"]
    assert body["data"][0]["memberCount"] == 2

    by_name = await client.post("/api/servers/discover", json={"sort": "name"}, headers=auth_for(fan))
    assert [item["name"] for item in by_name.json()["data"]] == ["Busy Place", "Quiet Place"]

    searched = await client.post("/api/servers/discover", json={"search": "quiet"}, headers=auth_for(fan))
    assert [item["name"] for item in searched.json()["data"]] == ["Quiet Place"]

    too_many = await client.post("/api/servers/discover", json={"limit": 51}, headers=auth_for(fan))
    assert too_many.status_code == 400


async def test_update_server_with_icon(client, storage, make_user, auth_for):
    owner = await make_user()
    server = await _server(client, auth_for(owner))
    response = await client.post(
        "/api/servers/update",
        data={"serverId": server["id"], "name": "Renamed", "isPublic": "true"},
        files={"icon": ("logo.png", b"\x89PNG", "image/png")},
        headers=auth_for(owner),
    )
    assert response.status_code == 200, response.text
    data = response.json()["data"]
    assert data["name"] == "Renamed"
    assert data["isPublic"] is True
    assert f"icons/{server['id']}.png" in data["iconUrl"]
    assert ("server-icons", f"icons/{server['id']}.png") in storage.objects


async def test_channels_create_and_list(client, make_user, auth_for):
    owner, outsider = await make_user(), await make_user()
    server = await _server(client, auth_for(owner))

    created = await client.post(
        "/api/channels/create", json={"serverId": server["id"], "name": "Show And Tell"}, headers=auth_for(owner)
    )
    assert created.status_code == 200
    channel = created.json()["data"]
    assert channel["name"] == "show-and-tell"
    assert channel["channelKey"]

    listed = await client.post("/api/channels/list", json={"serverId": server["id"]}, headers=auth_for(owner))
    assert [item["name"] for item in listed.json()["data"]] == ["general", "random", "show-and-tell"]

    denied = await client.post("/api/channels/list", json={"serverId": server["id"]}, headers=auth_for(outsider))
    assert denied.status_code == 403

    resolved = await client.post(
        "/api/conversations/from-channel",
        json={"serverId": server["id"], "channelId": channel["id"]},
        headers=auth_for(owner),
    )
    assert resolved.json()["data"]["channelKey"] == channel["channelKey"]


async def test_unknown_channel_key(client, make_user, auth_for):
    user = await make_user()
    response = await client.post("/api/channels/by-key", json={"channelKey": "missing"}, headers=auth_for(user))
    assert response.status_code == 404
    assert response.json()["message"] == "Channel not found"
