from sqlalchemy import select

from talenthub.models import FriendRequest


async def _send(client, headers, query):
    return await client.post("/api/friends/send", json={"query": query}, headers=headers)


async def _status(client, headers, other):
    response = await client.post("/api/friends/status", json={"otherUserId": str(other.id)}, headers=headers)
    return response.json()["data"]["status"]


async def test_request_accept_and_list(client, make_user, auth_for):
    alice, bob = await make_user("alice"), await make_user("bob")

    sent = await _send(client, auth_for(alice), "bob")
    assert sent.status_code == 200
    assert await _status(client, auth_for(alice), bob) == "pending_sent"
    assert await _status(client, auth_for(bob), alice) == "pending_received"

    received = await client.post("/api/friends/requests", json={"type": "received"}, headers=auth_for(bob))
    [request] = received.json()["data"]
    assert request["sender"]["username"] == "alice"
    outgoing = await client.post("/api/friends/requests", json={"type": "sent"}, headers=auth_for(alice))
    assert [item["id"] for item in outgoing.json()["data"]] == [request["id"]]

    wrong_side = await client.post(
        "/api/friends/respond", json={"requestId": request["id"], "action": "accept"}, headers=auth_for(alice)
    )
    assert wrong_side.status_code == 403

    accepted = await client.post(
        "/api/friends/respond", json={"requestId": request["id"], "action": "accept"}, headers=auth_for(bob)
    )
    assert accepted.status_code == 200
    assert await _status(client, auth_for(alice), bob) == "friends"

    friends = await client.post("/api/friends/list", headers=auth_for(alice))
    [friend] = friends.json()["data"]
    assert friend["id"] == str(bob.id)
    assert friend["requestId"] == request["id"]

    handled = await client.post(
        "/api/friends/respond", json={"requestId": request["id"], "action": "deny"}, headers=auth_for(bob)
    )
    assert handled.status_code == 400


async def test_duplicate_requests_in_either_direction_conflict(client, db, make_user, auth_for):
    alice, bob = await make_user(), await make_user()
    assert (await _send(client, auth_for(alice), bob.username)).status_code == 200
    assert (await _send(client, auth_for(alice), bob.username)).status_code == 409
    assert (await _send(client, auth_for(bob), alice.email)).status_code == 409
    assert len((await db.execute(select(FriendRequest))).scalars().all()) == 1


async def test_denied_request_can_be_sent_again(client, make_user, auth_for):
    alice, bob = await make_user(), await make_user()
    await _send(client, auth_for(alice), bob.username)
    received = await client.post("/api/friends/requests", json={"type": "received"}, headers=auth_for(bob))
    request_id = received.json()["data"][0]["id"]
    await client.post("/api/friends/respond", json={"requestId": request_id, "action": "deny"}, headers=auth_for(bob))
    assert await _status(client, auth_for(alice), bob) == "none"

    retry = await _send(client, auth_for(bob), alice.username)
    assert retry.status_code == 200
    assert await _status(client, auth_for(bob), alice) == "pending_sent"


async def test_send_to_self_or_unknown(client, make_user, auth_for):
    alice = await make_user()
    assert (await _send(client, auth_for(alice), alice.username)).status_code == 400
    assert (await _send(client, auth_for(alice), "ghost@example.com")).status_code == 404


async def test_remove_friend(client, make_user, auth_for):
    alice, bob = await make_user(), await make_user()
    await _send(client, auth_for(alice), bob.username)
    received = await client.post("/api/friends/requests", json={"type": "received"}, headers=auth_for(bob))
    request_id = received.json()["data"][0]["id"]
    await client.post("/api/friends/respond", json={"requestId": request_id, "action": "accept"}, headers=auth_for(bob))

    removed = await client.post("/api/friends/remove", json={"friendId": str(alice.id)}, headers=auth_for(bob))
    assert removed.status_code == 200
    assert await _status(client, auth_for(alice), bob) == "none"
    missing = await client.post("/api/friends/remove", json={"friendId": str(alice.id)}, headers=auth_for(bob))
    assert missing.status_code == 404


async def test_send_by_username_ignores_case(client, make_user, auth_for):
    alice = await make_user("alice")
    await make_user("Zed_Case")

    sent = await _send(client, auth_for(alice), "zed_case")
    assert sent.status_code == 200
