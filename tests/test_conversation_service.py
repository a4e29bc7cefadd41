import uuid
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import func, select

from talenthub.core.errors import SelfConversationError
from talenthub.models import Channel, ChannelConversation, ConversationMember, DirectConversation, Message
from talenthub.services import conversation_service, message_service, server_service
from talenthub.services.conversation_service import compute_unread, make_dm_key


def test_dm_key_is_order_independent():
    a, b = uuid.uuid4(), uuid.uuid4()
    assert make_dm_key(a, b) == make_dm_key(b, a)
    assert make_dm_key(a, b) == "_".join(sorted([str(a), str(b)]))


def test_compute_unread():
    t1 = datetime(2026, 1, 1, 12, 0, tzinfo=UTC)
    t2 = t1 + timedelta(seconds=5)
    assert compute_unread(None, None) is False
    assert compute_unread(t2, None) is True
    assert compute_unread(t2, t1) is True
    assert compute_unread(t2, t2) is False
    # Naive values come back from SQLite and are treated as UTC.
    assert compute_unread(t2.replace(tzinfo=None), t1) is True


async def _dm_count(db, dm_key):
    stmt = select(func.count()).select_from(DirectConversation).where(DirectConversation.dm_key == dm_key)
    return (await db.execute(stmt)).scalar_one()


async def test_resolve_dm_is_idempotent(db):
    a, b = uuid.uuid4(), uuid.uuid4()
    first = await conversation_service.resolve_or_create_dm(db, a, b)
    second = await conversation_service.resolve_or_create_dm(db, b, a)

    assert first.conversation_id == second.conversation_id
    assert first.dm_key == make_dm_key(a, b)
    assert await _dm_count(db, first.dm_key) == 1
    members = select(ConversationMember.user_id).where(ConversationMember.conversation_id == first.conversation_id)
    assert set((await db.execute(members)).scalars().all()) == {a, b}


async def test_resolve_dm_rejects_self(db):
    a = uuid.uuid4()
    with pytest.raises(SelfConversationError):
        await conversation_service.resolve_or_create_dm(db, a, a)


async def test_resolve_dm_lost_race_returns_winner(db, sessionmaker, monkeypatch):
    a, b = uuid.uuid4(), uuid.uuid4()
    winner = await conversation_service.resolve_or_create_dm(db, a, b)

    real_find = conversation_service._find_dm
    calls = []

    async def stale_find(session, dm_key):
        calls.append(dm_key)
        if len(calls) == 1:
            return None
        return await real_find(session, dm_key)

    monkeypatch.setattr(conversation_service, "_find_dm", stale_find)
    async with sessionmaker() as other:
        loser = await conversation_service.resolve_or_create_dm(other, b, a)

    assert len(calls) == 2
    assert loser.conversation_id == winner.conversation_id
    assert await _dm_count(db, winner.dm_key) == 1


async def _channel_conversations(db, channel_id):
    stmt = select(func.count()).select_from(ChannelConversation).where(ChannelConversation.channel_id == channel_id)
    return (await db.execute(stmt)).scalar_one()


async def test_resolve_channel_repeatedly_keeps_one_conversation(db):
    owner, member = uuid.uuid4(), uuid.uuid4()
    _, channels = await server_service.create_server(db, owner, "Acme")
    general = channels[0]

    results = [await conversation_service.resolve_channel_conversation(db, general, user) for user in (owner, member, member)]

    assert len({result.conversation_id for result in results}) == 1
    assert results[0].channel_name == "general"
    assert results[0].channel_key == general.channel_key
    assert await _channel_conversations(db, general.id) == 1


async def test_resolve_channel_lost_race_returns_winner(db, sessionmaker, monkeypatch):
    owner = uuid.uuid4()
    _, channels = await server_service.create_server(db, owner, "Acme")
    channel_id = channels[0].id

    real_find = conversation_service._find_channel_conversation
    calls = []

    async def stale_find(session, wanted):
        calls.append(wanted)
        if len(calls) == 1:
            return None
        return await real_find(session, wanted)

    monkeypatch.setattr(conversation_service, "_find_channel_conversation", stale_find)
    async with sessionmaker() as other:
        channel = await other.get(Channel, channel_id)
        resolved = await conversation_service.resolve_channel_conversation(other, channel, owner)

    existing = await real_find(db, channel_id)
    assert resolved.conversation_id == existing.id
    assert await _channel_conversations(db, channel_id) == 1


async def test_resolve_channel_adopts_legacy_conversation_and_backfills_key(db):
    owner = uuid.uuid4()
    server, _ = await server_service.create_server(db, owner, "Legacy")
    legacy_channel = Channel(server_id=server.id, name="old-times", channel_key=None, position=5)
    db.add(legacy_channel)
    await db.flush()
    orphan = ChannelConversation(server_id=server.id, channel_id=None)
    db.add(orphan)
    await db.commit()
    orphan_id, channel_id = orphan.id, legacy_channel.id

    resolved = await conversation_service.resolve_channel_conversation(db, legacy_channel, owner)

    assert resolved.conversation_id == orphan_id
    assert resolved.channel_id == channel_id
    assert resolved.channel_key
    stored = await db.get(Channel, channel_id, populate_existing=True)
    assert stored.channel_key == resolved.channel_key
    assert await _channel_conversations(db, channel_id) == 1


async def test_mark_read_creates_member_when_missing(db):
    owner = uuid.uuid4()
    _, channels = await server_service.create_server(db, owner, "Acme")
    resolved = await conversation_service.resolve_channel_conversation(db, channels[0], owner)
    reader, message_id = uuid.uuid4(), uuid.uuid4()

    await conversation_service.mark_read(db, resolved.conversation_id, reader, message_id)

    stmt = select(ConversationMember).where(
        ConversationMember.conversation_id == resolved.conversation_id, ConversationMember.user_id == reader
    )
    member = (await db.execute(stmt)).scalar_one()
    assert member.last_read_message_id == message_id
    assert member.last_read_at is not None


async def test_pagination_visits_every_message_once(db):
    a, b = uuid.uuid4(), uuid.uuid4()
    dm = await conversation_service.resolve_or_create_dm(db, a, b)
    base = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
    messages = [
        Message(conversation_id=dm.conversation_id, sender_user_id=a, content=f"m{i}", created_at=base + timedelta(seconds=i))
        for i in range(11)
    ]
    db.add_all(messages)
    await db.commit()
    expected = [message.id for message in reversed(messages)]

    seen, cursor, pages = [], None, 0
    while True:
        page, cursor = await message_service.list_messages(db, dm.conversation_id, 4, cursor)
        seen.extend(message.id for message in page)
        pages += 1
        if cursor is None:
            break

    assert seen == expected
    assert pages == 3


async def test_list_conversations_orders_by_latest_activity(db):
    me, friend_a, friend_b = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()
    older = await conversation_service.resolve_or_create_dm(db, me, friend_a)
    newer = await conversation_service.resolve_or_create_dm(db, me, friend_b)
    quiet = await conversation_service.resolve_or_create_dm(db, friend_a, friend_b)

    older_conv = await db.get(DirectConversation, older.conversation_id)
    await message_service.create_message(db, older_conv, friend_a, "first")
    newer_conv = await db.get(DirectConversation, newer.conversation_id)
    await message_service.create_message(db, newer_conv, friend_b, "second")

    rows = await conversation_service.list_conversations(db, me)
    assert [row["conversation_id"] for row in rows] == [newer.conversation_id, older.conversation_id]
    assert all(row["unread"] for row in rows)
    assert quiet.conversation_id not in {row["conversation_id"] for row in rows}
