import json

import httpx
import pytest

from talenthub.core.errors import CollaboratorFailure
from talenthub.integrations.mailer import ResendEmail, otp_email_html, send_best_effort
from talenthub.integrations.realtime import (
    PusherRealtime,
    conversation_channel,
    conversation_id_from_channel,
    publish_best_effort,
)
from talenthub.integrations.storage import SupabaseStorage, delete_best_effort


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def test_storage_upload_and_sign():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        if "/object/sign/" in request.url.path:
            return httpx.Response(200, json={"signedURL": "/object/sign/private-files/a%20b.pdf?token=t"})
        return httpx.Response(200, json={"Key": "ok"})

    async with _client(handler) as http:
        storage = SupabaseStorage("https://proj.supabase.co/", "service-key", http)
        await storage.upload("attachments", "messenger/x.png", b"data", "image/png")
        signed = await storage.signed_url("private-files", "a b.pdf", 60)

    upload = seen[0]
    assert upload.url == "https://proj.supabase.co/storage/v1/object/attachments/messenger/x.png"
    assert upload.headers["authorization"] == "Bearer service-key"
    assert upload.headers["x-upsert"] == "false"
    assert json.loads(seen[1].content) == {"expiresIn": 60}
    assert signed == "https://proj.supabase.co/storage/v1/object/sign/private-files/a%20b.pdf?token=t"


async def test_storage_errors_become_collaborator_failures():
    async with _client(lambda request: httpx.Response(500)) as http:
        storage = SupabaseStorage("https://proj.supabase.co", "k", http)
        with pytest.raises(CollaboratorFailure):
            await storage.upload("attachments", "x", b"", "text/plain")
        # Cleanup never raises.
        await delete_best_effort(storage, "attachments", ["x"])


def test_public_url_round_trip():
    storage = SupabaseStorage("https://proj.supabase.co", "k", httpx.AsyncClient())
    url = storage.public_url("profile-pictures", "avatars/a b.png") + "?t=1"
    assert storage.path_from_public_url("profile-pictures", url) == "avatars/a b.png"
    assert storage.path_from_public_url("other", url) is None


async def test_mailer_posts_to_resend():
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "email-1"})

    async with _client(handler) as http:
        mailer = ResendEmail("https://api.resend.com/", "re_key", "noreply@talenthub.dev", http)
        await mailer.send("dana@example.com", "Code", otp_email_html("123456", 5))

    assert captured["url"] == "https://api.resend.com/emails"
    assert captured["body"]["to"] == ["dana@example.com"]
    assert "123456" in captured["body"]["html"]


async def test_mail_failures_are_logged_not_raised(caplog):
    async with _client(lambda request: httpx.Response(422, json={"message": "bad"})) as http:
        mailer = ResendEmail("https://api.resend.com", "re_key", "noreply@talenthub.dev", http)
        await send_best_effort(mailer, "dana@example.com", "Code", "<p>x</p>")
    assert "Email delivery to dana@example.com failed" in caplog.text


def test_channel_names():
    channel = conversation_channel("3f2b8a1e-0000-4000-8000-000000000001")
    assert channel == "private-conv-3f2b8a1e-0000-4000-8000-000000000001"
    assert str(conversation_id_from_channel(channel)) == "3f2b8a1e-0000-4000-8000-000000000001"
    assert conversation_id_from_channel("private-conv-not-a-uuid") is None
    assert conversation_id_from_channel("presence-lobby") is None


def test_pusher_channel_authorization_is_signed():
    realtime = PusherRealtime("123", "app-key", "app-secret", "us2")
    auth = realtime.authorize("private-conv-abc", "1234.5678")
    assert auth["auth"].startswith("app-key:")


def test_publish_failures_are_swallowed(caplog):
    class Broken:
        def publish(self, channel, event, payload):
            raise RuntimeError("pusher down")

    publish_best_effort(Broken(), "private-conv-x", "message:new", {})
    assert "Failed to publish message:new to private-conv-x" in caplog.text
