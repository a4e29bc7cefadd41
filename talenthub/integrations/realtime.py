"""Live fan-out through Pusher private channels.

Each conversation owns one private channel, ``private-conv-{conversationId}``.
Publishing is fire-and-forget: callers queue ``publish_best_effort`` as a
background task so a Pusher outage never fails the request that stored the
data.
"""

import logging
from typing import Any
from uuid import UUID

import pusher

logger = logging.getLogger(__name__)

CHANNEL_PREFIX = "private-conv-"

EVENT_MESSAGE_NEW = "message:new"
EVENT_MESSAGE_EDITED = "message:edited"
EVENT_MESSAGE_DELETED = "message:deleted"


def conversation_channel(conversation_id: UUID) -> str:
    return f"{CHANNEL_PREFIX}{conversation_id}"


def conversation_id_from_channel(channel_name: str) -> UUID | None:
    if not channel_name.startswith(CHANNEL_PREFIX):
        return None
    try:
        return UUID(channel_name[len(CHANNEL_PREFIX):])
    except ValueError:
        return None


class PusherRealtime:
    def __init__(self, app_id: str, key: str, secret: str, cluster: str) -> None:
        self._client = pusher.Pusher(app_id=app_id, key=key, secret=secret, cluster=cluster, ssl=True)

    def publish(self, channel: str, event: str, payload: dict[str, Any]) -> None:
        self._client.trigger(channel, event, payload)

    def authorize(self, channel: str, socket_id: str) -> dict[str, Any]:
        return self._client.authenticate(channel=channel, socket_id=socket_id)


def publish_best_effort(realtime: PusherRealtime, channel: str, event: str, payload: dict[str, Any]) -> None:
    try:
        realtime.publish(channel, event, payload)
    except Exception:  # noqa: BLE001
        logger.exception("Failed to publish %s to %s", event, channel)
