"""
Fan-out of presence events to every connected socket.

All presence sockets join one Channels group; a transition is a single
`group_send` to it. Delivery is best-effort: no acknowledgements, no replay
for sockets that join later.
"""

import logging
from typing import Iterable

from channels.layers import get_channel_layer

from presence.config import PresenceConfig
from presence.events import PresenceEvent

logger = logging.getLogger(__name__)

STATUS_CHANGED = "presence.status.changed"
SNAPSHOT = "presence.snapshot"


class ChannelLayerBroadcaster:
    def __init__(self, group_name: str = None, channel_layer=None):
        self.group_name = group_name or PresenceConfig().group_name
        self._channel_layer = channel_layer

    @property
    def channel_layer(self):
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    async def publish(self, event: PresenceEvent) -> bool:
        """Broadcast one status change. Failures are logged, never raised."""
        return await self._group_send(
            {"type": STATUS_CHANGED, "event": event.to_payload()}
        )

    async def publish_snapshot(self, events: Iterable[PresenceEvent]) -> bool:
        """Broadcast a full snapshot (online_users_update) to every socket."""
        return await self._group_send(
            {"type": SNAPSHOT, "users": [event.to_payload() for event in events]}
        )

    async def _group_send(self, message: dict) -> bool:
        layer = self.channel_layer
        if layer is None:
            logger.error("Channel layer not configured; dropping presence broadcast")
            return False
        try:
            await layer.group_send(self.group_name, message)
        except Exception as e:
            logger.error(f"Presence broadcast to {self.group_name} failed: {e}", exc_info=True)
            return False
        return True
