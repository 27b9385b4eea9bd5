import json
import logging
from urllib.parse import parse_qs

from channels.generic.websocket import AsyncWebsocketConsumer

from presence import events
from presence.config import PresenceConfig
from presence.exceptions import InvalidUser
from presence.service import get_presence_service

logger = logging.getLogger(__name__)

CLOSE_MISSING_USER = 4000
CLOSE_INVALID_USER = 4004
CLOSE_SERVER_ERROR = 4500


class PresenceConsumer(AsyncWebsocketConsumer):
    """
    Presence WebSocket consumer.

    Handshake: `ws/presence/?userId=<id>`. The socket is accepted and then
    closed with 4000 for a missing id, or 4004 for an id unknown to the user
    directory.

    Every socket joins the single presence group, so a status change reaches
    all connected clients regardless of who they are.

    Client -> server:
    - {"type": "user_activity"}          heartbeat, refreshes last_active
    - {"type": "online_users_request"}   ask for a snapshot on this socket

    Server -> client:
    - {"type": "user_status_change", "data": {...}}
    - {"type": "online_users_update", "data": [{...}, ...]}
    - {"type": "error", "data": {"message": "..."}}
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.config = PresenceConfig()
        self.service = get_presence_service()
        self.user_id = None
        self.registered = False

    async def connect(self):
        self.user_id = self._handshake_user_id()
        if not self.user_id:
            logger.warning("Presence connection without userId refused")
            await self._refuse(CLOSE_MISSING_USER)
            return

        try:
            await self.channel_layer.group_add(self.config.group_name, self.channel_name)
            await self.service.register_connection(self.channel_name, self.user_id)
        except InvalidUser:
            logger.warning(f"Presence connection for unknown user {self.user_id!r} refused")
            await self._leave_group()
            await self._refuse(CLOSE_INVALID_USER)
            return
        except Exception as e:
            logger.error(f"Error registering presence connection: {e}", exc_info=True)
            await self._leave_group()
            await self._refuse(CLOSE_SERVER_ERROR)
            return

        self.registered = True
        await self.accept()
        logger.info(f"User {self.user_id} connected via presence socket {self.channel_name}")

    async def disconnect(self, code):
        try:
            if self.registered:
                self.registered = False
                await self.service.deregister_connection(self.channel_name)
        except Exception as e:
            logger.error(f"Error handling presence disconnect for {self.user_id}: {e}", exc_info=True)
        finally:
            await self._leave_group()

    async def receive(self, text_data=None, bytes_data=None):
        if not text_data:
            return

        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            await self._send_error("Invalid JSON")
            return

        msg_type = data.get("type") if isinstance(data, dict) else None

        if msg_type == events.USER_ACTIVITY:
            try:
                await self.service.heartbeat(self.channel_name)
            except Exception as e:
                logger.error(f"Error updating activity for {self.user_id}: {e}", exc_info=True)
            return

        if msg_type == events.ONLINE_USERS_REQUEST:
            await self._send_snapshot()
            return

        await self._send_error("Unknown message type")

    async def presence_status_changed(self, event):
        """Group handler for `presence.status.changed`."""
        await self._send_message(events.USER_STATUS_CHANGE, event.get("event"))

    async def presence_snapshot(self, event):
        """Group handler for `presence.snapshot`."""
        await self._send_message(events.ONLINE_USERS_UPDATE, event.get("users", []))

    async def _send_snapshot(self):
        try:
            snapshot = await self.service.snapshot()
        except Exception as e:
            logger.error(f"Error building presence snapshot: {e}", exc_info=True)
            await self._send_error("Could not load online users")
            return
        await self._send_message(
            events.ONLINE_USERS_UPDATE, [event.to_payload() for event in snapshot]
        )

    async def _send_message(self, msg_type: str, data):
        await self.send(text_data=json.dumps({"type": msg_type, "data": data}))

    async def _send_error(self, message: str):
        await self._send_message(events.ERROR, {"message": message})

    async def _refuse(self, code: int):
        # Closing before accept() rejects the handshake with HTTP 403, which
        # hides the close code from the client.
        await self.accept()
        await self.close(code=code)

    async def _leave_group(self):
        try:
            await self.channel_layer.group_discard(self.config.group_name, self.channel_name)
        except Exception:
            logger.debug("Presence group discard failed", exc_info=True)

    def _handshake_user_id(self):
        query = parse_qs(self.scope.get("query_string", b"").decode("utf-8", "ignore"))
        values = query.get("userId") or query.get("user_id") or []
        user_id = values[0].strip() if values else ""
        return user_id or None
