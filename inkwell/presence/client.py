"""
Client presence agent.

Keeps one persistent connection to `ws/presence/` for the signed-in user,
sends heartbeats, and reconciles a local `userId -> PresenceEvent` map from
the server's broadcasts. Lost connections are retried with exponential
backoff (`base_delay * 2 ** (attempt - 1)`) up to `max_attempts` times.

The agent has no Django dependency; a host wires it to its auth state:

    agent = PresenceAgent("wss://blog.example.com/ws/presence/")
    await agent.start(user.id)
    unsubscribe = agent.subscribe(lambda event: render(event))
    ...
    await agent.sign_out(http_client, access_token)
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
import websockets
from websockets.exceptions import WebSocketException

from presence import events
from presence.events import PresenceEvent
from presence.exceptions import TransportError

logger = logging.getLogger(__name__)


class AgentState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


async def websocket_transport(url: str):
    """
    Open a WebSocket with the `websockets` library.

    Any object with async `send(str)`, `recv() -> str` and `close()` can
    stand in for the returned connection.
    """
    try:
        return await websockets.connect(url)
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise TransportError(f"Could not connect to {url}: {e}") from e


class PresenceAgent:
    def __init__(
        self,
        url: str,
        transport_factory: Callable[[str], Awaitable[Any]] = websocket_transport,
        base_delay: float = 1.0,
        max_attempts: int = 5,
        heartbeat_interval: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.url = url
        self.base_delay = base_delay
        self.max_attempts = max_attempts
        self.heartbeat_interval = heartbeat_interval
        self._transport_factory = transport_factory
        self._sleep = sleep

        self._state = AgentState.DISCONNECTED
        self._user_id: Optional[str] = None
        self._attempts = 0
        self._transport = None
        # Bumped by connect() and disconnect(); a handshake from an older
        # generation closes its transport instead of installing it.
        self._generation = 0
        self._reader_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None

        self._statuses: Dict[str, PresenceEvent] = {}
        self._subscribers: List[Callable[[PresenceEvent], Any]] = []
        self._state_listeners: List[Callable[[AgentState], Any]] = []

    @classmethod
    def from_config(cls, url: str, config, **kwargs) -> "PresenceAgent":
        """Build an agent with the timings of a `presence.config.PresenceConfig`."""
        return cls(
            url,
            base_delay=config.reconnect_base_delay_seconds,
            max_attempts=config.reconnect_max_attempts,
            heartbeat_interval=config.heartbeat_interval_seconds,
            **kwargs,
        )

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def is_connected(self) -> bool:
        return self._state is AgentState.CONNECTED

    @property
    def statuses(self) -> Mapping[str, PresenceEvent]:
        return MappingProxyType(self._statuses)

    def get_status(self, user_id) -> Optional[PresenceEvent]:
        return self._statuses.get(str(user_id))

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before reconnect attempt `attempt` (1-based)."""
        return self.base_delay * 2 ** (attempt - 1)

    def subscribe(self, callback: Callable[[PresenceEvent], Any]) -> Callable[[], None]:
        """Call `callback` with every applied PresenceEvent. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def on_state_change(self, callback: Callable[[AgentState], Any]) -> Callable[[], None]:
        self._state_listeners.append(callback)

        def unsubscribe():
            if callback in self._state_listeners:
                self._state_listeners.remove(callback)

        return unsubscribe

    async def start(self, user_id) -> None:
        """Connect for `user_id` and begin sending heartbeats."""
        await self.connect(user_id)
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.ensure_future(self.run_heartbeats())

    async def stop(self) -> None:
        if self._heartbeat_task is not None:
            self._heartbeat_task.cancel()
            self._heartbeat_task = None
        await self.disconnect()

    async def connect(self, user_id) -> None:
        user_id = str(user_id)
        if self._user_id == user_id and self._state is not AgentState.DISCONNECTED:
            return
        if self._user_id is not None and self._user_id != user_id:
            logger.info(f"Replacing presence connection for {self._user_id} with {user_id}")
            await self.disconnect()

        self._user_id = user_id
        self._attempts = 0
        self._generation += 1
        await self._open()

    async def disconnect(self) -> None:
        """User-initiated close. Never schedules a reconnect."""
        self._user_id = None
        self._attempts = 0
        self._generation += 1

        if self._reconnect_task is not None:
            if self._reconnect_task is not asyncio.current_task():
                self._reconnect_task.cancel()
            self._reconnect_task = None

        reader, self._reader_task = self._reader_task, None
        transport, self._transport = self._transport, None
        self._set_state(AgentState.DISCONNECTED)

        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug(f"Error closing presence transport: {e}")

    async def sign_out(self, http_client: httpx.AsyncClient, token: str) -> bool:
        """
        Disconnect, then mark the user offline over HTTP.

        The HTTP call covers the case where the server never sees the socket
        close. Failures are logged, not raised.
        """
        user_id = self._user_id
        await self.disconnect()
        if user_id is None:
            return False

        try:
            response = await http_client.put(
                f"/api/users/{user_id}/offline/",
                headers={"Authorization": f"Bearer {token}"},
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning(f"Could not mark user {user_id} offline: {e}")
            return False
        return True

    async def send_heartbeat(self) -> bool:
        return await self._send(events.USER_ACTIVITY)

    async def request_snapshot(self) -> bool:
        return await self._send(events.ONLINE_USERS_REQUEST)

    async def run_heartbeats(self) -> None:
        while True:
            await self._sleep(self.heartbeat_interval)
            await self.send_heartbeat()

    async def _send(self, msg_type: str) -> bool:
        if self._state is not AgentState.CONNECTED or self._transport is None:
            return False
        try:
            await self._transport.send(json.dumps({"type": msg_type}))
        except Exception as e:
            # The reader notices the broken connection and schedules the reconnect.
            logger.warning(f"Could not send {msg_type}: {e}")
            return False
        return True

    def _url_for(self, user_id: str) -> str:
        parts = urlsplit(self.url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "userId"]
        query.append(("userId", user_id))
        return urlunsplit(parts._replace(query=urlencode(query)))

    async def _open(self) -> None:
        user_id = self._user_id
        generation = self._generation
        self._set_state(AgentState.CONNECTING)
        try:
            transport = await self._transport_factory(self._url_for(user_id))
        except Exception as e:
            logger.warning(f"Presence connection for {user_id} failed: {e}")
            if generation == self._generation:
                self._schedule_reconnect()
            return

        if generation != self._generation:
            # connect() or disconnect() ran while the handshake was in flight.
            logger.debug(f"Closing stale presence handshake for {user_id}")
            await transport.close()
            return

        self._transport = transport
        self._attempts = 0
        self._set_state(AgentState.CONNECTED)
        logger.info(f"Presence connected for user {user_id}")
        self._reader_task = asyncio.ensure_future(self._read_loop(transport))
        await self.request_snapshot()

    def _schedule_reconnect(self) -> None:
        if self._user_id is None:
            self._set_state(AgentState.DISCONNECTED)
            return
        if self._attempts >= self.max_attempts:
            logger.error(f"Presence reconnect gave up after {self._attempts} attempts")
            self._set_state(AgentState.DISCONNECTED)
            return

        self._attempts += 1
        delay = self.backoff_delay(self._attempts)
        logger.info(f"Reconnecting presence ({self._attempts}/{self.max_attempts}) in {delay}s")
        self._set_state(AgentState.CONNECTING)
        self._reconnect_task = asyncio.ensure_future(self._reconnect_after(delay))

    async def _reconnect_after(self, delay: float) -> None:
        await self._sleep(delay)
        self._reconnect_task = None
        if self._user_id is not None:
            await self._open()

    async def _read_loop(self, transport) -> None:
        try:
            while True:
                raw = await transport.recv()
                self._handle_frame(raw)
        except Exception as e:
            if transport is not self._transport:
                return
            logger.warning(f"Presence connection lost: {e}")
            self._transport = None
            self._reader_task = None
            self._schedule_reconnect()

    def _handle_frame(self, raw) -> None:
        try:
            message = json.loads(raw)
            msg_type = message.get("type")
            data = message.get("data")
        except (TypeError, ValueError, AttributeError):
            logger.warning(f"Ignoring malformed presence frame: {raw!r}")
            return

        if msg_type == events.USER_STATUS_CHANGE:
            self._apply(data)
        elif msg_type == events.ONLINE_USERS_UPDATE:
            for item in data or []:
                self._apply(item)
        elif msg_type == events.ERROR and isinstance(data, dict):
            logger.warning(f"Presence server error: {data.get('message')}")

    def _apply(self, payload) -> None:
        try:
            event = PresenceEvent.from_payload(payload)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring malformed presence event {payload!r}: {e}")
            return

        self._statuses[event.user_id] = event
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Presence subscriber failed: {e}", exc_info=True)

    def _set_state(self, state: AgentState) -> None:
        if state is self._state:
            return
        self._state = state
        for callback in list(self._state_listeners):
            try:
                callback(state)
            except Exception as e:
                logger.error(f"Presence state listener failed: {e}", exc_info=True)
