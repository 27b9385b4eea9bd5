"""
Presence state machine.

Decides, for each connect / heartbeat / disconnect / explicit logout, whether a
user's aggregate online state changes, persists the result to the user
directory, and broadcasts only real transitions:

    connect    first live connection         -> online, broadcast
               additional connection         -> last_active only
    heartbeat  known connection              -> last_active only
               unknown connection            -> no-op
    disconnect last live connection          -> offline, broadcast
               other connections remain      -> last_active only
    logout     always                        -> offline, broadcast

The transition decision is taken synchronously against the registry before the
first await. Directory writes and broadcasts happen afterwards. A failed
directory write is logged and the in-memory state is kept; presence is advisory
and the next transition writes again.
"""

import logging
from typing import Callable, Optional

from django.utils import timezone

from presence.broadcast import ChannelLayerBroadcaster
from presence.directory import UserDirectory
from presence.events import PresenceEvent, UserIdentity
from presence.exceptions import InvalidUser, PersistenceWriteFailure
from presence.registry import PresenceRegistry

logger = logging.getLogger(__name__)


class PresenceService:
    def __init__(
        self,
        registry: Optional[PresenceRegistry] = None,
        directory: Optional[UserDirectory] = None,
        broadcaster: Optional[ChannelLayerBroadcaster] = None,
        clock: Callable = timezone.now,
    ):
        self.registry = registry if registry is not None else PresenceRegistry()
        self.directory = directory if directory is not None else UserDirectory()
        self.broadcaster = broadcaster if broadcaster is not None else ChannelLayerBroadcaster()
        self.clock = clock

    async def register_connection(self, connection_id: str, user_id) -> Optional[PresenceEvent]:
        """
        Register a newly opened connection for `user_id`.

        Returns:
            The broadcast event if the user just came online, else None.

        Raises:
            InvalidUser: `user_id` is not in the directory. Nothing is registered.
        """
        identity = await self.directory.get_identity(user_id)
        if identity is None:
            raise InvalidUser(user_id)

        first = self.registry.add(connection_id, identity)
        # A reconnect after an explicit logout brings the user back online.
        forced = self.registry.consume_forced_offline(identity.user_id)
        now = self.clock()

        if not (first or forced):
            logger.debug(
                f"User {identity.user_id} opened another connection "
                f"({self.registry.connection_count(identity.user_id)} live)"
            )
            await self._persist(identity, last_active=now)
            return None

        event = await self._persist(identity, last_active=now, is_online=True)
        logger.info(f"User {identity.name} ({identity.user_id}) is now online")
        await self.broadcaster.publish(event)
        return event

    async def heartbeat(self, connection_id: str) -> None:
        """Refresh last_active for the connection's user. Unknown connections are ignored."""
        user_id = self.registry.user_for(connection_id)
        if user_id is None:
            logger.debug(f"Heartbeat for unknown connection {connection_id} ignored")
            return
        identity = self.registry.identity_for(user_id)
        if identity is None:
            return
        await self._persist(identity, last_active=self.clock())
        logger.debug(f"User {user_id} activity updated")

    async def deregister_connection(self, connection_id: str) -> Optional[PresenceEvent]:
        """
        Remove a closed connection.

        Returns:
            The broadcast event if the user just went offline, else None.
        """
        identity, was_last = self.registry.remove(connection_id)
        if identity is None:
            return None

        # Already persisted offline by an explicit logout: nothing to announce.
        forced = was_last and self.registry.consume_forced_offline(identity.user_id)
        now = self.clock()

        if not was_last or forced:
            await self._persist(identity, last_active=now)
            return None

        event = await self._persist(identity, last_active=now, is_online=False)
        logger.info(f"User {identity.name} ({identity.user_id}) disconnected")
        await self.broadcaster.publish(event)
        return event

    async def force_offline(self, user_id) -> PresenceEvent:
        """
        Mark a user offline regardless of live connections (explicit logout).

        Raises:
            InvalidUser: `user_id` is not in the directory.
        """
        identity = await self.directory.get_identity(user_id)
        if identity is None:
            raise InvalidUser(user_id)

        if self.registry.is_online(identity.user_id):
            self.registry.mark_forced_offline(identity.user_id)

        event = await self._persist(identity, last_active=self.clock(), is_online=False)
        logger.info(f"User {identity.name} ({identity.user_id}) forced offline")
        await self.broadcaster.publish(event)
        return event

    async def touch(self, user_id) -> PresenceEvent:
        """
        HTTP heartbeat: refresh last_active without a transition.

        Raises:
            InvalidUser: `user_id` is not in the directory.
        """
        event = await self.directory.get_event(user_id)
        if event is None:
            raise InvalidUser(user_id)
        persisted = await self._persist(event.identity, last_active=self.clock())
        return persisted if persisted is not None else event

    async def snapshot(self) -> list[PresenceEvent]:
        """Current persisted presence of every user, most recently active first."""
        return await self.directory.list_events()

    async def _persist(
        self, identity: UserIdentity, *, last_active, is_online: Optional[bool] = None
    ) -> Optional[PresenceEvent]:
        """
        Write presence fields. Never raises for write failures.

        Returns:
            The persisted event. When the write failed (or the user vanished)
            and `is_online` was given, an event built from `identity` instead;
            None for a failed last_active-only write.
        """
        event = None
        try:
            event = await self.directory.set_presence(
                identity.user_id, last_active=last_active, is_online=is_online
            )
            if event is None:
                logger.warning(f"User {identity.user_id} vanished from the directory")
        except PersistenceWriteFailure as e:
            logger.error(str(e), exc_info=True)

        if event is None and is_online is not None:
            event = PresenceEvent.for_identity(identity, is_online=is_online, last_active=last_active)
        return event


_service: Optional[PresenceService] = None


def get_presence_service() -> PresenceService:
    """The process-wide presence service (one registry per server process)."""
    global _service
    if _service is None:
        _service = PresenceService()
    return _service
