"""
In-memory connection registry (the presence store).

Maps each live connection to its user and each user to the set of their live
connections, so the aggregate online state of a user is simply "has at least
one connection".

Every method is synchronous and never awaits. Callers make the transition
decision here, in one step, before doing any I/O; on a single event loop that
is enough to keep two concurrent connects from both seeing "first connection".

The registry is per-process and is lost on restart. Running several server
processes would need a shared registry (e.g. Redis) instead.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Optional

from presence.events import UserIdentity


class PresenceRegistry:
    def __init__(self) -> None:
        self._connections: dict[str, str] = {}
        self._user_connections: dict[str, set[str]] = defaultdict(set)
        self._identities: dict[str, UserIdentity] = {}
        self._forced_offline: set[str] = set()

    def add(self, connection_id: str, identity: UserIdentity) -> bool:
        """
        Register a live connection.

        Returns:
            True if this is the user's first live connection.
        """
        if connection_id in self._connections:
            return False
        user_id = identity.user_id
        self._connections[connection_id] = user_id
        self._identities[user_id] = identity
        first = not self._user_connections[user_id]
        self._user_connections[user_id].add(connection_id)
        return first

    def remove(self, connection_id: str) -> tuple[Optional[UserIdentity], bool]:
        """
        Unregister a connection.

        Returns:
            (identity, was_last). identity is None for an unknown connection.
        """
        user_id = self._connections.pop(connection_id, None)
        if user_id is None:
            return None, False

        identity = self._identities.get(user_id)
        connections = self._user_connections.get(user_id)
        if connections is not None:
            connections.discard(connection_id)
        was_last = not connections
        if was_last:
            self._user_connections.pop(user_id, None)
            self._identities.pop(user_id, None)
        return identity, was_last

    def user_for(self, connection_id: str) -> Optional[str]:
        return self._connections.get(connection_id)

    def identity_for(self, user_id: str) -> Optional[UserIdentity]:
        return self._identities.get(str(user_id))

    def connection_count(self, user_id: str) -> int:
        return len(self._user_connections.get(str(user_id), ()))

    def is_online(self, user_id: str) -> bool:
        return self.connection_count(user_id) > 0

    def online_user_ids(self) -> list[str]:
        return [user_id for user_id, conns in self._user_connections.items() if conns]

    def mark_forced_offline(self, user_id: str) -> None:
        """Remember that an explicit logout overrode connection counting."""
        self._forced_offline.add(str(user_id))

    def consume_forced_offline(self, user_id: str) -> bool:
        """Clear the forced-offline mark; return whether it was set."""
        user_id = str(user_id)
        if user_id in self._forced_offline:
            self._forced_offline.discard(user_id)
            return True
        return False

    def clear(self) -> None:
        self._connections.clear()
        self._user_connections.clear()
        self._identities.clear()
        self._forced_offline.clear()

    def __len__(self) -> int:
        return len(self._connections)
