"""
Presence payloads shared by the server and the client agent.

Wire shape of a single event (camelCase, as the browser client expects):

    {"userId": "42", "name": "...", "email": "...", "isOnline": true,
     "lastActive": "2026-10-19T10:00:00+00:00", "role": "customer"}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

# Message types on the socket.
USER_ACTIVITY = "user_activity"
ONLINE_USERS_REQUEST = "online_users_request"
USER_STATUS_CHANGE = "user_status_change"
ONLINE_USERS_UPDATE = "online_users_update"
ERROR = "error"


@dataclass(frozen=True)
class UserIdentity:
    """The directory fields a presence event carries about its user."""

    user_id: str
    name: str
    email: str
    role: str


@dataclass(frozen=True)
class PresenceEvent:
    user_id: str
    name: str
    email: str
    role: str
    is_online: bool
    last_active: Optional[datetime]

    @classmethod
    def for_identity(
        cls, identity: UserIdentity, *, is_online: bool, last_active: Optional[datetime]
    ) -> "PresenceEvent":
        return cls(
            user_id=identity.user_id,
            name=identity.name,
            email=identity.email,
            role=identity.role,
            is_online=is_online,
            last_active=last_active,
        )

    @property
    def identity(self) -> UserIdentity:
        return UserIdentity(self.user_id, self.name, self.email, self.role)

    def to_payload(self) -> dict[str, Any]:
        return {
            "userId": self.user_id,
            "name": self.name,
            "email": self.email,
            "isOnline": self.is_online,
            "lastActive": self.last_active.isoformat() if self.last_active else None,
            "role": self.role,
        }

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> "PresenceEvent":
        """
        Parse a payload received from the server.

        Raises:
            KeyError/ValueError if the payload is malformed.
        """
        raw_last_active = data.get("lastActive")
        last_active = None
        if raw_last_active:
            # fromisoformat() only accepts a trailing "Z" from 3.11 on.
            last_active = datetime.fromisoformat(str(raw_last_active).replace("Z", "+00:00"))
        return cls(
            user_id=str(data["userId"]),
            name=data.get("name", ""),
            email=data.get("email", ""),
            role=data.get("role", ""),
            is_online=bool(data["isOnline"]),
            last_active=last_active,
        )
