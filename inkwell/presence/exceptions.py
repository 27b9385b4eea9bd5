class PresenceError(Exception):
    """Base class for presence errors."""


class InvalidUser(PresenceError):
    """The user identifier does not resolve in the user directory."""

    def __init__(self, user_id):
        super().__init__(f"Unknown user: {user_id!r}")
        self.user_id = user_id


class PersistenceWriteFailure(PresenceError):
    """Writing is_online/last_active to the user directory failed."""

    def __init__(self, user_id, cause: Exception):
        super().__init__(f"Could not persist presence for user {user_id}: {cause}")
        self.user_id = user_id
        self.cause = cause


class TransportError(PresenceError):
    """The persistent connection could not be established or was lost."""
