"""
Presence access to the user directory (accounts.User).

This is the only place that writes `is_online` / `last_active`. Every method is
wrapped with `database_sync_to_async` so the presence service can await it from
the event loop.
"""

import logging
from datetime import datetime
from typing import Optional

from channels.db import database_sync_to_async
from django.contrib.auth import get_user_model
from django.db import DatabaseError, models
from django.db.models import F, Value
from django.db.models.functions import Coalesce, Greatest

from presence.events import PresenceEvent, UserIdentity
from presence.exceptions import PersistenceWriteFailure

logger = logging.getLogger(__name__)

PRESENCE_FIELDS = ("id", "name", "email", "role", "is_online", "last_active")


def _parse_pk(user_id) -> Optional[int]:
    try:
        return int(user_id)
    except (TypeError, ValueError):
        return None


def identity_from_user(user) -> UserIdentity:
    return UserIdentity(
        user_id=str(user.pk),
        name=user.name,
        email=user.email,
        role=user.role,
    )


def event_from_user(user) -> PresenceEvent:
    return PresenceEvent.for_identity(
        identity_from_user(user),
        is_online=user.is_online,
        last_active=user.last_active,
    )


class UserDirectory:
    """Reads and presence writes against the user table."""

    def __init__(self):
        self.model = get_user_model()

    @database_sync_to_async
    def get_identity(self, user_id) -> Optional[UserIdentity]:
        pk = _parse_pk(user_id)
        if pk is None:
            return None
        user = self.model.objects.filter(pk=pk).only(*PRESENCE_FIELDS).first()
        return identity_from_user(user) if user else None

    @database_sync_to_async
    def get_event(self, user_id) -> Optional[PresenceEvent]:
        pk = _parse_pk(user_id)
        if pk is None:
            return None
        user = self.model.objects.filter(pk=pk).only(*PRESENCE_FIELDS).first()
        return event_from_user(user) if user else None

    @database_sync_to_async
    def set_presence(
        self, user_id, *, last_active: datetime, is_online: Optional[bool] = None
    ) -> Optional[PresenceEvent]:
        """
        Persist `last_active` (and `is_online` when given).

        last_active never moves backwards: the column is set to the greater of
        its current value and `last_active`.

        Returns:
            The persisted state, or None if the user no longer exists.

        Raises:
            PersistenceWriteFailure: the database rejected the write.
        """
        pk = _parse_pk(user_id)
        if pk is None:
            return None

        stamp = Value(last_active, output_field=models.DateTimeField())
        updates = {"last_active": Greatest(Coalesce(F("last_active"), stamp), stamp)}
        if is_online is not None:
            updates["is_online"] = is_online

        try:
            updated = self.model.objects.filter(pk=pk).update(**updates)
            if not updated:
                return None
            user = self.model.objects.only(*PRESENCE_FIELDS).get(pk=pk)
        except DatabaseError as e:
            raise PersistenceWriteFailure(user_id, e) from e
        return event_from_user(user)

    @database_sync_to_async
    def list_events(self, role: Optional[str] = None) -> list[PresenceEvent]:
        users = self.model.objects.only(*PRESENCE_FIELDS).order_by(
            F("last_active").desc(nulls_last=True), "id"
        )
        if role:
            users = users.filter(role=role)
        return [event_from_user(user) for user in users]

    @database_sync_to_async
    def mark_all_offline(self) -> int:
        return self.model.objects.filter(is_online=True).update(is_online=False)
