"""
Presence settings.

Values come from Django settings (`PRESENCE_*`), with the defaults below.
The config is a frozen dataclass so it can be built anywhere cheaply.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings


@dataclass(frozen=True)
class PresenceConfig:
    group_name: str = getattr(settings, "PRESENCE_GROUP_NAME", "presence")
    heartbeat_interval_seconds: int = int(
        getattr(settings, "PRESENCE_HEARTBEAT_INTERVAL_SECONDS", 30)
    )
    snapshot_interval_seconds: int = int(
        getattr(settings, "PRESENCE_SNAPSHOT_INTERVAL_SECONDS", 60)
    )
    reconnect_base_delay_seconds: float = float(
        getattr(settings, "PRESENCE_RECONNECT_BASE_DELAY_SECONDS", 1.0)
    )
    reconnect_max_attempts: int = int(
        getattr(settings, "PRESENCE_RECONNECT_MAX_ATTEMPTS", 5)
    )
