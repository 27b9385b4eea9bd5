"""
Tests for the presence state machine.

The directory and broadcaster are in-memory fakes so every transition can be
checked without a database or channel layer.
"""

import asyncio
from datetime import datetime, timedelta, timezone as dt_timezone

from django.db import DatabaseError
from django.test import SimpleTestCase

from presence.events import PresenceEvent, UserIdentity
from presence.exceptions import InvalidUser, PersistenceWriteFailure
from presence.registry import PresenceRegistry
from presence.service import PresenceService


ALICE = UserIdentity(user_id="1", name="Alice", email="alice@example.com", role="customer")
BOB = UserIdentity(user_id="2", name="Bob", email="bob@example.com", role="admin")


class FakeDirectory:
    def __init__(self, *identities):
        self.identities = {identity.user_id: identity for identity in identities}
        self.state = {}
        self.writes = []
        self.fail_writes = False

    async def get_identity(self, user_id):
        # Yield like a real database round trip would.
        await asyncio.sleep(0)
        return self.identities.get(str(user_id))

    async def get_event(self, user_id):
        identity = await self.get_identity(user_id)
        if identity is None:
            return None
        is_online, last_active = self.state.get(identity.user_id, (False, None))
        return PresenceEvent.for_identity(identity, is_online=is_online, last_active=last_active)

    async def set_presence(self, user_id, *, last_active, is_online=None):
        await asyncio.sleep(0)
        if self.fail_writes:
            raise PersistenceWriteFailure(user_id, DatabaseError("database is locked"))
        self.writes.append((user_id, is_online, last_active))
        current_online, current_last = self.state.get(user_id, (False, None))
        if is_online is None:
            is_online = current_online
        if current_last is not None and current_last > last_active:
            last_active = current_last
        self.state[user_id] = (is_online, last_active)
        return PresenceEvent.for_identity(
            self.identities[user_id], is_online=is_online, last_active=last_active
        )

    async def list_events(self, role=None):
        events = [await self.get_event(user_id) for user_id in self.identities]
        return [event for event in events if role is None or event.role == role]

    def is_online(self, user_id):
        return self.state.get(user_id, (False, None))[0]


class FakeBroadcaster:
    def __init__(self):
        self.published = []

    async def publish(self, event):
        self.published.append(event)
        return True


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 10, 19, 9, 0, tzinfo=dt_timezone.utc)

    def __call__(self):
        self.now += timedelta(seconds=1)
        return self.now


class PresenceServiceTest(SimpleTestCase):

    def setUp(self):
        self.registry = PresenceRegistry()
        self.directory = FakeDirectory(ALICE, BOB)
        self.broadcaster = FakeBroadcaster()
        self.clock = FakeClock()
        self.service = PresenceService(
            registry=self.registry,
            directory=self.directory,
            broadcaster=self.broadcaster,
            clock=self.clock,
        )

    async def test_first_connection_goes_online(self):
        event = await self.service.register_connection("conn-a", "1")

        self.assertTrue(event.is_online)
        self.assertEqual(event.user_id, "1")
        self.assertEqual(self.broadcaster.published, [event])
        self.assertTrue(self.directory.is_online("1"))

    async def test_second_connection_does_not_broadcast(self):
        await self.service.register_connection("conn-a", "1")
        event = await self.service.register_connection("conn-b", "1")

        self.assertIsNone(event)
        self.assertEqual(len(self.broadcaster.published), 1)
        self.assertEqual(self.registry.connection_count("1"), 2)
        # The extra connection still refreshes last_active.
        self.assertEqual(self.directory.writes[-1][1], None)

    async def test_unknown_user_is_rejected(self):
        with self.assertRaises(InvalidUser):
            await self.service.register_connection("conn-a", "999")

        self.assertEqual(len(self.registry), 0)
        self.assertEqual(self.broadcaster.published, [])

    async def test_last_disconnect_goes_offline(self):
        await self.service.register_connection("conn-a", "1")
        await self.service.register_connection("conn-b", "1")

        self.assertIsNone(await self.service.deregister_connection("conn-a"))
        self.assertTrue(self.directory.is_online("1"))

        event = await self.service.deregister_connection("conn-b")
        self.assertFalse(event.is_online)
        self.assertFalse(self.directory.is_online("1"))
        self.assertEqual([e.is_online for e in self.broadcaster.published], [True, False])

    async def test_deregister_unknown_connection(self):
        self.assertIsNone(await self.service.deregister_connection("missing"))
        self.assertEqual(self.directory.writes, [])

    async def test_heartbeat_updates_last_active_only(self):
        online = await self.service.register_connection("conn-a", "1")
        await self.service.heartbeat("conn-a")

        is_online, last_active = self.directory.state["1"]
        self.assertTrue(is_online)
        self.assertGreater(last_active, online.last_active)
        self.assertEqual(len(self.broadcaster.published), 1)

    async def test_heartbeat_for_unknown_connection_is_ignored(self):
        await self.service.heartbeat("missing")
        self.assertEqual(self.directory.writes, [])
        self.assertEqual(self.broadcaster.published, [])

    async def test_concurrent_connects_broadcast_once(self):
        results = await asyncio.gather(
            self.service.register_connection("conn-a", "1"),
            self.service.register_connection("conn-b", "1"),
            self.service.register_connection("conn-c", "1"),
        )

        self.assertEqual(sum(1 for result in results if result is not None), 1)
        self.assertEqual(len(self.broadcaster.published), 1)
        self.assertEqual(self.registry.connection_count("1"), 3)

    async def test_users_transition_independently(self):
        await self.service.register_connection("conn-a", "1")
        await self.service.register_connection("conn-b", "2")
        await self.service.deregister_connection("conn-a")

        self.assertFalse(self.directory.is_online("1"))
        self.assertTrue(self.directory.is_online("2"))
        self.assertEqual(
            [(e.user_id, e.is_online) for e in self.broadcaster.published],
            [("1", True), ("2", True), ("1", False)],
        )

    async def test_force_offline_with_live_connections(self):
        await self.service.register_connection("conn-a", "1")
        await self.service.register_connection("conn-b", "1")

        event = await self.service.force_offline("1")
        self.assertFalse(event.is_online)
        self.assertFalse(self.directory.is_online("1"))

        # The sockets closing afterwards must not announce a second offline.
        await self.service.deregister_connection("conn-a")
        await self.service.deregister_connection("conn-b")
        self.assertEqual([e.is_online for e in self.broadcaster.published], [True, False])

    async def test_reconnect_after_logout_goes_online_again(self):
        await self.service.register_connection("conn-a", "1")
        await self.service.force_offline("1")

        event = await self.service.register_connection("conn-b", "1")
        self.assertIsNotNone(event)
        self.assertTrue(event.is_online)
        self.assertTrue(self.directory.is_online("1"))

        # Both sockets are now live again; closing them follows normal counting.
        await self.service.deregister_connection("conn-a")
        event = await self.service.deregister_connection("conn-b")
        self.assertFalse(event.is_online)

    async def test_force_offline_without_connections_broadcasts(self):
        first = await self.service.force_offline("2")
        second = await self.service.force_offline("2")

        self.assertFalse(first.is_online)
        self.assertFalse(second.is_online)
        self.assertEqual(len(self.broadcaster.published), 2)
        # No socket was live, so a later connect is a plain first connection.
        self.assertFalse(self.registry.consume_forced_offline("2"))

    async def test_force_offline_unknown_user(self):
        with self.assertRaises(InvalidUser):
            await self.service.force_offline("999")
        self.assertEqual(self.broadcaster.published, [])

    async def test_write_failure_keeps_registry_and_broadcasts(self):
        self.directory.fail_writes = True

        with self.assertLogs("presence.service", level="ERROR"):
            event = await self.service.register_connection("conn-a", "1")

        self.assertTrue(event.is_online)
        self.assertEqual(event.name, "Alice")
        self.assertTrue(self.registry.is_online("1"))
        self.assertEqual(self.broadcaster.published, [event])

    async def test_write_failure_on_heartbeat_is_swallowed(self):
        await self.service.register_connection("conn-a", "1")
        self.directory.fail_writes = True

        with self.assertLogs("presence.service", level="ERROR"):
            await self.service.heartbeat("conn-a")
        self.assertEqual(len(self.broadcaster.published), 1)

    async def test_touch_refreshes_last_active(self):
        event = await self.service.touch("2")
        self.assertEqual(event.user_id, "2")
        self.assertFalse(event.is_online)
        self.assertIsNotNone(event.last_active)
        self.assertEqual(self.broadcaster.published, [])

    async def test_touch_unknown_user(self):
        with self.assertRaises(InvalidUser):
            await self.service.touch("999")

    async def test_snapshot_lists_every_user(self):
        await self.service.register_connection("conn-a", "1")
        snapshot = await self.service.snapshot()

        by_id = {event.user_id: event for event in snapshot}
        self.assertEqual(set(by_id), {"1", "2"})
        self.assertTrue(by_id["1"].is_online)
        self.assertFalse(by_id["2"].is_online)
