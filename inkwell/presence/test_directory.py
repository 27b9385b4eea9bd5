from datetime import timedelta
from unittest import mock

from channels.db import database_sync_to_async
from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TransactionTestCase
from django.utils import timezone

from presence.directory import UserDirectory
from presence.exceptions import PersistenceWriteFailure


User = get_user_model()


class UserDirectoryTest(TransactionTestCase):
    """Directory reads and presence writes against the real user table."""

    def setUp(self):
        self.directory = UserDirectory()
        self.alice = User.objects.create_user(
            email="alice@example.com", password="secret123", name="Alice"
        )
        self.bob = User.objects.create_user(
            email="bob@example.com", password="secret123", name="Bob", role=User.ROLE_ADMIN
        )

    async def test_get_identity(self):
        identity = await self.directory.get_identity(str(self.alice.pk))
        self.assertEqual(identity.user_id, str(self.alice.pk))
        self.assertEqual(identity.name, "Alice")
        self.assertEqual(identity.role, "customer")

    async def test_get_identity_unknown_or_malformed(self):
        self.assertIsNone(await self.directory.get_identity("999999"))
        self.assertIsNone(await self.directory.get_identity("not-a-number"))
        self.assertIsNone(await self.directory.get_identity(None))

    async def test_set_presence_writes_both_fields(self):
        now = timezone.now()
        event = await self.directory.set_presence(self.alice.pk, last_active=now, is_online=True)

        self.assertTrue(event.is_online)
        self.assertEqual(event.last_active, now)

        user = await database_sync_to_async(User.objects.get)(pk=self.alice.pk)
        self.assertTrue(user.is_online)

    async def test_last_active_never_moves_backwards(self):
        now = timezone.now()
        await self.directory.set_presence(self.alice.pk, last_active=now, is_online=True)
        event = await self.directory.set_presence(
            self.alice.pk, last_active=now - timedelta(minutes=5)
        )

        self.assertEqual(event.last_active, now)
        self.assertTrue(event.is_online)

    async def test_set_presence_for_missing_user(self):
        self.assertIsNone(await self.directory.set_presence("999999", last_active=timezone.now()))

    async def test_database_error_is_wrapped(self):
        with mock.patch.object(User.objects, "filter", side_effect=DatabaseError("database is locked")):
            with self.assertRaises(PersistenceWriteFailure) as ctx:
                await self.directory.set_presence(self.alice.pk, last_active=timezone.now())
        self.assertEqual(ctx.exception.user_id, self.alice.pk)

    async def test_list_events_orders_by_last_active(self):
        now = timezone.now()
        await self.directory.set_presence(self.bob.pk, last_active=now - timedelta(hours=1))
        await self.directory.set_presence(self.alice.pk, last_active=now)
        never_seen = await database_sync_to_async(User.objects.create_user)(
            email="carol@example.com", password="secret123", name="Carol"
        )

        events = await self.directory.list_events()
        self.assertEqual(
            [event.user_id for event in events],
            [str(self.alice.pk), str(self.bob.pk), str(never_seen.pk)],
        )

        admins = await self.directory.list_events(role=User.ROLE_ADMIN)
        self.assertEqual([event.user_id for event in admins], [str(self.bob.pk)])

    async def test_mark_all_offline(self):
        now = timezone.now()
        await self.directory.set_presence(self.alice.pk, last_active=now, is_online=True)
        await self.directory.set_presence(self.bob.pk, last_active=now, is_online=True)

        self.assertEqual(await self.directory.mark_all_offline(), 2)
        online = await database_sync_to_async(User.objects.filter(is_online=True).count)()
        self.assertEqual(online, 0)
