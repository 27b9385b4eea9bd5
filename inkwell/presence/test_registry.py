from django.test import SimpleTestCase

from presence.events import UserIdentity
from presence.registry import PresenceRegistry


ALICE = UserIdentity(user_id="1", name="Alice", email="alice@example.com", role="customer")
BOB = UserIdentity(user_id="2", name="Bob", email="bob@example.com", role="admin")


class PresenceRegistryTest(SimpleTestCase):

    def setUp(self):
        self.registry = PresenceRegistry()

    def test_first_connection_is_reported(self):
        self.assertTrue(self.registry.add("conn-a", ALICE))
        self.assertFalse(self.registry.add("conn-b", ALICE))
        self.assertEqual(self.registry.connection_count("1"), 2)
        self.assertTrue(self.registry.is_online("1"))

    def test_readding_connection_is_noop(self):
        self.registry.add("conn-a", ALICE)
        self.assertFalse(self.registry.add("conn-a", ALICE))
        self.assertEqual(self.registry.connection_count("1"), 1)
        self.assertEqual(len(self.registry), 1)

    def test_remove_reports_last_connection(self):
        self.registry.add("conn-a", ALICE)
        self.registry.add("conn-b", ALICE)

        identity, was_last = self.registry.remove("conn-a")
        self.assertEqual(identity, ALICE)
        self.assertFalse(was_last)

        identity, was_last = self.registry.remove("conn-b")
        self.assertEqual(identity, ALICE)
        self.assertTrue(was_last)
        self.assertFalse(self.registry.is_online("1"))
        self.assertIsNone(self.registry.identity_for("1"))

    def test_remove_unknown_connection(self):
        self.assertEqual(self.registry.remove("missing"), (None, False))

    def test_users_are_tracked_independently(self):
        self.registry.add("conn-a", ALICE)
        self.registry.add("conn-b", BOB)
        self.assertEqual(sorted(self.registry.online_user_ids()), ["1", "2"])
        self.assertEqual(self.registry.user_for("conn-b"), "2")

        self.registry.remove("conn-a")
        self.assertEqual(self.registry.online_user_ids(), ["2"])

    def test_forced_offline_mark_is_consumed_once(self):
        self.registry.mark_forced_offline(1)
        self.assertTrue(self.registry.consume_forced_offline("1"))
        self.assertFalse(self.registry.consume_forced_offline("1"))

    def test_clear(self):
        self.registry.add("conn-a", ALICE)
        self.registry.mark_forced_offline("1")
        self.registry.clear()
        self.assertEqual(len(self.registry), 0)
        self.assertFalse(self.registry.consume_forced_offline("1"))
