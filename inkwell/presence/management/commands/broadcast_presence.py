import time

from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand, CommandError

from presence.broadcast import ChannelLayerBroadcaster
from presence.config import PresenceConfig
from presence.directory import UserDirectory


class Command(BaseCommand):
    help = "Periodically broadcast an online_users_update snapshot to every presence socket."

    def add_arguments(self, parser):
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Seconds between snapshots (default: PRESENCE_SNAPSHOT_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--once",
            action="store_true",
            help="Broadcast a single snapshot and exit.",
        )

    def handle(self, *args, **options):
        cfg = PresenceConfig()
        interval = options["interval"]
        if interval is None:
            interval = cfg.snapshot_interval_seconds
        if interval <= 0:
            raise CommandError("--interval must be positive")

        directory = UserDirectory()
        broadcaster = ChannelLayerBroadcaster(group_name=cfg.group_name)

        if not options["once"]:
            self.stdout.write(
                self.style.SUCCESS(
                    f"Presence snapshot broadcaster started: group={cfg.group_name} interval={interval}s"
                )
            )

        while True:
            users = async_to_sync(directory.list_events)()
            sent = async_to_sync(broadcaster.publish_snapshot)(users)
            online = sum(1 for user in users if user.is_online)

            if sent:
                self.stdout.write(f"Broadcast snapshot: {len(users)} users, {online} online")
            else:
                self.stderr.write("Snapshot broadcast failed")

            if options["once"]:
                return
            time.sleep(interval)
