from asgiref.sync import async_to_sync
from django.core.management.base import BaseCommand

from presence.directory import UserDirectory


class Command(BaseCommand):
    help = (
        "Mark every user offline. Live connections are held in process memory, "
        "so run this before starting a fresh server process."
    )

    def handle(self, *args, **options):
        updated = async_to_sync(UserDirectory().mark_all_offline)()
        self.stdout.write(self.style.SUCCESS(f"Marked {updated} users offline"))
