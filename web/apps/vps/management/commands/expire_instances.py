from django.core.management.base import BaseCommand

from apps.vps.providers import get_vps_service


class Command(BaseCommand):
    help = "Mark running or stopped VPS instances past their expiry date as EXPIRED."

    def handle(self, *args, **options):
        count = get_vps_service().expire_due_instances()
        self.stdout.write(f"{count} instance(s) expired")
