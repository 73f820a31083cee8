from django.core.management.base import BaseCommand

from apps.billing.service import BillingService


class Command(BaseCommand):
    help = "Create paid invoices for paid orders that have none."

    def handle(self, *args, **options):
        created = BillingService().generate_missing_invoices()
        self.stdout.write(f"{created} invoice(s) created")
