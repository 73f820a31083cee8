from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.billing.models import InvoiceModel, TransactionModel
from apps.maintenance.invariants import check_invariants
from apps.orders.models import IdempotencyKey, OrderModel
from apps.vps.models import SnapshotModel, VPSInstanceModel

# Children before parents
PURGE_ORDER = (
    ("snapshots", SnapshotModel),
    ("transactions", TransactionModel),
    ("invoices", InvoiceModel),
    ("vps instances", VPSInstanceModel),
    ("idempotency keys", IdempotencyKey),
    ("orders", OrderModel),
)


class Command(BaseCommand):
    help = (
        "Delete every order together with its VPS instances, invoices, transactions and snapshots. "
        "Operator-only: bypasses the order and VPS state machines."
    )

    def add_arguments(self, parser):
        parser.add_argument("--yes", action="store_true", help="Confirm the deletion.")

    def handle(self, *args, **opts):
        if not opts["yes"]:
            raise CommandError("refusing to purge without --yes")

        with transaction.atomic():
            for label, model in PURGE_ORDER:
                _, per_model = model.objects.all().delete()
                self.stdout.write(f"deleted {per_model.get(model._meta.label, 0)} {label}")

        violations = check_invariants()
        for line in violations:
            self.stdout.write(self.style.WARNING(line))
        self.stdout.write(self.style.SUCCESS(f"purge done, {len(violations)} invariant violation(s)"))
