from django.core.management.base import BaseCommand

from apps.catalog.service import CatalogService


class Command(BaseCommand):
    help = "Recompute cached PriceRule.final_price values that drifted from their inputs."

    def add_arguments(self, parser):
        parser.add_argument("--dry-run", action="store_true", help="Report drift without fixing it.")

    def handle(self, *args, **opts):
        report = CatalogService().recompute_price_rules(dry_run=opts["dry_run"])
        for row in report:
            self.stdout.write(
                f"{row['product']} [{row['period_months']}m] stored={row['stored']} expected={row['expected']}"
            )
        verb = "would fix" if opts["dry_run"] else "fixed"
        self.stdout.write(self.style.SUCCESS(f"{verb} {len(report)} price rule(s)"))
