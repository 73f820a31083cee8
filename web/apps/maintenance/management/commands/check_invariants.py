from django.core.management.base import BaseCommand, CommandError

from apps.maintenance.invariants import check_invariants


class Command(BaseCommand):
    help = "Re-validate entity invariants; exits non-zero when any is violated."

    def handle(self, *args, **opts):
        violations = check_invariants()
        for line in violations:
            self.stdout.write(line)
        if violations:
            raise CommandError(f"{len(violations)} invariant violation(s)")
        self.stdout.write(self.style.SUCCESS("all invariants hold"))
