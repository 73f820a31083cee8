from django.core.management.base import BaseCommand

from apps.accounts.models import UserModel


class Command(BaseCommand):
    help = "List users, optionally filtered by role."

    def add_arguments(self, parser):
        parser.add_argument("--role", choices=[r.value for r in UserModel.Role])

    def handle(self, *args, **opts):
        qs = UserModel.objects.order_by("created_at")
        if opts.get("role"):
            qs = qs.filter(role=opts["role"])

        count = 0
        for u in qs:
            state = "active" if u.is_active else "inactive"
            self.stdout.write(f"{u.id}  {u.email:<40} {u.role:<9} {state:<8} {u.created_at:%Y-%m-%d}")
            count += 1
        self.stdout.write(f"{count} user(s)")
