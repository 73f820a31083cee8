from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from apps.accounts.models import UserModel


class Command(BaseCommand):
    help = "Create an admin user, or promote an existing user to admin and reset the password."

    def add_arguments(self, parser):
        parser.add_argument("--email", required=True)
        parser.add_argument("--password", required=True)
        parser.add_argument("--first-name", default="Admin")
        parser.add_argument("--last-name", default="")

    @transaction.atomic
    def handle(self, *args, **opts):
        email = opts["email"].strip().lower()
        if len(opts["password"]) < 8:
            raise CommandError("password must be at least 8 characters")

        user = UserModel.objects.select_for_update().filter(email=email).first()
        created = user is None
        if created:
            user = UserModel(email=email, first_name=opts["first_name"], last_name=opts["last_name"])
        user.role = UserModel.Role.ADMIN
        user.is_active = True
        user.set_password(opts["password"])
        user.save()

        verb = "created" if created else "promoted"
        self.stdout.write(self.style.SUCCESS(f"admin {verb}: {user.email} ({user.id})"))
