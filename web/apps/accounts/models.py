import uuid
from django.contrib.auth.hashers import make_password, check_password
from django.db import models


class UserModel(models.Model):
    """Owner of orders, VPS instances and tickets.

    Sign-up and login live at the edge; the core keeps the profile and the
    role it trusts in ``X-User-Role``.
    """

    class Role(models.TextChoices):
        CUSTOMER = "CUSTOMER"
        ADMIN = "ADMIN"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    first_name = models.CharField(max_length=100, blank=True, default="")
    last_name = models.CharField(max_length=100, blank=True, default="")
    password = models.CharField(max_length=128, default="!")
    role = models.CharField(max_length=16, choices=Role.choices, default=Role.CUSTOMER)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "users"
        ordering = ["-created_at"]

    def __str__(self):
        return self.email

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip() or self.email

    def set_password(self, raw: str):
        self.password = make_password(raw)

    def check_password(self, raw: str) -> bool:
        return check_password(raw, self.password)


class SshKeyModel(models.Model):
    """OpenSSH public key a customer can have installed on new instances."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(UserModel, on_delete=models.CASCADE, related_name="ssh_keys")
    name = models.CharField(max_length=100)
    public_key = models.TextField()
    # OpenSSH ``SHA256:`` form
    fingerprint = models.CharField(max_length=64)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "ssh_keys"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["user", "fingerprint"], name="ux_ssh_key_fingerprint"),
            models.UniqueConstraint(fields=["user", "name"], name="ux_ssh_key_name"),
        ]

    def __str__(self):
        return f"{self.name} ({self.fingerprint})"
