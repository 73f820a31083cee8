import uuid
from django.db import models


class TicketModel(models.Model):
    class Status(models.TextChoices):
        OPEN = "open"
        PENDING = "pending"
        RESOLVED = "resolved"
        CLOSED = "closed"

    class Priority(models.TextChoices):
        LOW = "low"
        MEDIUM = "medium"
        HIGH = "high"
        URGENT = "urgent"

    class Category(models.TextChoices):
        TECHNICAL = "technical"
        BILLING = "billing"
        GENERAL = "general"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("accounts.UserModel", on_delete=models.CASCADE, related_name="tickets")
    order = models.ForeignKey(
        "orders.OrderModel", null=True, blank=True, on_delete=models.SET_NULL, related_name="tickets"
    )
    vps = models.ForeignKey(
        "vps.VPSInstanceModel", null=True, blank=True, on_delete=models.SET_NULL, related_name="tickets"
    )
    subject = models.CharField(max_length=200)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.OPEN)
    priority = models.CharField(max_length=16, choices=Priority.choices, default=Priority.MEDIUM)
    category = models.CharField(max_length=16, choices=Category.choices, default=Category.GENERAL)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    resolved_at = models.DateTimeField(null=True, blank=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "support_tickets"
        ordering = ["-updated_at"]


class TicketMessageModel(models.Model):
    """Append-only conversation entry.

    Ordered by server time, ties broken by the auto-increment id.
    """

    id = models.BigAutoField(primary_key=True)
    ticket = models.ForeignKey(TicketModel, on_delete=models.CASCADE, related_name="messages")
    author = models.ForeignKey(
        "accounts.UserModel", null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    is_admin = models.BooleanField(default=False)
    message = models.TextField()
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "ticket_messages"
        ordering = ["created_at", "id"]
