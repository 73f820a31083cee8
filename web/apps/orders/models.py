import uuid
from decimal import Decimal
from django.db import models, transaction
from django.utils import timezone

from .domain import format_order_number


class OrderModel(models.Model):
    # UUID PK exposed in the API
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Internal incremental counter, feeds the human-readable order number
    internal_id = models.BigIntegerField(unique=True, editable=False, null=True)
    order_number = models.CharField(max_length=32, unique=True, editable=False)

    class Status(models.TextChoices):
        PENDING = "PENDING"
        PAID = "PAID"
        PROCESSING = "PROCESSING"
        PROVISIONING = "PROVISIONING"
        COMPLETED = "COMPLETED"
        CANCELLED = "CANCELLED"

    user = models.ForeignKey("accounts.UserModel", on_delete=models.PROTECT, related_name="orders")
    product = models.ForeignKey("catalog.ProductModel", on_delete=models.PROTECT, related_name="orders")
    status = models.CharField(max_length=32, choices=Status.choices, default=Status.PENDING)
    # Bumped on every status change; compare-and-swap guard
    version = models.PositiveIntegerField(default=0)

    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    base_price = models.DecimalField(max_digits=10, decimal_places=2)
    region_price_adj = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    os_price_adj = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")
    period_months = models.PositiveIntegerField(default=1)
    region = models.CharField(max_length=32)
    image_id = models.CharField(max_length=64, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    # SshKeyModel ids installed on the instance at provisioning time
    ssh_key_ids = models.JSONField(default=list, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-internal_id"]

    def save(self, *args, **kwargs):
        # Assign incremental `internal_id` and the order number only on creation
        if self.internal_id is None:
            with transaction.atomic():
                last = (
                    OrderModel.objects.select_for_update()
                    .order_by("-internal_id")
                    .first()
                )
                self.internal_id = 1 if not last or last.internal_id is None else last.internal_id + 1
                self.order_number = format_order_number(timezone.now(), self.internal_id)
                super().save(*args, **kwargs)
                return

        super().save(*args, **kwargs)

    @property
    def linked_vps(self):
        """The VPS instance linked to this order, or None."""
        try:
            return self.vps
        except models.ObjectDoesNotExist:
            return None


class IdempotencyKey(models.Model):
    """Stored checkout responses keyed by the client's ``Idempotency-Key``."""

    key = models.CharField(max_length=200, primary_key=True)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order = models.ForeignKey(OrderModel, null=True, blank=True, on_delete=models.SET_NULL, related_name="+")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "idempotency_keys"
