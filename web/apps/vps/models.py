import uuid
from django.db import models


class VPSInstanceModel(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING"
        PROVISIONING = "PROVISIONING"
        RUNNING = "RUNNING"
        STOPPED = "STOPPED"
        SUSPENDED = "SUSPENDED"
        TERMINATED = "TERMINATED"
        EXPIRED = "EXPIRED"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey("accounts.UserModel", on_delete=models.PROTECT, related_name="vps_instances")
    order = models.OneToOneField(
        "orders.OrderModel", null=True, blank=True, on_delete=models.SET_NULL, related_name="vps"
    )
    # Provider reference, null until provisioned
    contabo_instance_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    name = models.CharField(max_length=120, blank=True, default="")
    display_name = models.CharField(max_length=120, blank=True, default="")
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    # Set by optimistic local updates, cleared by sync
    status_pending_confirmation = models.BooleanField(default=False)
    version = models.PositiveIntegerField(default=0)

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    netmask_cidr = models.PositiveSmallIntegerField(null=True, blank=True)
    region = models.CharField(max_length=32, blank=True, default="")
    image_id = models.CharField(max_length=64, blank=True, default="")
    cpu_cores = models.PositiveIntegerField(null=True, blank=True)
    ram_mb = models.PositiveIntegerField(null=True, blank=True)
    disk_mb = models.PositiveIntegerField(null=True, blank=True)
    root_password_encrypted = models.TextField(blank=True, default="")

    expires_at = models.DateTimeField(null=True, blank=True)
    suspended_at = models.DateTimeField(null=True, blank=True)
    suspension_reason = models.CharField(max_length=255, blank=True, default="")
    last_synced_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "vps_instances"
        ordering = ["-created_at"]


class VpsActionModel(models.Model):
    """History of lifecycle actions requested on an instance."""

    class Status(models.TextChoices):
        PENDING = "pending"
        COMPLETED = "completed"
        FAILED = "failed"

    vps = models.ForeignKey(VPSInstanceModel, on_delete=models.CASCADE, related_name="actions")
    action = models.CharField(max_length=32)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.PENDING)
    requested_by = models.UUIDField(null=True, blank=True)
    error = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "vps_actions"
        ordering = ["-created_at", "-id"]


class SnapshotModel(models.Model):
    vps = models.ForeignKey(VPSInstanceModel, on_delete=models.CASCADE, related_name="snapshots")
    provider_snapshot_id = models.CharField(max_length=64)
    name = models.CharField(max_length=120)
    description = models.CharField(max_length=255, blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "snapshots"
        ordering = ["-created_at"]
