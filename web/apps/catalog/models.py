import uuid
from decimal import Decimal
from django.db import models


class RegionModel(models.Model):
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=100)
    price_adjustment = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)
    sort_order = models.IntegerField(default=0)

    class Meta:
        db_table = "regions"
        ordering = ["sort_order", "code"]


class OperatingSystemModel(models.Model):
    # Provider image id
    image_id = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=100)
    os_type = models.CharField(max_length=32, blank=True, default="")
    version = models.CharField(max_length=32, blank=True, default="")
    price_adjustment = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "operating_systems"
        ordering = ["name"]


class ProductModel(models.Model):
    class Type(models.TextChoices):
        STANDARD = "STANDARD"
        CUSTOM = "CUSTOM"

    class DiskType(models.TextChoices):
        NVME = "NVME"
        SSD = "SSD"
        HDD = "HDD"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=120)
    description = models.TextField(blank=True, default="")
    contabo_product_id = models.CharField(max_length=32, blank=True, default="")
    ram_mb = models.PositiveIntegerField(default=0)
    cpu_cores = models.PositiveIntegerField(default=0)
    disk_gb = models.PositiveIntegerField(default=0)
    disk_type = models.CharField(max_length=8, choices=DiskType.choices, default=DiskType.NVME)
    # Supported region codes
    regions = models.JSONField(default=list, blank=True)
    product_type = models.CharField(max_length=16, choices=Type.choices, default=Type.STANDARD)
    contact_email = models.EmailField(blank=True, default="")
    # Provider cost / customer price, monthly
    base_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    selling_price = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    currency = models.CharField(max_length=3, default="USD")
    sort_order = models.IntegerField(default=0)
    is_active = models.BooleanField(default=True)
    show_on_home = models.BooleanField(default=False)
    home_order = models.IntegerField(default=0)
    is_recommended = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "products"
        ordering = ["sort_order", "name"]

    @property
    def is_custom(self) -> bool:
        return self.product_type == self.Type.CUSTOM


class PriceRuleModel(models.Model):
    product = models.ForeignKey(ProductModel, on_delete=models.CASCADE, related_name="price_rules")
    period_months = models.PositiveIntegerField()
    discount_percent = models.DecimalField(max_digits=5, decimal_places=2, default=Decimal("0.00"))
    # Cached: selling_price × period_months × (1 − discount_percent/100)
    final_price = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "price_rules"
        ordering = ["period_months"]
        constraints = [
            models.UniqueConstraint(fields=["product", "period_months"], name="ux_price_rule_period"),
        ]
