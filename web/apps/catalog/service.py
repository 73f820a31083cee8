"""Catalog service: quotes, pricing edits and provider catalog import.

``PriceRule.final_price`` is a cached value. Every write that changes one
of its inputs (``selling_price``, a rule's period or discount) recomputes
the product's rules in the same database transaction;
``recompute_price_rules`` is the batch safety net for rows written by
other paths (maintenance scripts, direct SQL).
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from apps.common.errors import ConfigurationError, NotFound, NotPurchasable
from .domain import Quote, compute_quote, final_price_for, price_drift, TWO_PLACES
from .models import OperatingSystemModel, PriceRuleModel, ProductModel, RegionModel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Selection:
    """A priced, validated purchase selection."""

    product: ProductModel
    region: RegionModel
    os: OperatingSystemModel | None
    quote: Quote


class CatalogService:
    def __init__(self, provisioning=None, notifier=None):
        self.provisioning = provisioning
        self.notifier = notifier

    # ---- reads ----
    def get_product(self, product_id, include_inactive: bool = False) -> ProductModel:
        qs = ProductModel.objects.prefetch_related("price_rules")
        if not include_inactive:
            qs = qs.filter(is_active=True)
        try:
            return qs.get(id=product_id)
        except ProductModel.DoesNotExist:
            raise NotFound("product not found", product_id=product_id)

    def list_products(self, include_inactive: bool = False, home_only: bool = False):
        qs = ProductModel.objects.prefetch_related("price_rules")
        if not include_inactive:
            qs = qs.filter(is_active=True)
        if home_only:
            qs = qs.filter(show_on_home=True).order_by("home_order", "sort_order")
        return qs

    # ---- pricing ----
    def select(self, product_id, period_months: int, region_code: str, image_id: str | None = None) -> Selection:
        """Validate a product/period/region/OS combination and price it.

        Raises:
            NotFound: Unknown or inactive product.
            NotPurchasable: CUSTOM product; carries ``contact_email``.
            ConfigurationError: Period not offered, region not supported by
                the product or inactive, unknown or inactive OS image.
        """
        product = self.get_product(product_id)
        if product.is_custom:
            raise NotPurchasable(
                "custom products are quoted manually",
                product_id=product.id,
                contact_email=product.contact_email,
            )
        if period_months not in settings.BILLING_PERIODS:
            raise ConfigurationError(
                "billing period not offered", code="INVALID_PERIOD", product_id=product.id, period_months=period_months
            )
        if region_code not in (product.regions or []):
            raise ConfigurationError(
                "region not available for product", code="REGION_NOT_AVAILABLE", product_id=product.id, region=region_code
            )
        region = RegionModel.objects.filter(code=region_code, is_active=True).first()
        if region is None:
            raise ConfigurationError("region inactive or unknown", code="REGION_NOT_AVAILABLE", region=region_code)

        os = None
        if image_id:
            os = OperatingSystemModel.objects.filter(image_id=image_id, is_active=True).first()
            if os is None:
                raise ConfigurationError("OS image inactive or unknown", code="IMAGE_NOT_AVAILABLE", image_id=image_id)

        rule = next(
            (r for r in product.price_rules.all() if r.period_months == period_months and r.is_active),
            None,
        )
        quote = compute_quote(product, period_months, region=region, os=os, price_rule=rule)
        return Selection(product=product, region=region, os=os, quote=quote)

    def quote(self, product_id, period_months: int, region_code: str, image_id: str | None = None) -> Quote:
        return self.select(product_id, period_months, region_code, image_id).quote

    # ---- admin writes ----
    @transaction.atomic
    def save_product(self, data: dict, product_id=None) -> ProductModel:
        """Create a product, or apply ``data`` to an existing one.

        Enforces the product invariants: CUSTOM products carry a contact
        email, and at most ``HOME_PRODUCTS_LIMIT`` products are shown on
        the home page (checked under a row lock on the shown products).
        """
        if product_id is None:
            product = ProductModel()
            old_price = None
        else:
            try:
                product = ProductModel.objects.select_for_update().get(id=product_id)
            except ProductModel.DoesNotExist:
                raise NotFound("product not found", product_id=product_id)
            old_price = product.selling_price

        for field, value in data.items():
            if field == "contact_email":
                value = value or ""
            setattr(product, field, value)

        if product.product_type == ProductModel.Type.CUSTOM and not product.contact_email:
            raise ConfigurationError("custom products need a contact email", code="CONTACT_EMAIL_REQUIRED")

        if product.show_on_home:
            shown = list(
                ProductModel.objects.select_for_update().filter(show_on_home=True).exclude(id=product.id).values_list("id", flat=True)
            )
            if len(shown) >= settings.HOME_PRODUCTS_LIMIT:
                raise ConfigurationError(
                    "home page slots are full", code="HOME_SLOTS_FULL", limit=settings.HOME_PRODUCTS_LIMIT
                )

        product.save()
        if old_price is not None and Decimal(old_price) != Decimal(product.selling_price):
            self._recompute_rules(product)
        logger.info("product saved", extra={"product_id": str(product.id), "is_new": product_id is None})
        return product

    @transaction.atomic
    def update_pricing(self, product_id, selling_price=None, rules=()) -> ProductModel:
        """Change the selling price and/or upsert rules; recompute every rule.

        Args:
            product_id: Product to edit.
            selling_price: New monthly selling price, or None to keep it.
            rules: Iterable of ``(period_months, discount_percent)``.
        """
        try:
            product = ProductModel.objects.select_for_update().get(id=product_id)
        except ProductModel.DoesNotExist:
            raise NotFound("product not found", product_id=product_id)

        if selling_price is not None:
            product.selling_price = Decimal(selling_price)
            product.save(update_fields=["selling_price", "updated_at"])

        for period_months, discount_percent in rules:
            PriceRuleModel.objects.update_or_create(
                product=product,
                period_months=period_months,
                defaults={"discount_percent": Decimal(discount_percent), "is_active": True},
            )
        self._recompute_rules(product)
        return ProductModel.objects.prefetch_related("price_rules").get(id=product.id)

    def _recompute_rules(self, product: ProductModel) -> int:
        changed = 0
        for rule in PriceRuleModel.objects.select_for_update().filter(product=product):
            expected = final_price_for(product.selling_price, rule.period_months, rule.discount_percent)
            if rule.final_price != expected:
                rule.final_price = expected
                rule.save(update_fields=["final_price"])
                changed += 1
        return changed

    @transaction.atomic
    def recompute_price_rules(self, dry_run: bool = False) -> list[dict]:
        """Find rules whose cached final price drifted by more than a cent.

        Returns one report entry per drifted rule; fixes them unless
        ``dry_run``.
        """
        report = []
        for rule in PriceRuleModel.objects.select_for_update().select_related("product"):
            drift = price_drift(rule, rule.product.selling_price)
            if drift <= TWO_PLACES:
                continue
            expected = final_price_for(rule.product.selling_price, rule.period_months, rule.discount_percent)
            report.append(
                {
                    "rule_id": rule.id,
                    "product": rule.product.name,
                    "period_months": rule.period_months,
                    "stored": rule.final_price,
                    "expected": expected,
                }
            )
            if not dry_run:
                rule.final_price = expected
                rule.save(update_fields=["final_price"])
        if report:
            logger.warning("price rules drifted", extra={"count": len(report), "dry_run": dry_run})
        return report

    def save_region(self, code: str, **fields) -> RegionModel:
        region, _ = RegionModel.objects.update_or_create(code=code, defaults=fields)
        return region

    def save_operating_system(self, image_id: str, **fields) -> OperatingSystemModel:
        os, _ = OperatingSystemModel.objects.update_or_create(image_id=image_id, defaults=fields)
        return os

    # ---- quote flow ----
    def request_custom_quote(self, product_id, customer, message: str) -> bool:
        """Email a customer's quote request to the product's contact address."""
        product = self.get_product(product_id)
        if not product.is_custom:
            raise ConfigurationError("product is directly purchasable", code="NOT_CUSTOM_PRODUCT", product_id=product.id)
        return self.notifier.send(
            "custom_quote_request",
            product.contact_email,
            {
                "product_name": product.name,
                "customer_name": customer.full_name,
                "customer_email": customer.email,
                "message": message,
            },
        )

    # ---- provider catalog ----
    @transaction.atomic
    def import_provider_catalog(self) -> dict:
        """Upsert regions, OS images and product specs from the provider.

        Local price adjustments and selling prices are kept; products the
        provider introduces are created inactive so an admin prices them
        before they go on sale.
        """
        counts = {"regions": 0, "images": 0, "products_created": 0, "products_updated": 0}

        for r in self.provisioning.list_regions():
            RegionModel.objects.update_or_create(code=r.code, defaults={"name": r.name})
            counts["regions"] += 1

        for img in self.provisioning.list_images():
            OperatingSystemModel.objects.update_or_create(
                image_id=img.image_id,
                defaults={"name": img.name, "os_type": img.os_type, "version": img.version},
            )
            counts["images"] += 1

        for p in self.provisioning.list_products():
            specs = {
                "ram_mb": p.ram_mb,
                "cpu_cores": p.cpu_cores,
                "disk_gb": p.disk_gb,
                "disk_type": p.disk_type if p.disk_type in ProductModel.DiskType.values else ProductModel.DiskType.NVME,
                "base_price": p.monthly_cost,
            }
            if p.regions:
                specs["regions"] = p.regions
            updated = ProductModel.objects.filter(contabo_product_id=p.product_id).update(**specs)
            if updated:
                counts["products_updated"] += updated
            else:
                ProductModel.objects.create(
                    name=p.name,
                    contabo_product_id=p.product_id,
                    is_active=False,
                    selling_price=p.monthly_cost,
                    **specs,
                )
                counts["products_created"] += 1

        logger.info("provider catalog imported", extra=counts)
        return counts
