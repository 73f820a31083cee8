from decimal import Decimal

import pytest
from django.core import mail
from django.core.management import call_command

from apps.catalog.models import OperatingSystemModel, PriceRuleModel, ProductModel, RegionModel
from apps.catalog.providers import get_catalog_service
from apps.common.errors import ConfigurationError, NotFound, NotPurchasable

pytestmark = pytest.mark.django_db


@pytest.fixture
def catalog():
    return get_catalog_service()


def test_select_prices_with_region_and_os(catalog, product, region, os_image):
    region.price_adjustment = Decimal("1.00")
    region.save()
    os_image.price_adjustment = Decimal("2.00")
    os_image.save()

    selection = catalog.select(product.id, 1, "EU", "ubuntu-22.04")

    assert selection.quote.monthly_price == Decimal("13.00")
    assert selection.quote.total_amount == Decimal("13.00")
    assert selection.os == os_image


def test_select_rejects_inactive_product(catalog, product):
    product.is_active = False
    product.save()
    with pytest.raises(NotFound):
        catalog.select(product.id, 1, "EU")


def test_select_rejects_custom_product(catalog, custom_product):
    with pytest.raises(NotPurchasable):
        catalog.select(custom_product.id, 1, "EU")


@pytest.mark.parametrize(
    "period,region_code,image,code",
    [
        (5, "EU", None, "INVALID_PERIOD"),
        (1, "US-central", None, "REGION_NOT_AVAILABLE"),
        (1, "EU", "plan9", "IMAGE_NOT_AVAILABLE"),
    ],
)
def test_select_rejects_invalid_combinations(catalog, product, os_image, period, region_code, image, code):
    with pytest.raises(ConfigurationError) as e:
        catalog.select(product.id, period, region_code, image)
    assert str(e.value) == code


def test_select_rejects_inactive_region(catalog, product, region):
    region.is_active = False
    region.save()
    with pytest.raises(ConfigurationError) as e:
        catalog.select(product.id, 1, "EU")
    assert str(e.value) == "REGION_NOT_AVAILABLE"


def test_period_without_rule_has_no_discount(catalog, product):
    quote = catalog.quote(product.id, 3, "EU")
    assert quote.discount_percent == Decimal("0.00")
    assert quote.total_amount == Decimal("30.00")


def test_selling_price_change_recomputes_rules(catalog, product):
    catalog.save_product({"selling_price": Decimal("20.00")}, product_id=product.id)
    rule = PriceRuleModel.objects.get(product=product, period_months=12)
    assert rule.final_price == Decimal("199.20")


def test_update_pricing_upserts_rules(catalog, product):
    updated = catalog.update_pricing(product.id, rules=[(6, Decimal("10")), (12, Decimal("20"))])
    finals = {r.period_months: r.final_price for r in updated.price_rules.all()}
    assert finals == {1: Decimal("10.00"), 6: Decimal("54.00"), 12: Decimal("96.00")}


def test_custom_product_requires_contact_email(catalog):
    with pytest.raises(ConfigurationError) as e:
        catalog.save_product({"name": "Bare metal", "product_type": "CUSTOM"})
    assert str(e.value) == "CONTACT_EMAIL_REQUIRED"


def test_home_slots_are_limited(catalog, settings):
    settings.HOME_PRODUCTS_LIMIT = 2
    for i in range(2):
        catalog.save_product({"name": f"P{i}", "show_on_home": True})
    with pytest.raises(ConfigurationError) as e:
        catalog.save_product({"name": "P3", "show_on_home": True})
    assert str(e.value) == "HOME_SLOTS_FULL"
    assert ProductModel.objects.filter(show_on_home=True).count() == 2


def test_recompute_command_fixes_drift(product, capsys):
    PriceRuleModel.objects.filter(product=product, period_months=12).update(final_price=Decimal("80.00"))

    call_command("recompute_price_rules", "--dry-run")
    assert PriceRuleModel.objects.get(product=product, period_months=12).final_price == Decimal("80.00")
    assert "would fix 1 price rule(s)" in capsys.readouterr().out

    call_command("recompute_price_rules")
    assert PriceRuleModel.objects.get(product=product, period_months=12).final_price == Decimal("99.60")


def test_sub_cent_drift_is_tolerated(catalog, product):
    PriceRuleModel.objects.filter(product=product, period_months=12).update(final_price=Decimal("99.61"))
    assert catalog.recompute_price_rules() == []


def test_import_provider_catalog_keeps_local_prices(catalog, product):
    counts = catalog.import_provider_catalog()

    assert counts == {"regions": 2, "images": 3, "products_created": 1, "products_updated": 1}
    product.refresh_from_db()
    assert product.selling_price == Decimal("10.00")
    assert product.regions == ["EU", "US-central"]
    new = ProductModel.objects.get(contabo_product_id="V47")
    assert new.is_active is False
    assert RegionModel.objects.filter(code="US-central").exists()
    assert OperatingSystemModel.objects.count() == 3


def test_custom_quote_request_emails_sales(catalog, custom_product, customer):
    assert catalog.request_custom_quote(custom_product.id, customer, "Need 64 cores") is True
    assert mail.outbox[-1].to == ["sales@example.com"]
    assert "Need 64 cores" in mail.outbox[-1].body
