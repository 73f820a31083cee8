from decimal import Decimal

import pytest
from cryptography.fernet import Fernet


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    """In-process stubs, a throwaway encryption key and fresh shared state."""
    from django.core.cache import cache
    from apps.integrations.adapters import ProvisioningStub
    from apps.integrations.http_adapters import ContaboClient
    from apps.integrations.resilience import payments_cb, provider_cb

    settings.USE_HTTP_ADAPTERS = False
    settings.VPS_ENCRYPTION_KEY = Fernet.generate_key().decode()
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    cache.clear()
    ProvisioningStub.reset()
    payments_cb.reset()
    provider_cb.reset()
    ContaboClient.invalidate_token()
    yield
    ProvisioningStub.reset()


@pytest.fixture
def as_user():
    """Identity headers the edge would forward for a user."""

    def headers(user) -> dict:
        return {"HTTP_X_USER_ID": str(user.id), "HTTP_X_USER_ROLE": user.role}

    return headers


@pytest.fixture
def customer(db):
    from apps.accounts.models import UserModel

    return UserModel.objects.create(email="ana@example.com", first_name="Ana", last_name="Gómez")


@pytest.fixture
def other_customer(db):
    from apps.accounts.models import UserModel

    return UserModel.objects.create(email="luis@example.com", first_name="Luis")


@pytest.fixture
def admin_user(db):
    from apps.accounts.models import UserModel

    return UserModel.objects.create(email="ops@example.com", first_name="Ops", role=UserModel.Role.ADMIN)


@pytest.fixture
def customer_actor(customer):
    from gateway.middleware import Actor

    return Actor(user_id=customer.id, role=customer.role)


@pytest.fixture
def admin_actor(admin_user):
    from gateway.middleware import Actor, ROLE_ADMIN

    return Actor(user_id=admin_user.id, role=ROLE_ADMIN)


@pytest.fixture
def region(db):
    from apps.catalog.models import RegionModel

    return RegionModel.objects.create(code="EU", name="European Union", price_adjustment=Decimal("0.00"))


@pytest.fixture
def os_image(db):
    from apps.catalog.models import OperatingSystemModel

    return OperatingSystemModel.objects.create(
        image_id="ubuntu-22.04", name="Ubuntu 22.04", os_type="Linux", version="22.04"
    )


@pytest.fixture
def product(db, region):
    """$10/month product with 1- and 12-month (17 % off) price rules."""
    from apps.catalog.models import PriceRuleModel, ProductModel

    p = ProductModel.objects.create(
        name="Cloud VPS 10",
        contabo_product_id="V45",
        ram_mb=8192,
        cpu_cores=4,
        disk_gb=75,
        regions=["EU"],
        base_price=Decimal("4.50"),
        selling_price=Decimal("10.00"),
    )
    PriceRuleModel.objects.create(
        product=p, period_months=1, discount_percent=Decimal("0"), final_price=Decimal("10.00")
    )
    PriceRuleModel.objects.create(
        product=p, period_months=12, discount_percent=Decimal("17"), final_price=Decimal("99.60")
    )
    return p


@pytest.fixture
def custom_product(db):
    from apps.catalog.models import ProductModel

    return ProductModel.objects.create(
        name="Dedicated 64",
        product_type=ProductModel.Type.CUSTOM,
        contact_email="sales@example.com",
        regions=["EU"],
    )


@pytest.fixture
def order_service():
    from apps.orders.providers import get_order_service

    return get_order_service()


@pytest.fixture
def pending_order(order_service, customer_actor, product):
    return order_service.place_order(customer_actor, product.id, 12, "EU")


@pytest.fixture
def paid_order(order_service, pending_order):
    intent, _ = order_service.create_payment_intent(pending_order.id, None)
    return order_service.confirm_payment(pending_order.id, intent_id=intent.intent_id)


@pytest.fixture
def new_public_key():
    """Factory for fresh OpenSSH ed25519 public key lines."""
    from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
    from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

    def make(comment: str = "ana@laptop") -> str:
        raw = Ed25519PrivateKey.generate().public_key().public_bytes(Encoding.OpenSSH, PublicFormat.OpenSSH)
        return f"{raw.decode('ascii')} {comment}".strip()

    return make
