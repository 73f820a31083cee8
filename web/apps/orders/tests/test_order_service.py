"""Service tests for checkout and the order state machine.

They run against the in-process stubs selected by ``use_stubs_for_tests``.
"""

import dataclasses
from decimal import Decimal

import pytest
from django.core import mail

from apps.billing.models import InvoiceModel, TransactionModel
from apps.common.crypto import decrypt_secret
from apps.common.errors import (
    ConcurrentModification,
    ConfigurationError,
    Forbidden,
    InvalidTransition,
    MissingProvisioningData,
    NotFound,
    NotPurchasable,
    ProviderError,
)
from apps.integrations.adapters import ProvisioningStub
from apps.integrations.ports import ProviderInstance
from apps.orders.domain import OrderStatus, ProvisioningData
from apps.orders.models import OrderModel
from apps.vps.models import VPSInstanceModel

pytestmark = pytest.mark.django_db

PROVISIONING = {"contabo_instance_id": "abc123", "ip_address": "1.2.3.4", "root_password": "S3cret-pass"}


def test_place_order_prices_twelve_months_with_discount(order_service, customer_actor, product):
    order = order_service.place_order(customer_actor, product.id, 12, "EU")

    assert order.status == OrderStatus.PENDING.value
    assert order.total_amount == Decimal("99.60")
    assert order.discount_percent == Decimal("17.00")
    assert order.order_number.startswith("ORD-")
    assert len(mail.outbox) == 1
    assert order.order_number in mail.outbox[0].subject


def test_order_numbers_are_unique(order_service, customer_actor, product):
    a = order_service.place_order(customer_actor, product.id, 1, "EU")
    b = order_service.place_order(customer_actor, product.id, 1, "EU")
    assert a.order_number != b.order_number


def test_place_order_rejects_custom_product(order_service, customer_actor, custom_product, region):
    with pytest.raises(NotPurchasable) as e:
        order_service.place_order(customer_actor, custom_product.id, 1, "EU")
    assert e.value.context["contact_email"] == "sales@example.com"
    assert OrderModel.objects.count() == 0


def test_place_order_rejects_unsupported_region(order_service, customer_actor, product):
    with pytest.raises(ConfigurationError) as e:
        order_service.place_order(customer_actor, product.id, 1, "US-central")
    assert str(e.value) == "REGION_NOT_AVAILABLE"


def test_payment_confirmation_creates_one_transaction_and_paid_invoice(order_service, pending_order):
    intent, txn = order_service.create_payment_intent(pending_order.id, None)
    assert txn.status == "pending"

    order = order_service.transition(pending_order.id, OrderStatus.PAID, context={"intent_id": intent.intent_id})

    assert order.status == OrderStatus.PAID.value
    assert order.paid_at is not None
    txns = TransactionModel.objects.filter(order=order)
    assert [t.status for t in txns] == ["completed"]
    invoice = InvoiceModel.objects.get(order=order)
    assert invoice.status == "paid"
    assert invoice.total == Decimal("118.52")  # 99.60 + 19 % tax


def test_payment_intent_is_reused_for_the_same_order(order_service, pending_order):
    first, _ = order_service.create_payment_intent(pending_order.id, None)
    second, _ = order_service.create_payment_intent(pending_order.id, None)
    assert first.intent_id == second.intent_id
    assert TransactionModel.objects.filter(order=pending_order).count() == 1
    assert InvoiceModel.objects.filter(order=pending_order, status="pending").count() == 1


def test_payment_intent_only_for_pending_orders(order_service, paid_order):
    with pytest.raises(InvalidTransition):
        order_service.create_payment_intent(paid_order.id, None)


def test_customer_cannot_see_other_customers_order(order_service, pending_order, other_customer):
    from gateway.middleware import Actor

    with pytest.raises(NotFound):
        order_service.get_order(pending_order.id, Actor(user_id=other_customer.id))


def test_invalid_edge_leaves_status_unchanged(order_service, pending_order):
    with pytest.raises(InvalidTransition):
        order_service.transition(pending_order.id, OrderStatus.COMPLETED)
    pending_order.refresh_from_db()
    assert pending_order.status == OrderStatus.PENDING.value


def test_stale_expected_status_is_rejected(order_service, paid_order):
    with pytest.raises(ConcurrentModification):
        order_service.transition(paid_order.id, OrderStatus.CANCELLED, expected_status=OrderStatus.PENDING)
    paid_order.refresh_from_db()
    assert paid_order.status == OrderStatus.PAID.value


def test_compare_and_swap_rejects_stale_version(pending_order):
    from django.db.models import F

    from apps.orders.repository import OrderRepository

    repo = OrderRepository()
    stale = repo.get(pending_order.id)
    OrderModel.objects.filter(id=pending_order.id).update(version=F("version") + 1, notes="edited elsewhere")

    with pytest.raises(ConcurrentModification) as e:
        repo.compare_and_swap(stale, OrderStatus.PAID, "confirm_payment")
    assert e.value.context["expected_version"] == stale.version

    row = OrderModel.objects.get(id=pending_order.id)
    assert row.status == OrderStatus.PENDING.value
    assert row.version == stale.version + 1
    assert row.paid_at is None


def test_submit_provisioning_links_vps(order_service, paid_order):
    order_service.transition(paid_order.id, OrderStatus.PROCESSING)
    order = order_service.transition(paid_order.id, OrderStatus.PROVISIONING, context=PROVISIONING)

    assert order.status == OrderStatus.PROVISIONING.value
    vps = VPSInstanceModel.objects.get(order=order)
    assert vps.status == "PROVISIONING"
    assert vps.contabo_instance_id == "abc123"
    assert vps.ip_address == "1.2.3.4"
    assert vps.root_password_encrypted != "S3cret-pass"
    assert decrypt_secret(vps.root_password_encrypted) == "S3cret-pass"


def test_submit_provisioning_requires_all_fields(order_service, paid_order):
    order_service.begin_provisioning(paid_order.id)
    with pytest.raises(MissingProvisioningData):
        order_service.submit_provisioning(paid_order.id, ProvisioningData(contabo_instance_id="abc123"))
    paid_order.refresh_from_db()
    assert paid_order.status == OrderStatus.PROCESSING.value
    assert not VPSInstanceModel.objects.exists()


def test_complete_provisioning_runs_vps(order_service, paid_order):
    order_service.begin_provisioning(paid_order.id)
    order_service.submit_provisioning(paid_order.id, ProvisioningData(**PROVISIONING))
    mail.outbox.clear()

    order = order_service.transition(paid_order.id, OrderStatus.COMPLETED)

    assert order.status == OrderStatus.COMPLETED.value
    assert order.completed_at is not None
    vps = VPSInstanceModel.objects.get(order=order)
    assert vps.status == "RUNNING"
    assert vps.expires_at is not None and vps.expires_at > order.completed_at
    assert len(mail.outbox) == 1 and "1.2.3.4" in mail.outbox[0].body


def test_provision_order_creates_instance_at_provider(order_service, paid_order):
    order = order_service.provision_order(paid_order.id)

    assert order.status == OrderStatus.PROVISIONING.value
    vps = VPSInstanceModel.objects.get(order=order)
    assert vps.contabo_instance_id in {i.instance_id for i in ProvisioningStub().list_instances()}
    assert vps.ip_address
    assert decrypt_secret(vps.root_password_encrypted)


def test_provision_order_provider_failure_leaves_processing(order_service, paid_order, monkeypatch):
    def boom(self, spec):
        raise ProviderError("down", operation="create_instance")

    monkeypatch.setattr(ProvisioningStub, "create_instance", boom)
    with pytest.raises(ProviderError):
        order_service.provision_order(paid_order.id)
    paid_order.refresh_from_db()
    assert paid_order.status == OrderStatus.PROCESSING.value
    assert not VPSInstanceModel.objects.exists()


def test_provision_order_retry_reuses_created_instance(order_service, paid_order, monkeypatch):
    created = []
    original = ProvisioningStub.create_instance

    def create_without_ip(self, spec):
        inst = original(self, spec)
        created.append(inst.instance_id)
        return dataclasses.replace(inst, ip_address=None)

    monkeypatch.setattr(ProvisioningStub, "create_instance", create_without_ip)
    monkeypatch.setattr(ProvisioningStub, "get_instance", lambda self, iid: ProviderInstance(iid, "provisioning"))
    with pytest.raises(ProviderError) as e:
        order_service.provision_order(paid_order.id)
    assert str(e.value) == "PROVIDER_IP_PENDING"
    assert VPSInstanceModel.objects.get(order_id=paid_order.id).status == "PENDING"

    monkeypatch.undo()
    order = order_service.provision_order(paid_order.id)

    assert order.status == OrderStatus.PROVISIONING.value
    assert len(created) == 1
    vps = VPSInstanceModel.objects.get(order=order)
    assert vps.contabo_instance_id == created[0]
    assert vps.ip_address


def test_cancel_pending_order_cancels_billing_artifacts(order_service, pending_order, customer_actor):
    order_service.create_payment_intent(pending_order.id, customer_actor)

    order = order_service.cancel(pending_order.id, actor=customer_actor, reason="changed my mind")

    assert order.status == OrderStatus.CANCELLED.value
    assert order.cancelled_at is not None
    assert "changed my mind" in order.notes
    assert TransactionModel.objects.get(order=order).status == "failed"
    assert InvoiceModel.objects.get(order=order).status == "cancelled"


def test_customer_cannot_cancel_paid_order(order_service, paid_order, customer_actor):
    with pytest.raises(Forbidden):
        order_service.cancel(paid_order.id, actor=customer_actor)


def test_cancel_deprovisions_unconfirmed_vps(order_service, paid_order, admin_actor):
    order_service.provision_order(paid_order.id)
    vps = VPSInstanceModel.objects.get(order_id=paid_order.id)

    order_service.cancel(paid_order.id, actor=admin_actor)

    vps.refresh_from_db()
    assert vps.status == "TERMINATED"
    assert ProvisioningStub().get_instance(vps.contabo_instance_id).status == "cancelled"


def test_cancel_provider_failure_leaves_order_unchanged(order_service, paid_order, admin_actor, monkeypatch):
    order_service.provision_order(paid_order.id)

    def boom(self, instance_id):
        raise ProviderError("down", operation="cancel_instance")

    monkeypatch.setattr(ProvisioningStub, "cancel_instance", boom)
    with pytest.raises(ProviderError):
        order_service.cancel(paid_order.id, actor=admin_actor)
    paid_order.refresh_from_db()
    assert paid_order.status == OrderStatus.PROVISIONING.value


def test_terminal_orders_cannot_be_cancelled(order_service, paid_order):
    order_service.provision_order(paid_order.id)
    order_service.complete_provisioning(paid_order.id)
    with pytest.raises(InvalidTransition):
        order_service.cancel(paid_order.id)


def test_checkout_records_own_ssh_keys(order_service, customer_actor, product, new_public_key):
    from apps.accounts.service import SshKeyService

    key = SshKeyService().add_key(customer_actor, "laptop", new_public_key())
    order = order_service.place_order(customer_actor, product.id, 1, "EU", ssh_key_ids=[key.id, key.id])
    assert order.ssh_key_ids == [str(key.id)]


def test_checkout_rejects_foreign_ssh_key(order_service, customer_actor, other_customer, product, new_public_key):
    from apps.accounts.service import SshKeyService
    from gateway.middleware import Actor

    foreign = SshKeyService().add_key(Actor(user_id=other_customer.id), "theirs", new_public_key())
    with pytest.raises(Forbidden) as e:
        order_service.place_order(customer_actor, product.id, 1, "EU", ssh_key_ids=[foreign.id])
    assert str(e.value) == "SSH_KEY_NOT_OWNED"
    assert OrderModel.objects.count() == 0


def test_provision_order_sends_ssh_keys_to_provider(order_service, customer_actor, product, new_public_key, monkeypatch):
    from apps.accounts.service import SshKeyService

    key = SshKeyService().add_key(customer_actor, "laptop", new_public_key())
    order = order_service.place_order(customer_actor, product.id, 1, "EU", ssh_key_ids=[key.id])
    intent, _ = order_service.create_payment_intent(order.id, None)
    order_service.confirm_payment(order.id, intent_id=intent.intent_id)

    specs = []
    original = ProvisioningStub.create_instance

    def record(self, spec):
        specs.append(spec)
        return original(self, spec)

    monkeypatch.setattr(ProvisioningStub, "create_instance", record)
    order_service.provision_order(order.id)

    assert specs[0].ssh_public_keys == (key.public_key,)
