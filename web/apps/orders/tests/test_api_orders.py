import pytest
from uuid import uuid4

from apps.orders.domain import OrderStatus
from apps.orders.models import OrderModel

LIST_URL = "/api/orders/"
DETAIL_URL = "/api/orders/{oid}/"


@pytest.mark.django_db
def test_list_is_scoped_to_the_customer(client, order_service, pending_order, other_customer, as_user, customer, product):
    from gateway.middleware import Actor

    order_service.place_order(Actor(user_id=other_customer.id), product.id, 1, "EU")

    r = client.get(LIST_URL, **as_user(customer))
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["results"][0]["id"] == str(pending_order.id)


@pytest.mark.django_db
def test_admin_lists_every_order_with_status_filter(client, paid_order, admin_user, as_user):
    r = client.get(LIST_URL + "?status=paid", **as_user(admin_user))
    assert r.status_code == 200
    results = r.json()["results"]
    assert [o["id"] for o in results] == [str(paid_order.id)]
    assert results[0]["user_id"] == str(paid_order.user_id)


@pytest.mark.django_db
def test_list_rejects_unknown_status(client, customer, as_user):
    r = client.get(LIST_URL + "?status=SHIPPED", **as_user(customer))
    assert r.status_code == 400
    assert r.json()["detail"] == "UNKNOWN_STATUS"


@pytest.mark.django_db
def test_detail_hides_other_customers_orders(client, pending_order, other_customer, as_user):
    r = client.get(DETAIL_URL.format(oid=pending_order.id), **as_user(other_customer))
    assert r.status_code == 404


@pytest.mark.django_db
def test_detail_not_found(client, customer, as_user):
    r = client.get(DETAIL_URL.format(oid=uuid4()), **as_user(customer))
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_transition_requires_admin(client, pending_order, customer, as_user):
    r = client.post(
        DETAIL_URL.format(oid=pending_order.id) + "transition/",
        data={"status": "CANCELLED"},
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "ADMIN_REQUIRED"


@pytest.mark.django_db
def test_invalid_transition_is_409_with_edge_for_admin(client, pending_order, admin_user, as_user):
    r = client.post(
        DETAIL_URL.format(oid=pending_order.id) + "transition/",
        data={"status": "completed"},
        content_type="application/json",
        **as_user(admin_user),
    )
    assert r.status_code == 409
    body = r.json()
    assert body["detail"] == "INVALID_TRANSITION"
    assert body["context"]["from"] == "PENDING"
    assert body["context"]["to"] == "COMPLETED"


@pytest.mark.django_db
def test_transition_with_stale_expected_status_is_409(client, paid_order, admin_user, as_user):
    r = client.post(
        DETAIL_URL.format(oid=paid_order.id) + "transition/",
        data={"status": "PROCESSING", "expected_status": "PENDING"},
        content_type="application/json",
        **as_user(admin_user),
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "CONCURRENT_MODIFICATION"
    assert OrderModel.objects.get(id=paid_order.id).status == OrderStatus.PAID.value


@pytest.mark.django_db
def test_admin_walks_order_to_completed(client, paid_order, admin_user, as_user):
    url = DETAIL_URL.format(oid=paid_order.id)
    admin = as_user(admin_user)

    r = client.post(url + "transition/", data={"status": "PROCESSING"}, content_type="application/json", **admin)
    assert r.json()["status"] == "PROCESSING"

    r = client.post(url + "transition/", data={"status": "PROVISIONING"}, content_type="application/json", **admin)
    assert r.status_code == 422
    assert r.json()["detail"] == "MISSING_PROVISIONING_DATA"

    r = client.post(
        url + "transition/",
        data={
            "status": "PROVISIONING",
            "contabo_instance_id": "abc123",
            "ip_address": "1.2.3.4",
            "root_password": "S3cret-pass",
        },
        content_type="application/json",
        **admin,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "PROVISIONING"
    assert r.json()["vps_id"]

    r = client.post(url + "transition/", data={"status": "COMPLETED"}, content_type="application/json", **admin)
    assert r.status_code == 200
    assert r.json()["status"] == "COMPLETED"


@pytest.mark.django_db
def test_provision_endpoint_uses_provider(client, paid_order, admin_user, as_user):
    r = client.post(
        DETAIL_URL.format(oid=paid_order.id) + "provision/",
        data={},
        content_type="application/json",
        **as_user(admin_user),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "PROVISIONING"


@pytest.mark.django_db
def test_provision_rejects_invalid_ip(client, paid_order, admin_user, as_user):
    r = client.post(
        DETAIL_URL.format(oid=paid_order.id) + "provision/",
        data={"ip_address": "999.1.1.1"},
        content_type="application/json",
        **as_user(admin_user),
    )
    assert r.status_code == 400


@pytest.mark.django_db
def test_customer_cancels_own_pending_order(client, pending_order, customer, as_user):
    r = client.post(
        DETAIL_URL.format(oid=pending_order.id) + "cancel/",
        data={"reason": "no longer needed"},
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 200
    assert r.json()["status"] == "CANCELLED"


@pytest.mark.django_db
def test_customer_cannot_cancel_paid_order(client, paid_order, customer, as_user):
    r = client.post(
        DETAIL_URL.format(oid=paid_order.id) + "cancel/", content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "FORBIDDEN"


@pytest.mark.django_db
def test_payment_intent_endpoint(client, pending_order, customer, as_user):
    r = client.post(
        DETAIL_URL.format(oid=pending_order.id) + "payment-intent/", content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 201
    body = r.json()
    assert body["intent_id"].startswith("pi_stub_")
    assert body["client_secret"]
    assert body["transaction_id"]


@pytest.mark.django_db
def test_provider_failure_is_generic_for_customers(client, pending_order, customer, as_user, monkeypatch):
    from apps.common.errors import ProviderError
    from apps.integrations.adapters import PaymentsStub

    def boom(self, *args, **kwargs):
        raise ProviderError("gateway down", operation="create_payment_intent")

    monkeypatch.setattr(PaymentsStub, "create_payment_intent", boom)
    r = client.post(
        DETAIL_URL.format(oid=pending_order.id) + "payment-intent/", content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 502
    assert r.json() == {"detail": "REQUEST_FAILED_RETRY_LATER"}
