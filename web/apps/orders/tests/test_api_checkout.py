import pytest
from uuid import uuid4

from apps.orders.models import IdempotencyKey, OrderModel

CREATE_URL = "/api/orders/"


def _payload(product, **overrides):
    return {"product_id": str(product.id), "period_months": 12, "region": "EU", **overrides}


@pytest.mark.django_db
def test_checkout_creates_pending_order(client, product, customer, as_user):
    r = client.post(CREATE_URL, data=_payload(product), content_type="application/json", **as_user(customer))
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "PENDING"
    assert body["total_amount"] == "99.60"
    assert body["product_name"] == "Cloud VPS 10"
    assert "user_id" not in body
    assert OrderModel.objects.get(id=body["id"]).user_id == customer.id


@pytest.mark.django_db
def test_checkout_requires_identity(client, product):
    r = client.post(CREATE_URL, data=_payload(product), content_type="application/json")
    assert r.status_code == 403
    assert r.json()["detail"] == "AUTHENTICATION_REQUIRED"


@pytest.mark.django_db
def test_checkout_validation_error_is_400(client, product, customer, as_user):
    r = client.post(
        CREATE_URL, data=_payload(product, period_months=0), content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 400


@pytest.mark.django_db
def test_checkout_unsupported_period_is_422(client, product, customer, as_user):
    r = client.post(
        CREATE_URL, data=_payload(product, period_months=5), content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "INVALID_PERIOD"


@pytest.mark.django_db
def test_checkout_custom_product_returns_contact(client, custom_product, customer, as_user):
    r = client.post(
        CREATE_URL,
        data={"product_id": str(custom_product.id), "period_months": 1, "region": "EU"},
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 422
    assert r.json() == {"detail": "NOT_PURCHASABLE", "contact_email": "sales@example.com"}


@pytest.mark.django_db
def test_checkout_unknown_product_is_404(client, region, customer, as_user):
    r = client.post(
        CREATE_URL,
        data={"product_id": str(uuid4()), "period_months": 1, "region": "EU"},
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "NOT_FOUND"


@pytest.mark.django_db
def test_idempotent_same_payload_replays_the_same_order(client, product, customer, as_user):
    headers = {**as_user(customer), "HTTP_IDEMPOTENCY_KEY": "checkout-1"}

    r1 = client.post(CREATE_URL, data=_payload(product), content_type="application/json", **headers)
    r2 = client.post(CREATE_URL, data=_payload(product), content_type="application/json", **headers)

    assert r1.status_code == 201
    assert r2.status_code == 201
    assert r2.json() == r1.json()
    assert r2.headers.get("Idempotent-Replay") == "true"
    assert OrderModel.objects.count() == 1
    assert str(IdempotencyKey.objects.get(key="checkout-1").order_id) == r1.json()["id"]


@pytest.mark.django_db
def test_idempotent_conflict_on_different_payload(client, product, customer, as_user):
    headers = {**as_user(customer), "HTTP_IDEMPOTENCY_KEY": "checkout-2"}

    client.post(CREATE_URL, data=_payload(product), content_type="application/json", **headers)
    r2 = client.post(CREATE_URL, data=_payload(product, period_months=1), content_type="application/json", **headers)

    assert r2.status_code == 409
    assert r2.json()["detail"] == "IDEMPOTENCY_CONFLICT"
    assert OrderModel.objects.count() == 1


@pytest.mark.django_db
def test_idempotency_key_of_another_user_conflicts(client, product, customer, other_customer, as_user):
    client.post(
        CREATE_URL, data=_payload(product), content_type="application/json",
        **{**as_user(customer), "HTTP_IDEMPOTENCY_KEY": "shared"},
    )
    r = client.post(
        CREATE_URL, data=_payload(product), content_type="application/json",
        **{**as_user(other_customer), "HTTP_IDEMPOTENCY_KEY": "shared"},
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "IDEMPOTENCY_CONFLICT"


@pytest.mark.django_db
def test_idempotent_replay_preserves_rejection(client, product, customer, as_user):
    headers = {**as_user(customer), "HTTP_IDEMPOTENCY_KEY": "checkout-422"}
    payload = _payload(product, region="US-central")

    r1 = client.post(CREATE_URL, data=payload, content_type="application/json", **headers)
    r2 = client.post(CREATE_URL, data=payload, content_type="application/json", **headers)

    assert r1.status_code == 422
    assert r2.status_code == 422
    assert r2.json() == r1.json() == {"detail": "REGION_NOT_AVAILABLE"}
    assert r2.headers.get("Idempotent-Replay") == "true"


@pytest.mark.django_db
def test_checkout_with_ssh_keys(client, product, customer, other_customer, as_user, new_public_key):
    from apps.accounts.models import SshKeyModel

    mine = SshKeyModel.objects.create(user=customer, name="laptop", public_key=new_public_key(), fingerprint="SHA256:a")
    theirs = SshKeyModel.objects.create(user=other_customer, name="laptop", public_key=new_public_key(), fingerprint="SHA256:b")

    r = client.post(
        CREATE_URL,
        data=_payload(product, ssh_key_ids=[str(theirs.id)]),
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 403
    assert r.json()["detail"] == "SSH_KEY_NOT_OWNED"

    r = client.post(
        CREATE_URL,
        data=_payload(product, ssh_key_ids=[str(mine.id)]),
        content_type="application/json",
        **as_user(customer),
    )
    assert r.status_code == 201
    assert r.json()["ssh_key_ids"] == [str(mine.id)]
