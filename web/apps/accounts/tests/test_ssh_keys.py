import pytest

from apps.accounts.models import SshKeyModel
from apps.accounts.service import SshKeyService
from apps.common.errors import Conflict, ConfigurationError, NotFound
from apps.orders.domain import OrderStatus

KEYS_URL = "/api/ssh-keys/"


@pytest.fixture
def keys():
    return SshKeyService()


@pytest.mark.django_db
def test_add_key_stores_normalized_key_and_fingerprint(keys, customer_actor, new_public_key):
    raw = new_public_key("ana@laptop")
    key = keys.add_key(customer_actor, "laptop", raw + "\n")
    assert key.public_key == raw
    assert key.fingerprint.startswith("SHA256:")
    assert list(keys.list_keys(customer_actor)) == [key]


@pytest.mark.django_db
def test_add_key_rejects_invalid_key(keys, customer_actor):
    with pytest.raises(ConfigurationError) as e:
        keys.add_key(customer_actor, "broken", "ssh-ed25519 nope")
    assert str(e.value) == "INVALID_SSH_KEY"


@pytest.mark.django_db
def test_duplicate_key_and_name_are_rejected(keys, customer_actor, new_public_key):
    raw = new_public_key("ana@laptop")
    keys.add_key(customer_actor, "laptop", raw)

    with pytest.raises(Conflict) as e:
        keys.add_key(customer_actor, "same key other comment", raw.rsplit(" ", 1)[0] + " other@host")
    assert str(e.value) == "SSH_KEY_EXISTS"

    with pytest.raises(Conflict) as e:
        keys.add_key(customer_actor, "laptop", new_public_key())
    assert str(e.value) == "SSH_KEY_NAME_TAKEN"
    assert SshKeyModel.objects.count() == 1


@pytest.mark.django_db
def test_same_key_allowed_for_two_customers(keys, customer_actor, other_customer, new_public_key):
    from gateway.middleware import Actor

    raw = new_public_key()
    keys.add_key(customer_actor, "laptop", raw)
    keys.add_key(Actor(user_id=other_customer.id), "laptop", raw)
    assert SshKeyModel.objects.count() == 2


@pytest.mark.django_db
def test_rename_checks_name_is_free(keys, customer_actor, new_public_key):
    a = keys.add_key(customer_actor, "laptop", new_public_key())
    keys.add_key(customer_actor, "desktop", new_public_key())

    assert keys.rename_key(a.id, customer_actor, "work laptop").name == "work laptop"
    with pytest.raises(Conflict):
        keys.rename_key(a.id, customer_actor, "desktop")


@pytest.mark.django_db
def test_other_customer_cannot_see_or_delete_key(keys, customer_actor, other_customer, new_public_key):
    from gateway.middleware import Actor

    key = keys.add_key(customer_actor, "laptop", new_public_key())
    with pytest.raises(NotFound):
        keys.delete_key(key.id, Actor(user_id=other_customer.id))
    assert SshKeyModel.objects.filter(id=key.id).exists()


@pytest.mark.django_db
def test_key_used_by_active_order_cannot_be_deleted(keys, order_service, customer_actor, product, new_public_key):
    key = keys.add_key(customer_actor, "laptop", new_public_key())
    order = order_service.place_order(customer_actor, product.id, 1, "EU", ssh_key_ids=[key.id])

    with pytest.raises(Conflict) as e:
        keys.delete_key(key.id, customer_actor)
    assert str(e.value) == "SSH_KEY_IN_USE"

    order_service.cancel(order.id, customer_actor)
    assert order_service.get_order(order.id, customer_actor).status == OrderStatus.CANCELLED.value
    keys.delete_key(key.id, customer_actor)
    assert not SshKeyModel.objects.exists()


@pytest.mark.django_db
def test_ssh_key_api_flow(client, customer, as_user, new_public_key):
    r = client.post(
        KEYS_URL, data={"name": "laptop", "public_key": new_public_key()}, content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 201
    url = KEYS_URL + r.json()["id"] + "/"

    r = client.post(
        KEYS_URL, data={"name": "laptop", "public_key": new_public_key()}, content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 409
    assert r.json()["detail"] == "SSH_KEY_NAME_TAKEN"

    r = client.patch(url, data={"name": "work"}, content_type="application/json", **as_user(customer))
    assert r.json()["name"] == "work"
    assert [k["name"] for k in client.get(KEYS_URL, **as_user(customer)).json()["results"]] == ["work"]

    assert client.delete(url, **as_user(customer)).status_code == 204
    assert client.get(url, **as_user(customer)).status_code == 404


@pytest.mark.django_db
def test_ssh_key_api_rejects_bad_key(client, customer, as_user):
    r = client.post(
        KEYS_URL, data={"name": "laptop", "public_key": "hello"}, content_type="application/json", **as_user(customer)
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "INVALID_SSH_KEY"
