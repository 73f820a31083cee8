"""HTTP adapters against monkeypatched ``httpx.Client`` methods."""

from decimal import Decimal

import httpx
import pytest

from apps.common.errors import ProviderError
from apps.integrations.http_adapters import ContaboClient, HttpPaymentsClient, to_cents
from apps.integrations.ports import InstanceSpec


class DummyResp:
    """Minimal httpx-like response stub."""

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data
        self.content = b"{}" if json_data is not None else b""

    def json(self):
        return self._json


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


@pytest.fixture
def contabo_settings(settings):
    settings.CONTABO_CLIENT_ID = "cid"
    settings.CONTABO_CLIENT_SECRET = "secret"
    settings.CONTABO_API_USER = "api@example.com"
    settings.CONTABO_API_PASSWORD = "pw"
    settings.CONTABO_API_BASE = "https://provider.test/v1"
    settings.CONTABO_AUTH_URL = "https://auth.test/token"


def test_to_cents_rounds_half_up():
    assert to_cents(Decimal("99.60")) == 9960
    assert to_cents(Decimal("0.005")) == 1


def test_payment_intent_sends_idempotency_key(monkeypatch):
    seen = {}

    def fake_post(self, url, json=None, headers=None, **kw):
        seen.update(url=url, json=json, headers=headers)
        return DummyResp(201, {"intent_id": "pi_1", "client_secret": "pi_1_secret"})

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    intent = HttpPaymentsClient(base_url="http://payments:9002").create_payment_intent(
        "o-1", Decimal("118.52"), "USD", idempotency_key="order-o-1"
    )

    assert intent.intent_id == "pi_1"
    assert seen["url"] == "http://payments:9002/payment-intents"
    assert seen["json"] == {"order_id": "o-1", "amount_cents": 11852, "currency": "USD"}
    assert seen["headers"]["Idempotency-Key"] == "order-o-1"


def test_payment_intent_conflict_is_provider_error(monkeypatch):
    monkeypatch.setattr(httpx.Client, "post", lambda self, url, **kw: DummyResp(409, {"detail": "conflict"}))
    with pytest.raises(ProviderError) as e:
        HttpPaymentsClient(base_url="http://x").create_payment_intent("o-1", Decimal("10"), "USD")
    assert e.value.context["status_code"] == 409
    assert e.value.context["order_id"] == "o-1"


def test_payment_intent_network_error_is_provider_error(monkeypatch):
    def fake_post(self, url, **kw):
        raise httpx.ConnectError("boom")

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    with pytest.raises(ProviderError):
        HttpPaymentsClient(base_url="http://x").create_payment_intent("o-1", Decimal("10"), "USD")


def test_contabo_caches_token_and_maps_instance(monkeypatch, contabo_settings):
    auth_calls = []
    requests = []

    def fake_post(self, url, data=None, **kw):
        auth_calls.append(data["grant_type"])
        return DummyResp(200, {"access_token": "tok", "expires_in": 300})

    def fake_request(self, method, url, json=None, headers=None, **kw):
        requests.append((method, url, headers["Authorization"]))
        return DummyResp(
            200,
            {
                "data": [
                    {
                        "instanceId": 12345,
                        "status": "installing",
                        "ipConfig": {"v4": {"ip": "203.0.113.5", "netmaskCidr": 24}},
                        "cpuCores": 4,
                        "ramMb": 8192,
                        "diskMb": 76800,
                    }
                ]
            },
        )

    monkeypatch.setattr(httpx.Client, "post", fake_post, raising=True)
    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    client = ContaboClient()
    first = client.get_instance("12345")
    client.get_instance("12345")

    assert auth_calls == ["password"]
    assert requests[0] == ("GET", "https://provider.test/v1/compute/instances/12345", "Bearer tok")
    assert first.instance_id == "12345"
    assert first.status == "provisioning"
    assert first.ip_address == "203.0.113.5"
    assert first.netmask_cidr == 24


def test_contabo_refreshes_token_once_on_401(monkeypatch, contabo_settings):
    tokens = iter(["old", "new"])
    statuses = iter([401, 200])

    monkeypatch.setattr(
        httpx.Client, "post", lambda self, url, **kw: DummyResp(200, {"access_token": next(tokens), "expires_in": 300})
    )
    seen = []

    def fake_request(self, method, url, json=None, headers=None, **kw):
        seen.append(headers["Authorization"])
        return DummyResp(next(statuses), {"data": [{"instanceId": 1, "status": "running"}]})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)

    assert ContaboClient().get_instance("1").status == "running"
    assert seen == ["Bearer old", "Bearer new"]


def test_contabo_without_credentials(settings):
    settings.CONTABO_CLIENT_ID = ""
    with pytest.raises(ProviderError) as e:
        ContaboClient().get_instance("1")
    assert str(e.value) == "PROVIDER_NOT_CONFIGURED"


def test_contabo_create_instance_payload(monkeypatch, contabo_settings):
    seen = {}
    monkeypatch.setattr(
        httpx.Client, "post", lambda self, url, **kw: DummyResp(200, {"access_token": "tok", "expires_in": 300})
    )

    def fake_request(self, method, url, json=None, headers=None, **kw):
        seen.update(method=method, url=url, json=json)
        return DummyResp(201, {"data": [{"instanceId": 777, "status": "provisioning"}]})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    spec = InstanceSpec(
        product_id="V45", region="EU", image_id="ubuntu-22.04", display_name="Cloud VPS 10",
        root_password="S3cret-pass", period_months=12,
    )

    inst = ContaboClient().create_instance(spec)

    assert inst.instance_id == "777"
    assert inst.ip_address is None
    assert seen["method"] == "POST"
    assert seen["json"]["productId"] == "V45"
    assert seen["json"]["imageId"] == "ubuntu-22.04"
    assert seen["json"]["period"] == 12


def test_contabo_action_5xx_exhausts_retries(monkeypatch, contabo_settings):
    calls = {"n": 0}
    monkeypatch.setattr(
        httpx.Client, "post", lambda self, url, **kw: DummyResp(200, {"access_token": "tok", "expires_in": 300})
    )

    def fake_request(self, method, url, **kw):
        calls["n"] += 1
        return DummyResp(502, {})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    with pytest.raises(ProviderError) as e:
        ContaboClient().restart("1")
    assert e.value.context["operation"] == "restart"
    assert calls["n"] == 2


def _contabo_recorder(monkeypatch, response):
    monkeypatch.setattr(
        httpx.Client, "post", lambda self, url, **kw: DummyResp(200, {"access_token": "tok", "expires_in": 300})
    )
    seen = []

    def fake_request(self, method, url, json=None, headers=None, **kw):
        seen.append({"method": method, "url": url, "json": json})
        return response

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return seen


def test_contabo_create_instance_sends_ssh_keys_as_cloud_init(monkeypatch, contabo_settings):
    seen = _contabo_recorder(monkeypatch, DummyResp(201, {"data": [{"instanceId": 778, "status": "creating"}]}))
    spec = InstanceSpec(
        product_id="V45", region="EU", image_id=None, display_name="Cloud VPS 10",
        root_password="S3cret-pass", ssh_public_keys=("ssh-ed25519 AAAAC3Nza user@laptop",),
    )

    inst = ContaboClient().create_instance(spec)

    assert inst.status == "provisioning"
    assert "imageId" not in seen[0]["json"]
    assert seen[0]["json"]["userData"] == "#cloud-config\nssh_authorized_keys:\n  - ssh-ed25519 AAAAC3Nza user@laptop\n"


def test_contabo_deleting_instance_reads_as_cancelled(monkeypatch, contabo_settings):
    _contabo_recorder(monkeypatch, DummyResp(200, {"data": [{"instanceId": 9, "status": "deleting"}]}))
    assert ContaboClient().get_instance("9").status == "cancelled"


def test_contabo_snapshot_restore_and_delete(monkeypatch, contabo_settings):
    seen = _contabo_recorder(monkeypatch, DummyResp(204))
    client = ContaboClient()

    client.restore_snapshot("12345", "snap-1")
    client.delete_snapshot("12345", "snap-1")

    assert [(s["method"], s["url"]) for s in seen] == [
        ("POST", "https://provider.test/v1/compute/instances/12345/snapshots/snap-1/restore"),
        ("DELETE", "https://provider.test/v1/compute/instances/12345/snapshots/snap-1"),
    ]
