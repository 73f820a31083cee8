"""HTTP clients for the collaborator ports.

- ``HttpPaymentsClient`` talks to the payments service
  (``services/payments``), propagating an ``Idempotency-Key`` so a retried
  checkout never creates a second intent.
- ``ContaboClient`` talks to the provisioning provider's REST API with an
  OAuth2 password-grant token that is cached until shortly before it
  expires and refreshed once on a 401.

Both go through ``resilience.send_with_retry``: bounded timeout, retries on
transport errors and 5xx, one circuit breaker per service, and every
failure reported as ``ProviderError``.
"""

import logging
import threading
import time
import uuid
from decimal import Decimal, ROUND_HALF_UP

import httpx
from django.conf import settings

from apps.common.errors import ProviderError
from .ports import (
    InstanceSpec,
    PaymentIntent,
    PaymentsPort,
    ProviderImage,
    ProviderInstance,
    ProviderProduct,
    ProviderRegion,
    ProviderSnapshot,
    ProvisioningPort,
)
from .resilience import payments_cb, provider_cb, send_with_retry, raise_for_business_status

logger = logging.getLogger(__name__)


def to_cents(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ---------------- Payments ---------------- #

class HttpPaymentsClient(PaymentsPort):
    """HTTP client for the payments service."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = base_url or settings.PAYMENTS_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def create_payment_intent(self, order_id, amount, currency, idempotency_key=None) -> PaymentIntent:
        """POST ``/payment-intents``.

        Mappings:
        - 200/201 → ``PaymentIntent`` from ``{intent_id, client_secret}``
        - 409 (idempotency conflict) and other 4xx → ``ProviderError``,
          not counted as circuit failures

        Raises:
            ProviderError: On any failure, with ``order_id`` in its context.
        """
        payload = {"order_id": str(order_id), "amount_cents": to_cents(amount), "currency": currency}
        extra = {"Idempotency-Key": idempotency_key} if idempotency_key else {}
        url = f"{self.base_url}/payment-intents"

        resp = send_with_retry(
            payments_cb,
            "create_payment_intent",
            lambda client, headers: client.post(url, json=payload, headers=headers),
            headers=extra,
            timeout=self.timeout,
            order_id=order_id,
        )
        raise_for_business_status(resp, payments_cb, "create_payment_intent", order_id=order_id)
        data = resp.json()
        return PaymentIntent(intent_id=data["intent_id"], client_secret=data["client_secret"])


# ---------------- Provisioning provider ---------------- #

_PROVIDER_STATUS = {
    "running": "running",
    "stopped": "stopped",
    "provisioning": "provisioning",
    "creating": "provisioning",
    "installing": "provisioning",
    "pending_payment": "provisioning",
    "uninstalled": "cancelled",
    "deleting": "cancelled",
    "cancelled": "cancelled",
}


def cloud_init_user_data(public_keys) -> str:
    """cloud-config document installing ``public_keys`` for root."""
    lines = ["#cloud-config", "ssh_authorized_keys:"]
    lines += [f"  - {key.strip()}" for key in public_keys]
    return "\n".join(lines) + "\n"


class ContaboClient(ProvisioningPort):
    """Client for the provider's ``/v1/compute`` API.

    The provider requires a fresh UUID4 ``x-request-id`` per call; our own
    correlation id travels as ``x-trace-id``.
    """

    TOKEN_MARGIN_SECS = 60

    _token_lock = threading.Lock()
    _token: str | None = None
    _token_expiry = 0.0

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.CONTABO_API_BASE).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    # ---- auth ----
    def _get_token(self) -> str:
        cls = type(self)
        with cls._token_lock:
            if cls._token and time.monotonic() < cls._token_expiry:
                return cls._token

            creds = {
                "client_id": settings.CONTABO_CLIENT_ID,
                "client_secret": settings.CONTABO_CLIENT_SECRET,
                "username": settings.CONTABO_API_USER,
                "password": settings.CONTABO_API_PASSWORD,
            }
            if not all(creds.values()):
                raise ProviderError("provider API credentials not configured", code="PROVIDER_NOT_CONFIGURED")

            resp = send_with_retry(
                provider_cb,
                "authenticate",
                lambda client, headers: client.post(
                    settings.CONTABO_AUTH_URL, data={"grant_type": "password", **creds}
                ),
                timeout=self.timeout,
            )
            raise_for_business_status(resp, provider_cb, "authenticate")
            body = resp.json()
            cls._token = body["access_token"]
            cls._token_expiry = time.monotonic() + max(0, int(body.get("expires_in", 300)) - self.TOKEN_MARGIN_SECS)
            return cls._token

    @classmethod
    def invalidate_token(cls):
        with cls._token_lock:
            cls._token = None
            cls._token_expiry = 0.0

    def _request(self, method: str, path: str, operation: str, json: dict | None = None, **context) -> dict:
        url = f"{self.base_url}{path}"
        for attempt in (0, 1):
            token = self._get_token()

            def send(client: httpx.Client, headers: dict) -> httpx.Response:
                hdrs = {
                    "Authorization": f"Bearer {token}",
                    "x-request-id": str(uuid.uuid4()),
                }
                if headers.get("X-Request-ID"):
                    hdrs["x-trace-id"] = headers["X-Request-ID"]
                return client.request(method, url, json=json, headers=hdrs)

            resp = send_with_retry(provider_cb, operation, send, timeout=self.timeout, **context)
            if resp.status_code == 401 and attempt == 0:
                self.invalidate_token()
                continue
            raise_for_business_status(resp, provider_cb, operation, **context)
            if not resp.content:
                return {}
            return resp.json()
        raise ProviderError("provider rejected refreshed credentials", operation=operation, **context)

    # ---- mapping ----
    @staticmethod
    def _instance(raw: dict) -> ProviderInstance:
        ip = ((raw.get("ipConfig") or {}).get("v4") or {})
        return ProviderInstance(
            instance_id=str(raw["instanceId"]),
            status=_PROVIDER_STATUS.get(str(raw.get("status", "")).lower(), str(raw.get("status", "")).lower()),
            ip_address=ip.get("ip"),
            name=raw.get("displayName") or raw.get("name") or "",
            region=raw.get("region", ""),
            product_id=raw.get("productId", ""),
            cpu_cores=raw.get("cpuCores"),
            ram_mb=raw.get("ramMb"),
            disk_mb=raw.get("diskMb"),
            netmask_cidr=ip.get("netmaskCidr"),
        )

    @staticmethod
    def _data(body: dict) -> list:
        return body.get("data", []) if isinstance(body, dict) else list(body)

    # ---- port ----
    def create_instance(self, spec: InstanceSpec) -> ProviderInstance:
        payload = {
            "productId": spec.product_id,
            "region": spec.region,
            "displayName": spec.display_name,
            "period": spec.period_months,
            "rootPassword": spec.root_password,
        }
        if spec.image_id:
            payload["imageId"] = spec.image_id
        if spec.ssh_public_keys:
            payload["userData"] = cloud_init_user_data(spec.ssh_public_keys)
        body = self._request("POST", "/compute/instances", "create_instance", json=payload, product_id=spec.product_id)
        created = self._data(body)
        if not created:
            raise ProviderError("provider returned no instance", operation="create_instance")
        raw = created[0]
        return ProviderInstance(
            instance_id=str(raw["instanceId"]),
            status=_PROVIDER_STATUS.get(str(raw.get("status", "provisioning")).lower(), "provisioning"),
            ip_address=((raw.get("ipConfig") or {}).get("v4") or {}).get("ip"),
            name=spec.display_name,
            region=spec.region,
            product_id=spec.product_id,
        )

    def get_instance(self, instance_id):
        body = self._request("GET", f"/compute/instances/{instance_id}", "get_instance", instance_id=instance_id)
        items = self._data(body)
        if not items:
            raise ProviderError("instance not found at provider", operation="get_instance", instance_id=instance_id)
        return self._instance(items[0])

    def _action(self, instance_id: str, action: str) -> dict:
        return self._request(
            "POST", f"/compute/instances/{instance_id}/actions/{action}", action, json={}, instance_id=instance_id
        )

    def start(self, instance_id):
        self._action(instance_id, "start")

    def stop(self, instance_id):
        self._action(instance_id, "stop")

    def restart(self, instance_id):
        self._action(instance_id, "restart")

    def shutdown(self, instance_id):
        self._action(instance_id, "shutdown")

    def cancel_instance(self, instance_id):
        self._request("POST", f"/compute/instances/{instance_id}/cancel", "cancel_instance", json={}, instance_id=instance_id)

    def reset_password(self, instance_id):
        body = self._action(instance_id, "resetPassword")
        items = self._data(body)
        password = items[0].get("password") if items else None
        if not password:
            raise ProviderError("provider returned no password", operation="reset_password", instance_id=instance_id)
        return password

    def list_instances(self):
        body = self._request("GET", "/compute/instances?size=100", "list_instances")
        return [self._instance(raw) for raw in self._data(body)]

    def list_images(self):
        body = self._request("GET", "/compute/images?size=100&standardImage=true", "list_images")
        return [
            ProviderImage(
                image_id=str(raw["imageId"]),
                name=raw.get("name", ""),
                os_type=raw.get("osType", ""),
                version=raw.get("version", raw.get("osVersion", "")),
            )
            for raw in self._data(body)
        ]

    def list_regions(self):
        body = self._request("GET", "/data-centers?size=100", "list_regions")
        seen: dict[str, ProviderRegion] = {}
        for raw in self._data(body):
            code = raw.get("regionSlug") or raw.get("slug")
            if code and code not in seen:
                seen[code] = ProviderRegion(code=code, name=raw.get("regionName") or raw.get("name") or code)
        return list(seen.values())

    def list_products(self):
        body = self._request("GET", "/compute/products", "list_products")
        products = []
        for raw in self._data(body):
            products.append(
                ProviderProduct(
                    product_id=str(raw.get("productId")),
                    name=raw.get("name") or raw.get("productName") or str(raw.get("productId")),
                    cpu_cores=int(raw.get("cpuCores") or 0),
                    ram_mb=int(raw.get("ramMb") or 0),
                    disk_gb=int(raw.get("diskMb") or 0) // 1024,
                    disk_type=str(raw.get("diskType") or "NVME").upper(),
                    monthly_cost=Decimal(str(raw.get("monthlyPrice") or "0")),
                    regions=list(raw.get("regions") or []),
                )
            )
        return products

    def create_snapshot(self, instance_id, name, description=""):
        body = self._request(
            "POST",
            f"/compute/instances/{instance_id}/snapshots",
            "create_snapshot",
            json={"name": name, "description": description},
            instance_id=instance_id,
        )
        raw = (self._data(body) or [{}])[0]
        return ProviderSnapshot(snapshot_id=str(raw.get("snapshotId", "")), name=raw.get("name", name), description=description)

    def list_snapshots(self, instance_id):
        body = self._request("GET", f"/compute/instances/{instance_id}/snapshots", "list_snapshots", instance_id=instance_id)
        return [
            ProviderSnapshot(snapshot_id=str(raw["snapshotId"]), name=raw.get("name", ""), description=raw.get("description") or "")
            for raw in self._data(body)
        ]

    def restore_snapshot(self, instance_id, snapshot_id):
        self._request(
            "POST",
            f"/compute/instances/{instance_id}/snapshots/{snapshot_id}/restore",
            "restore_snapshot",
            json={},
            instance_id=instance_id,
            snapshot_id=snapshot_id,
        )

    def delete_snapshot(self, instance_id, snapshot_id):
        self._request(
            "DELETE",
            f"/compute/instances/{instance_id}/snapshots/{snapshot_id}",
            "delete_snapshot",
            instance_id=instance_id,
            snapshot_id=snapshot_id,
        )
