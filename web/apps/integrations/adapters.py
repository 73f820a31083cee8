"""In-process stub adapters for the collaborator ports.

These stubs implement ``PaymentsPort`` and ``ProvisioningPort`` without any
network calls. They are intended for unit tests and local development
where deterministic behavior is useful and external services are not
required.

``ProvisioningStub`` keeps the instances it created in a class-level
registry so a stub obtained in one request can answer ``get_instance`` for
an instance created in another. Tests clear it with ``ProvisioningStub.reset()``.
"""

import dataclasses
import itertools
import secrets
import threading
import uuid
from decimal import Decimal

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


class PaymentsStub(PaymentsPort):
    """Approves intents for positive amounts.

    The intent id is derived from the idempotency key when one is given, so
    retries return the same intent like the real gateway does.
    """

    def create_payment_intent(self, order_id, amount, currency, idempotency_key=None) -> PaymentIntent:
        if Decimal(amount) <= 0:
            raise ProviderError("amount must be positive", order_id=order_id, operation="create_payment_intent")
        if idempotency_key:
            token = uuid.uuid5(uuid.NAMESPACE_URL, idempotency_key).hex
        else:
            token = uuid.uuid4().hex
        return PaymentIntent(intent_id=f"pi_stub_{token[:24]}", client_secret=f"pi_stub_{token[:24]}_secret")


class ProvisioningStub(ProvisioningPort):
    """Provider stub: instances come up ``running`` with a private IP."""

    _lock = threading.Lock()
    _instances: dict[str, ProviderInstance] = {}
    _snapshots: dict[str, list[ProviderSnapshot]] = {}
    _ips = itertools.count(10)

    IMAGES = [
        ProviderImage("ubuntu-22.04", "Ubuntu 22.04", "Linux", "22.04"),
        ProviderImage("debian-12", "Debian 12", "Linux", "12"),
        ProviderImage("windows-2022", "Windows Server 2022", "Windows", "2022"),
    ]
    REGIONS = [ProviderRegion("EU", "European Union"), ProviderRegion("US-central", "United States (Central)")]
    PRODUCTS = [
        ProviderProduct("V45", "Cloud VPS 10", 4, 8192, 75, "NVME", Decimal("4.50"), ["EU", "US-central"]),
        ProviderProduct("V47", "Cloud VPS 20", 6, 12288, 100, "NVME", Decimal("7.00"), ["EU"]),
    ]

    @classmethod
    def reset(cls):
        with cls._lock:
            cls._instances = {}
            cls._snapshots = {}

    @classmethod
    def register(cls, instance: ProviderInstance):
        with cls._lock:
            cls._instances[instance.instance_id] = instance

    def _get(self, instance_id: str) -> ProviderInstance:
        with self._lock:
            inst = self._instances.get(instance_id)
        if inst is None:
            inst = ProviderInstance(instance_id=instance_id, status="running", ip_address=f"10.0.0.{next(self._ips) % 250}")
            self.register(inst)
        return inst

    def _set_status(self, instance_id: str, status: str):
        inst = self._get(instance_id)
        self.register(dataclasses.replace(inst, status=status))

    def create_instance(self, spec: InstanceSpec) -> ProviderInstance:
        inst = ProviderInstance(
            instance_id=str(200000000 + secrets.randbelow(99999999)),
            status="running",
            ip_address=f"10.0.1.{next(self._ips) % 250}",
            name=spec.display_name,
            region=spec.region,
            product_id=spec.product_id,
        )
        self.register(inst)
        return inst

    def get_instance(self, instance_id):
        return self._get(instance_id)

    def start(self, instance_id):
        self._set_status(instance_id, "running")

    def stop(self, instance_id):
        self._set_status(instance_id, "stopped")

    def restart(self, instance_id):
        self._set_status(instance_id, "running")

    def shutdown(self, instance_id):
        self._set_status(instance_id, "stopped")

    def cancel_instance(self, instance_id):
        self._set_status(instance_id, "cancelled")

    def reset_password(self, instance_id):
        self._get(instance_id)
        return secrets.token_urlsafe(16)

    def list_instances(self):
        with self._lock:
            return list(self._instances.values())

    def list_images(self):
        return list(self.IMAGES)

    def list_regions(self):
        return list(self.REGIONS)

    def list_products(self):
        return list(self.PRODUCTS)

    def create_snapshot(self, instance_id, name, description=""):
        self._get(instance_id)
        snap = ProviderSnapshot(snapshot_id=f"snap-{uuid.uuid4().hex[:12]}", name=name, description=description)
        with self._lock:
            self._snapshots.setdefault(instance_id, []).append(snap)
        return snap

    def list_snapshots(self, instance_id):
        with self._lock:
            return list(self._snapshots.get(instance_id, []))

    def _find_snapshot(self, instance_id, snapshot_id, operation) -> ProviderSnapshot:
        for snap in self.list_snapshots(instance_id):
            if snap.snapshot_id == snapshot_id:
                return snap
        raise ProviderError(
            "snapshot not found at provider",
            code="SNAPSHOT_NOT_FOUND",
            operation=operation,
            instance_id=instance_id,
            snapshot_id=snapshot_id,
        )

    def restore_snapshot(self, instance_id, snapshot_id):
        self._find_snapshot(instance_id, snapshot_id, "restore_snapshot")

    def delete_snapshot(self, instance_id, snapshot_id):
        snap = self._find_snapshot(instance_id, snapshot_id, "delete_snapshot")
        with self._lock:
            self._snapshots[instance_id].remove(snap)
