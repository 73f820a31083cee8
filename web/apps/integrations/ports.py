"""Ports for the external collaborators of the core.

The domain services depend on these protocols only. Concrete
implementations are the in-process stubs in ``adapters`` and the HTTP
clients in ``http_adapters``; ``providers`` picks one set based on
``settings.USE_HTTP_ADAPTERS``.

Every implementation reports failures as ``apps.common.errors.ProviderError``.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Protocol


# ---- Payment gateway ----
@dataclass(frozen=True)
class PaymentIntent:
    intent_id: str
    client_secret: str


class PaymentsPort(Protocol):
    def create_payment_intent(
        self,
        order_id: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str | None = None,
    ) -> PaymentIntent:
        """Create (or return the existing) payment intent for an order.

        Args:
            order_id: Order the intent pays for; stored as intent metadata.
            amount: Amount in major units; converted to cents on the wire.
            currency: ISO currency code.
            idempotency_key: Key that makes retries return the same intent.
        """
        raise NotImplementedError()


# ---- Provisioning provider ----
@dataclass(frozen=True)
class InstanceSpec:
    """What to create at the provider for one order."""

    product_id: str
    region: str
    image_id: str | None
    display_name: str
    root_password: str
    period_months: int = 1
    # OpenSSH public keys installed for root on first boot
    ssh_public_keys: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProviderInstance:
    """The provider's view of an instance.

    ``status`` is the provider's own lowercase vocabulary (``running``,
    ``stopped``, ``provisioning``, ...); mapping it onto local states is the
    VPS service's job.
    """

    instance_id: str
    status: str
    ip_address: str | None = None
    name: str = ""
    region: str = ""
    product_id: str = ""
    cpu_cores: int | None = None
    ram_mb: int | None = None
    disk_mb: int | None = None
    netmask_cidr: int | None = None


@dataclass(frozen=True)
class ProviderImage:
    image_id: str
    name: str
    os_type: str = ""
    version: str = ""


@dataclass(frozen=True)
class ProviderRegion:
    code: str
    name: str


@dataclass(frozen=True)
class ProviderProduct:
    product_id: str
    name: str
    cpu_cores: int
    ram_mb: int
    disk_gb: int
    disk_type: str = "NVME"
    monthly_cost: Decimal = Decimal("0")
    regions: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ProviderSnapshot:
    snapshot_id: str
    name: str
    description: str = ""


class ProvisioningPort(Protocol):
    def create_instance(self, spec: InstanceSpec) -> ProviderInstance:
        raise NotImplementedError()

    def get_instance(self, instance_id: str) -> ProviderInstance:
        raise NotImplementedError()

    def start(self, instance_id: str) -> None:
        raise NotImplementedError()

    def stop(self, instance_id: str) -> None:
        raise NotImplementedError()

    def restart(self, instance_id: str) -> None:
        raise NotImplementedError()

    def shutdown(self, instance_id: str) -> None:
        raise NotImplementedError()

    def cancel_instance(self, instance_id: str) -> None:
        raise NotImplementedError()

    def reset_password(self, instance_id: str) -> str:
        """Have the provider set a new root password and return it."""
        raise NotImplementedError()

    def list_instances(self) -> list[ProviderInstance]:
        raise NotImplementedError()

    def list_images(self) -> list[ProviderImage]:
        raise NotImplementedError()

    def list_regions(self) -> list[ProviderRegion]:
        raise NotImplementedError()

    def list_products(self) -> list[ProviderProduct]:
        raise NotImplementedError()

    def create_snapshot(self, instance_id: str, name: str, description: str = "") -> ProviderSnapshot:
        raise NotImplementedError()

    def list_snapshots(self, instance_id: str) -> list[ProviderSnapshot]:
        raise NotImplementedError()

    def restore_snapshot(self, instance_id: str, snapshot_id: str) -> None:
        """Roll the instance back to ``snapshot_id``; the instance must be stopped."""
        raise NotImplementedError()

    def delete_snapshot(self, instance_id: str, snapshot_id: str) -> None:
        raise NotImplementedError()


# ---- Email ----
class NotifierPort(Protocol):
    def send(self, template: str, recipient: str, data: dict) -> bool:
        """Send one templated message. Never raises; returns False on failure."""
        raise NotImplementedError()
