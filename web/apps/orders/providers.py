"""Factory wiring ``OrderService`` with the collaborator ports.

Ports come from ``apps.integrations.providers``, which returns the HTTP
clients when ``settings.USE_HTTP_ADAPTERS`` is on and the in-process stubs
otherwise.
"""

from apps.catalog.service import CatalogService
from apps.integrations.providers import get_notifier, get_payments, get_provisioning
from .service import OrderService


def get_order_service() -> OrderService:
    provisioning, notifier = get_provisioning(), get_notifier()
    return OrderService(
        payments=get_payments(),
        provisioning=provisioning,
        notifier=notifier,
        catalog=CatalogService(provisioning=provisioning, notifier=notifier),
    )
