from apps.integrations.providers import get_notifier, get_provisioning
from .service import CatalogService


def get_catalog_service() -> CatalogService:
    return CatalogService(provisioning=get_provisioning(), notifier=get_notifier())
