from apps.integrations.providers import get_notifier, get_provisioning
from .service import VpsService


def get_vps_service() -> VpsService:
    return VpsService(provisioning=get_provisioning(), notifier=get_notifier())
