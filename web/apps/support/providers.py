from apps.integrations.providers import get_notifier
from .service import SupportService


def get_support_service() -> SupportService:
    return SupportService(notifier=get_notifier())
