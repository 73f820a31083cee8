"""Factories wiring the collaborator ports.

With ``settings.USE_HTTP_ADAPTERS`` on, the HTTP clients are returned;
otherwise the in-process stubs suitable for tests and local development.
Email always goes through Django's mail backend, which tests swap for the
locmem outbox.
"""

from django.conf import settings

from .adapters import PaymentsStub, ProvisioningStub
from .http_adapters import HttpPaymentsClient, ContaboClient
from .notifier import DjangoEmailNotifier
from .ports import NotifierPort, PaymentsPort, ProvisioningPort


def get_payments() -> PaymentsPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return HttpPaymentsClient()
    return PaymentsStub()


def get_provisioning() -> ProvisioningPort:
    if getattr(settings, "USE_HTTP_ADAPTERS", False):
        return ContaboClient()
    return ProvisioningStub()


def get_notifier() -> NotifierPort:
    return DjangoEmailNotifier()
