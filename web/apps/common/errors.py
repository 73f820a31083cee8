"""Domain error taxonomy shared by every app.

Each error carries a short, stable ``code`` (``str(exc) == exc.code``) so
views and tests can compare codes the same way they compare the
``ValueError`` codes of the order flow. Errors also carry:

- ``http_status``: the status the API layer answers with.
- ``user_facing``: whether a customer may see the specific code. Errors that
  are not user facing are reported to customers as a generic retry-safe
  failure; admins always get the specific kind.
- ``context``: entity ids and the attempted operation, for operator
  diagnosis in logs and admin responses.
"""

from typing import Any


class DomainError(Exception):
    """Base class for typed domain errors."""

    code = "DOMAIN_ERROR"
    http_status = 400
    user_facing = True
    public_context: tuple = ()

    def __init__(self, message: str | None = None, *, code: str | None = None, **context: Any):
        if code:
            self.code = code
        self.message = message or self.code
        self.context = context
        super().__init__(self.code)

    def __str__(self) -> str:
        return self.code

    def as_dict(self) -> dict:
        return {"detail": self.code, "message": self.message, "context": self.context}


class NotFound(DomainError):
    code = "NOT_FOUND"
    http_status = 404


class Forbidden(DomainError):
    code = "FORBIDDEN"
    http_status = 403


class InvalidTransition(DomainError):
    """Requested state change is not permitted from the current state."""

    code = "INVALID_TRANSITION"
    http_status = 409


class MissingProvisioningData(DomainError):
    """Required fields are absent for a provisioning-bound transition."""

    code = "MISSING_PROVISIONING_DATA"
    http_status = 422


class NotProvisioned(DomainError):
    """Lifecycle action requested on a VPS without a provider-side instance."""

    code = "NOT_PROVISIONED"
    http_status = 409


class ProviderError(DomainError):
    """An external provisioning/payment call failed (timeout, 4xx/5xx, network)."""

    code = "PROVIDER_ERROR"
    http_status = 502
    user_facing = False


class ConfigurationError(DomainError):
    """Pricing or catalog request invalid for the given combination."""

    code = "CONFIGURATION_ERROR"
    http_status = 422


class NotPurchasable(DomainError):
    """CUSTOM products are quote-only."""

    code = "NOT_PURCHASABLE"
    http_status = 422
    public_context = ("contact_email",)


class Conflict(DomainError):
    """The request collides with an existing record or a live reference."""

    code = "CONFLICT"
    http_status = 409


class TicketClosed(DomainError):
    code = "TICKET_CLOSED"
    http_status = 409


class ConcurrentModification(DomainError):
    """Optimistic check failed: another writer changed the entity first."""

    code = "CONCURRENT_MODIFICATION"
    http_status = 409
    user_facing = False
