"""DRF exception handler for typed domain errors.

Domain errors are logged here, once, with the entity ids and operation
they carry. The response depends on who is asking:

- admins get the specific kind with its message and context;
- customers get the code of user-facing errors, and a generic
  ``REQUEST_FAILED_RETRY_LATER`` for everything else (provider outages,
  lost optimistic races).

Anything that is not a ``DomainError`` goes through DRF's default handler.
"""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from apps.common.errors import DomainError, ProviderError, ConcurrentModification

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "REQUEST_FAILED_RETRY_LATER"


def api_exception_handler(exc, context):
    if not isinstance(exc, DomainError):
        return exception_handler(exc, context)

    view = context.get("view")
    request = context.get("request")
    actor = getattr(request, "actor", None)
    extra = {
        "error_code": exc.code,
        "view": type(view).__name__ if view else None,
        "context": {k: str(v) for k, v in exc.context.items()},
    }
    if isinstance(exc, (ProviderError, ConcurrentModification)):
        logger.warning("domain operation failed: %s", exc.message, extra=extra)
    else:
        logger.info("domain operation rejected: %s", exc.code, extra=extra)

    if actor is not None and actor.is_admin:
        body = exc.as_dict()
    elif exc.user_facing:
        body = {"detail": exc.code}
        for key in exc.public_context:
            if key in exc.context:
                body[key] = exc.context[key]
    else:
        body = {"detail": GENERIC_FAILURE}
    return Response(body, status=exc.http_status)
