"""Request-scoped middleware: request id, payload size limit and actor.

Behavior contract:
- If the incoming request contains the ``X-Request-Id`` header, that value
  is reused as the request id. Otherwise a new UUIDv4 is generated. The
  response carries the same id in the ``X-Request-ID`` header.
- API payloads larger than ``API_MAX_BYTES`` are rejected with 413.
- Authentication happens at the edge. The edge forwards the authenticated
  user as ``X-User-Id`` / ``X-User-Role``; ``ActorMiddleware`` turns those
  headers into ``request.actor``. A missing or malformed id yields the
  anonymous actor.
"""

import uuid
import os
import contextvars
from dataclasses import dataclass

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")
ACTOR_CTX = contextvars.ContextVar("actor_id", default="-")
MAX_API_BYTES = int(os.getenv("API_MAX_BYTES", str(1 * 1024 * 1024)))

ROLE_ADMIN = "ADMIN"
ROLE_CUSTOMER = "CUSTOMER"


@dataclass(frozen=True)
class Actor:
    """The caller on whose behalf a request runs.

    Attributes:
        user_id: Id of the authenticated user, or None for anonymous calls.
        role: ``ADMIN`` or ``CUSTOMER``; meaningless when ``user_id`` is None.
    """

    user_id: uuid.UUID | None
    role: str = ROLE_CUSTOMER

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    @property
    def is_admin(self) -> bool:
        return self.is_authenticated and self.role == ROLE_ADMIN


ANONYMOUS = Actor(user_id=None)


class RequestIdMiddleware(MiddlewareMixin):
    """Django middleware that sets and returns a per-request identifier.

    Attributes:
        HEADER (str): The name of the incoming HTTP header (in Django's
            ``request.META`` casing) that may contain a client-provided id.
        RESPONSE_HEADER (str): The name of the header returned on responses.
    """

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        """Store the request id on ``request.request_id`` and in ``REQUEST_ID_CTX``.

        The context variable lets code running outside the request object
        (HTTP adapters, log filters) read the id without it being passed
        around explicitly.
        """
        rid = request.META.get(self.HEADER)
        if not rid:
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        rid = getattr(request, "request_id", REQUEST_ID_CTX.get())
        response[self.RESPONSE_HEADER] = rid
        return response


class ApiSizeLimitMiddleware(MiddlewareMixin):
    """Reject oversized API payloads before they reach the views."""

    def process_request(self, request):
        if request.path.startswith("/api/"):
            clen = request.META.get("CONTENT_LENGTH")
            if clen and clen.isdigit() and int(clen) > MAX_API_BYTES:
                return JsonResponse({"detail": "PAYLOAD_TOO_LARGE"}, status=413)


class ActorMiddleware(MiddlewareMixin):
    """Resolve ``request.actor`` from the identity headers set by the edge."""

    USER_HEADER = "HTTP_X_USER_ID"
    ROLE_HEADER = "HTTP_X_USER_ROLE"

    def process_request(self, request):
        request.actor = self._resolve(request.META)
        ACTOR_CTX.set(str(request.actor.user_id) if request.actor.user_id else "-")

    def _resolve(self, meta) -> Actor:
        raw_id = meta.get(self.USER_HEADER)
        if not raw_id:
            return ANONYMOUS
        try:
            user_id = uuid.UUID(raw_id)
        except ValueError:
            return ANONYMOUS
        role = (meta.get(self.ROLE_HEADER) or ROLE_CUSTOMER).strip().upper()
        if role not in (ROLE_ADMIN, ROLE_CUSTOMER):
            role = ROLE_CUSTOMER
        return Actor(user_id=user_id, role=role)
