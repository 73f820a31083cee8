"""Logging filter that enriches records with request context.

Adding the filter to the logging configuration gives every log line the
current request id and acting user without touching individual log
statements.
"""

from logging import Filter, LogRecord
from .middleware import REQUEST_ID_CTX, ACTOR_CTX


class RequestIdFilter(Filter):
    """Attach ``request_id`` and ``actor_id`` attributes to log records.

    Values come from the context variables set by ``RequestIdMiddleware``
    and ``ActorMiddleware``. Outside a request (management commands,
    gunicorn boot) both are a hyphen so formatters can always reference
    them.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        record.actor_id = ACTOR_CTX.get()
        return True
