"""Retry, circuit breaker and context headers for outgoing HTTP calls.

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
  by the gateway middleware.
- Circuit breaker per downstream service (payments, provider) to avoid
  hammering unhealthy dependencies, with HALF_OPEN probing after a timeout.
- Retry with exponential backoff for transport errors and 5xx.

``send_with_retry`` ties the three together and converts every failure into
``ProviderError`` carrying the service name and attempted operation.
"""

import logging
import threading
import time
from typing import Callable, Optional

import httpx
from django.conf import settings
from django.utils.module_loading import import_string

from apps.common.errors import ProviderError

logger = logging.getLogger(__name__)

REQUEST_ID_CTX = import_string("gateway.middleware.REQUEST_ID_CTX")


class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful trial call; stays HALF_OPEN while a
      single trial call is in flight; transitions back to OPEN on failure.

    This implementation is thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"  # CLOSED | OPEN | HALF_OPEN
        self._opened_at = 0.0
        self._half_open_trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._half_open_trial_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Check and update state before a protected call.

        Raises:
            ProviderError: ``CIRCUIT_OPEN`` when the circuit is open or a
                HALF_OPEN trial call is already in flight.
        """
        with self._lock:
            st = self.state
            if st == "OPEN" or (st == "HALF_OPEN" and self._half_open_trial_in_flight):
                raise ProviderError(f"{self.name} circuit is {st}", code="CIRCUIT_OPEN", service=self.name)
            if st == "HALF_OPEN":
                self._half_open_trial_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._half_open_trial_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (self._failures >= self.fail_threshold and self._state != "OPEN"):
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._half_open_trial_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._half_open_trial_in_flight = False

    def reset(self):
        self.on_success()


payments_cb = CircuitBreaker(
    "payments",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)
provider_cb = CircuitBreaker(
    "provider",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


def request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers for an outgoing call: ``X-Request-ID`` plus ``extra``."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def retry_policy() -> tuple[int, float, float]:
    """Return (max_retries, backoff_base_seconds, max_sleep_seconds)."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    """Retry only on transport errors or 5xx."""
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def send_with_retry(
    breaker: CircuitBreaker,
    operation: str,
    send: Callable[[httpx.Client, dict], httpx.Response],
    headers: Optional[dict] = None,
    timeout: Optional[float] = None,
    **context,
) -> httpx.Response:
    """Run ``send(client, headers)`` under the breaker with retries.

    Returns the first non-5xx response. 4xx responses are returned to the
    caller as business outcomes and do not count as circuit failures.

    Raises:
        ProviderError: When the circuit is open, or when every attempt
            failed with a transport error or 5xx.
    """
    max_retries, backoff, cap = retry_policy()
    state = breaker.before_call()
    hdrs = request_headers({**(headers or {}), "X-Circuit-State": state, "X-Retry-Count": "0"})
    tries = 0
    try:
        with httpx.Client(timeout=timeout or settings.HTTP_TIMEOUT_SECS) as client:
            while True:
                resp = None
                exc = None
                try:
                    resp = send(client, hdrs)
                    if not should_retry(resp, None):
                        breaker.on_success()
                        return resp
                except httpx.RequestError as e:
                    exc = e

                if tries >= max_retries:
                    breaker.on_failure()
                    detail = f"{type(exc).__name__}: {exc}" if exc else f"HTTP {resp.status_code}"
                    logger.warning(
                        "%s call failed after %d attempt(s): %s",
                        breaker.name, tries + 1, detail,
                        extra={"operation": operation, "service": breaker.name},
                    )
                    raise ProviderError(
                        f"{breaker.name} {operation} failed: {detail}",
                        service=breaker.name,
                        operation=operation,
                        **context,
                    )

                tries += 1
                hdrs["X-Retry-Count"] = str(tries)
                time.sleep(min(backoff * (2 ** (tries - 1)), cap))
    finally:
        breaker.on_finish()


def raise_for_business_status(resp: httpx.Response, breaker: CircuitBreaker, operation: str, **context):
    """Turn a non-2xx response that was not retried into ``ProviderError``."""
    if resp.status_code >= 400:
        raise ProviderError(
            f"{breaker.name} {operation} rejected: HTTP {resp.status_code}",
            service=breaker.name,
            operation=operation,
            status_code=resp.status_code,
            **context,
        )
