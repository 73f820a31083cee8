"""VPS instance states, actions and the rules that tie them together.

Pure module. Two families of states coexist:

- provider-tracked: PENDING, PROVISIONING, RUNNING, STOPPED. These follow
  the provider's report on every ``sync``. An instance the provider has
  cancelled or is deleting becomes TERMINATED.
- admin-owned: SUSPENDED, EXPIRED. Set by admin or billing action and
  never overwritten by ``sync``.

TERMINATED is terminal: nothing changes it once reached.
"""

from enum import Enum


class VpsStatus(str, Enum):
    PENDING = "PENDING"
    PROVISIONING = "PROVISIONING"
    RUNNING = "RUNNING"
    STOPPED = "STOPPED"
    SUSPENDED = "SUSPENDED"
    TERMINATED = "TERMINATED"
    EXPIRED = "EXPIRED"


class VpsAction(str, Enum):
    START = "start"
    STOP = "stop"
    RESTART = "restart"
    SHUTDOWN = "shutdown"


ADMIN_OWNED = frozenset({VpsStatus.SUSPENDED, VpsStatus.EXPIRED})
UNCONFIRMED = frozenset({VpsStatus.PENDING, VpsStatus.PROVISIONING})

# Local status assumed after a successful provider call, until the next sync
OPTIMISTIC_RESULT = {
    VpsAction.START: VpsStatus.RUNNING,
    VpsAction.RESTART: VpsStatus.RUNNING,
    VpsAction.STOP: VpsStatus.STOPPED,
    VpsAction.SHUTDOWN: VpsStatus.STOPPED,
}

# Provider vocabulary → local status. Anything else leaves status as-is.
PROVIDER_STATUS = {
    "running": VpsStatus.RUNNING,
    "stopped": VpsStatus.STOPPED,
    "provisioning": VpsStatus.PROVISIONING,
    "pending": VpsStatus.PROVISIONING,
    "creating": VpsStatus.PROVISIONING,
    "installing": VpsStatus.PROVISIONING,
    "deleting": VpsStatus.TERMINATED,
    "cancelled": VpsStatus.TERMINATED,
    "uninstalled": VpsStatus.TERMINATED,
}


def status_after_sync(current, provider_status: str):
    """Status to store after the provider reported ``provider_status``."""
    current = VpsStatus(current)
    if current == VpsStatus.TERMINATED or current in ADMIN_OWNED:
        return current
    return PROVIDER_STATUS.get((provider_status or "").lower(), current)


def suspension_fields(status, suspended_at, reason: str, now) -> dict:
    """Keep ``(status, suspended_at)`` coherent for a status override.

    SUSPENDED always has a ``suspended_at``. Leaving the admin-owned states
    clears the suspension; EXPIRED keeps an earlier suspension stamp.
    """
    status = VpsStatus(status)
    if status == VpsStatus.SUSPENDED:
        return {"suspended_at": suspended_at or now, "suspension_reason": reason}
    if status == VpsStatus.EXPIRED:
        return {"suspended_at": suspended_at, "suspension_reason": reason}
    return {"suspended_at": None, "suspension_reason": ""}
