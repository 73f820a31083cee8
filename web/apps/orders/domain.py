"""Order lifecycle: statuses, the transition table and provisioning data.

This module is pure: no ORM access and no I/O. The service layer consults
it before touching the database so an invalid edge is rejected before any
side effect runs.

Lifecycle::

    PENDING → PAID → PROCESSING → PROVISIONING → COMPLETED
       └────────┴────────┴─────────────┴──→ CANCELLED

COMPLETED and CANCELLED are terminal.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from apps.common.errors import InvalidTransition, MissingProvisioningData


# ---- Enums ----
class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PROCESSING = "PROCESSING"
    PROVISIONING = "PROVISIONING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PAID, OrderStatus.CANCELLED}),
    OrderStatus.PAID: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.PROVISIONING, OrderStatus.CANCELLED}),
    OrderStatus.PROVISIONING: frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL = frozenset(s for s, targets in TRANSITIONS.items() if not targets)

# Statuses in which the customer has paid; used by billing and metrics.
PAID_STATUSES = frozenset(
    {OrderStatus.PAID, OrderStatus.PROCESSING, OrderStatus.PROVISIONING, OrderStatus.COMPLETED}
)


def check_transition(current, target, order_id=None) -> None:
    """Validate that ``current → target`` is an edge of the lifecycle.

    Raises:
        InvalidTransition: With ``from``/``to`` in its context.
    """
    current, target = OrderStatus(current), OrderStatus(target)
    if target not in TRANSITIONS[current]:
        raise InvalidTransition(
            f"order cannot move from {current.value} to {target.value}",
            order_id=order_id,
            **{"from": current.value, "to": target.value},
        )


# ---- Entities / DTOs ----
@dataclass(frozen=True)
class ProvisioningData:
    """Provider-side facts about the instance backing an order.

    All three fields are required to move an order into PROVISIONING.
    """

    contabo_instance_id: str | None = None
    ip_address: str | None = None
    root_password: str | None = None

    @classmethod
    def from_context(cls, context: dict | None) -> "ProvisioningData":
        context = context or {}
        return cls(
            contabo_instance_id=context.get("contabo_instance_id") or None,
            ip_address=context.get("ip_address") or None,
            root_password=context.get("root_password") or None,
        )

    def missing_fields(self) -> list[str]:
        return [name for name in ("contabo_instance_id", "ip_address", "root_password") if not getattr(self, name)]

    def require_complete(self, order_id=None) -> None:
        missing = self.missing_fields()
        if missing:
            raise MissingProvisioningData(
                f"missing provisioning fields: {', '.join(missing)}", order_id=order_id, missing=missing
            )


def add_months(moment: datetime, months: int) -> datetime:
    """Calendar-aware month addition, clamping the day (Jan 31 + 1 → Feb 28/29)."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def format_order_number(moment: datetime, sequence: int) -> str:
    """``ORD-YYYYMM-NNNNN``."""
    return f"ORD-{moment:%Y%m}-{sequence:05d}"
