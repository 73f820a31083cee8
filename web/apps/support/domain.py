"""Support ticket rules.

Admins may set any status or priority at any time; there is no transition
table. The only guarded paths are customer replies:

- a reply on a ``closed`` ticket is rejected with ``TicketClosed``;
- a reply on a ``resolved`` ticket reopens it as ``pending``.
"""

import re
from enum import Enum

from apps.common.errors import TicketClosed


class TicketStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    RESOLVED = "resolved"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class TicketCategory(str, Enum):
    TECHNICAL = "technical"
    BILLING = "billing"
    GENERAL = "general"


_BILLING_WORDS = re.compile(r"\b(invoice|payment|billing|refund|charge|factura|pago|cobro)\w*", re.I)
_TECHNICAL_WORDS = re.compile(r"\b(server|vps|ssh|ip|down|error|reboot|boot|disk|network|servidor)\b", re.I)


def derive_category(subject: str, has_vps: bool = False) -> TicketCategory:
    """Billing keywords win; a VPS link or technical keywords mean technical."""
    if _BILLING_WORDS.search(subject or ""):
        return TicketCategory.BILLING
    if has_vps or _TECHNICAL_WORDS.search(subject or ""):
        return TicketCategory.TECHNICAL
    return TicketCategory.GENERAL


def status_after_reply(current, is_admin: bool, ticket_id=None) -> TicketStatus:
    current = TicketStatus(current)
    if is_admin:
        return current
    if current == TicketStatus.CLOSED:
        raise TicketClosed("ticket is closed", ticket_id=ticket_id)
    if current == TicketStatus.RESOLVED:
        return TicketStatus.PENDING
    return current


def status_timestamps(status, now) -> dict:
    """Stamps to write when a ticket enters ``status``."""
    status = TicketStatus(status)
    if status == TicketStatus.RESOLVED:
        return {"resolved_at": now}
    if status == TicketStatus.CLOSED:
        return {"closed_at": now}
    return {}
