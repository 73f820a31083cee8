"""Support ticket service.

Replies lock the ticket row so the status derived from the reply and the
appended message are written together; message order comes from the
server clock and the auto-increment id.
"""

import logging

from django.db import transaction
from django.utils import timezone

from apps.accounts.models import UserModel
from apps.common.errors import ConfigurationError, NotFound
from apps.integrations.ports import NotifierPort
from apps.orders.models import OrderModel
from apps.vps.models import VPSInstanceModel
from .domain import (
    TicketCategory,
    TicketPriority,
    TicketStatus,
    derive_category,
    status_after_reply,
    status_timestamps,
)
from .models import TicketMessageModel, TicketModel

logger = logging.getLogger(__name__)


def _enum(enum_cls, value, code):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        raise ConfigurationError(f"unknown {enum_cls.__name__}", code=code, value=value)


class SupportService:
    def __init__(self, notifier: NotifierPort):
        self.notifier = notifier

    # ---- reads ----
    def list_tickets(self, actor, status: str | None = None):
        qs = TicketModel.objects.select_related("user").order_by("-updated_at")
        if not actor.is_admin:
            qs = qs.filter(user_id=actor.user_id)
        if status:
            qs = qs.filter(status=_enum(TicketStatus, status, "UNKNOWN_STATUS").value)
        return qs

    def get_ticket(self, ticket_id, actor) -> TicketModel:
        try:
            ticket = TicketModel.objects.select_related("user").get(id=ticket_id)
        except TicketModel.DoesNotExist:
            raise NotFound("ticket not found", ticket_id=ticket_id)
        if not actor.is_admin and ticket.user_id != actor.user_id:
            raise NotFound("ticket not found", ticket_id=ticket_id)
        return ticket

    # ---- writes ----
    @transaction.atomic
    def open_ticket(
        self,
        actor,
        subject: str,
        message: str,
        priority: str = TicketPriority.MEDIUM.value,
        category: str | None = None,
        order_id=None,
        vps_id=None,
    ) -> TicketModel:
        """Open a ticket with its first message.

        Linked order and VPS must belong to the caller.
        """
        try:
            user = UserModel.objects.get(id=actor.user_id)
        except UserModel.DoesNotExist:
            raise NotFound("user not found", user_id=actor.user_id)

        order = vps = None
        if order_id:
            order = OrderModel.objects.filter(id=order_id, user=user).first()
            if order is None:
                raise NotFound("order not found", order_id=order_id)
        if vps_id:
            vps = VPSInstanceModel.objects.filter(id=vps_id, user=user).first()
            if vps is None:
                raise NotFound("vps not found", vps_id=vps_id)

        if category:
            category = _enum(TicketCategory, category, "UNKNOWN_CATEGORY")
        else:
            category = derive_category(subject, has_vps=vps is not None)

        ticket = TicketModel.objects.create(
            user=user,
            order=order,
            vps=vps,
            subject=subject,
            priority=_enum(TicketPriority, priority, "UNKNOWN_PRIORITY").value,
            category=category.value,
        )
        TicketMessageModel.objects.create(ticket=ticket, author=user, is_admin=actor.is_admin, message=message)
        logger.info("ticket opened", extra={"ticket_id": str(ticket.id), "category": ticket.category})
        return ticket

    def reply(self, ticket_id, actor, message: str) -> TicketMessageModel:
        """Append a message.

        A customer reply reopens a resolved ticket as pending and is
        rejected on a closed one; admin replies never change the status
        and notify the customer by email.
        """
        self.get_ticket(ticket_id, actor)
        with transaction.atomic():
            ticket = TicketModel.objects.select_for_update().select_related("user").get(id=ticket_id)
            new_status = status_after_reply(ticket.status, actor.is_admin, ticket.id)
            author = UserModel.objects.filter(id=actor.user_id).first()
            msg = TicketMessageModel.objects.create(
                ticket=ticket, author=author, is_admin=actor.is_admin, message=message
            )
            if new_status.value != ticket.status:
                ticket.status = new_status.value
                logger.info("ticket reopened by reply", extra={"ticket_id": str(ticket.id)})
            ticket.save(update_fields=["status", "updated_at"])

        if actor.is_admin:
            self.notifier.send(
                "ticket_reply",
                ticket.user.email,
                {"customer_name": ticket.user.full_name, "subject": ticket.subject, "message": message},
            )
        return msg

    def update(self, ticket_id, status: str | None = None, priority: str | None = None) -> TicketModel:
        """Admin override of status and/or priority; any pair is allowed."""
        now = timezone.now()
        with transaction.atomic():
            try:
                ticket = TicketModel.objects.select_for_update().get(id=ticket_id)
            except TicketModel.DoesNotExist:
                raise NotFound("ticket not found", ticket_id=ticket_id)
            fields = ["updated_at"]
            if status is not None:
                target = _enum(TicketStatus, status, "UNKNOWN_STATUS")
                if target.value != ticket.status:
                    ticket.status = target.value
                    fields.append("status")
                    for name, value in status_timestamps(target, now).items():
                        setattr(ticket, name, value)
                        fields.append(name)
            if priority is not None:
                ticket.priority = _enum(TicketPriority, priority, "UNKNOWN_PRIORITY").value
                fields.append("priority")
            ticket.save(update_fields=fields)
        return ticket

    def close(self, ticket_id, actor) -> TicketModel:
        self.get_ticket(ticket_id, actor)
        return self.update(ticket_id, status=TicketStatus.CLOSED.value)
