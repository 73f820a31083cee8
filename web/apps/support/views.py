"""HTTP views for support tickets."""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.common.pagination import paginate
from gateway.permissions import IsAdminActor, IsAuthenticatedActor
from .providers import get_support_service
from .schemas import OpenTicketDTO, ReplyDTO, TicketUpdateDTO


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def ticket_body(t, messages: bool = False) -> dict:
    body = {
        "id": str(t.id),
        "subject": t.subject,
        "status": t.status,
        "priority": t.priority,
        "category": t.category,
        "user_id": str(t.user_id),
        "order_id": str(t.order_id) if t.order_id else None,
        "vps_id": str(t.vps_id) if t.vps_id else None,
        "created_at": t.created_at.isoformat(),
        "updated_at": t.updated_at.isoformat(),
        "resolved_at": t.resolved_at.isoformat() if t.resolved_at else None,
        "closed_at": t.closed_at.isoformat() if t.closed_at else None,
    }
    if messages:
        body["messages"] = [message_body(m) for m in t.messages.all()]
    return body


def message_body(m) -> dict:
    return {
        "id": m.id,
        "is_admin": m.is_admin,
        "message": m.message,
        "created_at": m.created_at.isoformat(),
    }


class TicketsCollectionView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request):
        qs = get_support_service().list_tickets(request.actor, status=request.GET.get("status"))
        return Response(paginate(qs, request, ticket_body))

    def post(self, request):
        try:
            dto = OpenTicketDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        ticket = get_support_service().open_ticket(request.actor, **dto.model_dump())
        return Response(ticket_body(ticket, messages=True), status=status.HTTP_201_CREATED)


class TicketDetailView(APIView):
    def get_permissions(self):
        return [IsAdminActor()] if self.request.method == "PATCH" else [IsAuthenticatedActor()]

    def get(self, request, tid):
        ticket = get_support_service().get_ticket(tid, request.actor)
        return Response(ticket_body(ticket, messages=True))

    def patch(self, request, tid):
        try:
            dto = TicketUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        ticket = get_support_service().update(tid, status=dto.status, priority=dto.priority)
        return Response(ticket_body(ticket))


class TicketReplyView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, tid):
        try:
            dto = ReplyDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        msg = get_support_service().reply(tid, request.actor, dto.message)
        return Response(message_body(msg), status=status.HTTP_201_CREATED)


class TicketCloseView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, tid):
        return Response(ticket_body(get_support_service().close(tid, request.actor)))
