"""HTTP views for invoices, billing settings and the payment webhook."""

import hmac
import logging

from django.conf import settings
from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.pagination import paginate
from gateway.permissions import IsAdminActor, IsAuthenticatedActor
from .schemas import InvoiceStatusDTO, PaymentEventDTO, SettingsUpdateDTO
from .service import BillingService

logger = logging.getLogger(__name__)


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def invoice_body(i, admin: bool = False) -> dict:
    body = {
        "id": str(i.id),
        "invoice_number": i.invoice_number,
        "order_id": str(i.order_id) if i.order_id else None,
        "order_number": i.order.order_number if i.order_id else None,
        "amount": str(i.amount),
        "tax_amount": str(i.tax_amount),
        "total": str(i.total),
        "currency": i.currency,
        "status": i.status,
        "due_date": i.due_date.isoformat() if i.due_date else None,
        "paid_at": i.paid_at.isoformat() if i.paid_at else None,
        "created_at": i.created_at.isoformat(),
    }
    if admin:
        body["user_id"] = str(i.user_id)
    return body


class InvoicesCollectionView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request):
        qs = BillingService().list_invoices(request.actor, status=request.GET.get("status"))
        admin = request.actor.is_admin
        return Response(paginate(qs, request, lambda i: invoice_body(i, admin)))


class InvoiceDetailView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request, iid):
        invoice = BillingService().get_invoice(iid, request.actor)
        return Response(invoice_body(invoice, request.actor.is_admin))


class InvoiceStatusView(APIView):
    """Admin correction of an invoice's status."""

    permission_classes = [IsAdminActor]

    def put(self, request, iid):
        try:
            dto = InvoiceStatusDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        invoice = BillingService().update_invoice_status(iid, dto.status, paid_at=dto.paid_at)
        return Response(invoice_body(invoice, admin=True))


class OverdueInvoicesView(APIView):
    permission_classes = [IsAdminActor]

    def get(self, request):
        qs = BillingService().list_overdue_invoices()
        return Response(paginate(qs, request, lambda i: invoice_body(i, admin=True)))


class BillingSettingsView(APIView):
    permission_classes = [IsAdminActor]

    def get(self, request):
        return Response(BillingService().get_settings())

    def put(self, request):
        try:
            dto = SettingsUpdateDTO.model_validate({"values": request.data})
        except ValidationError as e:
            return _validation_error(e)
        return Response(BillingService().update_settings(dto.values))


class PaymentWebhookView(APIView):
    """Payment events relayed by the payments service.

    The relay authenticates with the shared ``X-Webhook-Token``; the
    signature of the original provider event was verified upstream.
    """

    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "payments_webhook"

    def post(self, request):
        token = request.headers.get("X-Webhook-Token", "")
        if not hmac.compare_digest(token.encode("utf-8"), settings.PAYMENTS_WEBHOOK_TOKEN.encode("utf-8")):
            logger.warning("payment webhook rejected: bad token")
            return Response({"detail": "INVALID_WEBHOOK_TOKEN"}, status=status.HTTP_401_UNAUTHORIZED)
        try:
            dto = PaymentEventDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        try:
            result = BillingService().handle_payment_event(dto.intent_id, dto.status)
        except ValueError as e:
            return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        logger.info("payment event processed", extra=result)
        return Response(result)
