"""Billing service: invoices, transactions, settings and payment events.

Invoices are created once per order (``invoice_for_order``) and flipped to
paid by the order state machine when payment is confirmed. Payment events
relayed by the payments service go through ``handle_payment_event``, which
drives the order state machine for successful payments and updates the
transaction for everything else.
"""

import logging
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.common.errors import ConcurrentModification, ConfigurationError, Forbidden, InvalidTransition, NotFound
from apps.orders.domain import OrderStatus, PAID_STATUSES
from apps.orders.models import OrderModel
from .domain import (
    DEFAULT_TAX_RATE,
    InvoiceStatus,
    PaymentEvent,
    TransactionStatus,
    compute_invoice_totals,
    format_invoice_number,
    normalize_invoice_status,
    normalize_payment_event,
    parse_tax_rate,
)
from .models import InvoiceModel, SettingModel, TransactionModel

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS = {
    "tax_rate": str(getattr(settings, "DEFAULT_TAX_RATE", DEFAULT_TAX_RATE)),
    "company_name": "Cloud Vertice",
    "company_website": "cloud.vertice.com.co",
    "company_address": "",
    "company_phone": "",
    "company_nit": "",
    "invoice_notes": "",
}


class BillingService:
    def __init__(self, order_service_factory=None):
        # Late-bound to break the orders ↔ billing import cycle
        self._order_service_factory = order_service_factory

    # ---- settings ----
    def get_settings(self) -> dict:
        values = dict(DEFAULT_SETTINGS)
        values.update({s.key: s.value for s in SettingModel.objects.all()})
        return values

    def tax_rate(self) -> Decimal:
        """Configured tax rate as a fraction; 19 % when unset or unparsable."""
        raw = SettingModel.objects.filter(key="tax_rate").values_list("value", flat=True).first()
        if raw in (None, ""):
            raw = DEFAULT_SETTINGS["tax_rate"]
        try:
            return parse_tax_rate(raw)
        except (InvalidOperation, ValueError):
            logger.warning("invalid tax_rate setting, using default", extra={"value": raw})
            return DEFAULT_TAX_RATE

    @transaction.atomic
    def update_settings(self, values: dict) -> dict:
        unknown = set(values) - set(DEFAULT_SETTINGS)
        if unknown:
            raise ConfigurationError("unknown settings", code="UNKNOWN_SETTING", keys=sorted(unknown))
        if "tax_rate" in values:
            # Stored as a fraction whatever form it was given in
            try:
                values = {**values, "tax_rate": parse_tax_rate(values["tax_rate"])}
            except (InvalidOperation, ValueError):
                raise ConfigurationError("invalid tax rate", code="INVALID_TAX_RATE", value=values["tax_rate"])
        for key, value in values.items():
            SettingModel.objects.update_or_create(key=key, defaults={"value": str(value)})
        return self.get_settings()

    # ---- invoices ----
    def _next_invoice_number(self, now) -> str:
        prefix = format_invoice_number(now, 0)[:-4]
        last = (
            InvoiceModel.objects.select_for_update()
            .filter(invoice_number__startswith=prefix)
            .order_by("-invoice_number")
            .first()
        )
        seq = int(last.invoice_number.rsplit("-", 1)[1]) + 1 if last else 1
        return format_invoice_number(now, seq)

    @transaction.atomic
    def invoice_for_order(self, order: OrderModel, paid: bool, now=None) -> InvoiceModel:
        """Return the order's single invoice, creating it if absent.

        With ``paid`` a pending invoice is marked paid. A cancelled invoice
        is left alone; reviving it is an administrative correction.
        """
        now = now or timezone.now()
        invoice = InvoiceModel.objects.select_for_update().filter(order=order).first()
        if invoice is not None:
            if paid and invoice.status == InvoiceStatus.PENDING.value:
                invoice.status = InvoiceStatus.PAID.value
                invoice.paid_at = now
                invoice.save(update_fields=["status", "paid_at"])
            return invoice

        totals = compute_invoice_totals(order.total_amount, self.tax_rate())
        invoice = InvoiceModel.objects.create(
            invoice_number=self._next_invoice_number(now),
            user_id=order.user_id,
            order=order,
            amount=totals.amount,
            tax_amount=totals.tax_amount,
            total=totals.total,
            currency=order.currency,
            status=(InvoiceStatus.PAID if paid else InvoiceStatus.PENDING).value,
            due_date=now + timedelta(days=settings.INVOICE_DUE_DAYS),
            paid_at=now if paid else None,
        )
        logger.info("invoice created", extra={"invoice_number": invoice.invoice_number, "order_id": str(order.id)})
        return invoice

    def list_invoices(self, actor, status: str | None = None):
        qs = InvoiceModel.objects.select_related("order").order_by("-created_at")
        if not actor.is_admin:
            qs = qs.filter(user_id=actor.user_id)
        if status:
            try:
                qs = qs.filter(status=normalize_invoice_status(status))
            except ValueError:
                raise ConfigurationError("unknown invoice status", code="UNKNOWN_INVOICE_STATUS", status=status)
        return qs

    def get_invoice(self, invoice_id, actor) -> InvoiceModel:
        try:
            invoice = InvoiceModel.objects.select_related("order", "user").get(id=invoice_id)
        except InvoiceModel.DoesNotExist:
            raise NotFound("invoice not found", invoice_id=invoice_id)
        if not actor.is_admin and invoice.user_id != actor.user_id:
            raise NotFound("invoice not found", invoice_id=invoice_id)
        return invoice

    @transaction.atomic
    def update_invoice_status(self, invoice_id, status, paid_at=None) -> InvoiceModel:
        """Administrative correction of an invoice's status.

        Moving to paid stamps ``paid_at`` (``paid_at`` or now, an existing
        stamp is kept); any other status clears it.
        """
        try:
            target = normalize_invoice_status(status)
        except ValueError:
            raise ConfigurationError("unknown invoice status", code="UNKNOWN_INVOICE_STATUS", status=status)
        try:
            invoice = InvoiceModel.objects.select_for_update().get(id=invoice_id)
        except InvoiceModel.DoesNotExist:
            raise NotFound("invoice not found", invoice_id=invoice_id)

        previous = invoice.status
        invoice.status = target
        if target == InvoiceStatus.PAID.value:
            if previous != target or invoice.paid_at is None:
                invoice.paid_at = paid_at or timezone.now()
        else:
            invoice.paid_at = None
        invoice.save(update_fields=["status", "paid_at"])
        logger.info(
            "invoice status corrected",
            extra={"invoice_number": invoice.invoice_number, "from_status": previous, "to_status": target},
        )
        return invoice

    def list_overdue_invoices(self, now=None):
        """Pending invoices past their due date, oldest due first."""
        now = now or timezone.now()
        return (
            InvoiceModel.objects.select_related("order", "user")
            .filter(status=InvoiceStatus.PENDING.value, due_date__lt=now)
            .order_by("due_date")
        )

    def generate_missing_invoices(self) -> int:
        """Create paid invoices for paid orders that have none."""
        created = 0
        missing = OrderModel.objects.filter(
            status__in=[s.value for s in PAID_STATUSES], invoice__isnull=True
        ).values_list("id", flat=True)
        for order_id in list(missing):
            with transaction.atomic():
                order = OrderModel.objects.select_for_update().get(id=order_id)
                self.invoice_for_order(order, paid=True, now=order.paid_at or timezone.now())
                created += 1
        return created

    # ---- transactions ----
    def record_intent(self, order: OrderModel, intent_id: str) -> TransactionModel:
        txn, _ = TransactionModel.objects.get_or_create(
            payment_intent_id=intent_id,
            defaults={"order": order, "amount": order.total_amount, "currency": order.currency},
        )
        if txn.order_id != order.id:
            raise Forbidden("payment intent belongs to another order", intent_id=intent_id, order_id=order.id)
        return txn

    # ---- payment events ----
    def handle_payment_event(self, intent_id: str, status: str) -> dict:
        """Apply a relayed payment-provider event.

        - succeeded: order PENDING → PAID through the state machine; a
          repeated delivery for an already paid order is a no-op.
        - failed / canceled: the pending transaction becomes failed.
        - refunded: the completed transaction becomes refunded.

        Raises:
            ValueError: ``UNKNOWN_PAYMENT_EVENT`` for unmapped statuses.
            NotFound: When no transaction carries ``intent_id``.
        """
        event = normalize_payment_event(status)
        txn = TransactionModel.objects.select_related("order").filter(payment_intent_id=intent_id).first()
        if txn is None:
            raise NotFound("no transaction for payment intent", intent_id=intent_id)
        order = txn.order
        result = {"intent_id": intent_id, "event": event.value, "order_id": str(order.id)}

        if event == PaymentEvent.SUCCEEDED:
            if order.status in {s.value for s in PAID_STATUSES}:
                return {**result, "outcome": "duplicate"}
            if order.status == OrderStatus.CANCELLED.value:
                logger.warning("payment succeeded for cancelled order", extra={"order_id": str(order.id), "intent_id": intent_id})
                return {**result, "outcome": "ignored"}
            try:
                self._order_service().confirm_payment(
                    order.id, intent_id=intent_id, expected_status=OrderStatus.PENDING
                )
            except (ConcurrentModification, InvalidTransition):
                order.refresh_from_db()
                if order.status in {s.value for s in PAID_STATUSES}:
                    return {**result, "outcome": "duplicate"}
                raise
            return {**result, "outcome": "confirmed"}

        with transaction.atomic():
            txn = TransactionModel.objects.select_for_update().get(id=txn.id)
            if event == PaymentEvent.REFUNDED:
                if txn.status == TransactionStatus.COMPLETED.value:
                    txn.status = TransactionStatus.REFUNDED.value
                    txn.save(update_fields=["status", "updated_at"])
                    logger.info("payment refunded", extra={"order_id": str(order.id), "intent_id": intent_id})
                    return {**result, "outcome": "refunded"}
                return {**result, "outcome": "ignored"}

            if txn.status == TransactionStatus.PENDING.value:
                txn.status = TransactionStatus.FAILED.value
                txn.save(update_fields=["status", "updated_at"])
                logger.info("payment failed", extra={"order_id": str(order.id), "intent_id": intent_id, "event": event.value})
                return {**result, "outcome": "transaction_failed"}
        return {**result, "outcome": "ignored"}

    def _order_service(self):
        if self._order_service_factory is None:
            from apps.orders.providers import get_order_service

            self._order_service_factory = get_order_service
        return self._order_service_factory()
