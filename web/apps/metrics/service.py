"""Read-only rollups for the admin dashboard.

Nothing here writes. Every figure tolerates empty tables: sums default to
zero and percent changes against a zero baseline are reported as 0.
"""

from datetime import timedelta
from decimal import Decimal

from django.db.models import Count, DecimalField, Sum, Value
from django.db.models.functions import Coalesce

from apps.accounts.models import UserModel
from apps.billing.domain import InvoiceStatus
from apps.billing.models import InvoiceModel
from apps.orders.domain import OrderStatus, PAID_STATUSES
from apps.orders.models import OrderModel
from apps.support.domain import TicketStatus
from apps.support.models import TicketModel
from apps.vps.domain import VpsStatus
from apps.vps.models import VPSInstanceModel
from .domain import month_start, percent_change, previous_month_start, year_start

PAID_VALUES = [s.value for s in PAID_STATUSES]


def _revenue(since=None, until=None) -> Decimal:
    qs = OrderModel.objects.filter(status__in=PAID_VALUES, paid_at__isnull=False)
    if since is not None:
        qs = qs.filter(paid_at__gte=since)
    if until is not None:
        qs = qs.filter(paid_at__lt=until)
    zero = Value(Decimal("0.00"), output_field=DecimalField(max_digits=14, decimal_places=2))
    return qs.aggregate(total=Coalesce(Sum("total_amount"), zero))["total"]


def _count_by(qs, field: str) -> dict:
    return {row[field]: row["n"] for row in qs.values(field).annotate(n=Count("pk")).order_by()}


def dashboard_metrics(now) -> dict:
    this_month, last_month, this_year = month_start(now), previous_month_start(now), year_start(now)

    revenue_month = _revenue(since=this_month)
    revenue_last_month = _revenue(since=last_month, until=this_month)

    orders = _count_by(OrderModel.objects.all(), "status")
    vps = _count_by(VPSInstanceModel.objects.all(), "status")
    tickets = _count_by(TicketModel.objects.all(), "status")
    customers = UserModel.objects.filter(role=UserModel.Role.CUSTOMER)

    return {
        "revenue": {
            "total": str(_revenue()),
            "this_month": str(revenue_month),
            "last_month": str(revenue_last_month),
            "this_year": str(_revenue(since=this_year)),
            "percent_change": percent_change(revenue_month, revenue_last_month),
        },
        "orders": {
            "total": sum(orders.values()),
            "by_status": {s.value: orders.get(s.value, 0) for s in OrderStatus},
        },
        "clients": {
            "total": customers.count(),
            "active": customers.filter(is_active=True).count(),
            "new_this_month": customers.filter(created_at__gte=this_month).count(),
            "new_this_year": customers.filter(created_at__gte=this_year).count(),
        },
        "vps": {
            "total": sum(vps.values()),
            "running": vps.get(VpsStatus.RUNNING.value, 0),
            "provisioning": vps.get(VpsStatus.PROVISIONING.value, 0) + vps.get(VpsStatus.PENDING.value, 0),
            "suspended": vps.get(VpsStatus.SUSPENDED.value, 0),
        },
        "tickets": {
            "open": tickets.get(TicketStatus.OPEN.value, 0),
            "pending": tickets.get(TicketStatus.PENDING.value, 0),
            "resolved": tickets.get(TicketStatus.RESOLVED.value, 0),
        },
    }


def alerts(now) -> dict:
    """Things an operator should look at today."""
    live = VPSInstanceModel.objects.filter(status__in=[VpsStatus.RUNNING.value, VpsStatus.STOPPED.value])
    return {
        "expired_vps": VPSInstanceModel.objects.filter(status=VpsStatus.EXPIRED.value).count(),
        "overdue_vps": live.filter(expires_at__lte=now).count(),
        "expiring_this_week": live.filter(expires_at__gt=now, expires_at__lte=now + timedelta(days=7)).count(),
        "expiring_this_month": live.filter(expires_at__gt=now, expires_at__lte=now + timedelta(days=30)).count(),
        "orders_awaiting_provisioning": OrderModel.objects.filter(
            status__in=[OrderStatus.PAID.value, OrderStatus.PROCESSING.value]
        ).count(),
        "open_tickets": TicketModel.objects.filter(status=TicketStatus.OPEN.value).count(),
        "pending_invoices": InvoiceModel.objects.filter(status=InvoiceStatus.PENDING.value).count(),
    }
