"""Consistency checks over the persisted state.

Operator commands write to the tables directly, outside the order and VPS
state machines, so they re-run these checks afterwards. Each check returns
human-readable violation lines; an empty list means the invariant holds.
"""

from django.conf import settings
from django.db.models import Count, Q

from apps.billing.domain import TransactionStatus
from apps.catalog.domain import TWO_PLACES, price_drift
from apps.catalog.models import PriceRuleModel, ProductModel
from apps.orders.domain import OrderStatus, PAID_STATUSES
from apps.orders.models import OrderModel
from apps.vps.domain import VpsStatus
from apps.vps.models import VPSInstanceModel


def stale_price_rules() -> list[str]:
    return [
        f"price rule {r.id} ({r.product.name}, {r.period_months}m) final_price={r.final_price} is stale"
        for r in PriceRuleModel.objects.select_related("product")
        if price_drift(r, r.product.selling_price) > TWO_PLACES
    ]


def home_products_limit() -> list[str]:
    shown = ProductModel.objects.filter(show_on_home=True, is_active=True).count()
    if shown > settings.HOME_PRODUCTS_LIMIT:
        return [f"{shown} products shown on home, limit is {settings.HOME_PRODUCTS_LIMIT}"]
    return []


def completed_orders_have_vps() -> list[str]:
    qs = OrderModel.objects.filter(status=OrderStatus.COMPLETED.value, vps__isnull=True)
    return [f"completed order {o.order_number} has no linked VPS" for o in qs]


def paid_orders_are_billed() -> list[str]:
    qs = OrderModel.objects.filter(status__in=[s.value for s in PAID_STATUSES]).annotate(
        completed=Count(
            "transactions", filter=Q(transactions__status=TransactionStatus.COMPLETED.value), distinct=True
        ),
        invoices=Count("invoice", distinct=True),
    )
    problems = []
    for o in qs:
        if o.completed != 1:
            problems.append(f"paid order {o.order_number} has {o.completed} completed transactions")
        if o.invoices != 1:
            problems.append(f"paid order {o.order_number} has no invoice")
    return problems


def suspended_vps_have_timestamp() -> list[str]:
    qs = VPSInstanceModel.objects.filter(status=VpsStatus.SUSPENDED.value, suspended_at__isnull=True)
    return [f"suspended vps {v.id} has no suspended_at" for v in qs]


CHECKS = (
    stale_price_rules,
    home_products_limit,
    completed_orders_have_vps,
    paid_orders_are_billed,
    suspended_vps_have_timestamp,
)


def check_invariants() -> list[str]:
    violations = []
    for check in CHECKS:
        violations.extend(check())
    return violations
