from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.utils import timezone

from apps.metrics.domain import month_start, percent_change, previous_month_start, year_start
from apps.metrics.service import alerts, dashboard_metrics
from apps.vps.models import VPSInstanceModel


def test_percent_change_without_baseline_is_zero():
    assert percent_change(Decimal("120"), Decimal("0")) == 0.0
    assert percent_change(None, None) == 0.0


def test_percent_change_rounds_to_two_places():
    assert percent_change(Decimal("150"), Decimal("100")) == 50.0
    assert percent_change(Decimal("1"), Decimal("3")) == -66.67


def test_windows():
    moment = datetime(2026, 1, 15, 10, 30, tzinfo=dt_timezone.utc)
    assert month_start(moment) == datetime(2026, 1, 1, tzinfo=dt_timezone.utc)
    assert previous_month_start(moment) == datetime(2025, 12, 1, tzinfo=dt_timezone.utc)
    assert year_start(moment) == datetime(2026, 1, 1, tzinfo=dt_timezone.utc)


@pytest.mark.django_db
def test_dashboard_on_empty_tables():
    metrics = dashboard_metrics(timezone.now())
    assert Decimal(metrics["revenue"]["total"]) == 0
    assert metrics["revenue"]["percent_change"] == 0.0
    assert metrics["orders"]["total"] == 0
    assert metrics["vps"]["total"] == 0


@pytest.mark.django_db
def test_dashboard_counts_paid_revenue(paid_order, order_service, customer_actor, product, admin_user):
    order_service.place_order(customer_actor, product.id, 1, "EU")

    metrics = dashboard_metrics(timezone.now())

    assert Decimal(metrics["revenue"]["total"]) == Decimal("99.60")
    assert Decimal(metrics["revenue"]["this_month"]) == Decimal("99.60")
    assert metrics["orders"]["total"] == 2
    assert metrics["orders"]["by_status"]["PAID"] == 1
    assert metrics["orders"]["by_status"]["PENDING"] == 1
    assert metrics["clients"]["total"] == 1


@pytest.mark.django_db
def test_alerts(paid_order, customer):
    now = timezone.now()
    VPSInstanceModel.objects.create(user=customer, name="a", status="RUNNING", expires_at=now - timedelta(days=1))
    VPSInstanceModel.objects.create(user=customer, name="b", status="RUNNING", expires_at=now + timedelta(days=3))
    VPSInstanceModel.objects.create(user=customer, name="c", status="STOPPED", expires_at=now + timedelta(days=20))

    result = alerts(now)

    assert result["overdue_vps"] == 1
    assert result["expiring_this_week"] == 1
    assert result["expiring_this_month"] == 2
    assert result["orders_awaiting_provisioning"] == 1


@pytest.mark.django_db
def test_metrics_endpoints_are_admin_only(client, customer, admin_user, as_user):
    assert client.get("/api/admin/metrics/", **as_user(customer)).status_code == 403
    r = client.get("/api/admin/metrics/", **as_user(admin_user))
    assert r.status_code == 200
    assert set(r.json()) == {"revenue", "orders", "clients", "vps", "tickets"}
    assert client.get("/api/admin/alerts/", **as_user(admin_user)).status_code == 200


@pytest.mark.django_db
def test_users_listing_filters_by_role(client, customer, admin_user, as_user):
    r = client.get("/api/admin/users/?role=customer", **as_user(admin_user))
    assert [u["email"] for u in r.json()["results"]] == ["ana@example.com"]
