import pytest
from django.db import DatabaseError


@pytest.mark.django_db
def test_health_reports_components(client):
    r = client.get("/api/health/")
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["components"]["payments"] == {"circuit": "CLOSED"}
    assert body["components"]["provider"] == {"circuit": "CLOSED"}
    assert body["http_adapters"] is False


@pytest.mark.django_db
def test_health_is_503_when_database_fails(client, monkeypatch):
    from apps.monitoring import api

    class BrokenConnection:
        def cursor(self):
            raise DatabaseError("down")

    monkeypatch.setattr(api, "connection", BrokenConnection())
    r = client.get("/api/health/")
    assert r.status_code == 503
    assert r.json()["components"]["db"] == {"ok": False}
