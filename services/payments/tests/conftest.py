import os
import tempfile
from types import SimpleNamespace

import pytest

_DB_DIR = tempfile.mkdtemp(prefix="payments-test-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'payments.db')}"

import stripe  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import delete  # noqa: E402

import main  # noqa: E402
from repo import IdempotencyKey, PaymentIntentRecord, get_session  # noqa: E402


@pytest.fixture
def client():
    with TestClient(main.app) as c:
        yield c
    with get_session() as s:
        s.execute(delete(PaymentIntentRecord))
        s.execute(delete(IdempotencyKey))
        s.commit()


@pytest.fixture
def stripe_calls(monkeypatch):
    """Replace ``stripe.PaymentIntent.create``; returns the list of call kwargs."""
    calls = []

    def fake_create(**params):
        calls.append(params)
        n = len(calls)
        return SimpleNamespace(id=f"pi_test_{n}", client_secret=f"pi_test_{n}_secret_x")

    monkeypatch.setattr(stripe.PaymentIntent, "create", fake_create)
    return calls
