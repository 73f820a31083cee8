"""Payments service API built with FastAPI.

The core never talks to Stripe directly. It asks this service for a
PaymentIntent per order, and Stripe reports the outcome here through a
signed webhook, which is relayed to the core as ``{intent_id, status}``.
Persistence is delegated to the SQLAlchemy-backed ``repo.PaymentsRepo``.
"""

import os
import uuid
import logging
import time
from typing import Annotated, Optional

import httpx
import stripe
from fastapi import FastAPI, HTTPException, Header, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from starlette.concurrency import run_in_threadpool

from repo import PaymentsRepo, IdempotencyKey, canonical_hash, engine, get_session, init_db


app = FastAPI(title="Payments Service")

Currency = constr(pattern=r"^[A-Z]{3}$")

# Stripe event type -> status understood by the core webhook
STRIPE_EVENTS = {
    "payment_intent.succeeded": "succeeded",
    "payment_intent.payment_failed": "failed",
    "payment_intent.canceled": "canceled",
    "charge.refunded": "refunded",
}

logger = logging.getLogger("payments")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # brief busy-wait until the DB accepts connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except Exception:
            if time.time() > deadline:
                raise
            time.sleep(1)
    init_db()


class IntentRequest(BaseModel):
    """Request body for the payment-intents endpoint.

    Attributes:
        order_id: Core order id, stored as Stripe metadata.
        amount_cents: Positive amount in minor currency units (cents).
        currency: Three-letter ISO currency code (e.g., USD, EUR).
    """
    order_id: str = Field(min_length=1, max_length=64)
    amount_cents: int = Field(gt=0)
    currency: Currency


class IntentResponse(BaseModel):
    intent_id: str
    client_secret: str


def _create_stripe_intent(req: IntentRequest, idempotency_key: Optional[str]) -> IntentResponse:
    stripe.api_key = os.getenv("STRIPE_SECRET_KEY", "")
    params = {
        "amount": req.amount_cents,
        "currency": req.currency.lower(),
        "metadata": {"order_id": req.order_id},
    }
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    try:
        intent = stripe.PaymentIntent.create(**params)
    except stripe.StripeError as e:
        logger.error("stripe intent creation failed", extra={"order_id": req.order_id, "error": str(e)})
        raise HTTPException(status_code=502, detail="STRIPE_ERROR")

    PaymentsRepo().save_intent(
        intent_id=intent.id,
        client_secret=intent.client_secret,
        order_id=req.order_id,
        amount_cents=req.amount_cents,
        currency=req.currency,
    )
    logger.info("payment intent created", extra={"order_id": req.order_id, "intent_id": intent.id})
    return IntentResponse(intent_id=intent.id, client_secret=intent.client_secret)


@app.get("/health")
def health():
    """Liveness/health check endpoint."""
    return {"ok": True}


@app.post("/payment-intents", response_model=IntentResponse, status_code=201)
def create_payment_intent(
    req: IntentRequest,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Create a Stripe PaymentIntent with optional idempotency.

    A retry carrying the same ``Idempotency-Key`` and payload returns the
    intent created by the first request. Reusing the key with a different
    payload answers 409.

    Raises:
        HTTPException: 409 on an idempotency conflict, 502 when Stripe
            rejects the request, 500 when the key record cannot be read.
    """
    if not idempotency_key:
        return _create_stripe_intent(req, None)

    payload_hash = canonical_hash(req.model_dump())
    with get_session() as s:
        try:
            s.add(IdempotencyKey(key=idempotency_key, request_hash=payload_hash))
            s.commit()
        except IntegrityError:
            s.rollback()
            rec = s.execute(
                select(IdempotencyKey).where(IdempotencyKey.key == idempotency_key).with_for_update()
            ).scalars().first()
            if not rec:
                raise HTTPException(status_code=500, detail="IDEMPOTENCY_LOOKUP_ERROR")
            if rec.request_hash != payload_hash:
                raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
            if rec.intent_id:
                existing = PaymentsRepo().get_intent(rec.intent_id)
                if existing is not None:
                    return IntentResponse(intent_id=existing.intent_id, client_secret=existing.client_secret)
            # key reserved but no intent yet: create it

        result = _create_stripe_intent(req, idempotency_key)
        rec = s.get(IdempotencyKey, idempotency_key)
        rec.intent_id = result.intent_id
        s.commit()
        return result


@app.post("/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Annotated[Optional[str], Header(alias="Stripe-Signature")] = None,
):
    """Verify a Stripe event and relay its outcome to the core.

    Unhandled event types are acknowledged and dropped. A relay that fails
    on the core's side answers 502 so Stripe redelivers; a 4xx from the
    core is final and only logged.
    """
    payload = await request.body()
    rid = getattr(request.state, "request_id", None)
    try:
        event = stripe.Webhook.construct_event(
            payload, stripe_signature or "", os.getenv("STRIPE_WEBHOOK_SECRET", "")
        )
    except (ValueError, stripe.SignatureVerificationError):
        logger.warning("rejected stripe webhook", extra={"request_id": rid})
        raise HTTPException(status_code=400, detail="INVALID_SIGNATURE")

    status = STRIPE_EVENTS.get(event["type"])
    if status is None:
        return {"received": True, "ignored": True}

    obj = event["data"]["object"]
    intent_id = obj["payment_intent"] if event["type"] == "charge.refunded" else obj["id"]
    if not intent_id:
        return {"received": True, "ignored": True}

    known = await run_in_threadpool(PaymentsRepo().update_status, intent_id, status)
    if not known:
        logger.warning("event for unknown intent", extra={"request_id": rid, "intent_id": intent_id})

    headers = {"X-Webhook-Token": os.getenv("PAYMENTS_WEBHOOK_TOKEN", "dev-webhook-token")}
    if rid:
        headers["X-Request-ID"] = rid
    timeout = float(os.getenv("CORE_TIMEOUT_SECS", "5"))
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(
                os.getenv("CORE_WEBHOOK_URL", "http://web:8000/api/payments/webhook/"),
                json={"intent_id": intent_id, "status": status},
                headers=headers,
            )
    except httpx.HTTPError as e:
        logger.error("core relay failed", extra={"request_id": rid, "intent_id": intent_id, "error": str(e)})
        raise HTTPException(status_code=502, detail="CORE_UNAVAILABLE")

    if resp.status_code >= 500:
        logger.error("core relay failed", extra={"request_id": rid, "intent_id": intent_id, "status": resp.status_code})
        raise HTTPException(status_code=502, detail="CORE_UNAVAILABLE")
    if resp.status_code >= 400:
        logger.warning("core rejected event", extra={"request_id": rid, "intent_id": intent_id, "status": resp.status_code})
        return {"received": True, "relayed": False}

    logger.info("event relayed", extra={"request_id": rid, "intent_id": intent_id, "status": status})
    return {"received": True, "relayed": True}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response


if __name__ == "__main__":
    import runpy
    import uvicorn

    conf = runpy.run_path(os.path.join(os.path.dirname(os.path.abspath(__file__)), "uvicorn.conf.py"))
    uvicorn.run(
        "main:app",
        **{k: conf[k] for k in ("host", "port", "workers", "loop", "http", "log_level", "proxy_headers")},
    )
