"""Idempotency utilities for safely handling duplicate checkout requests.

Stores and retrieves idempotency keys to de-duplicate client requests. It
supports creating an idempotent record, detecting conflicts when the same
key is used with a different payload, and finalizing a stored response so
subsequent retries can short-circuit.

The caller's user id is part of the hashed payload, so a key replayed by
another user is a conflict rather than a leak of someone else's order.
"""

import hashlib, json
from django.core.serializers.json import DjangoJSONEncoder
from django.db import transaction, IntegrityError
from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 over the payload serialized with sorted keys."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), cls=DjangoJSONEncoder)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, payload: dict):
    """Get-or-create an idempotency record for the given key and payload.

    Behavior:
        - First request with a new key: create a record and return (False, rec).
        - Same key and same payload: lock and return (True, rec) for replay.
        - Same key but different payload: raise ValueError("IDEMPOTENCY_CONFLICT").

    The create path runs in a nested savepoint so an IntegrityError only
    rolls back that block; the existing-record path takes a row lock.

    Returns:
        tuple[bool, IdempotencyKey]: (existing, rec).
    """
    h = _hash(payload)

    try:
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Persist the final response so retries replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = order_id
    rec.save(update_fields=["response_status", "response_body", "order"])
