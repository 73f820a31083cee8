"""HTTP views for the orders app.

Views are kept small: they validate requests (via Pydantic), delegate to
``OrderService`` obtained from ``get_order_service()`` and return an HTTP
response. Domain errors propagate to ``gateway.exceptions``.

Idempotency: when an ``Idempotency-Key`` header is provided, checkout is
processed once. The first request creates a record and, upon completion,
stores the response. Retries with the same payload replay the stored
response; reusing the key with a different payload returns HTTP 409.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.errors import DomainError
from apps.common.pagination import paginate
from gateway.permissions import IsAdminActor, IsAuthenticatedActor
from .domain import OrderStatus
from .idempotency import finalize, get_or_create_idempotent
from .providers import get_order_service
from .schemas import CancelDTO, CheckoutDTO, OrderReadDTO, ProvisionDTO, TransitionDTO


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def order_body(order, admin: bool = False) -> dict:
    return OrderReadDTO.from_model(order, admin=admin).model_dump(mode="json", exclude_none=True)


class OrdersCollectionView(APIView):
    """List orders (GET) and check out a new one (POST)."""

    permission_classes = [IsAuthenticatedActor]
    throttle_classes = [ScopedRateThrottle]

    def get_throttles(self):
        # DRF evaluates throttles in initial(), before get/post
        self.throttle_scope = "orders_list" if self.request.method == "GET" else "orders_create"
        return [throttle() for throttle in self.throttle_classes]

    def get(self, request):
        status_filter = request.GET.get("status")
        if status_filter and status_filter.upper() not in OrderStatus.__members__:
            return Response({"detail": "UNKNOWN_STATUS"}, status=status.HTTP_400_BAD_REQUEST)
        qs = get_order_service().list_orders(request.actor, status=status_filter)
        admin = request.actor.is_admin
        return Response(paginate(qs, request, lambda o: order_body(o, admin)))

    def post(self, request):
        """Place an order.

        Returns:
            - 201 with the order when it is created.
            - the stored response with ``Idempotent-Replay: true`` when the
              same idempotency key and payload are retried.
            - 409 ``IDEMPOTENCY_CONFLICT`` when the key is reused with a
              different payload, ``IDEMPOTENCY_IN_PROGRESS`` while the
              first request is still running.
            - 400 for DTO validation errors.
            - 404 / 422 for unknown products and invalid selections.
        """
        idem_key = request.headers.get("Idempotency-Key")

        try:
            dto = CheckoutDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)

        rec = None
        if idem_key:
            payload = {"user_id": str(request.actor.user_id), **dto.model_dump(mode="json")}
            try:
                existing, rec = get_or_create_idempotent(idem_key, payload)
            except ValueError:
                return Response({"detail": "IDEMPOTENCY_CONFLICT"}, status=status.HTTP_409_CONFLICT)
            if existing:
                if not rec.response_status:
                    return Response({"detail": "IDEMPOTENCY_IN_PROGRESS"}, status=status.HTTP_409_CONFLICT)
                resp = Response(rec.response_body, status=rec.response_status)
                resp["Idempotent-Replay"] = "true"
                return resp

        try:
            order = get_order_service().place_order(
                request.actor,
                product_id=dto.product_id,
                period_months=dto.period_months,
                region=dto.region,
                image_id=dto.image_id,
                notes=dto.notes,
                ssh_key_ids=dto.ssh_key_ids,
            )
        except DomainError as exc:
            if rec:
                finalize(rec, exc.http_status, {"detail": exc.code})
            raise
        except Exception:
            if rec:
                rec.delete()
            raise

        body = order_body(order, admin=request.actor.is_admin)
        if rec:
            finalize(rec, status.HTTP_201_CREATED, body, order_id=order.id)
        return Response(body, status=status.HTTP_201_CREATED)


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticatedActor]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_detail"

    def get(self, request, oid):
        order = get_order_service().get_order(oid, request.actor)
        return Response(order_body(order, admin=request.actor.is_admin))


class OrderTransitionView(APIView):
    """Admin: move an order along the lifecycle."""

    permission_classes = [IsAdminActor]

    def post(self, request, oid):
        try:
            dto = TransitionDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        order = get_order_service().transition(
            oid, dto.status, context=dto.context(), expected_status=dto.expected_status, actor=request.actor
        )
        return Response(order_body(order, admin=True))


class OrderProvisionView(APIView):
    """Admin "provision" action; provider data may be partial or absent."""

    permission_classes = [IsAdminActor]

    def post(self, request, oid):
        try:
            dto = ProvisionDTO.model_validate(request.data or {})
        except ValidationError as e:
            return _validation_error(e)
        order = get_order_service().provision_order(oid, dto.model_dump(exclude_none=True))
        return Response(order_body(order, admin=True))


class OrderCancelView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, oid):
        try:
            dto = CancelDTO.model_validate(request.data or {})
        except ValidationError as e:
            return _validation_error(e)
        order = get_order_service().cancel(oid, actor=request.actor, reason=dto.reason)
        return Response(order_body(order, admin=request.actor.is_admin))


class OrderPaymentIntentView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, oid):
        intent, txn = get_order_service().create_payment_intent(oid, request.actor)
        return Response(
            {
                "intent_id": intent.intent_id,
                "client_secret": intent.client_secret,
                "transaction_id": str(txn.id),
            },
            status=status.HTTP_201_CREATED,
        )
