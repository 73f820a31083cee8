"""Repository layer for persisting orders.

All status writes go through ``compare_and_swap``: the UPDATE is filtered
on the status and version the caller read, so two writers that both saw
the same state cannot both apply a transition. Callers hold the row lock
from ``lock`` inside ``transaction.atomic()``; the version check still
catches writers on backends where ``select_for_update`` is a no-op.
"""

from django.db.models import F
from django.utils import timezone

from apps.common.errors import ConcurrentModification, NotFound
from .models import OrderModel
from .domain import OrderStatus


class OrderRepository:
    def create(self, **fields) -> OrderModel:
        return OrderModel.objects.create(status=OrderStatus.PENDING.value, **fields)

    def get(self, order_id) -> OrderModel:
        try:
            return OrderModel.objects.select_related("user", "product").get(id=order_id)
        except OrderModel.DoesNotExist:
            raise NotFound("order not found", order_id=order_id)

    def lock(self, order_id) -> OrderModel:
        """Load the order with a row lock. Must run inside ``transaction.atomic()``."""
        try:
            return OrderModel.objects.select_for_update().select_related("user", "product").get(id=order_id)
        except OrderModel.DoesNotExist:
            raise NotFound("order not found", order_id=order_id)

    def compare_and_swap(self, order: OrderModel, target: OrderStatus, operation: str, **fields) -> OrderModel:
        """Move ``order`` to ``target`` if nobody changed it since it was read.

        Args:
            order: The order as read by the caller (status and version).
            target: New status.
            operation: Name of the attempted operation, for diagnostics.
            **fields: Extra columns to write in the same UPDATE.

        Returns:
            The same instance, refreshed from the database.

        Raises:
            ConcurrentModification: When the row's status or version no
                longer match what the caller read.
        """
        rows = OrderModel.objects.filter(id=order.id, status=order.status, version=order.version).update(
            status=OrderStatus(target).value,
            version=F("version") + 1,
            updated_at=timezone.now(),
            **fields,
        )
        if rows == 0:
            raise ConcurrentModification(
                "order changed concurrently",
                order_id=order.id,
                operation=operation,
                expected_status=order.status,
                expected_version=order.version,
            )
        order.refresh_from_db()
        return order
