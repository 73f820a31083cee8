"""Order service: checkout and the order state machine.

Every transition follows the same shape:

1. lock the order row (``select_for_update`` inside ``transaction.atomic``),
2. reject a stale ``expected_status`` with ``ConcurrentModification``,
3. validate the edge against ``domain.TRANSITIONS``,
4. apply the side effects and a compare-and-swap status update.

Calls to external collaborators (payments, provider) are made outside the
row lock. When such a call fails the order keeps its status and the
``ProviderError`` reaches the caller; there is no automatic retry.
"""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.accounts.models import SshKeyModel, UserModel
from apps.accounts.service import SshKeyService
from apps.billing.domain import InvoiceStatus, TransactionStatus
from apps.billing.models import InvoiceModel, TransactionModel
from apps.billing.service import BillingService
from apps.catalog.service import CatalogService
from apps.common.crypto import decrypt_secret, encrypt_secret, generate_password
from apps.common.errors import (
    ConcurrentModification,
    ConfigurationError,
    Forbidden,
    InvalidTransition,
    MissingProvisioningData,
    NotFound,
    ProviderError,
)
from apps.integrations.ports import InstanceSpec, NotifierPort, PaymentsPort, ProvisioningPort
from apps.vps.domain import UNCONFIRMED, VpsStatus
from apps.vps.models import VPSInstanceModel
from .domain import OrderStatus, ProvisioningData, add_months, check_transition
from .models import OrderModel
from .repository import OrderRepository

logger = logging.getLogger(__name__)


class OrderService:
    """Checkout and lifecycle transitions for orders.

    Args:
        payments: Port used to create payment intents.
        provisioning: Port used to create and cancel provider instances.
        notifier: Port used for customer emails.
        catalog: Pricing source for checkout.
        billing: Invoice/transaction bookkeeping.
    """

    def __init__(
        self,
        payments: PaymentsPort,
        provisioning: ProvisioningPort,
        notifier: NotifierPort,
        catalog: CatalogService | None = None,
        billing: BillingService | None = None,
        repo: OrderRepository | None = None,
    ):
        self.payments = payments
        self.provisioning = provisioning
        self.notifier = notifier
        self.catalog = catalog or CatalogService(provisioning=provisioning, notifier=notifier)
        self.billing = billing or BillingService(order_service_factory=lambda: self)
        self.repo = repo or OrderRepository()

    # ---- reads ----
    def get_order(self, order_id, actor=None) -> OrderModel:
        order = self.repo.get(order_id)
        self._check_owner(order, actor)
        return order

    def list_orders(self, actor, status: str | None = None):
        qs = OrderModel.objects.select_related("product", "user", "vps").order_by("-created_at")
        if not actor.is_admin:
            qs = qs.filter(user_id=actor.user_id)
        if status:
            qs = qs.filter(status=OrderStatus(status.upper()).value)
        return qs

    # ---- checkout ----
    def place_order(
        self,
        actor,
        product_id,
        period_months: int,
        region: str,
        image_id: str | None = None,
        notes: str = "",
        ssh_key_ids=None,
    ) -> OrderModel:
        """Create a PENDING order priced by the catalog.

        Raises:
            NotFound: Unknown user or product.
            Forbidden: ``SSH_KEY_NOT_OWNED`` for an SSH key that is not the caller's.
            NotPurchasable: CUSTOM product.
            ConfigurationError: Invalid period/region/OS combination.
        """
        try:
            user = UserModel.objects.get(id=actor.user_id, is_active=True)
        except UserModel.DoesNotExist:
            raise NotFound("user not found", user_id=actor.user_id)

        keys = SshKeyService().owned_keys(user.id, ssh_key_ids or [])
        selection = self.catalog.select(product_id, period_months, region, image_id)
        q = selection.quote
        order = self.repo.create(
            user=user,
            product=selection.product,
            total_amount=q.total_amount,
            base_price=q.base_price,
            region_price_adj=q.region_price_adj,
            os_price_adj=q.os_price_adj,
            discount_percent=q.discount_percent,
            currency=q.currency,
            period_months=period_months,
            region=selection.region.code,
            image_id=image_id or "",
            notes=notes,
            ssh_key_ids=[str(k.id) for k in keys],
        )
        logger.info("order placed", extra={"order_id": str(order.id), "order_number": order.order_number})
        self.notifier.send(
            "order_created",
            user.email,
            {
                "customer_name": user.full_name,
                "order_id": str(order.id),
                "order_number": order.order_number,
                "product_name": selection.product.name,
                "period_months": period_months,
                "total_amount": order.total_amount,
                "currency": order.currency,
            },
        )
        return order

    def create_payment_intent(self, order_id, actor, idempotency_key: str | None = None):
        """Create the payment intent for a PENDING order.

        The gateway call is keyed on the order, so repeated calls return the
        same intent and the order keeps a single live one.

        Returns:
            tuple[PaymentIntent, TransactionModel]
        """
        order = self.get_order(order_id, actor)
        if order.status != OrderStatus.PENDING.value:
            raise InvalidTransition(
                "only pending orders accept payment", order_id=order.id, operation="create_payment_intent", status=order.status
            )
        intent = self.payments.create_payment_intent(
            order.id, order.total_amount, order.currency, idempotency_key=idempotency_key or f"order-{order.id}"
        )
        with transaction.atomic():
            locked = self.repo.lock(order.id)
            if locked.status != OrderStatus.PENDING.value:
                raise ConcurrentModification(
                    "order left PENDING while the intent was created",
                    order_id=order.id,
                    operation="create_payment_intent",
                )
            txn = self.billing.record_intent(locked, intent.intent_id)
            TransactionModel.objects.filter(order=locked, status=TransactionStatus.PENDING.value).exclude(
                id=txn.id
            ).update(status=TransactionStatus.FAILED.value)
            self.billing.invoice_for_order(locked, paid=False)
        return intent, txn

    # ---- generic transition ----
    def transition(self, order_id, target, context: dict | None = None, expected_status=None, actor=None) -> OrderModel:
        """Move an order to ``target``, running that edge's side effects.

        Args:
            order_id: Order to move.
            target: Target ``OrderStatus`` (or its value).
            context: Edge data, e.g. ``contabo_instance_id``, ``ip_address``
                and ``root_password`` for PROVISIONING, ``intent_id`` for
                PAID, ``reason`` for CANCELLED.
            expected_status: Status the caller believes the order is in;
                a mismatch raises ``ConcurrentModification``.
            actor: Caller; only relevant for cancellation rules.

        Raises:
            InvalidTransition, MissingProvisioningData,
            ConcurrentModification, ProviderError.
        """
        target = OrderStatus(target)
        context = context or {}
        order = self.repo.get(order_id)
        self._guard(order, target, expected_status, "transition")
        expected = OrderStatus(order.status)

        if target == OrderStatus.PAID:
            return self.confirm_payment(order.id, intent_id=context.get("intent_id"), expected_status=expected)
        if target == OrderStatus.PROCESSING:
            return self.begin_provisioning(order.id, expected_status=expected)
        if target == OrderStatus.PROVISIONING:
            return self.submit_provisioning(order.id, ProvisioningData.from_context(context), expected_status=expected)
        if target == OrderStatus.COMPLETED:
            return self.complete_provisioning(order.id, expected_status=expected)
        return self.cancel(order.id, actor=actor, reason=context.get("reason", ""), expected_status=expected)

    def _guard(self, order: OrderModel, target: OrderStatus, expected_status, operation: str):
        if expected_status is not None and order.status != OrderStatus(expected_status).value:
            raise ConcurrentModification(
                "order status changed",
                order_id=order.id,
                operation=operation,
                expected_status=OrderStatus(expected_status).value,
                actual_status=order.status,
            )
        check_transition(order.status, target, order.id)

    # ---- edges ----
    def confirm_payment(self, order_id, intent_id: str | None = None, expected_status=None) -> OrderModel:
        """PENDING → PAID: one completed transaction, one paid invoice."""
        now = timezone.now()
        with transaction.atomic():
            order = self.repo.lock(order_id)
            self._guard(order, OrderStatus.PAID, expected_status, "confirm_payment")

            txn = None
            if intent_id:
                txn = TransactionModel.objects.select_for_update().filter(order=order, payment_intent_id=intent_id).first()
            if txn is None:
                txn = TransactionModel.objects.create(
                    order=order,
                    payment_intent_id=intent_id,
                    amount=order.total_amount,
                    currency=order.currency,
                    status=TransactionStatus.COMPLETED.value,
                )
            else:
                txn.status = TransactionStatus.COMPLETED.value
                txn.save(update_fields=["status", "updated_at"])
            TransactionModel.objects.filter(order=order, status=TransactionStatus.PENDING.value).exclude(
                id=txn.id
            ).update(status=TransactionStatus.FAILED.value)

            invoice = self.billing.invoice_for_order(order, paid=True, now=now)
            order = self.repo.compare_and_swap(order, OrderStatus.PAID, "confirm_payment", paid_at=now)

        logger.info("order paid", extra={"order_id": str(order.id), "intent_id": intent_id})
        self.notifier.send(
            "payment_confirmed",
            order.user.email,
            {
                "customer_name": order.user.full_name,
                "order_number": order.order_number,
                "amount": invoice.total,
                "currency": order.currency,
                "invoice_number": invoice.invoice_number,
            },
        )
        return order

    def begin_provisioning(self, order_id, expected_status=None) -> OrderModel:
        """PAID → PROCESSING."""
        with transaction.atomic():
            order = self.repo.lock(order_id)
            self._guard(order, OrderStatus.PROCESSING, expected_status, "begin_provisioning")
            return self.repo.compare_and_swap(order, OrderStatus.PROCESSING, "begin_provisioning")

    def submit_provisioning(self, order_id, data: ProvisioningData, expected_status=None) -> OrderModel:
        """PROCESSING → PROVISIONING: create or link the VPS instance.

        Raises:
            MissingProvisioningData: When instance id, IP or root password
                is absent.
        """
        with transaction.atomic():
            order = self.repo.lock(order_id)
            self._guard(order, OrderStatus.PROVISIONING, expected_status, "submit_provisioning")
            data.require_complete(order.id)
            self._attach_vps(order, data, VpsStatus.PROVISIONING)
            order = self.repo.compare_and_swap(order, OrderStatus.PROVISIONING, "submit_provisioning")
        logger.info(
            "order provisioning",
            extra={"order_id": str(order.id), "instance_id": data.contabo_instance_id},
        )
        return order

    def complete_provisioning(self, order_id, expected_status=None) -> OrderModel:
        """PROVISIONING → COMPLETED: the linked VPS becomes RUNNING."""
        now = timezone.now()
        with transaction.atomic():
            order = self.repo.lock(order_id)
            self._guard(order, OrderStatus.COMPLETED, expected_status, "complete_provisioning")
            vps = VPSInstanceModel.objects.select_for_update().filter(order=order).first()
            missing = []
            if vps is None or not vps.contabo_instance_id:
                missing.append("contabo_instance_id")
            if vps is None or not vps.ip_address:
                missing.append("ip_address")
            if missing:
                raise MissingProvisioningData("linked VPS is not provisioned", order_id=order.id, missing=missing)

            expires_at = add_months(now, order.period_months)
            rows = VPSInstanceModel.objects.filter(id=vps.id, version=vps.version).update(
                status=VpsStatus.RUNNING.value,
                status_pending_confirmation=False,
                expires_at=expires_at,
                version=F("version") + 1,
                updated_at=now,
            )
            if rows == 0:
                raise ConcurrentModification("VPS changed concurrently", vps_id=vps.id, operation="complete_provisioning")
            order = self.repo.compare_and_swap(order, OrderStatus.COMPLETED, "complete_provisioning", completed_at=now)

        logger.info("order completed", extra={"order_id": str(order.id), "vps_id": str(vps.id)})
        self.notifier.send(
            "vps_provisioned",
            order.user.email,
            {
                "customer_name": order.user.full_name,
                "name": vps.display_name or vps.name,
                "ip_address": vps.ip_address,
                "region": vps.region,
                "expires_at": expires_at,
                "vps_id": str(vps.id),
            },
        )
        return order

    def cancel(self, order_id, actor=None, reason: str = "", expected_status=None) -> OrderModel:
        """Any non-terminal status → CANCELLED.

        A linked VPS the provider has not confirmed yet (PENDING or
        PROVISIONING) is cancelled at the provider and marked TERMINATED;
        a confirmed one is left for admin follow-up. Pending invoices are
        cancelled and pending transactions failed.

        Customers may cancel only their own PENDING orders.
        """
        order = self.repo.get(order_id)
        self._check_owner(order, actor)
        if actor is not None and not actor.is_admin and order.status != OrderStatus.PENDING.value:
            raise Forbidden("customers can only cancel pending orders", order_id=order.id, status=order.status)
        self._guard(order, OrderStatus.CANCELLED, expected_status, "cancel")

        vps = order.linked_vps
        deprovision = vps if vps is not None and vps.status in {s.value for s in UNCONFIRMED} else None
        if deprovision is not None and deprovision.contabo_instance_id:
            try:
                self.provisioning.cancel_instance(deprovision.contabo_instance_id)
            except ProviderError:
                logger.warning(
                    "deprovision failed, order left unchanged",
                    extra={"order_id": str(order.id), "vps_id": str(deprovision.id)},
                )
                raise

        now = timezone.now()
        with transaction.atomic():
            self.repo.lock(order.id)
            notes = f"{order.notes}\nCancelled: {reason}".strip() if reason else order.notes
            cancelled = self.repo.compare_and_swap(order, OrderStatus.CANCELLED, "cancel", cancelled_at=now, notes=notes)
            if deprovision is not None:
                VPSInstanceModel.objects.filter(id=deprovision.id).exclude(status=VpsStatus.TERMINATED.value).update(
                    status=VpsStatus.TERMINATED.value,
                    status_pending_confirmation=False,
                    version=F("version") + 1,
                    updated_at=now,
                )
            InvoiceModel.objects.filter(order_id=order.id, status=InvoiceStatus.PENDING.value).update(
                status=InvoiceStatus.CANCELLED.value
            )
            TransactionModel.objects.filter(order_id=order.id, status=TransactionStatus.PENDING.value).update(
                status=TransactionStatus.FAILED.value
            )
        logger.info("order cancelled", extra={"order_id": str(order.id), "deprovisioned": deprovision is not None})
        return cancelled

    # ---- admin provisioning ----
    def provision_order(self, order_id, context: dict | None = None) -> OrderModel:
        """Admin "provision" action.

        From PAID the order first moves to PROCESSING. With complete
        provisioning data in ``context`` the order moves straight to
        PROVISIONING; otherwise the provider is asked to create the
        instance (or, on a retry, the already created one is looked up).

        Raises:
            ProviderError: The provider call failed; the order stays in
                PROCESSING for a manual retry.
        """
        data = ProvisioningData.from_context(context)
        order = self.repo.get(order_id)
        if order.status == OrderStatus.PAID.value:
            order = self.begin_provisioning(order.id, expected_status=OrderStatus.PAID)
        if order.status != OrderStatus.PROCESSING.value:
            raise InvalidTransition(
                f"order cannot be provisioned from {order.status}", order_id=order.id, operation="provision_order"
            )
        if not data.missing_fields():
            return self.submit_provisioning(order.id, data, expected_status=OrderStatus.PROCESSING)

        vps = order.linked_vps
        if data.root_password:
            password = data.root_password
        elif vps is not None and vps.root_password_encrypted:
            password = decrypt_secret(vps.root_password_encrypted)
        else:
            password = generate_password()

        ip = data.ip_address
        if vps is not None and vps.contabo_instance_id:
            instance_id = vps.contabo_instance_id
            ip = ip or vps.ip_address
        else:
            instance_id, ip = self._create_at_provider(order, password)

        if not ip:
            ip = self.provisioning.get_instance(instance_id).ip_address
        if not ip:
            raise ProviderError(
                "provider has not assigned an IP yet",
                code="PROVIDER_IP_PENDING",
                order_id=order.id,
                instance_id=instance_id,
            )
        return self.submit_provisioning(
            order.id,
            ProvisioningData(contabo_instance_id=instance_id, ip_address=ip, root_password=password),
            expected_status=OrderStatus.PROCESSING,
        )

    def _create_at_provider(self, order: OrderModel, password: str) -> tuple[str, str | None]:
        if not order.product.contabo_product_id:
            raise ConfigurationError(
                "product has no provider product id", code="PRODUCT_NOT_PROVISIONABLE", product_id=order.product_id
            )
        spec = InstanceSpec(
            product_id=order.product.contabo_product_id,
            region=order.region,
            image_id=order.image_id or None,
            display_name=order.product.name,
            root_password=password,
            period_months=order.period_months,
            ssh_public_keys=self._ssh_public_keys(order),
        )
        try:
            created = self.provisioning.create_instance(spec)
        except ProviderError:
            logger.warning("provider create failed, order stays PROCESSING", extra={"order_id": str(order.id)})
            raise

        # Record the instance right away so a retry or a cancel can find it
        with transaction.atomic():
            locked = self.repo.lock(order.id)
            if locked.status != OrderStatus.PROCESSING.value:
                raise ConcurrentModification("order changed during provisioning", order_id=order.id, operation="provision_order")
            self._attach_vps(
                locked,
                ProvisioningData(contabo_instance_id=created.instance_id, ip_address=created.ip_address, root_password=password),
                VpsStatus.PENDING,
            )
        return created.instance_id, created.ip_address

    def _ssh_public_keys(self, order: OrderModel) -> tuple[str, ...]:
        ids = order.ssh_key_ids or []
        keys = {str(k.id): k.public_key for k in SshKeyModel.objects.filter(user_id=order.user_id, id__in=ids)}
        return tuple(keys[i] for i in ids if i in keys)

    def _attach_vps(self, order: OrderModel, data: ProvisioningData, status: VpsStatus) -> VPSInstanceModel:
        vps = VPSInstanceModel.objects.select_for_update().filter(order=order).first()
        if vps is None and data.contabo_instance_id:
            vps = VPSInstanceModel.objects.select_for_update().filter(contabo_instance_id=data.contabo_instance_id).first()
            if vps is not None and vps.order_id not in (None, order.id):
                raise ConfigurationError(
                    "provider instance already linked to another order",
                    code="INSTANCE_ALREADY_LINKED",
                    instance_id=data.contabo_instance_id,
                    order_id=order.id,
                )
        if vps is None:
            vps = VPSInstanceModel(
                name=f"vps-{order.order_number.lower()}",
                display_name=order.product.name,
                region=order.region,
                image_id=order.image_id,
            )
        elif vps.status == VpsStatus.TERMINATED.value:
            raise InvalidTransition("linked VPS is terminated", vps_id=vps.id, order_id=order.id)
        else:
            vps.version += 1

        vps.user_id = order.user_id
        vps.order = order
        vps.contabo_instance_id = data.contabo_instance_id
        vps.ip_address = data.ip_address
        if data.root_password:
            vps.root_password_encrypted = encrypt_secret(data.root_password)
        vps.status = status.value
        vps.status_pending_confirmation = False
        vps.save()
        return vps

    # ---- helpers ----
    def _check_owner(self, order: OrderModel, actor):
        if actor is None or actor.is_admin:
            return
        if order.user_id != actor.user_id:
            raise NotFound("order not found", order_id=order.id)
