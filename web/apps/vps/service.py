"""VPS lifecycle service.

Local status is written in two ways only: after a successful provider
response (``execute_action``, ``sync``) or by an explicit admin decision
(``suspend``, ``activate``, ``update_status``). A failing provider call
leaves the row untouched and the ``ProviderError`` reaches the caller.

Writes lock the instance row and update it with a compare-and-swap on
``version``; provider calls happen before the lock is taken.
"""

import logging

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from apps.common.crypto import decrypt_secret, encrypt_secret
from apps.common.errors import (
    ConcurrentModification,
    ConfigurationError,
    Forbidden,
    InvalidTransition,
    NotFound,
    NotProvisioned,
    ProviderError,
)
from apps.integrations.ports import NotifierPort, ProvisioningPort
from apps.orders.domain import OrderStatus
from .domain import (
    ADMIN_OWNED,
    OPTIMISTIC_RESULT,
    VpsAction,
    VpsStatus,
    status_after_sync,
    suspension_fields,
)
from .models import SnapshotModel, VPSInstanceModel, VpsActionModel

logger = logging.getLogger(__name__)

ADMIN_OWNED_VALUES = {s.value for s in ADMIN_OWNED}


class VpsService:
    def __init__(self, provisioning: ProvisioningPort, notifier: NotifierPort, order_service_factory=None):
        self.provisioning = provisioning
        self.notifier = notifier
        self._order_service_factory = order_service_factory

    # ---- reads ----
    def get_vps(self, vps_id, actor=None) -> VPSInstanceModel:
        try:
            vps = VPSInstanceModel.objects.select_related("user", "order").get(id=vps_id)
        except VPSInstanceModel.DoesNotExist:
            raise NotFound("vps not found", vps_id=vps_id)
        if actor is not None and not actor.is_admin and vps.user_id != actor.user_id:
            raise NotFound("vps not found", vps_id=vps_id)
        return vps

    def list_vps(self, actor, status: str | None = None):
        qs = VPSInstanceModel.objects.select_related("user", "order").order_by("-created_at")
        if not actor.is_admin:
            qs = qs.filter(user_id=actor.user_id)
        if status:
            qs = qs.filter(status=self._parse_status(status).value)
        return qs

    def list_actions(self, vps_id, actor):
        return self.get_vps(vps_id, actor).actions.all()

    def list_snapshots(self, vps_id, actor):
        return self.get_vps(vps_id, actor).snapshots.all()

    def available_provider_instances(self) -> list:
        """Provider instances not linked to any local VPS (admin import aid)."""
        linked = set(
            VPSInstanceModel.objects.exclude(contabo_instance_id=None).values_list("contabo_instance_id", flat=True)
        )
        return [i for i in self.provisioning.list_instances() if i.instance_id not in linked]

    # ---- admin-owned transitions ----
    def suspend(self, vps_id, reason: str = "") -> VPSInstanceModel:
        """Suspend an instance; suspending an already suspended one is a no-op.

        The provider shutdown is best effort: a failure is logged and the
        local suspension still applies.
        """
        vps = self.get_vps(vps_id)
        self._reject_terminated(vps, "suspend")
        if vps.status == VpsStatus.SUSPENDED.value:
            return vps

        if vps.contabo_instance_id:
            try:
                self.provisioning.shutdown(vps.contabo_instance_id)
            except ProviderError:
                logger.warning("shutdown on suspend failed", extra={"vps_id": str(vps.id)})

        now = timezone.now()
        with transaction.atomic():
            vps = self._lock(vps.id)
            self._reject_terminated(vps, "suspend")
            if vps.status == VpsStatus.SUSPENDED.value:
                return vps
            vps = self._cas(
                vps,
                "suspend",
                status=VpsStatus.SUSPENDED.value,
                status_pending_confirmation=False,
                **suspension_fields(VpsStatus.SUSPENDED, None, reason, now),
            )
        logger.info("vps suspended", extra={"vps_id": str(vps.id), "reason": reason})
        self._notify("vps_suspended", vps, reason=reason)
        return vps

    def activate(self, vps_id) -> VPSInstanceModel:
        """SUSPENDED/EXPIRED → RUNNING, pending confirmation by the next sync."""
        now = timezone.now()
        with transaction.atomic():
            vps = self._lock(vps_id)
            if vps.status not in ADMIN_OWNED_VALUES:
                raise InvalidTransition(
                    f"cannot activate from {vps.status}", vps_id=vps.id, operation="activate", status=vps.status
                )
            vps = self._cas(
                vps,
                "activate",
                status=VpsStatus.RUNNING.value,
                status_pending_confirmation=True,
                **suspension_fields(VpsStatus.RUNNING, vps.suspended_at, "", now),
            )
        logger.info("vps activated", extra={"vps_id": str(vps.id)})
        self._notify("vps_reactivated", vps)
        return vps

    def update_status(self, vps_id, status) -> VPSInstanceModel:
        """Admin override to any status; a TERMINATED instance never changes."""
        target = self._parse_status(status)
        now = timezone.now()
        with transaction.atomic():
            vps = self._lock(vps_id)
            if vps.status == VpsStatus.TERMINATED.value:
                if target == VpsStatus.TERMINATED:
                    return vps
                raise InvalidTransition("vps is terminated", vps_id=vps.id, operation="update_status")
            vps = self._cas(
                vps,
                "update_status",
                status=target.value,
                status_pending_confirmation=False,
                **suspension_fields(target, vps.suspended_at, vps.suspension_reason, now),
            )
        logger.info("vps status overridden", extra={"vps_id": str(vps.id), "status": target.value})
        return vps

    # ---- provider-backed operations ----
    def execute_action(self, vps_id, action, actor=None) -> VPSInstanceModel:
        """Run start/stop/restart/shutdown at the provider.

        On success the local status is set optimistically and flagged
        ``status_pending_confirmation`` until the next sync. Admin-owned
        statuses are not overwritten.

        Raises:
            NotProvisioned: No provider instance id.
            Forbidden: Customer acting on a suspended or expired instance.
            ProviderError: The provider call failed; status unchanged.
        """
        action = self._parse_action(action)
        vps = self._provider_target(vps_id, actor, action.value)

        record = VpsActionModel.objects.create(
            vps=vps, action=action.value, requested_by=actor.user_id if actor is not None else None
        )
        try:
            getattr(self.provisioning, action.value)(vps.contabo_instance_id)
        except ProviderError as exc:
            self._finish_action(record, VpsActionModel.Status.FAILED, exc.code)
            raise

        with transaction.atomic():
            vps = self._lock(vps.id)
            if vps.status != VpsStatus.TERMINATED.value and vps.status not in ADMIN_OWNED_VALUES:
                vps = self._cas(
                    vps,
                    action.value,
                    status=OPTIMISTIC_RESULT[action].value,
                    status_pending_confirmation=True,
                )
            self._finish_action(record, VpsActionModel.Status.COMPLETED)
        logger.info("vps action executed", extra={"vps_id": str(vps.id), "action": action.value})
        return vps

    def sync(self, vps_id) -> VPSInstanceModel:
        """Overwrite local status, IP and specs with the provider's report.

        Admin-owned and terminated statuses are kept. A linked order still
        in PROVISIONING is completed once the provider reports the instance
        running.
        """
        vps = self.get_vps(vps_id)
        if not vps.contabo_instance_id:
            raise NotProvisioned("vps has no provider instance", vps_id=vps.id, operation="sync")
        remote = self.provisioning.get_instance(vps.contabo_instance_id)

        now = timezone.now()
        with transaction.atomic():
            vps = self._lock(vps.id)
            fields = {
                "status": status_after_sync(vps.status, remote.status).value,
                "status_pending_confirmation": False,
                "ip_address": remote.ip_address or vps.ip_address,
                "last_synced_at": now,
            }
            for name in ("cpu_cores", "ram_mb", "disk_mb", "netmask_cidr"):
                value = getattr(remote, name)
                if value is not None:
                    fields[name] = value
            vps = self._cas(vps, "sync", **fields)

        logger.info("vps synced", extra={"vps_id": str(vps.id), "status": vps.status, "provider_status": remote.status})
        if vps.status == VpsStatus.RUNNING.value and vps.order_id:
            self._complete_linked_order(vps)
        return vps

    def _complete_linked_order(self, vps: VPSInstanceModel):
        order = vps.order
        if order is None or order.status != OrderStatus.PROVISIONING.value:
            return
        try:
            self._order_service().complete_provisioning(order.id, expected_status=OrderStatus.PROVISIONING)
        except (ConcurrentModification, InvalidTransition) as exc:
            # Someone else moved the order first
            logger.info("linked order not completed", extra={"order_id": str(order.id), "error_code": exc.code})
        vps.refresh_from_db()

    def reset_password(self, vps_id, actor=None) -> str:
        """Have the provider set a new root password; stores it encrypted and returns it."""
        vps = self._provider_target(vps_id, actor, "reset_password")
        password = self.provisioning.reset_password(vps.contabo_instance_id)
        with transaction.atomic():
            vps = self._lock(vps.id)
            self._cas(vps, "reset_password", root_password_encrypted=encrypt_secret(password))
        logger.info("vps root password reset", extra={"vps_id": str(vps.id)})
        return password

    def reveal_root_password(self, vps_id, actor) -> str:
        vps = self.get_vps(vps_id, actor)
        if not vps.root_password_encrypted:
            raise NotFound("no root password stored", code="ROOT_PASSWORD_NOT_SET", vps_id=vps.id)
        try:
            return decrypt_secret(vps.root_password_encrypted)
        except ValueError:
            logger.error("stored root password cannot be decrypted", extra={"vps_id": str(vps.id)})
            raise ConfigurationError("root password cannot be decrypted", code="UNDECRYPTABLE_SECRET", vps_id=vps.id)

    def create_snapshot(self, vps_id, actor, name: str, description: str = "") -> SnapshotModel:
        vps = self._provider_target(vps_id, actor, "create_snapshot")
        snap = self.provisioning.create_snapshot(vps.contabo_instance_id, name, description)
        return SnapshotModel.objects.create(
            vps=vps, provider_snapshot_id=snap.snapshot_id, name=snap.name, description=snap.description
        )

    def restore_snapshot(self, vps_id, snapshot_id, actor=None) -> SnapshotModel:
        """Roll the instance back to a recorded snapshot.

        Raises:
            InvalidTransition: ``VPS_NOT_STOPPED`` unless the instance is STOPPED.
            ProviderError: The provider call failed.
        """
        vps = self._provider_target(vps_id, actor, "restore_snapshot")
        snap = self._snapshot(vps, snapshot_id)
        if vps.status != VpsStatus.STOPPED.value:
            raise InvalidTransition(
                "vps must be stopped before restoring a snapshot",
                code="VPS_NOT_STOPPED",
                vps_id=vps.id,
                operation="restore_snapshot",
                status=vps.status,
            )
        self.provisioning.restore_snapshot(vps.contabo_instance_id, snap.provider_snapshot_id)
        logger.info("vps snapshot restored", extra={"vps_id": str(vps.id), "snapshot_id": snap.provider_snapshot_id})
        return snap

    def delete_snapshot(self, vps_id, snapshot_id, actor=None) -> None:
        vps = self._provider_target(vps_id, actor, "delete_snapshot")
        snap = self._snapshot(vps, snapshot_id)
        self.provisioning.delete_snapshot(vps.contabo_instance_id, snap.provider_snapshot_id)
        snap.delete()
        logger.info("vps snapshot deleted", extra={"vps_id": str(vps.id), "snapshot_id": snap.provider_snapshot_id})

    def sync_snapshots(self, vps_id, actor=None) -> dict:
        """Make the local snapshot rows mirror the provider's list.

        Returns the number of rows ``created``, ``updated`` and ``deleted``.
        """
        vps = self._provider_target(vps_id, actor, "sync_snapshots")
        remote = {s.snapshot_id: s for s in self.provisioning.list_snapshots(vps.contabo_instance_id)}
        counts = {"created": 0, "updated": 0, "deleted": 0}
        with transaction.atomic():
            for local in SnapshotModel.objects.select_for_update().filter(vps=vps):
                snap = remote.pop(local.provider_snapshot_id, None)
                if snap is None:
                    local.delete()
                    counts["deleted"] += 1
                elif (local.name, local.description) != (snap.name, snap.description):
                    local.name, local.description = snap.name, snap.description
                    local.save(update_fields=["name", "description"])
                    counts["updated"] += 1
            for snap in remote.values():
                SnapshotModel.objects.create(
                    vps=vps, provider_snapshot_id=snap.snapshot_id, name=snap.name, description=snap.description
                )
                counts["created"] += 1
        logger.info("vps snapshots synced", extra={"vps_id": str(vps.id), **counts})
        return counts

    # ---- batch ----
    def expire_due_instances(self, now=None) -> int:
        """RUNNING/STOPPED instances past ``expires_at`` become EXPIRED."""
        now = now or timezone.now()
        count = VPSInstanceModel.objects.filter(
            expires_at__lte=now,
            status__in=[VpsStatus.RUNNING.value, VpsStatus.STOPPED.value],
        ).update(
            status=VpsStatus.EXPIRED.value,
            status_pending_confirmation=False,
            suspension_reason="expired",
            version=F("version") + 1,
            updated_at=now,
        )
        if count:
            logger.info("vps instances expired", extra={"count": count})
        return count

    # ---- helpers ----
    def _provider_target(self, vps_id, actor, operation: str) -> VPSInstanceModel:
        vps = self.get_vps(vps_id, actor)
        if not vps.contabo_instance_id:
            raise NotProvisioned("vps has no provider instance", vps_id=vps.id, operation=operation)
        self._reject_terminated(vps, operation)
        if actor is not None and not actor.is_admin and vps.status in ADMIN_OWNED_VALUES:
            raise Forbidden("vps is suspended", code="VPS_SUSPENDED", vps_id=vps.id, operation=operation)
        return vps

    def _snapshot(self, vps, snapshot_id) -> SnapshotModel:
        try:
            return vps.snapshots.get(id=snapshot_id)
        except (SnapshotModel.DoesNotExist, ValueError):
            raise NotFound("snapshot not found", code="SNAPSHOT_NOT_FOUND", vps_id=vps.id, snapshot_id=snapshot_id)

    def _reject_terminated(self, vps, operation: str):
        if vps.status == VpsStatus.TERMINATED.value:
            raise InvalidTransition("vps is terminated", vps_id=vps.id, operation=operation)

    def _parse_action(self, action) -> VpsAction:
        if isinstance(action, VpsAction):
            return action
        try:
            return VpsAction(str(action).lower())
        except ValueError:
            raise ConfigurationError("unknown action", code="UNKNOWN_ACTION", action=action)

    def _parse_status(self, status) -> VpsStatus:
        if isinstance(status, VpsStatus):
            return status
        try:
            return VpsStatus(str(status).upper())
        except ValueError:
            raise ConfigurationError("unknown status", code="UNKNOWN_STATUS", status=status)

    def _lock(self, vps_id) -> VPSInstanceModel:
        try:
            return VPSInstanceModel.objects.select_for_update().select_related("user", "order").get(id=vps_id)
        except VPSInstanceModel.DoesNotExist:
            raise NotFound("vps not found", vps_id=vps_id)

    def _cas(self, vps: VPSInstanceModel, operation: str, **fields) -> VPSInstanceModel:
        rows = VPSInstanceModel.objects.filter(id=vps.id, version=vps.version).update(
            version=F("version") + 1, updated_at=timezone.now(), **fields
        )
        if rows == 0:
            raise ConcurrentModification(
                "vps changed concurrently", vps_id=vps.id, operation=operation, expected_version=vps.version
            )
        vps.refresh_from_db()
        return vps

    def _finish_action(self, record: VpsActionModel, status, error: str = ""):
        record.status = status
        record.error = error
        record.completed_at = timezone.now()
        record.save(update_fields=["status", "error", "completed_at"])

    def _notify(self, template: str, vps: VPSInstanceModel, **data):
        self.notifier.send(
            template,
            vps.user.email,
            {
                "customer_name": vps.user.full_name,
                "name": vps.display_name or vps.name,
                "vps_id": str(vps.id),
                **data,
            },
        )

    def _order_service(self):
        if self._order_service_factory is None:
            from apps.orders.providers import get_order_service

            self._order_service_factory = get_order_service
        return self._order_service_factory()
