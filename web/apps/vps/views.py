"""HTTP views for VPS instances.

Customers see and act on their own instances; suspension, activation,
status overrides and provider sync are admin operations.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from apps.common.pagination import paginate
from gateway.permissions import IsAdminActor, IsAuthenticatedActor
from .providers import get_vps_service
from .schemas import ActionDTO, SnapshotDTO, StatusOverrideDTO, SuspendDTO


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def _dt(value):
    return value.isoformat() if value else None


def vps_body(v, admin: bool = False) -> dict:
    body = {
        "id": str(v.id),
        "name": v.name,
        "display_name": v.display_name,
        "status": v.status,
        "status_pending_confirmation": v.status_pending_confirmation,
        "ip_address": v.ip_address,
        "region": v.region,
        "image_id": v.image_id,
        "cpu_cores": v.cpu_cores,
        "ram_mb": v.ram_mb,
        "disk_mb": v.disk_mb,
        "order_id": str(v.order_id) if v.order_id else None,
        "expires_at": _dt(v.expires_at),
        "suspended_at": _dt(v.suspended_at),
        "suspension_reason": v.suspension_reason,
        "last_synced_at": _dt(v.last_synced_at),
        "created_at": _dt(v.created_at),
    }
    if admin:
        body.update(user_id=str(v.user_id), contabo_instance_id=v.contabo_instance_id, version=v.version)
    return body


class VpsCollectionView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request):
        qs = get_vps_service().list_vps(request.actor, status=request.GET.get("status"))
        admin = request.actor.is_admin
        return Response(paginate(qs, request, lambda v: vps_body(v, admin)))


class VpsDetailView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request, vid):
        vps = get_vps_service().get_vps(vid, request.actor)
        return Response(vps_body(vps, request.actor.is_admin))


class VpsActionView(APIView):
    permission_classes = [IsAuthenticatedActor]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "vps_actions"

    def get(self, request, vid):
        actions = get_vps_service().list_actions(vid, request.actor)
        return Response(
            {
                "results": [
                    {
                        "action": a.action,
                        "status": a.status,
                        "error": a.error or None,
                        "created_at": _dt(a.created_at),
                        "completed_at": _dt(a.completed_at),
                    }
                    for a in actions
                ]
            }
        )

    def post(self, request, vid):
        try:
            dto = ActionDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        vps = get_vps_service().execute_action(vid, dto.action, actor=request.actor)
        return Response(vps_body(vps, request.actor.is_admin))


class VpsSyncView(APIView):
    permission_classes = [IsAdminActor]

    def post(self, request, vid):
        return Response(vps_body(get_vps_service().sync(vid), admin=True))


class VpsSuspendView(APIView):
    permission_classes = [IsAdminActor]

    def post(self, request, vid):
        try:
            dto = SuspendDTO.model_validate(request.data or {})
        except ValidationError as e:
            return _validation_error(e)
        return Response(vps_body(get_vps_service().suspend(vid, dto.reason), admin=True))


class VpsActivateView(APIView):
    permission_classes = [IsAdminActor]

    def post(self, request, vid):
        return Response(vps_body(get_vps_service().activate(vid), admin=True))


class VpsStatusView(APIView):
    permission_classes = [IsAdminActor]

    def put(self, request, vid):
        try:
            dto = StatusOverrideDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        return Response(vps_body(get_vps_service().update_status(vid, dto.status), admin=True))


class VpsPasswordView(APIView):
    """GET reveals the stored root password; POST has the provider reset it."""

    permission_classes = [IsAuthenticatedActor]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "vps_actions"

    def get(self, request, vid):
        return Response({"root_password": get_vps_service().reveal_root_password(vid, request.actor)})

    def post(self, request, vid):
        return Response({"root_password": get_vps_service().reset_password(vid, actor=request.actor)})


class VpsSnapshotsView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def get(self, request, vid):
        snaps = get_vps_service().list_snapshots(vid, request.actor)
        return Response({"results": [_snapshot_body(s) for s in snaps]})

    def post(self, request, vid):
        try:
            dto = SnapshotDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        snap = get_vps_service().create_snapshot(vid, request.actor, dto.name, dto.description)
        return Response(_snapshot_body(snap), status=status.HTTP_201_CREATED)


def _snapshot_body(s) -> dict:
    return {
        "id": s.id,
        "provider_snapshot_id": s.provider_snapshot_id,
        "name": s.name,
        "description": s.description,
        "created_at": _dt(s.created_at),
    }


class VpsSnapshotDetailView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def delete(self, request, vid, sid):
        get_vps_service().delete_snapshot(vid, sid, actor=request.actor)
        return Response(status=status.HTTP_204_NO_CONTENT)


class VpsSnapshotRestoreView(APIView):
    permission_classes = [IsAuthenticatedActor]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "vps_actions"

    def post(self, request, vid, sid):
        snap = get_vps_service().restore_snapshot(vid, sid, actor=request.actor)
        return Response(_snapshot_body(snap))


class VpsSnapshotSyncView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, vid):
        return Response(get_vps_service().sync_snapshots(vid, actor=request.actor))


class ProviderInstancesView(APIView):
    """Admin: provider instances not yet linked to a local VPS."""

    permission_classes = [IsAdminActor]

    def get(self, request):
        instances = get_vps_service().available_provider_instances()
        return Response(
            {
                "results": [
                    {
                        "instance_id": i.instance_id,
                        "status": i.status,
                        "ip_address": i.ip_address,
                        "name": i.name,
                        "region": i.region,
                        "product_id": i.product_id,
                    }
                    for i in instances
                ]
            }
        )
