from django.utils import timezone
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.models import UserModel
from apps.common.pagination import paginate
from gateway.permissions import IsAdminActor
from .service import alerts, dashboard_metrics


class MetricsView(APIView):
    permission_classes = [IsAdminActor]

    def get(self, request):
        return Response(dashboard_metrics(timezone.now()))


class AlertsView(APIView):
    permission_classes = [IsAdminActor]

    def get(self, request):
        return Response(alerts(timezone.now()))


class UsersView(APIView):
    """Admin user listing, optionally filtered by role."""

    permission_classes = [IsAdminActor]

    def get(self, request):
        qs = UserModel.objects.order_by("-created_at")
        role = request.GET.get("role")
        if role:
            qs = qs.filter(role=role.upper())
        return Response(
            paginate(
                qs,
                request,
                lambda u: {
                    "id": str(u.id),
                    "email": u.email,
                    "full_name": u.full_name,
                    "role": u.role,
                    "is_active": u.is_active,
                    "created_at": u.created_at.isoformat(),
                },
            )
        )
