from django.urls import path
from .views import (
    ProviderInstancesView,
    VpsActionView,
    VpsActivateView,
    VpsCollectionView,
    VpsDetailView,
    VpsPasswordView,
    VpsSnapshotDetailView,
    VpsSnapshotRestoreView,
    VpsSnapshotSyncView,
    VpsSnapshotsView,
    VpsStatusView,
    VpsSuspendView,
    VpsSyncView,
)

app_name = "vps"

urlpatterns = [
    path("", VpsCollectionView.as_view(), name="vps-collection"),
    path("provider-instances/", ProviderInstancesView.as_view(), name="vps-provider-instances"),
    path("<uuid:vid>/", VpsDetailView.as_view(), name="vps-detail"),
    path("<uuid:vid>/actions/", VpsActionView.as_view(), name="vps-actions"),
    path("<uuid:vid>/sync/", VpsSyncView.as_view(), name="vps-sync"),
    path("<uuid:vid>/suspend/", VpsSuspendView.as_view(), name="vps-suspend"),
    path("<uuid:vid>/activate/", VpsActivateView.as_view(), name="vps-activate"),
    path("<uuid:vid>/status/", VpsStatusView.as_view(), name="vps-status"),
    path("<uuid:vid>/root-password/", VpsPasswordView.as_view(), name="vps-root-password"),
    path("<uuid:vid>/snapshots/", VpsSnapshotsView.as_view(), name="vps-snapshots"),
    path("<uuid:vid>/snapshots/sync/", VpsSnapshotSyncView.as_view(), name="vps-snapshots-sync"),
    path("<uuid:vid>/snapshots/<int:sid>/", VpsSnapshotDetailView.as_view(), name="vps-snapshot-detail"),
    path(
        "<uuid:vid>/snapshots/<int:sid>/restore/", VpsSnapshotRestoreView.as_view(), name="vps-snapshot-restore"
    ),
]
