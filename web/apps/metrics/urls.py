from django.urls import path
from .views import AlertsView, MetricsView, UsersView

app_name = "admin_api"

urlpatterns = [
    path("metrics/", MetricsView.as_view(), name="metrics"),
    path("alerts/", AlertsView.as_view(), name="alerts"),
    path("users/", UsersView.as_view(), name="users"),
]
