from django.urls import include, path

from apps.billing.views import PaymentWebhookView

urlpatterns = [
    path("api/", include("apps.monitoring.urls")),
    path("api/catalog/", include("apps.catalog.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/ssh-keys/", include("apps.accounts.urls")),
    path("api/vps/", include("apps.vps.urls")),
    path("api/billing/", include("apps.billing.urls")),
    path("api/payments/webhook/", PaymentWebhookView.as_view(), name="payments-webhook"),
    path("api/support/", include("apps.support.urls")),
    path("api/admin/", include("apps.metrics.urls")),
]
