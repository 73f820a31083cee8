from django.urls import path
from .views import (
    BillingSettingsView,
    InvoiceDetailView,
    InvoiceStatusView,
    InvoicesCollectionView,
    OverdueInvoicesView,
)

app_name = "billing"

urlpatterns = [
    path("invoices/", InvoicesCollectionView.as_view(), name="invoices-collection"),
    path("invoices/overdue/", OverdueInvoicesView.as_view(), name="invoices-overdue"),
    path("invoices/<uuid:iid>/", InvoiceDetailView.as_view(), name="invoices-detail"),
    path("invoices/<uuid:iid>/status/", InvoiceStatusView.as_view(), name="invoices-status"),
    path("settings/", BillingSettingsView.as_view(), name="billing-settings"),
]
