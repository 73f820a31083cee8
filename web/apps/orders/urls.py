from django.urls import path
from .views import (
    OrderCancelView,
    OrderDetailView,
    OrderPaymentIntentView,
    OrderProvisionView,
    OrdersCollectionView,
    OrderTransitionView,
)

app_name = "orders"

urlpatterns = [
    path("", OrdersCollectionView.as_view(), name="orders-collection"),  # GET list / POST checkout
    path("<uuid:oid>/", OrderDetailView.as_view(), name="orders-detail"),
    path("<uuid:oid>/transition/", OrderTransitionView.as_view(), name="orders-transition"),
    path("<uuid:oid>/provision/", OrderProvisionView.as_view(), name="orders-provision"),
    path("<uuid:oid>/cancel/", OrderCancelView.as_view(), name="orders-cancel"),
    path("<uuid:oid>/payment-intent/", OrderPaymentIntentView.as_view(), name="orders-payment-intent"),
]
