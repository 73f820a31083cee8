from django.urls import path
from .views import (
    CustomQuoteRequestView,
    OperatingSystemsView,
    ProductDetailView,
    ProductPricingView,
    ProductsCollectionView,
    ProviderCatalogImportView,
    QuoteView,
    RegionsView,
)

app_name = "catalog"

urlpatterns = [
    path("products/", ProductsCollectionView.as_view(), name="products"),
    path("products/<uuid:pid>/", ProductDetailView.as_view(), name="product-detail"),
    path("products/<uuid:pid>/pricing/", ProductPricingView.as_view(), name="product-pricing"),
    path("products/<uuid:pid>/quote-request/", CustomQuoteRequestView.as_view(), name="custom-quote"),
    path("quote/", QuoteView.as_view(), name="quote"),
    path("regions/", RegionsView.as_view(), name="regions"),
    path("operating-systems/", OperatingSystemsView.as_view(), name="operating-systems"),
    path("import/", ProviderCatalogImportView.as_view(), name="import"),
]
