"""HTTP views for the catalog: products, pricing, regions, OS images, quotes.

Reads are public; writes require an admin actor. Validation is done with
the pydantic DTOs in ``schemas``; domain errors propagate to the gateway
exception handler.
"""

from pydantic import ValidationError
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.accounts.models import UserModel
from apps.common.errors import NotFound
from gateway.permissions import IsAdminActor, IsAuthenticatedActor
from .models import OperatingSystemModel, RegionModel
from .providers import get_catalog_service
from .schemas import (
    CustomQuoteDTO,
    OperatingSystemInDTO,
    PricingUpdateDTO,
    ProductInDTO,
    ProductPatchDTO,
    QuoteRequestDTO,
    RegionInDTO,
)


def _validation_error(e: ValidationError) -> Response:
    return Response({"detail": str(e)}, status=status.HTTP_400_BAD_REQUEST)


def product_body(p, admin: bool = False) -> dict:
    body = {
        "id": str(p.id),
        "name": p.name,
        "description": p.description,
        "ram_mb": p.ram_mb,
        "cpu_cores": p.cpu_cores,
        "disk_gb": p.disk_gb,
        "disk_type": p.disk_type,
        "regions": p.regions,
        "product_type": p.product_type,
        "contact_email": p.contact_email or None,
        "selling_price": str(p.selling_price),
        "currency": p.currency,
        "show_on_home": p.show_on_home,
        "home_order": p.home_order,
        "is_recommended": p.is_recommended,
        "price_rules": [
            {
                "period_months": r.period_months,
                "discount_percent": str(r.discount_percent),
                "final_price": str(r.final_price),
            }
            for r in p.price_rules.all()
            if r.is_active or admin
        ],
    }
    if admin:
        body.update(
            contabo_product_id=p.contabo_product_id,
            base_price=str(p.base_price),
            sort_order=p.sort_order,
            is_active=p.is_active,
        )
    return body


class ProductsCollectionView(APIView):
    def get_permissions(self):
        return [AllowAny()] if self.request.method == "GET" else [IsAdminActor()]

    def get(self, request):
        admin = request.actor.is_admin
        qs = get_catalog_service().list_products(
            include_inactive=admin and request.GET.get("all") == "1",
            home_only=request.GET.get("home") == "1",
        )
        return Response({"results": [product_body(p, admin) for p in qs]})

    def post(self, request):
        try:
            dto = ProductInDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        product = get_catalog_service().save_product(dto.model_dump())
        return Response(product_body(product, admin=True), status=status.HTTP_201_CREATED)


class ProductDetailView(APIView):
    def get_permissions(self):
        return [AllowAny()] if self.request.method == "GET" else [IsAdminActor()]

    def get(self, request, pid):
        admin = request.actor.is_admin
        product = get_catalog_service().get_product(pid, include_inactive=admin)
        return Response(product_body(product, admin))

    def patch(self, request, pid):
        try:
            dto = ProductPatchDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        service = get_catalog_service()
        service.save_product(dto.model_dump(exclude_unset=True), product_id=pid)
        return Response(product_body(service.get_product(pid, include_inactive=True), admin=True))


class ProductPricingView(APIView):
    permission_classes = [IsAdminActor]

    def put(self, request, pid):
        try:
            dto = PricingUpdateDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        product = get_catalog_service().update_pricing(
            pid,
            selling_price=dto.selling_price,
            rules=[(r.period_months, r.discount_percent) for r in dto.rules],
        )
        return Response(product_body(product, admin=True))


class QuoteView(APIView):
    permission_classes = [AllowAny]

    def post(self, request):
        try:
            dto = QuoteRequestDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        quote = get_catalog_service().quote(dto.product_id, dto.period_months, dto.region, dto.image_id)
        return Response(quote.as_dict())


class CustomQuoteRequestView(APIView):
    permission_classes = [IsAuthenticatedActor]

    def post(self, request, pid):
        try:
            dto = CustomQuoteDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        try:
            customer = UserModel.objects.get(id=request.actor.user_id)
        except UserModel.DoesNotExist:
            raise NotFound("user not found", user_id=request.actor.user_id)
        sent = get_catalog_service().request_custom_quote(pid, customer, dto.message)
        return Response({"sent": sent}, status=status.HTTP_202_ACCEPTED)


class RegionsView(APIView):
    def get_permissions(self):
        return [AllowAny()] if self.request.method == "GET" else [IsAdminActor()]

    def get(self, request):
        qs = RegionModel.objects.all()
        if not request.actor.is_admin:
            qs = qs.filter(is_active=True)
        return Response(
            {
                "results": [
                    {"code": r.code, "name": r.name, "price_adjustment": str(r.price_adjustment), "is_active": r.is_active}
                    for r in qs
                ]
            }
        )

    def post(self, request):
        try:
            dto = RegionInDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        data = dto.model_dump()
        region = get_catalog_service().save_region(data.pop("code"), **data)
        return Response({"code": region.code, "price_adjustment": str(region.price_adjustment)}, status=201)


class OperatingSystemsView(APIView):
    def get_permissions(self):
        return [AllowAny()] if self.request.method == "GET" else [IsAdminActor()]

    def get(self, request):
        qs = OperatingSystemModel.objects.all()
        if not request.actor.is_admin:
            qs = qs.filter(is_active=True)
        return Response(
            {
                "results": [
                    {
                        "image_id": o.image_id,
                        "name": o.name,
                        "os_type": o.os_type,
                        "version": o.version,
                        "price_adjustment": str(o.price_adjustment),
                        "is_active": o.is_active,
                    }
                    for o in qs
                ]
            }
        )

    def post(self, request):
        try:
            dto = OperatingSystemInDTO.model_validate(request.data)
        except ValidationError as e:
            return _validation_error(e)
        data = dto.model_dump()
        os = get_catalog_service().save_operating_system(data.pop("image_id"), **data)
        return Response({"image_id": os.image_id, "price_adjustment": str(os.price_adjustment)}, status=201)


class ProviderCatalogImportView(APIView):
    permission_classes = [IsAdminActor]

    def post(self, request):
        return Response(get_catalog_service().import_provider_catalog())
