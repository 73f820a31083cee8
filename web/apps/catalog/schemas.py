"""Pydantic schemas for the catalog API."""

from decimal import Decimal
from uuid import UUID

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from pydantic import BaseModel, Field, field_validator, model_validator


class QuoteRequestDTO(BaseModel):
    product_id: UUID
    period_months: int = Field(gt=0, le=60)
    region: str = Field(min_length=1, max_length=32)
    image_id: str | None = Field(default=None, max_length=64)


class PriceRuleIn(BaseModel):
    period_months: int = Field(gt=0, le=60)
    discount_percent: Decimal = Field(ge=0, le=100, decimal_places=2)


class PricingUpdateDTO(BaseModel):
    """Change the selling price and/or upsert price rules."""

    selling_price: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    rules: list[PriceRuleIn] = Field(default_factory=list)

    @model_validator(mode="after")
    def _not_empty(self):
        if self.selling_price is None and not self.rules:
            raise ValueError("selling_price or rules required")
        if len({r.period_months for r in self.rules}) != len(self.rules):
            raise ValueError("duplicate period_months in rules")
        return self


class ProductInDTO(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = ""
    contabo_product_id: str = Field(default="", max_length=32)
    ram_mb: int = Field(default=0, ge=0)
    cpu_cores: int = Field(default=0, ge=0)
    disk_gb: int = Field(default=0, ge=0)
    disk_type: str = "NVME"
    regions: list[str] = Field(default_factory=list)
    product_type: str = "STANDARD"
    contact_email: str | None = Field(default=None, max_length=254)
    base_price: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    selling_price: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    sort_order: int = 0
    is_active: bool = True
    show_on_home: bool = False
    home_order: int = 0
    is_recommended: bool = False

    @field_validator("contact_email")
    @classmethod
    def _email(cls, v: str | None) -> str | None:
        if not v:
            return None
        try:
            validate_email(v)
        except DjangoValidationError:
            raise ValueError("Invalid email")
        return v.lower()

    @field_validator("disk_type", "product_type")
    @classmethod
    def _upper(cls, v: str) -> str:
        return v.upper()

    @field_validator("disk_type")
    @classmethod
    def _disk(cls, v: str) -> str:
        if v not in {"NVME", "SSD", "HDD"}:
            raise ValueError("Unsupported disk type")
        return v

    @field_validator("product_type")
    @classmethod
    def _ptype(cls, v: str) -> str:
        if v not in {"STANDARD", "CUSTOM"}:
            raise ValueError("Unsupported product type")
        return v


class ProductPatchDTO(ProductInDTO):
    """Partial update; only fields present in the payload are applied."""

    name: str | None = Field(default=None, min_length=1, max_length=120)


class RegionInDTO(BaseModel):
    code: str = Field(min_length=1, max_length=32)
    name: str = Field(min_length=1, max_length=100)
    price_adjustment: Decimal = Field(default=Decimal("0"), decimal_places=2)
    is_active: bool = True
    sort_order: int = 0


class OperatingSystemInDTO(BaseModel):
    image_id: str = Field(min_length=1, max_length=64)
    name: str = Field(min_length=1, max_length=100)
    os_type: str = ""
    version: str = ""
    price_adjustment: Decimal = Field(default=Decimal("0"), decimal_places=2)
    is_active: bool = True


class CustomQuoteDTO(BaseModel):
    message: str = Field(min_length=1, max_length=5000)
