"""Pydantic schemas for orders.

Request DTOs validate the checkout and admin transition payloads;
``OrderReadDTO`` shapes the JSON returned by the read endpoints.
"""

import ipaddress
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from .domain import OrderStatus


class CheckoutDTO(BaseModel):
    """Schema for placing an order.

    Attributes:
        product_id: Catalog product to buy.
        period_months: Billing period; must have an active price rule.
        region: Region code offered by the product.
        image_id: Optional operating system image.
        notes: Free text stored on the order.
        ssh_key_ids: The caller's SSH keys to install for root.
    """

    product_id: UUID
    period_months: int = Field(gt=0, le=60)
    region: str = Field(min_length=1, max_length=32)
    image_id: str | None = Field(default=None, max_length=64)
    notes: str = Field(default="", max_length=2000)
    ssh_key_ids: list[UUID] = Field(default_factory=list, max_length=20)

    @field_validator("region")
    @classmethod
    def validate_region(cls, v: str) -> str:
        return v.strip()


class ProvisionDTO(BaseModel):
    """Provisioning facts supplied by an admin; all optional.

    Missing fields are obtained from the provider by ``provision_order``.
    """

    contabo_instance_id: str | None = Field(default=None, max_length=64)
    ip_address: str | None = None
    root_password: str | None = Field(default=None, min_length=8, max_length=128)

    @field_validator("ip_address")
    @classmethod
    def validate_ip(cls, v: str | None) -> str | None:
        if v in (None, ""):
            return None
        try:
            return str(ipaddress.ip_address(v))
        except ValueError:
            raise ValueError("Invalid IP address")


class TransitionDTO(ProvisionDTO):
    """Generic admin transition request.

    Attributes:
        status: Target status.
        expected_status: Status the caller last saw; a stale value is
            answered with 409.
    """

    status: OrderStatus
    expected_status: OrderStatus | None = None
    intent_id: str | None = Field(default=None, max_length=128)
    reason: str = Field(default="", max_length=500)

    @field_validator("status", "expected_status", mode="before")
    @classmethod
    def upper_status(cls, v):
        return v.upper() if isinstance(v, str) else v

    def context(self) -> dict:
        return self.model_dump(exclude={"status", "expected_status"}, exclude_none=True)


class CancelDTO(BaseModel):
    reason: str = Field(default="", max_length=500)


class OrderReadDTO(BaseModel):
    id: UUID
    order_number: str
    status: OrderStatus
    product_id: UUID
    product_name: str
    period_months: int
    region: str
    image_id: str | None = None
    total_amount: Decimal
    ssh_key_ids: list[UUID] = []
    currency: str
    user_id: UUID | None = None
    vps_id: UUID | None = None
    created_at: datetime
    paid_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None

    @classmethod
    def from_model(cls, o, admin: bool = False) -> "OrderReadDTO":
        vps = o.linked_vps
        return cls(
            id=o.id,
            order_number=o.order_number,
            status=o.status,
            product_id=o.product_id,
            product_name=o.product.name,
            period_months=o.period_months,
            region=o.region,
            image_id=o.image_id or None,
            total_amount=o.total_amount,
            ssh_key_ids=o.ssh_key_ids or [],
            currency=o.currency,
            user_id=o.user_id if admin else None,
            vps_id=vps.id if vps else None,
            created_at=o.created_at,
            paid_at=o.paid_at,
            completed_at=o.completed_at,
            cancelled_at=o.cancelled_at,
        )
