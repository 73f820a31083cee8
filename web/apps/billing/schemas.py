"""Pydantic schemas for the billing API."""

from datetime import datetime

from pydantic import BaseModel, Field


class PaymentEventDTO(BaseModel):
    """Event relayed by the payments service."""

    intent_id: str = Field(min_length=1, max_length=128)
    status: str = Field(min_length=1, max_length=32)


class SettingsUpdateDTO(BaseModel):
    values: dict[str, str | int | float] = Field(min_length=1)


class InvoiceStatusDTO(BaseModel):
    status: str = Field(min_length=1, max_length=16)
    paid_at: datetime | None = None
