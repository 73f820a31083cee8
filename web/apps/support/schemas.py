"""Pydantic schemas for the support API."""

from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class OpenTicketDTO(BaseModel):
    subject: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1, max_length=10000)
    priority: str = "medium"
    category: str | None = None
    order_id: UUID | None = None
    vps_id: UUID | None = None


class ReplyDTO(BaseModel):
    message: str = Field(min_length=1, max_length=10000)


class TicketUpdateDTO(BaseModel):
    status: str | None = None
    priority: str | None = None

    @model_validator(mode="after")
    def _not_empty(self):
        if self.status is None and self.priority is None:
            raise ValueError("status or priority required")
        return self
