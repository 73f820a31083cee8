"""Pydantic schemas for the VPS API."""

from pydantic import BaseModel, Field, field_validator

from .domain import VpsAction, VpsStatus


class ActionDTO(BaseModel):
    action: VpsAction

    @field_validator("action", mode="before")
    @classmethod
    def lower_action(cls, v):
        return v.lower() if isinstance(v, str) else v


class SuspendDTO(BaseModel):
    reason: str = Field(default="", max_length=255)


class StatusOverrideDTO(BaseModel):
    status: VpsStatus

    @field_validator("status", mode="before")
    @classmethod
    def upper_status(cls, v):
        return v.upper() if isinstance(v, str) else v


class SnapshotDTO(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str = Field(default="", max_length=255)
