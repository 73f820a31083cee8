"""Pydantic schemas for the SSH key API."""

from pydantic import BaseModel, Field


class SshKeyCreateDTO(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    public_key: str = Field(min_length=1, max_length=16384)


class SshKeyRenameDTO(BaseModel):
    name: str = Field(min_length=1, max_length=100)
