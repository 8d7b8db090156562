from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BranchCreate(BaseModel):
    code: str = Field(min_length=3, max_length=10)
    name: str = Field(min_length=1, max_length=255)
    region: str | None = Field(default=None, max_length=100)
    address: str | None = Field(default=None, max_length=500)
    phone: str | None = Field(default=None, max_length=30)

    @field_validator("code")
    @classmethod
    def _normalize_code(cls, value: str) -> str:
        cleaned = value.strip().upper()
        if not cleaned.isalnum():
            raise ValueError("Branch code must be alphanumeric")
        return cleaned


class BranchDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    region: str | None = None
    address: str | None = None
    phone: str | None = None
    is_active: bool
    created_at: datetime | None = None


class BranchListResponse(BaseModel):
    items: list[BranchDTO]
    total: int
