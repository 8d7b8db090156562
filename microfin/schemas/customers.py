from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from microfin.schemas.common import PageMeta


class CustomerStatus(str, Enum):
    PROSPECT = "PROSPECT"
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    BLACKLISTED = "BLACKLISTED"


class CustomerType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    GROUP = "GROUP"
    BUSINESS = "BUSINESS"


class KycStatus(str, Enum):
    PENDING = "PENDING"
    INCOMPLETE = "INCOMPLETE"
    COMPLETE = "COMPLETE"
    EXPIRED = "EXPIRED"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class CustomerCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    branch_id: UUID
    customer_type: CustomerType = CustomerType.INDIVIDUAL
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    phone: str = Field(min_length=7, max_length=30)
    email: EmailStr | None = None
    national_id: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    address: str | None = Field(default=None, max_length=500)
    occupation: str | None = Field(default=None, max_length=100)


class CustomerUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    first_name: str | None = Field(default=None, min_length=1, max_length=100)
    last_name: str | None = Field(default=None, min_length=1, max_length=100)
    phone: str | None = Field(default=None, min_length=7, max_length=30)
    email: EmailStr | None = None
    national_id: str | None = Field(default=None, max_length=50)
    date_of_birth: date | None = None
    address: str | None = Field(default=None, max_length=500)
    occupation: str | None = Field(default=None, max_length=100)
    status: CustomerStatus | None = None


class KycUpdate(BaseModel):
    has_national_id: bool | None = None
    has_proof_of_address: bool | None = None
    has_photo_proof: bool | None = None
    has_income_proof: bool | None = None
    expiry_date: date | None = None
    notes: str | None = None


class RiskProfileUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    risk_level: RiskLevel
    credit_score: int | None = Field(default=None, ge=0, le=1000)
    notes: str | None = None


class KycProfileDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: KycStatus
    has_national_id: bool
    has_proof_of_address: bool
    has_photo_proof: bool
    has_income_proof: bool
    verified_by: str | None = None
    verified_at: datetime | None = None
    expiry_date: date | None = None
    notes: str | None = None


class RiskProfileDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    risk_level: RiskLevel
    credit_score: int | None = None
    notes: str | None = None
    assessed_by: str | None = None
    assessed_at: datetime | None = None
    next_review_date: date | None = None


class CustomerDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_code: str
    branch_id: UUID
    customer_type: CustomerType
    first_name: str
    last_name: str
    full_name: str
    phone: str
    email: str | None = None
    national_id: str | None = None
    date_of_birth: date | None = None
    address: str | None = None
    occupation: str | None = None
    status: CustomerStatus
    kyc_profile: KycProfileDTO | None = None
    risk_profile: RiskProfileDTO | None = None
    created_at: datetime | None = None


class CustomerListResponse(PageMeta):
    items: list[CustomerDTO]
