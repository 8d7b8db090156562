from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ProductStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    DISCONTINUED = "DISCONTINUED"


class ProductType(str, Enum):
    SAVINGS = "SAVINGS"
    CURRENT = "CURRENT"
    TERM_DEPOSIT = "TERM_DEPOSIT"


class AccountStatus(str, Enum):
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"
    CLOSED = "CLOSED"


class EligibilityReasonCode(str, Enum):
    CUSTOMER_NOT_FOUND = "CUSTOMER_NOT_FOUND"
    CUSTOMER_BLACKLISTED = "CUSTOMER_BLACKLISTED"
    CUSTOMER_INACTIVE = "CUSTOMER_INACTIVE"
    CUSTOMER_NOT_ACTIVE = "CUSTOMER_NOT_ACTIVE"
    KYC_MISSING = "KYC_MISSING"
    KYC_PENDING = "KYC_PENDING"
    KYC_INCOMPLETE = "KYC_INCOMPLETE"
    KYC_EXPIRED = "KYC_EXPIRED"
    KYC_NOT_COMPLETE = "KYC_NOT_COMPLETE"
    KYC_DOCUMENTS_MISSING = "KYC_DOCUMENTS_MISSING"
    PRODUCT_NOT_FOUND = "PRODUCT_NOT_FOUND"
    PRODUCT_UNAVAILABLE = "PRODUCT_UNAVAILABLE"
    DUPLICATE_ACTIVE_ACCOUNT = "DUPLICATE_ACTIVE_ACCOUNT"


class EligibilityReason(BaseModel):
    code: EligibilityReasonCode
    message: str


class EligibilityResult(BaseModel):
    eligible: bool
    reasons: list[EligibilityReason] = Field(default_factory=list)


class EligibilityCheckRequest(BaseModel):
    customer_id: UUID
    product_id: UUID


class ProductCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    code: str = Field(min_length=2, max_length=20)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    product_type: ProductType
    interest_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    currency: str = Field(default="KES", min_length=3, max_length=3)
    minimum_deposit: Decimal = Field(default=Decimal("0"), ge=0)
    allow_multiple: bool = False
    auto_activate: bool = False


class ProductDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: str | None = None
    product_type: ProductType
    status: ProductStatus
    interest_rate: Decimal
    currency: str
    minimum_deposit: Decimal
    allow_multiple: bool
    auto_activate: bool


class AccountCreate(BaseModel):
    customer_id: UUID
    product_id: UUID
    initial_deposit: Decimal = Field(default=Decimal("0"), ge=0)


class AccountDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_number: str
    customer_id: UUID
    product_id: UUID
    branch_code: str
    status: AccountStatus
    balance: Decimal
    available_balance: Decimal
    currency: str
    opened_by: str | None = None
    activated_at: datetime | None = None
    created_at: datetime | None = None
