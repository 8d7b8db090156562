from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from microfin.schemas.common import PageMeta


class AlertSeverity(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


class AlertCategory(str, Enum):
    CREDIT_RISK = "CREDIT_RISK"
    OPERATIONAL = "OPERATIONAL"
    PERFORMANCE = "PERFORMANCE"
    COMPLIANCE = "COMPLIANCE"
    FRAUD = "FRAUD"


class AlertStatus(str, Enum):
    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    ESCALATED = "ESCALATED"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class AlertCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    severity: AlertSeverity
    category: AlertCategory
    title: str = Field(min_length=1, max_length=255)
    message: str = Field(min_length=1)
    customer_id: UUID | None = None
    loan_id: UUID | None = None
    branch_id: UUID | None = None
    assigned_to_id: str | None = Field(default=None, max_length=64)
    metadata: dict[str, Any] = Field(default_factory=dict)
    source: str = Field(default="MANUAL", min_length=1, max_length=50)
    requires_action: bool = False


class AlertUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    severity: AlertSeverity | None = None
    category: AlertCategory | None = None
    title: str | None = Field(default=None, min_length=1, max_length=255)
    message: str | None = Field(default=None, min_length=1)
    assigned_to_id: str | None = Field(default=None, max_length=64)
    requires_action: bool | None = None
    resolution_notes: str | None = None


class AlertAcknowledge(BaseModel):
    notes: str = Field(min_length=1)


class AlertResolve(BaseModel):
    resolution_notes: str = Field(min_length=1)


class AlertDismiss(BaseModel):
    reason: str = Field(min_length=1)


class AlertEscalate(BaseModel):
    escalated_to_id: str = Field(min_length=1, max_length=64)
    reason: str = Field(min_length=1)


class AlertBulkAcknowledge(BaseModel):
    alert_ids: list[UUID] = Field(min_length=1, max_length=100)
    notes: str = Field(min_length=1)


class AlertBulkAcknowledgeResult(BaseModel):
    acknowledged: int
    skipped: list[UUID]


class AlertDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    severity: AlertSeverity
    category: AlertCategory
    title: str
    message: str
    status: AlertStatus
    source: str
    requires_action: bool
    metadata: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("extra_data", "metadata"))
    customer_id: UUID | None = None
    loan_id: UUID | None = None
    branch_id: UUID | None = None
    assigned_to_id: str | None = None
    acknowledged_by: str | None = None
    acknowledged_at: datetime | None = None
    escalated_at: datetime | None = None
    resolved_by: str | None = None
    resolved_at: datetime | None = None
    resolution_notes: str | None = None
    created_at: datetime | None = None


class AlertListResponse(PageMeta):
    items: list[AlertDTO]


class AlertStatistics(BaseModel):
    total: int
    active: int
    requires_action: int
    by_severity: dict[str, int]
    by_category: dict[str, int]
    by_status: dict[str, int]
