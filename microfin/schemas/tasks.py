from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from microfin.schemas.common import PageMeta


class TaskType(str, Enum):
    FOLLOW_UP = "FOLLOW_UP"
    COLLECTION = "COLLECTION"
    KYC_REVIEW = "KYC_REVIEW"
    LOAN_APPRAISAL = "LOAN_APPRAISAL"
    ALERT_RESPONSE = "ALERT_RESPONSE"
    URGENT_ACTION = "URGENT_ACTION"
    OTHER = "OTHER"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


OPEN_TASK_STATUSES = (TaskStatus.PENDING.value, TaskStatus.IN_PROGRESS.value)


class TaskCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    task_type: TaskType
    title: str = Field(min_length=1, max_length=255)
    description: str | None = None
    priority: TaskPriority = TaskPriority.MEDIUM
    due_date: datetime
    assigned_to_id: str = Field(min_length=1, max_length=64)
    customer_id: UUID | None = None
    loan_id: UUID | None = None
    branch_id: UUID | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    checklist: list[str] = Field(default_factory=list)
    sla_hours: int | None = Field(default=None, gt=0, le=24 * 90)


class TaskUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    checklist: list[str] | None = None


class TaskComplete(BaseModel):
    completion_notes: str = Field(min_length=1)
    completed_checklist: list[str] = Field(default_factory=list)


class TaskReassign(BaseModel):
    new_assignee_id: str = Field(min_length=1, max_length=64)
    reason: str = Field(min_length=1)


class TaskCancel(BaseModel):
    reason: str = Field(min_length=1)


class TaskCommentCreate(BaseModel):
    comment: str = Field(min_length=1, max_length=4000)


class TaskBulkAssign(BaseModel):
    task_ids: list[UUID] = Field(min_length=1, max_length=100)
    assign_to_id: str = Field(min_length=1, max_length=64)


class TaskBulkAssignResult(BaseModel):
    assigned: int
    skipped: list[UUID]


class TaskCommentDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_id: str | None = None
    comment: str
    created_at: datetime | None = None


class TaskDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    task_type: TaskType
    title: str
    description: str | None = None
    priority: TaskPriority
    status: TaskStatus
    due_date: datetime
    sla_hours: int | None = None
    sla_due_at: datetime | None = None
    assigned_to_id: str | None = None
    customer_id: UUID | None = None
    loan_id: UUID | None = None
    branch_id: UUID | None = None
    alert_id: UUID | None = None
    checklist: list[str] | None = None
    completed_checklist: list[str] | None = None
    metadata: dict[str, Any] | None = Field(default=None, validation_alias=AliasChoices("extra_data", "metadata"))
    started_by: str | None = None
    started_at: datetime | None = None
    completed_by: str | None = None
    completed_at: datetime | None = None
    completion_notes: str | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    created_by: str | None = None
    created_at: datetime | None = None
    comments: list[TaskCommentDTO] = Field(default_factory=list)


class TaskListResponse(PageMeta):
    items: list[TaskDTO]


class TaskStatistics(BaseModel):
    total: int
    open: int
    overdue: int
    sla_breached: int
    by_status: dict[str, int]
    by_priority: dict[str, int]
