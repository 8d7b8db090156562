from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from microfin.models.alert import Alert
from microfin.models.task import Task, TaskComment
from microfin.schemas.tasks import (
    OPEN_TASK_STATUSES,
    TaskBulkAssign,
    TaskComplete,
    TaskCreate,
    TaskPriority,
    TaskStatus,
    TaskType,
    TaskUpdate,
)
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import InvalidTransitionError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

# time allowed to respond to an alert, by alert severity
ALERT_RESPONSE_WINDOWS = {
    "CRITICAL": timedelta(hours=4),
    "HIGH": timedelta(hours=24),
    "MEDIUM": timedelta(days=3),
}
DEFAULT_RESPONSE_WINDOW = timedelta(days=7)

_PRIORITY_RANK = case(
    {"URGENT": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3},
    value=Task.priority,
    else_=4,
)


def _task_query():
    return select(Task).options(selectinload(Task.comments))


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


async def get_task(db: AsyncSession, task_id: UUID, *, for_update: bool = False) -> Task:
    stmt = _task_query().where(Task.id == task_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    task = result.scalar_one_or_none()
    if task is None:
        raise NotFoundError(
            code="task_not_found",
            message="Task not found",
            details={"task_id": str(task_id)},
        )
    return task


def _ensure_open(task: Task, action: str) -> None:
    if task.status not in OPEN_TASK_STATUSES:
        raise InvalidTransitionError.for_action(task.status, action, resource="a task")


def _audit(db: AsyncSession, task: Task, action: str, old_snapshot: dict | None, actor_id) -> None:
    record_audit_log(
        db,
        actor_id=actor_id,
        action=f"task.{action}",
        resource_type="task",
        resource_id=task.id,
        old_value=old_snapshot,
        new_value=model_snapshot(task),
    )


async def create_task(
    db: AsyncSession, payload: TaskCreate, *, actor_id=None, now: datetime | None = None
) -> Task:
    created_at = _now(now)
    data = payload.model_dump()
    extra_data = data.pop("metadata")
    task = Task(
        **data,
        extra_data=extra_data,
        status=TaskStatus.PENDING.value,
        sla_due_at=created_at + timedelta(hours=payload.sla_hours) if payload.sla_hours else None,
        created_by=actor_id,
    )
    db.add(task)
    await db.flush()
    _audit(db, task, "created", None, actor_id)
    logger.info(
        "Task created: %s [%s] for %s",
        task.title,
        task.priority,
        task.assigned_to_id,
        extra={"task_id": str(task.id)},
    )
    return task


def build_alert_response_task(alert: Alert, *, now: datetime | None = None) -> Task:
    """Follow-up task for an alert that requires action.

    The due date depends on the alert severity; critical alerts raise an
    URGENT task, everything else a HIGH one.
    """
    created_at = _now(now)
    window = ALERT_RESPONSE_WINDOWS.get(alert.severity, DEFAULT_RESPONSE_WINDOW)
    return Task(
        task_type=TaskType.ALERT_RESPONSE.value,
        title=f"Action Required: {alert.title}"[:255],
        description=alert.message,
        priority=(TaskPriority.URGENT if alert.severity == "CRITICAL" else TaskPriority.HIGH).value,
        status=TaskStatus.PENDING.value,
        due_date=created_at + window,
        assigned_to_id=alert.assigned_to_id,
        customer_id=alert.customer_id,
        loan_id=alert.loan_id,
        branch_id=alert.branch_id,
        alert_id=alert.id,
        extra_data={"alert_category": alert.category, "auto_generated": True},
    )


async def create_task_from_alert(
    db: AsyncSession, alert: Alert, *, actor_id=None, now: datetime | None = None
) -> Task:
    task = build_alert_response_task(alert, now=now)
    task.created_by = actor_id
    db.add(task)
    await db.flush()
    _audit(db, task, "created", None, actor_id)
    logger.info("Task created from alert: %s", alert.title, extra={"task_id": str(task.id)})
    return task


def _filters(
    *,
    search: str | None = None,
    task_type: TaskType | None = None,
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    assigned_to_id: str | None = None,
    customer_id: UUID | None = None,
    loan_id: UUID | None = None,
    branch_id: UUID | None = None,
    overdue: bool | None = None,
    sla_breached: bool | None = None,
    now: datetime | None = None,
) -> list[Any]:
    current = _now(now)
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
    if task_type is not None:
        filters.append(Task.task_type == TaskType(task_type).value)
    if status is not None:
        filters.append(Task.status == TaskStatus(status).value)
    if priority is not None:
        filters.append(Task.priority == TaskPriority(priority).value)
    if assigned_to_id:
        filters.append(Task.assigned_to_id == assigned_to_id)
    if customer_id is not None:
        filters.append(Task.customer_id == customer_id)
    if loan_id is not None:
        filters.append(Task.loan_id == loan_id)
    if branch_id is not None:
        filters.append(Task.branch_id == branch_id)
    if overdue:
        filters.append(and_(Task.status.in_(OPEN_TASK_STATUSES), Task.due_date < current))
    if sla_breached:
        filters.append(and_(Task.status.in_(OPEN_TASK_STATUSES), Task.sla_due_at < current))
    return filters


async def list_tasks(
    db: AsyncSession, *, offset: int = 0, limit: int = 20, **criteria: Any
) -> tuple[list[Task], int]:
    filters = _filters(**criteria)
    total = (await db.execute(select(func.count(Task.id)).where(*filters))).scalar_one_or_none() or 0
    stmt = (
        _task_query()
        .where(*filters)
        .order_by(_PRIORITY_RANK, Task.due_date.asc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total)


async def _count(db: AsyncSession, *filters: Any) -> int:
    return int((await db.execute(select(func.count(Task.id)).where(*filters))).scalar_one_or_none() or 0)


async def _grouped(db: AsyncSession, column, filters: list[Any]) -> dict[str, int]:
    rows = (await db.execute(select(column, func.count(Task.id)).where(*filters).group_by(column))).all()
    return {str(key): int(count) for key, count in rows}


async def get_statistics(
    db: AsyncSession,
    *,
    assigned_to_id: str | None = None,
    branch_id: UUID | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    scope = _filters(assigned_to_id=assigned_to_id, branch_id=branch_id)
    return {
        "total": await _count(db, *scope),
        "open": await _count(db, *scope, Task.status.in_(OPEN_TASK_STATUSES)),
        "overdue": await _count(db, *scope, *_filters(overdue=True, now=now)),
        "sla_breached": await _count(db, *scope, *_filters(sla_breached=True, now=now)),
        "by_status": await _grouped(db, Task.status, scope),
        "by_priority": await _grouped(db, Task.priority, scope),
    }


async def update_task(db: AsyncSession, task_id: UUID, payload: TaskUpdate, *, actor_id=None) -> Task:
    task = await get_task(db, task_id, for_update=True)
    _ensure_open(task, "update")
    old_snapshot = model_snapshot(task)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(task, key, value)
    await db.flush()
    _audit(db, task, "updated", old_snapshot, actor_id)
    return task


async def start_task(db: AsyncSession, task_id: UUID, *, actor_id=None) -> Task:
    task = await get_task(db, task_id, for_update=True)
    if task.status != TaskStatus.PENDING.value:
        raise InvalidTransitionError.for_action(task.status, "start", resource="a task")
    old_snapshot = model_snapshot(task)
    task.status = TaskStatus.IN_PROGRESS.value
    task.started_by = actor_id
    task.started_at = datetime.now(timezone.utc)
    await db.flush()
    _audit(db, task, "started", old_snapshot, actor_id)
    return task


async def complete_task(db: AsyncSession, task_id: UUID, payload: TaskComplete, *, actor_id=None) -> Task:
    """Close an open task; ticked checklist items must come from the task's own checklist."""
    task = await get_task(db, task_id, for_update=True)
    _ensure_open(task, "complete")
    unknown = sorted(set(payload.completed_checklist) - set(task.checklist or []))
    if unknown:
        raise ValidationError(
            code="unknown_checklist_items",
            message="Completed checklist items must belong to the task checklist",
            details={"items": unknown},
        )
    old_snapshot = model_snapshot(task)
    task.status = TaskStatus.COMPLETED.value
    task.completion_notes = payload.completion_notes
    task.completed_checklist = list(payload.completed_checklist)
    task.completed_by = actor_id
    task.completed_at = datetime.now(timezone.utc)
    await db.flush()
    _audit(db, task, "completed", old_snapshot, actor_id)
    logger.info("Task completed: %s", task.title, extra={"task_id": str(task.id)})
    return task


def _append_comment(db: AsyncSession, task: Task, text: str, author_id) -> TaskComment:
    comment = TaskComment(task_id=task.id, author_id=author_id, comment=text)
    task.comments.append(comment)
    db.add(comment)
    return comment


async def reassign_task(
    db: AsyncSession, task_id: UUID, new_assignee_id: str, reason: str, *, actor_id=None
) -> Task:
    task = await get_task(db, task_id, for_update=True)
    _ensure_open(task, "reassign")
    if task.assigned_to_id == new_assignee_id:
        raise ValidationError(
            code="already_assigned",
            message="The task is already assigned to this user",
            details={"assigned_to_id": new_assignee_id},
        )
    old_snapshot = model_snapshot(task)
    previous = task.assigned_to_id
    task.assigned_to_id = new_assignee_id
    _append_comment(db, task, f"Reassigned from {previous or 'nobody'} to {new_assignee_id}: {reason}", actor_id)
    await db.flush()
    _audit(db, task, "reassigned", old_snapshot, actor_id)
    return task


async def cancel_task(db: AsyncSession, task_id: UUID, reason: str, *, actor_id=None) -> Task:
    task = await get_task(db, task_id, for_update=True)
    _ensure_open(task, "cancel")
    old_snapshot = model_snapshot(task)
    task.status = TaskStatus.CANCELLED.value
    task.cancellation_reason = reason
    task.cancelled_at = datetime.now(timezone.utc)
    await db.flush()
    _audit(db, task, "cancelled", old_snapshot, actor_id)
    return task


async def add_comment(db: AsyncSession, task_id: UUID, text: str, *, actor_id=None) -> Task:
    task = await get_task(db, task_id, for_update=True)
    comment = _append_comment(db, task, text, actor_id)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="task.commented",
        resource_type="task",
        resource_id=task.id,
        new_value={"comment_id": comment.id},
    )
    return task


async def bulk_assign(db: AsyncSession, payload: TaskBulkAssign, *, actor_id=None) -> dict[str, Any]:
    """Assign every open task in ``payload.task_ids``; unknown or closed ids are reported as skipped."""
    requested = list(dict.fromkeys(payload.task_ids))
    stmt = (
        select(Task)
        .where(Task.id.in_(requested), Task.status.in_(OPEN_TASK_STATUSES))
        .with_for_update()
    )
    tasks = list((await db.execute(stmt)).scalars().all())
    for task in tasks:
        old_snapshot = model_snapshot(task)
        task.assigned_to_id = payload.assign_to_id
        _audit(db, task, "reassigned", old_snapshot, actor_id)
    await db.flush()
    assigned_ids = {task.id for task in tasks}
    logger.info("Bulk assigned %s tasks to %s", len(tasks), payload.assign_to_id)
    return {
        "assigned": len(tasks),
        "skipped": [task_id for task_id in requested if task_id not in assigned_ids],
    }


async def delete_task(db: AsyncSession, task_id: UUID, *, actor_id=None) -> None:
    task = await get_task(db, task_id, for_update=True)
    old_snapshot = model_snapshot(task)
    await db.delete(task)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="task.deleted",
        resource_type="task",
        resource_id=task_id,
        old_value=old_snapshot,
    )
