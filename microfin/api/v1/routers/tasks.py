from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Page, Role
from microfin.db.session import get_db
from microfin.schemas.tasks import (
    TaskBulkAssign,
    TaskBulkAssignResult,
    TaskCancel,
    TaskCommentCreate,
    TaskComplete,
    TaskCreate,
    TaskDTO,
    TaskListResponse,
    TaskPriority,
    TaskReassign,
    TaskStatistics,
    TaskStatus,
    TaskType,
    TaskUpdate,
)
from microfin.services import tasks
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/tasks", tags=["tasks"])

_FRONT_OFFICE = (Role.LOAN_OFFICER, Role.BRANCH_MANAGER)
_WORKERS = (Role.LOAN_OFFICER, Role.BRANCH_MANAGER, Role.COMPLIANCE)


class TaskQuery:
    def __init__(
        self,
        search: str | None = Query(default=None, max_length=100),
        task_type: TaskType | None = Query(default=None, alias="type"),
        task_status: TaskStatus | None = Query(default=None, alias="status"),
        priority: TaskPriority | None = Query(default=None),
        customer_id: UUID | None = Query(default=None),
        loan_id: UUID | None = Query(default=None),
        branch_id: UUID | None = Query(default=None),
        overdue: bool | None = Query(default=None),
        sla_breached: bool | None = Query(default=None),
    ) -> None:
        self.criteria = dict(
            search=search,
            task_type=task_type,
            status=task_status,
            priority=priority,
            customer_id=customer_id,
            loan_id=loan_id,
            branch_id=branch_id,
            overdue=overdue,
            sla_breached=sla_breached,
        )


async def _task_page(db: AsyncSession, page: Page, **criteria) -> TaskListResponse:
    items, total = await tasks.list_tasks(db, offset=page.offset, limit=page.limit, **criteria)
    return TaskListResponse(
        items=[TaskDTO.model_validate(item) for item in items],
        total=total,
        offset=page.offset,
        limit=page.limit,
    )


@router.post("", response_model=TaskDTO, status_code=status.HTTP_201_CREATED, summary="Create a task")
async def create_task(
    payload: TaskCreate,
    actor: Actor = Depends(deps.require_role(*_FRONT_OFFICE)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(db, lambda: tasks.create_task(db, payload, actor_id=actor.id))
    return TaskDTO.model_validate(task)


@router.get("", response_model=TaskListResponse, summary="List tasks")
async def list_tasks(
    query: TaskQuery = Depends(),
    assigned_to_id: str | None = Query(default=None, max_length=64),
    page: Page = Depends(deps.get_page),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskListResponse:
    return await _task_page(db, page, assigned_to_id=assigned_to_id, **query.criteria)


@router.get("/my-tasks", response_model=TaskListResponse, summary="Tasks assigned to the caller")
async def my_tasks(
    query: TaskQuery = Depends(),
    page: Page = Depends(deps.get_page),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskListResponse:
    return await _task_page(db, page, assigned_to_id=actor.id, **query.criteria)


@router.get("/statistics", response_model=TaskStatistics, summary="Task counts by status and priority")
async def task_statistics(
    user_id: str | None = Query(default=None, max_length=64),
    branch_id: UUID | None = Query(default=None),
    actor: Actor = Depends(deps.require_role(Role.CEO, Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> TaskStatistics:
    stats = await tasks.get_statistics(db, assigned_to_id=user_id, branch_id=branch_id)
    return TaskStatistics(**stats)


@router.post("/bulk-assign", response_model=TaskBulkAssignResult, summary="Assign several tasks to one user")
async def bulk_assign(
    payload: TaskBulkAssign,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> TaskBulkAssignResult:
    result = await run_in_transaction(db, lambda: tasks.bulk_assign(db, payload, actor_id=actor.id))
    return TaskBulkAssignResult(**result)


@router.get("/{task_id}", response_model=TaskDTO, summary="Get a task")
async def get_task(
    task_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    return TaskDTO.model_validate(await tasks.get_task(db, task_id))


@router.patch("/{task_id}", response_model=TaskDTO, summary="Update an open task")
async def update_task(
    task_id: UUID,
    payload: TaskUpdate,
    actor: Actor = Depends(deps.require_role(*_FRONT_OFFICE)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(db, lambda: tasks.update_task(db, task_id, payload, actor_id=actor.id))
    return TaskDTO.model_validate(task)


@router.post("/{task_id}/start", response_model=TaskDTO, summary="Start working on a task")
async def start_task(
    task_id: UUID,
    actor: Actor = Depends(deps.require_role(*_WORKERS)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(db, lambda: tasks.start_task(db, task_id, actor_id=actor.id))
    return TaskDTO.model_validate(task)


@router.post("/{task_id}/complete", response_model=TaskDTO, summary="Complete a task")
async def complete_task(
    task_id: UUID,
    payload: TaskComplete,
    actor: Actor = Depends(deps.require_role(*_WORKERS)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(db, lambda: tasks.complete_task(db, task_id, payload, actor_id=actor.id))
    return TaskDTO.model_validate(task)


@router.post("/{task_id}/reassign", response_model=TaskDTO, summary="Reassign a task")
async def reassign_task(
    task_id: UUID,
    payload: TaskReassign,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(
        db,
        lambda: tasks.reassign_task(
            db, task_id, payload.new_assignee_id, payload.reason, actor_id=actor.id
        ),
    )
    return TaskDTO.model_validate(task)


@router.post("/{task_id}/cancel", response_model=TaskDTO, summary="Cancel a task")
async def cancel_task(
    task_id: UUID,
    payload: TaskCancel,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(
        db, lambda: tasks.cancel_task(db, task_id, payload.reason, actor_id=actor.id)
    )
    return TaskDTO.model_validate(task)


@router.post("/{task_id}/comment", response_model=TaskDTO, summary="Comment on a task")
async def comment_on_task(
    task_id: UUID,
    payload: TaskCommentCreate,
    actor: Actor = Depends(deps.require_role(*_WORKERS)),
    db: AsyncSession = Depends(get_db),
) -> TaskDTO:
    task = await run_in_transaction(
        db, lambda: tasks.add_comment(db, task_id, payload.comment, actor_id=actor.id)
    )
    return TaskDTO.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a task")
async def delete_task(
    task_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> None:
    await run_in_transaction(db, lambda: tasks.delete_task(db, task_id, actor_id=actor.id))
