from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Page, Role
from microfin.db.session import get_db
from microfin.schemas.alerts import (
    AlertAcknowledge,
    AlertBulkAcknowledge,
    AlertBulkAcknowledgeResult,
    AlertCategory,
    AlertCreate,
    AlertDismiss,
    AlertDTO,
    AlertEscalate,
    AlertListResponse,
    AlertResolve,
    AlertSeverity,
    AlertStatistics,
    AlertStatus,
    AlertUpdate,
)
from microfin.services import alerts
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/alerts", tags=["alerts"])

_SUPERVISORS = (Role.BRANCH_MANAGER, Role.COMPLIANCE)


@router.post("", response_model=AlertDTO, status_code=status.HTTP_201_CREATED, summary="Raise an alert manually")
async def create_alert(
    payload: AlertCreate,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(db, lambda: alerts.create_alert(db, payload, actor_id=actor.id))
    return AlertDTO.model_validate(alert)


@router.get("", response_model=AlertListResponse, summary="List alerts")
async def list_alerts(
    search: str | None = Query(default=None, max_length=100),
    severity: AlertSeverity | None = Query(default=None),
    category: AlertCategory | None = Query(default=None),
    alert_status: AlertStatus | None = Query(default=None, alias="status"),
    assigned_to_id: str | None = Query(default=None, max_length=64),
    customer_id: UUID | None = Query(default=None),
    loan_id: UUID | None = Query(default=None),
    branch_id: UUID | None = Query(default=None),
    requires_action: bool | None = Query(default=None),
    page: Page = Depends(deps.get_page),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> AlertListResponse:
    items, total = await alerts.list_alerts(
        db,
        search=search,
        severity=severity,
        category=category,
        status=alert_status,
        assigned_to_id=assigned_to_id,
        customer_id=customer_id,
        loan_id=loan_id,
        branch_id=branch_id,
        requires_action=requires_action,
        offset=page.offset,
        limit=page.limit,
    )
    return AlertListResponse(
        items=[AlertDTO.model_validate(item) for item in items],
        total=total,
        offset=page.offset,
        limit=page.limit,
    )


@router.get("/statistics", response_model=AlertStatistics, summary="Alert counts by severity, category and status")
async def alert_statistics(
    branch_id: UUID | None = Query(default=None),
    user_id: str | None = Query(default=None, max_length=64),
    actor: Actor = Depends(deps.require_role(Role.CEO, *_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertStatistics:
    stats = await alerts.get_statistics(db, branch_id=branch_id, assigned_to_id=user_id)
    return AlertStatistics(**stats)


@router.post("/bulk-acknowledge", response_model=AlertBulkAcknowledgeResult, summary="Acknowledge several alerts")
async def bulk_acknowledge(
    payload: AlertBulkAcknowledge,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertBulkAcknowledgeResult:
    result = await run_in_transaction(db, lambda: alerts.bulk_acknowledge(db, payload, actor_id=actor.id))
    return AlertBulkAcknowledgeResult(**result)


@router.get("/{alert_id}", response_model=AlertDTO, summary="Get an alert")
async def get_alert(
    alert_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    return AlertDTO.model_validate(await alerts.get_alert(db, alert_id))


@router.patch("/{alert_id}", response_model=AlertDTO, summary="Update an alert")
async def update_alert(
    alert_id: UUID,
    payload: AlertUpdate,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(db, lambda: alerts.update_alert(db, alert_id, payload, actor_id=actor.id))
    return AlertDTO.model_validate(alert)


@router.post("/{alert_id}/acknowledge", response_model=AlertDTO, summary="Acknowledge an alert")
async def acknowledge_alert(
    alert_id: UUID,
    payload: AlertAcknowledge,
    actor: Actor = Depends(deps.require_role(Role.LOAN_OFFICER, *_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(
        db, lambda: alerts.acknowledge_alert(db, alert_id, payload.notes, actor_id=actor.id)
    )
    return AlertDTO.model_validate(alert)


@router.post("/{alert_id}/resolve", response_model=AlertDTO, summary="Resolve an alert")
async def resolve_alert(
    alert_id: UUID,
    payload: AlertResolve,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(
        db, lambda: alerts.resolve_alert(db, alert_id, payload.resolution_notes, actor_id=actor.id)
    )
    return AlertDTO.model_validate(alert)


@router.post("/{alert_id}/dismiss", response_model=AlertDTO, summary="Dismiss an alert")
async def dismiss_alert(
    alert_id: UUID,
    payload: AlertDismiss,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(
        db, lambda: alerts.dismiss_alert(db, alert_id, payload.reason, actor_id=actor.id)
    )
    return AlertDTO.model_validate(alert)


@router.post("/{alert_id}/escalate", response_model=AlertDTO, summary="Escalate an alert")
async def escalate_alert(
    alert_id: UUID,
    payload: AlertEscalate,
    actor: Actor = Depends(deps.require_role(*_SUPERVISORS)),
    db: AsyncSession = Depends(get_db),
) -> AlertDTO:
    alert = await run_in_transaction(
        db,
        lambda: alerts.escalate_alert(
            db, alert_id, payload.escalated_to_id, payload.reason, actor_id=actor.id
        ),
    )
    return AlertDTO.model_validate(alert)


@router.delete("/{alert_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete an alert")
async def delete_alert(
    alert_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> None:
    await run_in_transaction(db, lambda: alerts.delete_alert(db, alert_id, actor_id=actor.id))
