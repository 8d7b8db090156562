from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.alert import Alert
from microfin.schemas.alerts import (
    AlertBulkAcknowledge,
    AlertCategory,
    AlertCreate,
    AlertSeverity,
    AlertStatus,
    AlertUpdate,
)
from microfin.services import tasks
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import InvalidTransitionError, NotFoundError

logger = logging.getLogger(__name__)

_OPEN = (AlertStatus.ACTIVE.value, AlertStatus.ACKNOWLEDGED.value, AlertStatus.ESCALATED.value)

# statuses each alert action may start from
ALERT_ACTION_SOURCES: dict[str, tuple[str, ...]] = {
    "acknowledge": (AlertStatus.ACTIVE.value,),
    "escalate": _OPEN,
    "resolve": _OPEN,
    "dismiss": _OPEN,
}

_ESCALATION = {
    AlertSeverity.LOW.value: AlertSeverity.MEDIUM.value,
    AlertSeverity.MEDIUM.value: AlertSeverity.HIGH.value,
    AlertSeverity.HIGH.value: AlertSeverity.CRITICAL.value,
}

_SEVERITY_RANK = case(
    {"CRITICAL": 0, "HIGH": 1, "MEDIUM": 2, "LOW": 3},
    value=Alert.severity,
    else_=4,
)


def escalated_severity(severity: str) -> str:
    """One step up the severity ladder; CRITICAL stays CRITICAL."""
    return _ESCALATION.get(severity, severity)


async def get_alert(db: AsyncSession, alert_id: UUID, *, for_update: bool = False) -> Alert:
    stmt = select(Alert).where(Alert.id == alert_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    alert = result.scalar_one_or_none()
    if alert is None:
        raise NotFoundError(
            code="alert_not_found",
            message="Alert not found",
            details={"alert_id": str(alert_id)},
        )
    return alert


def _ensure_allowed(alert: Alert, action: str) -> None:
    if alert.status not in ALERT_ACTION_SOURCES[action]:
        raise InvalidTransitionError.for_action(alert.status, action, resource="an alert")


def _audit(db: AsyncSession, alert: Alert, action: str, old_snapshot: dict | None, actor_id) -> None:
    record_audit_log(
        db,
        actor_id=actor_id,
        action=f"alert.{action}",
        resource_type="alert",
        resource_id=alert.id,
        old_value=old_snapshot,
        new_value=model_snapshot(alert),
    )


async def create_alert(db: AsyncSession, payload: AlertCreate, *, actor_id=None) -> Alert:
    """Raise an ACTIVE alert, plus a follow-up task when it requires action."""
    data = payload.model_dump()
    extra_data = data.pop("metadata")
    alert = Alert(**data, extra_data=extra_data, status=AlertStatus.ACTIVE.value)
    db.add(alert)
    await db.flush()
    _audit(db, alert, "created", None, actor_id)
    logger.info(
        "Alert created: %s [%s] category=%s",
        alert.title,
        alert.severity,
        alert.category,
        extra={"alert_id": str(alert.id)},
    )
    if alert.requires_action:
        await tasks.create_task_from_alert(db, alert, actor_id=actor_id)
    return alert


def _filters(
    *,
    search: str | None = None,
    severity: AlertSeverity | None = None,
    category: AlertCategory | None = None,
    status: AlertStatus | None = None,
    assigned_to_id: str | None = None,
    customer_id: UUID | None = None,
    loan_id: UUID | None = None,
    branch_id: UUID | None = None,
    requires_action: bool | None = None,
) -> list[Any]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Alert.title.ilike(pattern), Alert.message.ilike(pattern)))
    if severity is not None:
        filters.append(Alert.severity == AlertSeverity(severity).value)
    if category is not None:
        filters.append(Alert.category == AlertCategory(category).value)
    if status is not None:
        filters.append(Alert.status == AlertStatus(status).value)
    if assigned_to_id:
        filters.append(Alert.assigned_to_id == assigned_to_id)
    if customer_id is not None:
        filters.append(Alert.customer_id == customer_id)
    if loan_id is not None:
        filters.append(Alert.loan_id == loan_id)
    if branch_id is not None:
        filters.append(Alert.branch_id == branch_id)
    if requires_action is not None:
        filters.append(Alert.requires_action.is_(requires_action))
    return filters


async def list_alerts(
    db: AsyncSession, *, offset: int = 0, limit: int = 20, **criteria: Any
) -> tuple[list[Alert], int]:
    filters = _filters(**criteria)
    total = (await db.execute(select(func.count(Alert.id)).where(*filters))).scalar_one_or_none() or 0
    stmt = (
        select(Alert)
        .where(*filters)
        .order_by(_SEVERITY_RANK, Alert.created_at.desc())
        .offset(offset)
        .limit(limit)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total)


async def update_alert(db: AsyncSession, alert_id: UUID, payload: AlertUpdate, *, actor_id=None) -> Alert:
    alert = await get_alert(db, alert_id, for_update=True)
    old_snapshot = model_snapshot(alert)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(alert, key, value)
    await db.flush()
    _audit(db, alert, "updated", old_snapshot, actor_id)
    return alert


async def acknowledge_alert(db: AsyncSession, alert_id: UUID, notes: str, *, actor_id=None) -> Alert:
    alert = await get_alert(db, alert_id, for_update=True)
    _ensure_allowed(alert, "acknowledge")
    old_snapshot = model_snapshot(alert)
    alert.status = AlertStatus.ACKNOWLEDGED.value
    alert.acknowledged_by = actor_id
    alert.acknowledged_at = datetime.now(timezone.utc)
    alert.resolution_notes = notes
    await db.flush()
    _audit(db, alert, "acknowledged", old_snapshot, actor_id)
    return alert


async def _close(db: AsyncSession, alert_id: UUID, action: str, status: AlertStatus, notes: str, actor_id) -> Alert:
    alert = await get_alert(db, alert_id, for_update=True)
    _ensure_allowed(alert, action)
    old_snapshot = model_snapshot(alert)
    alert.status = status.value
    alert.resolved_by = actor_id
    alert.resolved_at = datetime.now(timezone.utc)
    alert.resolution_notes = notes
    await db.flush()
    _audit(db, alert, status.value.lower(), old_snapshot, actor_id)
    logger.info("Alert %s: %s", status.value.lower(), alert.title, extra={"alert_id": str(alert.id)})
    return alert


async def resolve_alert(db: AsyncSession, alert_id: UUID, resolution_notes: str, *, actor_id=None) -> Alert:
    return await _close(db, alert_id, "resolve", AlertStatus.RESOLVED, resolution_notes, actor_id)


async def dismiss_alert(db: AsyncSession, alert_id: UUID, reason: str, *, actor_id=None) -> Alert:
    return await _close(db, alert_id, "dismiss", AlertStatus.DISMISSED, reason, actor_id)


async def escalate_alert(
    db: AsyncSession, alert_id: UUID, escalated_to_id: str, reason: str, *, actor_id=None
) -> Alert:
    """Raise the severity one level and hand the alert to ``escalated_to_id``."""
    alert = await get_alert(db, alert_id, for_update=True)
    _ensure_allowed(alert, "escalate")
    old_snapshot = model_snapshot(alert)
    alert.severity = escalated_severity(alert.severity)
    alert.assigned_to_id = escalated_to_id
    alert.status = AlertStatus.ESCALATED.value
    alert.escalated_at = datetime.now(timezone.utc)
    alert.resolution_notes = f"Escalated: {reason}"
    await db.flush()
    _audit(db, alert, "escalated", old_snapshot, actor_id)
    logger.warning(
        "Alert escalated to %s: %s [%s]",
        escalated_to_id,
        alert.title,
        alert.severity,
        extra={"alert_id": str(alert.id)},
    )
    return alert


async def bulk_acknowledge(db: AsyncSession, payload: AlertBulkAcknowledge, *, actor_id=None) -> dict[str, Any]:
    """Acknowledge the ACTIVE alerts among ``payload.alert_ids``; the rest are reported as skipped."""
    requested = list(dict.fromkeys(payload.alert_ids))
    stmt = (
        select(Alert)
        .where(Alert.id.in_(requested), Alert.status == AlertStatus.ACTIVE.value)
        .with_for_update()
    )
    alerts = list((await db.execute(stmt)).scalars().all())
    now = datetime.now(timezone.utc)
    for alert in alerts:
        old_snapshot = model_snapshot(alert)
        alert.status = AlertStatus.ACKNOWLEDGED.value
        alert.acknowledged_by = actor_id
        alert.acknowledged_at = now
        alert.resolution_notes = payload.notes
        _audit(db, alert, "acknowledged", old_snapshot, actor_id)
    await db.flush()
    acknowledged_ids = {alert.id for alert in alerts}
    logger.info("Bulk acknowledged %s alerts", len(alerts))
    return {
        "acknowledged": len(alerts),
        "skipped": [alert_id for alert_id in requested if alert_id not in acknowledged_ids],
    }


async def _count(db: AsyncSession, *filters: Any) -> int:
    return int((await db.execute(select(func.count(Alert.id)).where(*filters))).scalar_one_or_none() or 0)


async def _grouped(db: AsyncSession, column, filters: list[Any]) -> dict[str, int]:
    rows = (await db.execute(select(column, func.count(Alert.id)).where(*filters).group_by(column))).all()
    return {str(key): int(count) for key, count in rows}


async def get_statistics(
    db: AsyncSession, *, branch_id: UUID | None = None, assigned_to_id: str | None = None
) -> dict[str, Any]:
    scope = _filters(branch_id=branch_id, assigned_to_id=assigned_to_id)
    active = Alert.status == AlertStatus.ACTIVE.value
    return {
        "total": await _count(db, *scope),
        "active": await _count(db, *scope, active),
        "requires_action": await _count(db, *scope, active, Alert.requires_action.is_(True)),
        "by_severity": await _grouped(db, Alert.severity, scope),
        "by_category": await _grouped(db, Alert.category, scope),
        "by_status": await _grouped(db, Alert.status, scope),
    }


async def delete_alert(db: AsyncSession, alert_id: UUID, *, actor_id=None) -> None:
    alert = await get_alert(db, alert_id, for_update=True)
    old_snapshot = model_snapshot(alert)
    await db.delete(alert)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="alert.deleted",
        resource_type="alert",
        resource_id=alert_id,
        old_value=old_snapshot,
    )
