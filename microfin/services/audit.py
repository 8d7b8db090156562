from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.core import context
from microfin.core.logging import get_audit_logger
from microfin.models.audit_log import AuditLog

audit_logger = get_audit_logger()

# customer identifiers are kept out of audit payloads beyond their last digits
MASKED_COLUMNS = frozenset({"national_id", "phone", "email", "account_number"})
_MAX_SUMMARY_KEYS = 3


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: str,
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            UUID: str,
        },
    )


def mask_identifier(value: Any) -> Any:
    if value is None:
        return None
    text = str(value)
    if len(text) <= 4:
        return "*" * len(text)
    return "*" * (len(text) - 4) + text[-4:]


def model_snapshot(model: Any, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    """Column values of ``model`` ready to store as an audit payload."""
    if model is None:
        return {}
    excluded = set(exclude or ())
    data = {}
    for column in model.__table__.columns:
        if column.name in excluded:
            continue
        value = getattr(model, column.key, None)
        data[column.name] = mask_identifier(value) if column.name in MASKED_COLUMNS else value
    return serialize_for_audit(data)


def diff_snapshots(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    if isinstance(old, dict) and isinstance(new, dict):
        changes: dict[str, dict[str, Any]] = {}
        for key in sorted(set(old) | set(new)):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(diff_snapshots(old.get(key), new.get(key), path))
        return changes
    if old != new:
        return {prefix or "value": {"from": old, "to": new}}
    return {}


def _summary(action: str, resource_id: str, changes: dict[str, Any] | None) -> str:
    if not changes:
        return f"{action} {resource_id}"
    keys = sorted(changes)
    more = f" (+{len(keys) - _MAX_SUMMARY_KEYS} more)" if len(keys) > _MAX_SUMMARY_KEYS else ""
    return f"{action} {resource_id}: {', '.join(keys[:_MAX_SUMMARY_KEYS])}{more}"


def record_audit_log(
    db: AsyncSession,
    *,
    actor_id: str | None,
    action: str,
    resource_type: str,
    resource_id: Any,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> AuditLog:
    """Stage an audit row in the caller's unit of work and mirror it to the audit stream.

    The row commits or rolls back together with the change it describes.
    """
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        changes = diff_snapshots(serialized_old or {}, serialized_new or {}) or None
    ctx = context.current()
    entry = AuditLog(
        actor_id=actor_id,
        actor_role=None if ctx.actor_role == "-" else ctx.actor_role,
        branch_id=context.get_branch_id(),
        action=action,
        resource_type=resource_type,
        resource_id=str(resource_id),
        old_value=serialized_old,
        new_value=serialized_new,
        changes=changes,
        summary=_summary(action, str(resource_id), changes),
        request_id=context.get_request_id(),
    )
    db.add(entry)
    audit_logger.info(
        entry.summary,
        extra={"resource_type": resource_type, "resource_id": str(resource_id)},
    )
    return entry
