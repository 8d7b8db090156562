from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from microfin.models.alert import Alert
from microfin.models.audit_log import AuditLog
from microfin.models.task import Task
from microfin.schemas.alerts import AlertBulkAcknowledge, AlertCreate, AlertUpdate
from microfin.services import alerts, tasks
from microfin.services.errors import InvalidTransitionError, NotFoundError

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_alert, sequence_handler


def _create_payload(**overrides) -> AlertCreate:
    data = dict(
        severity="HIGH",
        category="CREDIT_RISK",
        title="PAR30 above threshold",
        message="Portfolio at risk is 12%, threshold is 10%",
        branch_id=uuid4(),
        metadata={"par30": 12, "threshold": 10},
    )
    data.update(overrides)
    return AlertCreate(**data)


def _db_with(alert: Alert) -> FakeAsyncSession:
    return FakeAsyncSession().on_execute(entity_handler(Alert, FakeResult(scalar=alert)))


@pytest.mark.asyncio
async def test_create_alert_starts_active_without_task():
    db = FakeAsyncSession()

    alert = await alerts.create_alert(db, _create_payload(), actor_id="manager-1")

    assert alert.status == "ACTIVE"
    assert alert.source == "MANUAL"
    assert alert.extra_data == {"par30": 12, "threshold": 10}
    assert db.added_of(Task) == []
    assert [entry.action for entry in db.added_of(AuditLog)] == ["alert.created"]


@pytest.mark.asyncio
async def test_create_alert_requiring_action_raises_follow_up_task():
    db = FakeAsyncSession()

    alert = await alerts.create_alert(
        db,
        _create_payload(severity="CRITICAL", requires_action=True, assigned_to_id="manager-7"),
        actor_id="manager-1",
    )

    [task] = db.added_of(Task)
    assert task.task_type == "ALERT_RESPONSE"
    assert task.priority == "URGENT"
    assert task.alert_id == alert.id
    assert task.branch_id == alert.branch_id
    assert task.assigned_to_id == "manager-7"
    assert task.title == "Action Required: PAR30 above threshold"
    assert [entry.action for entry in db.added_of(AuditLog)] == ["alert.created", "task.created"]


@pytest.mark.parametrize(
    ("severity", "window", "priority"),
    [
        ("CRITICAL", timedelta(hours=4), "URGENT"),
        ("HIGH", timedelta(hours=24), "HIGH"),
        ("MEDIUM", timedelta(days=3), "HIGH"),
        ("LOW", timedelta(days=7), "HIGH"),
    ],
)
def test_alert_response_due_date_follows_severity(severity, window, priority):
    now = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    task = tasks.build_alert_response_task(make_alert(severity=severity), now=now)

    assert task.due_date == now + window
    assert task.priority == priority
    assert task.status == "PENDING"


@pytest.mark.asyncio
async def test_get_alert_unknown():
    with pytest.raises(NotFoundError) as excinfo:
        await alerts.get_alert(FakeAsyncSession(), uuid4())
    assert excinfo.value.code == "alert_not_found"


@pytest.mark.asyncio
async def test_acknowledge_active_alert():
    alert = make_alert()
    db = _db_with(alert)

    await alerts.acknowledge_alert(db, alert.id, "Calling the branch today", actor_id="officer-1")

    assert alert.status == "ACKNOWLEDGED"
    assert alert.acknowledged_by == "officer-1"
    assert alert.acknowledged_at is not None
    assert alert.resolution_notes == "Calling the branch today"
    [entry] = db.added_of(AuditLog)
    assert entry.action == "alert.acknowledged"
    assert entry.changes["status"] == {"from": "ACTIVE", "to": "ACKNOWLEDGED"}


@pytest.mark.asyncio
async def test_acknowledge_only_from_active():
    alert = make_alert(status="ESCALATED")
    db = _db_with(alert)

    with pytest.raises(InvalidTransitionError) as excinfo:
        await alerts.acknowledge_alert(db, alert.id, "late", actor_id="officer-1")

    assert excinfo.value.details == {"current_status": "ESCALATED", "action": "acknowledge"}
    assert excinfo.value.message == "Cannot acknowledge an alert in status ESCALATED"
    assert alert.status == "ESCALATED"
    assert db.added == []


@pytest.mark.asyncio
async def test_resolve_escalated_alert():
    alert = make_alert(status="ESCALATED")
    db = _db_with(alert)

    await alerts.resolve_alert(db, alert.id, "Customer repaid arrears", actor_id="manager-1")

    assert alert.status == "RESOLVED"
    assert alert.resolved_by == "manager-1"
    assert alert.resolution_notes == "Customer repaid arrears"
    assert [entry.action for entry in db.added_of(AuditLog)] == ["alert.resolved"]


@pytest.mark.asyncio
@pytest.mark.parametrize("closed_status", ["RESOLVED", "DISMISSED"])
async def test_closed_alerts_cannot_be_resolved_or_dismissed(closed_status):
    alert = make_alert(status=closed_status)
    db = _db_with(alert)

    with pytest.raises(InvalidTransitionError):
        await alerts.resolve_alert(db, alert.id, "again")
    with pytest.raises(InvalidTransitionError):
        await alerts.dismiss_alert(db, alert.id, "again")
    assert alert.status == closed_status


@pytest.mark.asyncio
async def test_dismiss_records_reason():
    alert = make_alert(status="ACKNOWLEDGED")
    db = _db_with(alert)

    await alerts.dismiss_alert(db, alert.id, "False positive", actor_id="compliance-1")

    assert alert.status == "DISMISSED"
    assert alert.resolved_by == "compliance-1"
    assert alert.resolution_notes == "False positive"
    assert [entry.action for entry in db.added_of(AuditLog)] == ["alert.dismissed"]


@pytest.mark.parametrize(
    ("severity", "expected"),
    [("LOW", "MEDIUM"), ("MEDIUM", "HIGH"), ("HIGH", "CRITICAL"), ("CRITICAL", "CRITICAL")],
)
def test_escalated_severity(severity, expected):
    assert alerts.escalated_severity(severity) == expected


@pytest.mark.asyncio
async def test_escalate_raises_severity_and_reassigns():
    alert = make_alert(severity="MEDIUM", assigned_to_id="officer-1")
    db = _db_with(alert)

    await alerts.escalate_alert(db, alert.id, "regional-1", "No response in 3 days", actor_id="manager-1")

    assert alert.severity == "HIGH"
    assert alert.status == "ESCALATED"
    assert alert.assigned_to_id == "regional-1"
    assert alert.escalated_at is not None
    assert alert.resolution_notes == "Escalated: No response in 3 days"
    [entry] = db.added_of(AuditLog)
    assert entry.changes["severity"] == {"from": "MEDIUM", "to": "HIGH"}


@pytest.mark.asyncio
async def test_update_alert_applies_only_sent_fields():
    alert = make_alert(severity="LOW")
    db = _db_with(alert)

    await alerts.update_alert(db, alert.id, AlertUpdate(title="Updated title"), actor_id="manager-1")

    assert alert.title == "Updated title"
    assert alert.severity == "LOW"


@pytest.mark.asyncio
async def test_bulk_acknowledge_reports_skipped_ids():
    first, second = make_alert(), make_alert()
    missing = uuid4()
    db = FakeAsyncSession().on_execute(entity_handler(Alert, FakeResult(items=[first, second])))

    result = await alerts.bulk_acknowledge(
        db,
        AlertBulkAcknowledge(alert_ids=[first.id, second.id, missing, first.id], notes="Weekly review"),
        actor_id="manager-1",
    )

    assert result == {"acknowledged": 2, "skipped": [missing]}
    assert {first.status, second.status} == {"ACKNOWLEDGED"}
    assert first.acknowledged_at == second.acknowledged_at
    assert len(db.added_of(AuditLog)) == 2


@pytest.mark.asyncio
async def test_statistics_groups_counts():
    db = FakeAsyncSession().on_execute(
        sequence_handler(
            [
                FakeResult(scalar=10),
                FakeResult(scalar=4),
                FakeResult(scalar=2),
                FakeResult(rows=[("HIGH", 6), ("LOW", 4)]),
                FakeResult(rows=[("CREDIT_RISK", 10)]),
                FakeResult(rows=[("ACTIVE", 4), ("RESOLVED", 6)]),
            ]
        )
    )

    stats = await alerts.get_statistics(db, branch_id=uuid4())

    assert stats == {
        "total": 10,
        "active": 4,
        "requires_action": 2,
        "by_severity": {"HIGH": 6, "LOW": 4},
        "by_category": {"CREDIT_RISK": 10},
        "by_status": {"ACTIVE": 4, "RESOLVED": 6},
    }


@pytest.mark.asyncio
async def test_delete_alert_is_audited():
    alert = make_alert()
    db = _db_with(alert)

    await alerts.delete_alert(db, alert.id, actor_id="admin-1")

    assert db.deleted == [alert]
    [entry] = db.added_of(AuditLog)
    assert entry.action == "alert.deleted"
    assert entry.old_value["title"] == "PAR30 above threshold"


def test_create_alert_endpoint(client, fake_db):
    response = client.post(
        "/api/v1/alerts",
        json={
            "severity": "MEDIUM",
            "category": "OPERATIONAL",
            "title": "Officer has 7 overdue loans",
            "message": "Threshold is 5",
            "metadata": {"overdue_count": 7},
        },
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "ACTIVE"
    assert data["metadata"] == {"overdue_count": 7}
    assert fake_db.committed is True


def test_acknowledge_closed_alert_endpoint(client, fake_db):
    alert = make_alert(status="RESOLVED")
    fake_db.on_execute(entity_handler(Alert, FakeResult(scalar=alert)))

    response = client.post(f"/api/v1/alerts/{alert.id}/acknowledge", json={"notes": "seen"})

    assert response.status_code == 403
    body = response.json()
    assert body["code"] == "invalid_transition"
    assert body["details"] == {"current_status": "RESOLVED", "action": "acknowledge"}
    assert fake_db.rolled_back is True


def test_statistics_route_is_not_an_alert_id(client, fake_db):
    response = client.get("/api/v1/alerts/statistics")

    assert response.status_code == 200
    assert response.json()["data"]["total"] == 0
