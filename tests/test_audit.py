from decimal import Decimal

from microfin.core import context
from microfin.models.audit_log import AuditLog
from microfin.services import audit

from conftest import FakeAsyncSession, make_customer, make_loan


def test_mask_identifier_keeps_last_four():
    assert audit.mask_identifier("+254700123456") == "*********3456"
    assert audit.mask_identifier("123") == "***"
    assert audit.mask_identifier(None) is None


def test_customer_snapshot_masks_identifiers():
    customer = make_customer(national_id="ID12345678", phone="+254700000001")

    snapshot = audit.model_snapshot(customer)

    assert snapshot["national_id"] == "******5678"
    assert snapshot["phone"] == "*********0001"
    assert snapshot["first_name"] == "Amina"
    assert snapshot["id"] == str(customer.id)


def test_loan_snapshot_serializes_decimals():
    loan = make_loan(requested_amount=Decimal("10000.00"))

    snapshot = audit.model_snapshot(loan, exclude={"version"})

    assert snapshot["requested_amount"] == "10000.00"
    assert "version" not in snapshot


def test_diff_snapshots_walks_nested_values():
    changes = audit.diff_snapshots(
        {"status": "DRAFT", "terms": {"tenure": 12, "rate": "12"}},
        {"status": "DRAFT", "terms": {"tenure": 18, "rate": "12"}},
    )

    assert changes == {"terms.tenure": {"from": 12, "to": 18}}


def test_record_audit_log_captures_request_context():
    db = FakeAsyncSession()
    context.bind_request("req-42")
    context.bind_actor("manager-1", "BRANCH_MANAGER", "branch-7")

    entry = audit.record_audit_log(
        db,
        actor_id="manager-1",
        action="loan.close",
        resource_type="loan",
        resource_id="loan-1",
        old_value={"status": "ACTIVE", "final_rating": None},
        new_value={"status": "CLOSED", "final_rating": "A"},
    )

    assert db.added_of(AuditLog) == [entry]
    assert entry.request_id == "req-42"
    assert entry.actor_role == "BRANCH_MANAGER"
    assert entry.branch_id == "branch-7"
    assert entry.summary == "loan.close loan-1: final_rating, status"
    context.bind_request("-")


def test_record_audit_log_without_request_context():
    db = FakeAsyncSession()
    context.bind_request("-")

    entry = audit.record_audit_log(
        db, actor_id=None, action="branch.created", resource_type="branch", resource_id="NRB"
    )

    assert entry.request_id is None
    assert entry.branch_id is None
    assert entry.actor_role is None
    assert entry.changes is None
    assert entry.summary == "branch.created NRB"
