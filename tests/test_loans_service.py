from decimal import Decimal
from uuid import uuid4

import pytest

from microfin.models.audit_log import AuditLog
from microfin.models.branch import Branch
from microfin.models.customer import Customer
from microfin.models.loan import Loan
from microfin.models.loan_appraisal import LoanAppraisal
from microfin.models.loan_approval_decision import LoanApprovalDecision
from microfin.schemas.loan import (
    AppraisalCreate,
    ApprovalDecisionCreate,
    LoanClose,
    LoanCreate,
    LoanUpdate,
)
from microfin.services import loan_appraisals, loan_approvals, loan_repository, loans, sequences
from microfin.services.errors import (
    DuplicateResourceError,
    ForbiddenError,
    IncompleteAppraisalError,
    IneligibleCustomerError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)

from conftest import (
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_appraisal,
    make_branch,
    make_customer,
    make_kyc,
    make_loan,
)


def _session_for(loan: Loan, *, appraisal: LoanAppraisal | None = None, customer: Customer | None = None):
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Loan, FakeResult(scalar=loan)))
    db.on_execute(entity_handler(LoanAppraisal, FakeResult(scalar=appraisal)))
    if customer is not None:
        db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    return db


def _decision(decision: str, amount: str | None = None) -> ApprovalDecisionCreate:
    return ApprovalDecisionCreate(
        level="BRANCH_MANAGER",
        decision=decision,
        approved_amount=Decimal(amount) if amount else None,
    )


# ---------------------------------------------------------------------------
# create / update / submit
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_loan_starts_in_draft(monkeypatch):
    branch = make_branch()
    customer = make_customer(branch=branch)
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    db.on_get(Branch, branch.id, branch)

    async def _next_loan_id(_db, branch_code, today=None):
        return f"LN-{branch_code}-26-00001"

    monkeypatch.setattr(sequences, "next_loan_id", _next_loan_id)
    payload = LoanCreate(
        customer_id=customer.id,
        branch_id=branch.id,
        loan_officer_id="officer-1",
        product_name="Biashara Loan",
        purpose="TRADE",
        requested_amount=Decimal("10000"),
        interest_rate=Decimal("12"),
        tenure=12,
    )

    loan = await loans.create_loan(db, payload, actor_id="officer-1")

    assert loan.status == "DRAFT"
    assert loan.loan_id == "LN-NRB-26-00001"
    assert loan.approved_amount is None
    assert loan.repayment_frequency == "MONTHLY"
    [audit] = db.added_of(AuditLog)
    assert audit.action == "loan.created"


@pytest.mark.asyncio
async def test_create_loan_requires_complete_kyc():
    branch = make_branch()
    customer = make_customer(branch=branch, kyc=make_kyc(status="PENDING", documents=False))
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    db.on_get(Branch, branch.id, branch)
    payload = LoanCreate(
        customer_id=customer.id,
        branch_id=branch.id,
        loan_officer_id="officer-1",
        product_name="Biashara Loan",
        purpose="TRADE",
        requested_amount=Decimal("10000"),
        interest_rate=Decimal("12"),
        tenure=12,
    )

    with pytest.raises(IneligibleCustomerError) as excinfo:
        await loans.create_loan(db, payload, actor_id="officer-1")

    assert [r["code"] for r in excinfo.value.details["reasons"]] == ["KYC_PENDING"]
    assert db.added_of(Loan) == []


@pytest.mark.asyncio
async def test_create_loan_unknown_customer():
    db = FakeAsyncSession()
    payload = LoanCreate(
        customer_id=uuid4(),
        branch_id=uuid4(),
        loan_officer_id="officer-1",
        product_name="Biashara Loan",
        purpose="TRADE",
        requested_amount=Decimal("10000"),
        interest_rate=Decimal("12"),
        tenure=12,
    )

    with pytest.raises(NotFoundError) as excinfo:
        await loans.create_loan(db, payload)
    assert excinfo.value.code == "customer_not_found"


def test_loan_terms_reject_quarterly_tenure_not_multiple_of_three():
    with pytest.raises(ValueError):
        LoanCreate(
            customer_id=uuid4(),
            branch_id=uuid4(),
            loan_officer_id="officer-1",
            product_name="Biashara Loan",
            purpose="AGRICULTURE",
            requested_amount=Decimal("10000"),
            interest_rate=Decimal("12"),
            tenure=10,
            repayment_frequency="QUARTERLY",
        )


@pytest.mark.asyncio
async def test_update_draft_loan_changes_fields():
    loan = make_loan(status="DRAFT")
    db = _session_for(loan)

    updated = await loans.update_loan(
        db, loan.id, LoanUpdate(requested_amount=Decimal("15000"), tenure=18), actor_id="officer-1"
    )

    assert updated.requested_amount == Decimal("15000")
    assert updated.tenure == 18
    [audit] = db.added_of(AuditLog)
    assert audit.action == "loan.updated"
    assert "tenure" in audit.changes


@pytest.mark.asyncio
async def test_update_non_draft_loan_is_forbidden():
    loan = make_loan(status="APPLICATION_SUBMITTED")
    db = _session_for(loan)

    with pytest.raises(ForbiddenError) as excinfo:
        await loans.update_loan(db, loan.id, LoanUpdate(tenure=6))

    assert excinfo.value.code == "loan_not_editable"
    assert loan.tenure == 12


@pytest.mark.asyncio
async def test_update_tenure_checked_against_existing_quarterly_frequency():
    loan = make_loan(status="DRAFT", repayment_frequency="QUARTERLY", tenure=12)
    db = _session_for(loan)

    with pytest.raises(ValidationError) as excinfo:
        await loans.update_loan(db, loan.id, LoanUpdate(tenure=10))

    assert excinfo.value.code == "invalid_tenure"
    assert loan.tenure == 12


@pytest.mark.asyncio
async def test_submit_moves_draft_to_submitted():
    customer = make_customer()
    loan = make_loan(status="DRAFT", customer=customer)
    db = _session_for(loan, customer=customer)

    result = await loans.submit_loan(db, loan.id, actor_id="officer-1")

    assert result.status == "APPLICATION_SUBMITTED"


@pytest.mark.asyncio
async def test_submit_rechecks_kyc():
    customer = make_customer(kyc=make_kyc(status="EXPIRED"))
    loan = make_loan(status="DRAFT", customer=customer)
    db = _session_for(loan, customer=customer)

    with pytest.raises(IneligibleCustomerError):
        await loans.submit_loan(db, loan.id)

    assert loan.status == "DRAFT"


@pytest.mark.asyncio
async def test_missing_loan_is_not_found():
    db = FakeAsyncSession()
    with pytest.raises(NotFoundError) as excinfo:
        await loans.submit_loan(db, uuid4())
    assert excinfo.value.code == "loan_not_found"


# ---------------------------------------------------------------------------
# appraisal
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_appraisal_computes_net_cash_flow():
    loan = make_loan(status="APPLICATION_SUBMITTED")
    db = _session_for(loan)

    appraisal = await loan_appraisals.create_appraisal(
        db,
        loan.id,
        AppraisalCreate(monthly_income=Decimal("40000"), monthly_expenses=Decimal("25000")),
        actor_id="officer-1",
    )

    assert appraisal.status == "IN_PROGRESS"
    assert appraisal.net_cash_flow == Decimal("15000")
    assert appraisal.debt_service_ratio is None
    assert loan.status == "UNDER_APPRAISAL"


@pytest.mark.asyncio
async def test_second_appraisal_is_duplicate():
    loan = make_loan(status="APPLICATION_SUBMITTED")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan))

    with pytest.raises(DuplicateResourceError):
        await loan_appraisals.create_appraisal(db, loan.id, AppraisalCreate())

    assert loan.status == "APPLICATION_SUBMITTED"


@pytest.mark.asyncio
async def test_complete_appraisal_requires_recommendation():
    loan = make_loan(status="UNDER_APPRAISAL")
    appraisal = make_appraisal(loan=loan, recommendation=None, recommended_amount=None)
    db = _session_for(loan, appraisal=appraisal)

    with pytest.raises(IncompleteAppraisalError) as excinfo:
        await loan_appraisals.complete_appraisal(db, loan.id)

    assert excinfo.value.details["missing_fields"] == ["recommendation", "recommended_amount"]
    assert loan.status == "UNDER_APPRAISAL"
    assert appraisal.status == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_complete_appraisal_moves_loan_to_pending_approval():
    loan = make_loan(status="UNDER_APPRAISAL")
    appraisal = make_appraisal(loan=loan)
    db = _session_for(loan, appraisal=appraisal)

    await loan_appraisals.complete_appraisal(db, loan.id, actor_id="officer-2")

    assert appraisal.status == "COMPLETED"
    assert appraisal.appraised_by == "officer-2"
    assert appraisal.appraised_at is not None
    assert loan.status == "PENDING_APPROVAL"


@pytest.mark.asyncio
async def test_complete_appraisal_twice_is_noop():
    loan = make_loan(status="PENDING_APPROVAL")
    appraisal = make_appraisal(loan=loan, status="COMPLETED", appraised_by="officer-2")
    db = _session_for(loan, appraisal=appraisal)

    await loan_appraisals.complete_appraisal(db, loan.id, actor_id="someone-else")

    assert appraisal.appraised_by == "officer-2"
    assert db.added == []


@pytest.mark.asyncio
async def test_completed_appraisal_cannot_be_edited():
    loan = make_loan(status="PENDING_APPROVAL")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    with pytest.raises(ForbiddenError) as excinfo:
        await loan_appraisals.update_appraisal(db, loan.id, AppraisalCreate(credit_score=700))
    assert excinfo.value.code == "appraisal_locked"


# ---------------------------------------------------------------------------
# approval decisions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_approval_without_amount_uses_requested_amount():
    loan = make_loan(status="PENDING_APPROVAL", requested_amount=Decimal("10000.00"))
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    decision = await loan_approvals.record_decision(db, loan.id, _decision("APPROVED"), actor_id="bm-1")

    assert loan.status == "APPROVED"
    assert loan.approved_amount == Decimal("10000.00")
    assert loan.approval_date is not None
    assert decision.approved_by == "bm-1"
    assert db.added_of(LoanApprovalDecision) == [decision]


@pytest.mark.asyncio
async def test_approval_with_conditions_uses_payload_amount():
    loan = make_loan(status="PENDING_APPROVAL")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    await loan_approvals.record_decision(db, loan.id, _decision("APPROVED_WITH_CONDITIONS", "8000"))

    assert loan.status == "APPROVED_WITH_CONDITIONS"
    assert loan.approved_amount == Decimal("8000")


@pytest.mark.asyncio
async def test_rejection_clears_approved_amount():
    loan = make_loan(status="PENDING_APPROVAL", approved_amount=Decimal("9000"))
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    decision = await loan_approvals.record_decision(db, loan.id, _decision("REJECTED", "5000"))

    assert loan.status == "REJECTED"
    assert loan.approved_amount is None
    # approval_date is the decision date, so a rejection stamps it too
    assert loan.approval_date == decision.approved_at


@pytest.mark.asyncio
async def test_referral_leaves_loan_unchanged():
    loan = make_loan(status="PENDING_APPROVAL")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    decision = await loan_approvals.record_decision(db, loan.id, _decision("REFERRED"))

    assert decision.decision == "REFERRED"
    assert loan.status == "PENDING_APPROVAL"
    assert loan.approved_amount is None
    assert loan.approval_date is None


@pytest.mark.asyncio
async def test_approval_requires_completed_appraisal():
    loan = make_loan(status="UNDER_APPRAISAL")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan))

    with pytest.raises(ForbiddenError) as excinfo:
        await loan_approvals.record_decision(db, loan.id, _decision("APPROVED"))

    assert excinfo.value.code == "appraisal_not_completed"
    assert loan.status == "UNDER_APPRAISAL"
    assert db.added == []


@pytest.mark.asyncio
async def test_approving_a_draft_is_an_invalid_transition():
    loan = make_loan(status="DRAFT")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    with pytest.raises(InvalidTransitionError) as excinfo:
        await loan_approvals.record_decision(db, loan.id, _decision("APPROVED"))

    assert excinfo.value.details == {"current_status": "DRAFT", "action": "approve"}
    assert loan.status == "DRAFT"
    assert loan.approved_amount is None
    assert db.added == []


# ---------------------------------------------------------------------------
# activate / close / dispatcher
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_activate_requires_schedule(monkeypatch):
    loan = make_loan(status="DISBURSED", approved_amount=Decimal("10000"))
    db = _session_for(loan)

    async def _count(_db, _loan_id):
        return 0

    monkeypatch.setattr(loan_repository, "count_installments", _count)

    with pytest.raises(ForbiddenError) as excinfo:
        await loans.activate_loan(db, loan.id)
    assert excinfo.value.code == "schedule_missing"
    assert loan.status == "DISBURSED"


@pytest.mark.asyncio
async def test_activate_disbursed_loan(monkeypatch):
    loan = make_loan(status="DISBURSED", approved_amount=Decimal("10000"))
    db = _session_for(loan)

    async def _count(_db, _loan_id):
        return 12

    monkeypatch.setattr(loan_repository, "count_installments", _count)

    await loans.activate_loan(db, loan.id, actor_id="bm-1")

    assert loan.status == "ACTIVE"
    assert loan.activation_date is not None


@pytest.mark.asyncio
async def test_close_records_final_rating():
    loan = make_loan(status="ACTIVE", approved_amount=Decimal("10000"))
    db = _session_for(loan)

    await loans.close_loan(
        db, loan.id, LoanClose(final_rating="EXCELLENT", closure_checklist=["collateral released"])
    )

    assert loan.status == "CLOSED"
    assert loan.final_rating == "EXCELLENT"
    assert loan.closed_date is not None


@pytest.mark.asyncio
async def test_transition_dispatches_approval_payload():
    loan = make_loan(status="PENDING_APPROVAL")
    db = _session_for(loan, appraisal=make_appraisal(loan=loan, status="COMPLETED"))

    result = await loans.transition(
        db, loan.id, "approve", {"level": "CEO", "decision": "APPROVED"}, actor_id="ceo-1"
    )

    assert result is loan
    assert loan.status == "APPROVED"
    assert loan.approved_amount == Decimal("10000.00")


@pytest.mark.asyncio
async def test_transition_rejects_malformed_payload():
    loan = make_loan(status="PENDING_APPROVAL")
    db = _session_for(loan)

    with pytest.raises(ValidationError) as excinfo:
        await loans.transition(db, loan.id, "approve", {"decision": "MAYBE"})

    assert excinfo.value.code == "invalid_payload"
    assert loan.status == "PENDING_APPROVAL"


@pytest.mark.asyncio
async def test_unknown_action_is_rejected():
    with pytest.raises(ValueError):
        await loans.transition(FakeAsyncSession(), uuid4(), "disburse_everything")
