from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.loan import Loan
from microfin.schemas.customers import KycStatus
from microfin.schemas.loan import (
    AppraisalCreate,
    AppraisalUpdate,
    ApprovalDecisionCreate,
    DisbursementComplete,
    DisbursementCreate,
    LoanAction,
    LoanClose,
    LoanCreate,
    LoanPurpose,
    LoanStatus,
    LoanUpdate,
)
from microfin.services import (
    branches,
    customers,
    loan_appraisals,
    loan_approvals,
    loan_disbursements,
    loan_repository,
    loan_state,
    sequences,
)
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.eligibility import kyc_reasons
from microfin.services.errors import (
    ForbiddenError,
    IneligibleCustomerError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_EDITABLE_FIELDS = (
    "loan_officer_id",
    "product_name",
    "purpose",
    "requested_amount",
    "interest_rate",
    "interest_rate_type",
    "tenure",
    "repayment_frequency",
)


async def _assert_kyc_complete(db: AsyncSession, customer_id: UUID):
    customer = await customers.get_customer(db, customer_id)
    kyc = customer.kyc_profile
    if kyc is None or kyc.status != KycStatus.COMPLETE.value:
        raise IneligibleCustomerError.from_reasons(
            kyc_reasons(kyc), message="Customer KYC must be complete"
        )
    return customer


def _check_quarterly_tenure(tenure: int, frequency: str) -> None:
    if frequency == "QUARTERLY" and tenure % 3 != 0:
        raise ValidationError(
            code="invalid_tenure",
            message="Quarterly repayment requires a tenure that is a multiple of 3 months",
            details={"tenure": tenure, "repayment_frequency": frequency},
        )


async def create_loan(db: AsyncSession, payload: LoanCreate, *, actor_id=None) -> Loan:
    """Open a DRAFT application for a KYC-complete customer."""
    await _assert_kyc_complete(db, payload.customer_id)
    branch = await branches.get_branch(db, payload.branch_id)
    _check_quarterly_tenure(payload.tenure, payload.repayment_frequency)

    loan_id = await sequences.next_loan_id(db, branch.code)
    loan = Loan(
        loan_id=loan_id,
        customer_id=payload.customer_id,
        branch_id=branch.id,
        loan_officer_id=payload.loan_officer_id,
        product_name=payload.product_name,
        purpose=payload.purpose,
        requested_amount=payload.requested_amount,
        interest_rate=payload.interest_rate,
        interest_rate_type=payload.interest_rate_type,
        tenure=payload.tenure,
        repayment_frequency=payload.repayment_frequency,
        status=LoanStatus.DRAFT.value,
        created_by=actor_id,
        version=1,
    )
    db.add(loan)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.created",
        resource_type="loan",
        resource_id=loan.id,
        new_value=model_snapshot(loan),
    )
    logger.info("Created loan %s for customer %s", loan.loan_id, payload.customer_id, extra={"loan_id": loan_id})
    return loan


async def update_loan(db: AsyncSession, loan_id: UUID, payload: LoanUpdate, *, actor_id=None) -> Loan:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    if loan.status != LoanStatus.DRAFT.value:
        raise ForbiddenError(
            code="loan_not_editable",
            message="Only draft loans can be updated",
            details={"current_status": loan.status},
        )
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    _check_quarterly_tenure(
        changes.get("tenure", loan.tenure),
        changes.get("repayment_frequency", loan.repayment_frequency),
    )
    old_snapshot = model_snapshot(loan)
    for key in _EDITABLE_FIELDS:
        if key in changes:
            setattr(loan, key, changes[key])
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.updated",
        resource_type="loan",
        resource_id=loan.id,
        old_value=old_snapshot,
        new_value=model_snapshot(loan),
    )
    return loan


async def submit_loan(db: AsyncSession, loan_id: UUID, *, actor_id=None) -> Loan:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.SUBMIT)
    await _assert_kyc_complete(db, loan.customer_id)
    loan_state.apply_transition(db, loan, LoanAction.SUBMIT, target, actor_id=actor_id)
    await db.flush()
    return loan


async def activate_loan(db: AsyncSession, loan_id: UUID, *, actor_id=None) -> Loan:
    """Start servicing a disbursed loan once its repayment schedule is in place."""
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.ACTIVATE)
    if await loan_repository.count_installments(db, loan.id) == 0:
        raise ForbiddenError(
            code="schedule_missing",
            message="Loan has no repayment schedule",
            details={"loan_id": loan.loan_id},
        )
    loan.activation_date = datetime.now(timezone.utc)
    loan_state.apply_transition(db, loan, LoanAction.ACTIVATE, target, actor_id=actor_id)
    await db.flush()
    return loan


async def close_loan(db: AsyncSession, loan_id: UUID, payload: LoanClose, *, actor_id=None) -> Loan:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.CLOSE)
    loan.final_rating = payload.final_rating
    loan.closure_notes = payload.closure_notes
    loan.closure_checklist = payload.closure_checklist
    loan.closed_date = datetime.now(timezone.utc)
    loan_state.apply_transition(
        db,
        loan,
        LoanAction.CLOSE,
        target,
        actor_id=actor_id,
        final_rating=payload.final_rating,
    )
    await db.flush()
    return loan


async def list_loans(
    db: AsyncSession,
    *,
    search: str | None = None,
    status: LoanStatus | None = None,
    purpose: LoanPurpose | None = None,
    customer_id: UUID | None = None,
    loan_officer_id: str | None = None,
    branch_id: UUID | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Loan], int]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(or_(Loan.loan_id.ilike(pattern), Loan.product_name.ilike(pattern)))
    if status is not None:
        filters.append(Loan.status == LoanStatus(status).value)
    if purpose is not None:
        filters.append(Loan.purpose == LoanPurpose(purpose).value)
    if customer_id is not None:
        filters.append(Loan.customer_id == customer_id)
    if loan_officer_id:
        filters.append(Loan.loan_officer_id == loan_officer_id)
    if branch_id is not None:
        filters.append(Loan.branch_id == branch_id)

    total = (await db.execute(select(func.count(Loan.id)).where(*filters))).scalar_one_or_none() or 0
    stmt = select(Loan).where(*filters).order_by(Loan.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total)


def _coerce(model: type[BaseModel], payload: Any) -> BaseModel:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload or {})
    except PydanticValidationError as exc:
        raise ValidationError(
            code="invalid_payload",
            message=f"Invalid payload for {model.__name__}",
            details={"errors": exc.errors(include_url=False, include_context=False)},
        ) from exc


async def transition(
    db: AsyncSession,
    loan_id: UUID,
    action: LoanAction | str,
    payload: Any = None,
    *,
    actor_id=None,
) -> Loan:
    """Run one lifecycle action against a loan.

    Every action locks the loan row, checks the transition table and flushes
    its changes; the caller owns the commit.
    """
    action = LoanAction(action)
    if action == LoanAction.SUBMIT:
        return await submit_loan(db, loan_id, actor_id=actor_id)
    if action == LoanAction.CREATE_APPRAISAL:
        await loan_appraisals.create_appraisal(
            db, loan_id, _coerce(AppraisalCreate, payload), actor_id=actor_id
        )
    elif action == LoanAction.UPDATE_APPRAISAL:
        await loan_appraisals.update_appraisal(
            db, loan_id, _coerce(AppraisalUpdate, payload), actor_id=actor_id
        )
    elif action == LoanAction.COMPLETE_APPRAISAL:
        await loan_appraisals.complete_appraisal(db, loan_id, actor_id=actor_id)
    elif action == LoanAction.APPROVE:
        await loan_approvals.record_decision(
            db, loan_id, _coerce(ApprovalDecisionCreate, payload), actor_id=actor_id
        )
    elif action == LoanAction.CREATE_DISBURSEMENT:
        await loan_disbursements.create_disbursement(
            db, loan_id, _coerce(DisbursementCreate, payload), actor_id=actor_id
        )
    elif action == LoanAction.VERIFY_DISBURSEMENT:
        await loan_disbursements.verify_disbursement(db, loan_id, actor_id=actor_id)
    elif action == LoanAction.COMPLETE_DISBURSEMENT:
        await loan_disbursements.complete_disbursement(
            db, loan_id, _coerce(DisbursementComplete, payload), actor_id=actor_id
        )
    elif action == LoanAction.ACTIVATE:
        return await activate_loan(db, loan_id, actor_id=actor_id)
    elif action == LoanAction.CLOSE:
        return await close_loan(db, loan_id, _coerce(LoanClose, payload), actor_id=actor_id)
    return await loan_repository.get_loan_for_update(db, loan_id)
