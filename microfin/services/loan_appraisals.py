from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.loan_appraisal import LoanAppraisal
from microfin.schemas.loan import AppraisalCreate, AppraisalStatus, AppraisalUpdate, LoanAction
from microfin.services import loan_repository, loan_state
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import (
    DuplicateResourceError,
    ForbiddenError,
    IncompleteAppraisalError,
    NotFoundError,
)


def net_cash_flow(monthly_income: Decimal | None, monthly_expenses: Decimal | None) -> Decimal | None:
    if monthly_income is None or monthly_expenses is None:
        return None
    return monthly_income - monthly_expenses


def _apply_fields(appraisal: LoanAppraisal, values: dict) -> None:
    for key, value in values.items():
        setattr(appraisal, key, value)
    appraisal.net_cash_flow = net_cash_flow(appraisal.monthly_income, appraisal.monthly_expenses)


async def _require_appraisal(db: AsyncSession, loan) -> LoanAppraisal:
    appraisal = await loan_repository.get_appraisal(db, loan.id)
    if appraisal is None:
        raise NotFoundError(
            code="appraisal_not_found",
            message="Loan has no appraisal",
            details={"loan_id": loan.loan_id},
        )
    return appraisal


async def create_appraisal(
    db: AsyncSession, loan_id: UUID, payload: AppraisalCreate, *, actor_id=None
) -> LoanAppraisal:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.CREATE_APPRAISAL)
    if await loan_repository.get_appraisal(db, loan.id) is not None:
        raise DuplicateResourceError(
            code="appraisal_exists",
            message="Loan already has an appraisal",
            details={"loan_id": loan.loan_id},
        )
    appraisal = LoanAppraisal(
        loan_id=loan.id,
        status=AppraisalStatus.IN_PROGRESS.value,
        appraised_by=actor_id,
    )
    _apply_fields(appraisal, payload.model_dump(exclude_unset=True))
    db.add(appraisal)
    loan_state.apply_transition(db, loan, LoanAction.CREATE_APPRAISAL, target, actor_id=actor_id)
    await db.flush()
    return appraisal


async def update_appraisal(
    db: AsyncSession, loan_id: UUID, payload: AppraisalUpdate, *, actor_id=None
) -> LoanAppraisal:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    loan_state.assert_transition(loan.status, LoanAction.UPDATE_APPRAISAL)
    appraisal = await _require_appraisal(db, loan)
    if appraisal.status != AppraisalStatus.IN_PROGRESS.value:
        raise ForbiddenError(
            code="appraisal_locked",
            message="Completed appraisals cannot be modified",
            details={"loan_id": loan.loan_id, "appraisal_status": appraisal.status},
        )
    old_snapshot = model_snapshot(appraisal)
    _apply_fields(appraisal, payload.model_dump(exclude_unset=True))
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.appraisal_updated",
        resource_type="loan_appraisal",
        resource_id=appraisal.id,
        old_value=old_snapshot,
        new_value=model_snapshot(appraisal),
    )
    return appraisal


async def complete_appraisal(db: AsyncSession, loan_id: UUID, *, actor_id=None) -> LoanAppraisal:
    """Lock the appraisal and hand the loan to the approvers.

    Completing an appraisal that is already COMPLETED changes nothing.
    """
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.COMPLETE_APPRAISAL)
    appraisal = await _require_appraisal(db, loan)
    if appraisal.status == AppraisalStatus.COMPLETED.value:
        return appraisal

    missing = [
        name
        for name in ("recommendation", "recommended_amount")
        if getattr(appraisal, name) in (None, "")
    ]
    if missing:
        raise IncompleteAppraisalError(
            code="appraisal_incomplete",
            message="Appraisal needs a recommendation and a recommended amount",
            details={"missing_fields": missing},
        )

    appraisal.status = AppraisalStatus.COMPLETED.value
    appraisal.appraised_by = actor_id
    appraisal.appraised_at = datetime.now(timezone.utc)
    loan_state.apply_transition(
        db,
        loan,
        LoanAction.COMPLETE_APPRAISAL,
        target,
        actor_id=actor_id,
        recommendation=appraisal.recommendation,
        recommended_amount=appraisal.recommended_amount,
    )
    await db.flush()
    return appraisal
