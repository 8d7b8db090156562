from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.loan_approval_decision import LoanApprovalDecision
from microfin.schemas.loan import (
    ApprovalDecisionCreate,
    ApprovalDecisionType,
    AppraisalStatus,
    LoanAction,
    LoanStatus,
)
from microfin.services import loan_repository, loan_state
from microfin.services.errors import ForbiddenError

_DECISION_TARGETS = {
    ApprovalDecisionType.APPROVED: LoanStatus.APPROVED,
    ApprovalDecisionType.APPROVED_WITH_CONDITIONS: LoanStatus.APPROVED_WITH_CONDITIONS,
    ApprovalDecisionType.REJECTED: LoanStatus.REJECTED,
}


async def record_decision(
    db: AsyncSession,
    loan_id: UUID,
    payload: ApprovalDecisionCreate,
    *,
    actor_id=None,
) -> LoanApprovalDecision:
    """Append an approval decision and apply it to the loan.

    Approvals default the approved amount to the requested amount, rejections
    clear it, and referrals escalate to another level without touching the
    loan. Decision rows are never edited; the loan reflects the latest one.
    """
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    loan_state.assert_transition(loan.status, LoanAction.APPROVE)
    appraisal = await loan_repository.get_appraisal(db, loan.id)
    if appraisal is None or appraisal.status != AppraisalStatus.COMPLETED.value:
        raise ForbiddenError(
            code="appraisal_not_completed",
            message="Appraisal must be completed before an approval decision",
            details={
                "loan_id": loan.loan_id,
                "appraisal_status": appraisal.status if appraisal else None,
            },
        )

    decision_type = ApprovalDecisionType(payload.decision)
    now = datetime.now(timezone.utc)
    decision = LoanApprovalDecision(
        loan_id=loan.id,
        level=payload.level,
        decision=decision_type.value,
        approved_amount=payload.approved_amount,
        conditions=payload.conditions,
        notes=payload.notes,
        minutes=payload.minutes,
        approved_by=actor_id,
        approved_at=now,
    )
    db.add(decision)

    target = _DECISION_TARGETS.get(decision_type)
    if target is not None:
        if target == LoanStatus.REJECTED:
            loan.approved_amount = None
        else:
            loan.approved_amount = (
                payload.approved_amount
                if payload.approved_amount is not None
                else loan.requested_amount
            )
        loan.approval_date = now
        loan_state.apply_transition(
            db,
            loan,
            LoanAction.APPROVE,
            target,
            actor_id=actor_id,
            decision=decision_type.value,
            level=payload.level,
            approved_amount=loan.approved_amount,
        )
    else:
        loan_state.apply_transition(
            db,
            loan,
            LoanAction.APPROVE,
            loan.status,
            actor_id=actor_id,
            decision=decision_type.value,
            level=payload.level,
        )
    await db.flush()
    return decision
