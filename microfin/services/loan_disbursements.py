from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.loan import Loan
from microfin.models.loan_disbursement import LoanDisbursement
from microfin.models.repayment_installment import RepaymentInstallment
from microfin.schemas.loan import (
    DisbursementComplete,
    DisbursementCreate,
    DisbursementStatus,
    InstallmentStatus,
    LoanAction,
)
from microfin.services import amortization, loan_repository, loan_state
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import (
    DuplicateResourceError,
    ForbiddenError,
    NotFoundError,
    ScheduleInvariantError,
    ValidationError,
)

logger = logging.getLogger(__name__)


async def _require_disbursement(db: AsyncSession, loan: Loan) -> LoanDisbursement:
    disbursement = await loan_repository.get_disbursement(db, loan.id)
    if disbursement is None:
        raise NotFoundError(
            code="disbursement_not_found",
            message="Loan has no disbursement",
            details={"loan_id": loan.loan_id},
        )
    return disbursement


def _generate_reference(loan: Loan, today: date) -> str:
    return f"DSB-{loan.loan_id}-{today:%Y%m%d}-{uuid4().hex[:6].upper()}"


async def create_disbursement(
    db: AsyncSession, loan_id: UUID, payload: DisbursementCreate, *, actor_id=None
) -> LoanDisbursement:
    loan = await loan_repository.get_loan_for_update(db, loan_id, with_children=True)
    loan_state.assert_transition(loan.status, LoanAction.CREATE_DISBURSEMENT)
    if not loan.approval_decisions:
        raise ForbiddenError(
            code="approval_missing",
            message="Loan has no approval decision",
            details={"loan_id": loan.loan_id},
        )
    if loan.disbursement is not None:
        raise DuplicateResourceError(
            code="disbursement_exists",
            message="Loan already has a disbursement",
            details={"loan_id": loan.loan_id},
        )
    if loan.approved_amount is not None and payload.amount > loan.approved_amount:
        raise ValidationError(
            code="disbursement_exceeds_approval",
            message="Disbursement amount exceeds the approved amount",
            details={"amount": str(payload.amount), "approved_amount": str(loan.approved_amount)},
        )

    disbursement = LoanDisbursement(
        loan_id=loan.id,
        status=DisbursementStatus.PENDING.value,
        **payload.model_dump(),
    )
    db.add(disbursement)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.disbursement_created",
        resource_type="loan_disbursement",
        resource_id=disbursement.id,
        new_value=model_snapshot(disbursement),
    )
    return disbursement


async def verify_disbursement(db: AsyncSession, loan_id: UUID, *, actor_id=None) -> LoanDisbursement:
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    loan_state.assert_transition(loan.status, LoanAction.VERIFY_DISBURSEMENT)
    disbursement = await _require_disbursement(db, loan)
    if disbursement.status != DisbursementStatus.PENDING.value:
        raise ForbiddenError(
            code="disbursement_not_pending",
            message="Only pending disbursements can be verified",
            details={"loan_id": loan.loan_id, "disbursement_status": disbursement.status},
        )
    disbursement.status = DisbursementStatus.PROCESSING.value
    disbursement.verified_by = actor_id
    disbursement.verified_at = datetime.now(timezone.utc)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="loan.disbursement_verified",
        resource_type="loan_disbursement",
        resource_id=disbursement.id,
        old_value={"status": DisbursementStatus.PENDING.value},
        new_value={"status": disbursement.status, "verified_by": actor_id},
    )
    return disbursement


def build_installments(loan: Loan, start_date: date) -> list[RepaymentInstallment]:
    if loan.approved_amount is None:
        raise ScheduleInvariantError(
            f"Loan {loan.loan_id} reached disbursement without an approved amount"
        )
    try:
        schedule = amortization.build_schedule(
            loan.approved_amount,
            loan.interest_rate,
            loan.tenure,
            loan.repayment_frequency,
            start_date,
        )
    except ValueError as exc:
        raise ScheduleInvariantError(f"Loan {loan.loan_id} has unschedulable terms: {exc}") from exc
    return [
        RepaymentInstallment(
            loan_id=loan.id,
            installment_number=item.installment_number,
            due_date=item.due_date,
            principal_amount=item.principal_amount,
            interest_amount=item.interest_amount,
            total_amount=item.total_amount,
            outstanding_principal=item.outstanding_principal,
            outstanding_interest=item.outstanding_interest,
            outstanding_total=item.outstanding_total,
            status=InstallmentStatus.PENDING.value,
        )
        for item in schedule.installments
    ]


async def complete_disbursement(
    db: AsyncSession,
    loan_id: UUID,
    payload: DisbursementComplete,
    *,
    actor_id=None,
    today: date | None = None,
) -> LoanDisbursement:
    """Release funds, mark the loan DISBURSED and write its repayment schedule.

    All of it lands in the caller's transaction, so a failure while building
    the schedule leaves the disbursement and the loan untouched.
    """
    loan = await loan_repository.get_loan_for_update(db, loan_id)
    target = loan_state.assert_transition(loan.status, LoanAction.COMPLETE_DISBURSEMENT)
    disbursement = await _require_disbursement(db, loan)
    if not disbursement.verified_by:
        raise ForbiddenError(
            code="disbursement_not_verified",
            message="Disbursement must be verified before completion",
            details={"loan_id": loan.loan_id},
        )
    if disbursement.status != DisbursementStatus.PROCESSING.value:
        raise ForbiddenError(
            code="disbursement_not_processing",
            message="Only verified disbursements in processing can be completed",
            details={"loan_id": loan.loan_id, "disbursement_status": disbursement.status},
        )
    if not payload.confirm:
        raise ValidationError(
            code="confirmation_required",
            message="Disbursement completion must be confirmed",
        )

    disbursement_date = today or date.today()
    installments = build_installments(loan, disbursement_date)

    disbursement.status = DisbursementStatus.COMPLETED.value
    disbursement.disbursed_by = actor_id
    disbursement.disbursed_at = datetime.now(timezone.utc)
    disbursement.reference_number = (
        payload.reference_number
        or disbursement.reference_number
        or _generate_reference(loan, disbursement_date)
    )
    loan.disbursement_date = disbursement_date
    db.add_all(installments)
    loan_state.apply_transition(
        db,
        loan,
        LoanAction.COMPLETE_DISBURSEMENT,
        target,
        actor_id=actor_id,
        disbursement_date=disbursement_date,
        reference_number=disbursement.reference_number,
        installments=len(installments),
    )
    await db.flush()
    logger.info(
        "Disbursed loan %s with %s installments",
        loan.loan_id,
        len(installments),
        extra={"loan_id": loan.loan_id},
    )
    return disbursement
