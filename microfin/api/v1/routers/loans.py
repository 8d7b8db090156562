from decimal import Decimal
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Page, Role
from microfin.db.session import get_db
from microfin.schemas.loan import (
    AppraisalCreate,
    AppraisalUpdate,
    ApprovalDecisionCreate,
    DisbursementComplete,
    DisbursementCreate,
    InstallmentDTO,
    LoanAction,
    LoanClose,
    LoanCreate,
    LoanDTO,
    LoanListResponse,
    LoanPurpose,
    LoanStatus,
    LoanSummaryDTO,
    LoanUpdate,
    RepaymentScheduleResponse,
)
from microfin.services import (
    loan_appraisals,
    loan_approvals,
    loan_disbursements,
    loan_repository,
    loans,
)
from microfin.services.errors import NotFoundError
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/loans", tags=["loans"])

_OFFICERS = (Role.LOAN_OFFICER, Role.BRANCH_MANAGER)
_APPROVERS = (Role.BRANCH_MANAGER, Role.CEO)

# roles allowed to drive each action through the generic transition endpoint
ACTION_ROLES: dict[LoanAction, tuple[Role, ...]] = {
    LoanAction.SUBMIT: _OFFICERS,
    LoanAction.CREATE_APPRAISAL: _OFFICERS,
    LoanAction.UPDATE_APPRAISAL: _OFFICERS,
    LoanAction.COMPLETE_APPRAISAL: _OFFICERS,
    LoanAction.APPROVE: _APPROVERS,
    LoanAction.CREATE_DISBURSEMENT: (Role.BRANCH_MANAGER,),
    LoanAction.VERIFY_DISBURSEMENT: (Role.BRANCH_MANAGER, Role.COMPLIANCE),
    LoanAction.COMPLETE_DISBURSEMENT: (Role.BRANCH_MANAGER,),
    LoanAction.ACTIVATE: (Role.BRANCH_MANAGER,),
    LoanAction.CLOSE: (Role.BRANCH_MANAGER,),
}


async def _hydrated(db: AsyncSession, loan_id: UUID) -> LoanDTO:
    loan = await loan_repository.get_loan_with_related(db, loan_id)
    if loan is None:
        raise NotFoundError(code="loan_not_found", message="Loan not found", details={"loan_id": str(loan_id)})
    return LoanDTO.model_validate(loan)


@router.post("", response_model=LoanDTO, status_code=status.HTTP_201_CREATED, summary="Create a draft loan")
async def create_loan(
    payload: LoanCreate,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    loan = await run_in_transaction(db, lambda: loans.create_loan(db, payload, actor_id=actor.id))
    return await _hydrated(db, loan.id)


@router.get("", response_model=LoanListResponse, summary="Search loans")
async def list_loans(
    search: str | None = Query(default=None, max_length=100),
    loan_status: LoanStatus | None = Query(default=None, alias="status"),
    purpose: LoanPurpose | None = Query(default=None),
    customer_id: UUID | None = Query(default=None),
    loan_officer_id: str | None = Query(default=None, max_length=64),
    branch_id: UUID | None = Query(default=None),
    page: Page = Depends(deps.get_page),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanListResponse:
    items, total = await loans.list_loans(
        db,
        search=search,
        status=loan_status,
        purpose=purpose,
        customer_id=customer_id,
        loan_officer_id=loan_officer_id,
        branch_id=branch_id,
        offset=page.offset,
        limit=page.limit,
    )
    return LoanListResponse(
        items=[LoanSummaryDTO.model_validate(item) for item in items],
        total=total,
        offset=page.offset,
        limit=page.limit,
    )


@router.get("/{loan_id}", response_model=LoanDTO, summary="Get a loan with its appraisal, decisions and disbursement")
async def get_loan(
    loan_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    return await _hydrated(db, loan_id)


@router.patch("/{loan_id}", response_model=LoanDTO, summary="Edit a draft loan")
async def update_loan(
    loan_id: UUID,
    payload: LoanUpdate,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(db, lambda: loans.update_loan(db, loan_id, payload, actor_id=actor.id))
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/submit", response_model=LoanDTO, summary="Submit a draft loan")
async def submit_loan(
    loan_id: UUID,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(db, lambda: loans.submit_loan(db, loan_id, actor_id=actor.id))
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/appraisal", response_model=LoanDTO, status_code=status.HTTP_201_CREATED, summary="Start an appraisal")
async def create_appraisal(
    loan_id: UUID,
    payload: AppraisalCreate,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db, lambda: loan_appraisals.create_appraisal(db, loan_id, payload, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.patch("/{loan_id}/appraisal", response_model=LoanDTO, summary="Update an in-progress appraisal")
async def update_appraisal(
    loan_id: UUID,
    payload: AppraisalUpdate,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db, lambda: loan_appraisals.update_appraisal(db, loan_id, payload, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/appraisal/complete", response_model=LoanDTO, summary="Complete the appraisal")
async def complete_appraisal(
    loan_id: UUID,
    actor: Actor = Depends(deps.require_role(*_OFFICERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(db, lambda: loan_appraisals.complete_appraisal(db, loan_id, actor_id=actor.id))
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/approval", response_model=LoanDTO, status_code=status.HTTP_201_CREATED, summary="Record an approval decision")
async def record_approval(
    loan_id: UUID,
    payload: ApprovalDecisionCreate,
    actor: Actor = Depends(deps.require_role(*_APPROVERS)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db, lambda: loan_approvals.record_decision(db, loan_id, payload, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/disbursement", response_model=LoanDTO, status_code=status.HTTP_201_CREATED, summary="Create a disbursement")
async def create_disbursement(
    loan_id: UUID,
    payload: DisbursementCreate,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db, lambda: loan_disbursements.create_disbursement(db, loan_id, payload, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/disbursement/verify", response_model=LoanDTO, summary="Verify a disbursement")
async def verify_disbursement(
    loan_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER, Role.COMPLIANCE)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db, lambda: loan_disbursements.verify_disbursement(db, loan_id, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/disbursement/complete", response_model=LoanDTO, summary="Release funds and schedule repayments")
async def complete_disbursement(
    loan_id: UUID,
    payload: DisbursementComplete | None = None,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(
        db,
        lambda: loan_disbursements.complete_disbursement(
            db, loan_id, payload or DisbursementComplete(), actor_id=actor.id
        ),
    )
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/activate", response_model=LoanDTO, summary="Start servicing a disbursed loan")
async def activate_loan(
    loan_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(db, lambda: loans.activate_loan(db, loan_id, actor_id=actor.id))
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/close", response_model=LoanDTO, summary="Close a loan")
async def close_loan(
    loan_id: UUID,
    payload: LoanClose,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await run_in_transaction(db, lambda: loans.close_loan(db, loan_id, payload, actor_id=actor.id))
    return await _hydrated(db, loan_id)


@router.post("/{loan_id}/transitions/{action}", response_model=LoanDTO, summary="Run a lifecycle action")
async def run_transition(
    loan_id: UUID,
    action: LoanAction,
    payload: dict[str, Any] | None = Body(default=None),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> LoanDTO:
    await deps.require_role(*ACTION_ROLES[action])(actor)
    await run_in_transaction(
        db, lambda: loans.transition(db, loan_id, action, payload, actor_id=actor.id)
    )
    return await _hydrated(db, loan_id)


@router.get("/{loan_id}/schedule", response_model=RepaymentScheduleResponse, summary="Get the repayment schedule")
async def get_schedule(
    loan_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> RepaymentScheduleResponse:
    loan = await loan_repository.get_loan_with_related(db, loan_id)
    if loan is None:
        raise NotFoundError(code="loan_not_found", message="Loan not found", details={"loan_id": str(loan_id)})
    installments = await loan_repository.get_installments(db, loan_id)
    zero = Decimal("0.00")
    return RepaymentScheduleResponse(
        loan_id=loan.loan_id,
        repayment_frequency=loan.repayment_frequency,
        installment_count=len(installments),
        periodic_payment=installments[0].total_amount if installments else None,
        total_principal=sum((item.principal_amount for item in installments), zero),
        total_interest=sum((item.interest_amount for item in installments), zero),
        total_payable=sum((item.total_amount for item in installments), zero),
        installments=[InstallmentDTO.model_validate(item) for item in installments],
    )
