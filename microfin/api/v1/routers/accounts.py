from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Role
from microfin.db.session import get_db
from microfin.schemas.accounts import AccountCreate, AccountDTO, EligibilityCheckRequest, EligibilityResult
from microfin.services import accounts, eligibility
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("/eligibility", response_model=EligibilityResult, summary="Check account opening eligibility")
async def check_eligibility(
    payload: EligibilityCheckRequest,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> EligibilityResult:
    return await eligibility.check_account_eligibility(db, payload.customer_id, payload.product_id)


@router.post("", response_model=AccountDTO, status_code=status.HTTP_201_CREATED, summary="Open an account")
async def open_account(
    payload: AccountCreate,
    actor: Actor = Depends(deps.require_role(Role.LOAN_OFFICER, Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> AccountDTO:
    account = await run_in_transaction(db, lambda: accounts.open_account(db, payload, actor_id=actor.id))
    return AccountDTO.model_validate(account)


@router.get("/customer/{customer_id}", response_model=list[AccountDTO], summary="List a customer's accounts")
async def list_customer_accounts(
    customer_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[AccountDTO]:
    items = await accounts.list_customer_accounts(db, customer_id)
    return [AccountDTO.model_validate(item) for item in items]


@router.get("/{account_id}", response_model=AccountDTO, summary="Get an account")
async def get_account(
    account_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> AccountDTO:
    return AccountDTO.model_validate(await accounts.get_account(db, account_id))


@router.patch("/{account_id}/activate", response_model=AccountDTO, summary="Activate a pending account")
async def activate_account(
    account_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER)),
    db: AsyncSession = Depends(get_db),
) -> AccountDTO:
    account = await run_in_transaction(db, lambda: accounts.activate_account(db, account_id, actor_id=actor.id))
    return AccountDTO.model_validate(account)
