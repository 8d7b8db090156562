from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Page, Role
from microfin.db.session import get_db
from microfin.schemas.customers import (
    CustomerCreate,
    CustomerDTO,
    CustomerListResponse,
    CustomerStatus,
    CustomerUpdate,
    KycUpdate,
    RiskProfileUpdate,
)
from microfin.services import customers
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/customers", tags=["customers"])

_FRONT_OFFICE = (Role.LOAN_OFFICER, Role.BRANCH_MANAGER)


@router.post("", response_model=CustomerDTO, status_code=status.HTTP_201_CREATED, summary="Register a prospect")
async def create_customer(
    payload: CustomerCreate,
    actor: Actor = Depends(deps.require_role(*_FRONT_OFFICE)),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    customer = await run_in_transaction(
        db, lambda: customers.create_customer(db, payload, actor_id=actor.id)
    )
    return CustomerDTO.model_validate(customer)


@router.get("", response_model=CustomerListResponse, summary="Search customers")
async def list_customers(
    search: str | None = Query(default=None, max_length=100),
    customer_status: CustomerStatus | None = Query(default=None, alias="status"),
    branch_id: UUID | None = Query(default=None),
    page: Page = Depends(deps.get_page),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CustomerListResponse:
    items, total = await customers.list_customers(
        db,
        search=search,
        status=customer_status,
        branch_id=branch_id,
        offset=page.offset,
        limit=page.limit,
    )
    return CustomerListResponse(
        items=[CustomerDTO.model_validate(item) for item in items],
        total=total,
        offset=page.offset,
        limit=page.limit,
    )


@router.get("/{customer_id}", response_model=CustomerDTO, summary="Get a customer")
async def get_customer(
    customer_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    return CustomerDTO.model_validate(await customers.get_customer(db, customer_id))


@router.patch("/{customer_id}", response_model=CustomerDTO, summary="Update customer details")
async def update_customer(
    customer_id: UUID,
    payload: CustomerUpdate,
    actor: Actor = Depends(deps.require_role(*_FRONT_OFFICE)),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    customer = await run_in_transaction(
        db, lambda: customers.update_customer(db, customer_id, payload, actor_id=actor.id)
    )
    return CustomerDTO.model_validate(customer)


@router.patch("/{customer_id}/kyc", response_model=CustomerDTO, summary="Record KYC documents")
async def update_kyc(
    customer_id: UUID,
    payload: KycUpdate,
    actor: Actor = Depends(deps.require_role(*_FRONT_OFFICE, Role.COMPLIANCE)),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    customer = await run_in_transaction(
        db, lambda: customers.update_kyc(db, customer_id, payload, actor_id=actor.id)
    )
    return CustomerDTO.model_validate(customer)


@router.post("/{customer_id}/convert", response_model=CustomerDTO, summary="Convert a prospect to a customer")
async def convert_customer(
    customer_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER, Role.COMPLIANCE)),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    customer = await run_in_transaction(
        db, lambda: customers.convert_to_customer(db, customer_id, actor_id=actor.id)
    )
    return CustomerDTO.model_validate(customer)


@router.patch("/{customer_id}/risk-profile", response_model=CustomerDTO, summary="Assess customer risk")
async def update_risk_profile(
    customer_id: UUID,
    payload: RiskProfileUpdate,
    actor: Actor = Depends(deps.require_role(Role.BRANCH_MANAGER, Role.COMPLIANCE)),
    db: AsyncSession = Depends(get_db),
) -> CustomerDTO:
    customer = await run_in_transaction(
        db, lambda: customers.update_risk_profile(db, customer_id, payload, actor_id=actor.id)
    )
    return CustomerDTO.model_validate(customer)
