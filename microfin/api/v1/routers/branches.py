from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Role
from microfin.db.session import get_db
from microfin.schemas.branches import BranchCreate, BranchDTO, BranchListResponse
from microfin.services import branches
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/branches", tags=["branches"])


@router.post("", response_model=BranchDTO, status_code=status.HTTP_201_CREATED, summary="Create a branch")
async def create_branch(
    payload: BranchCreate,
    actor: Actor = Depends(deps.require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    branch = await run_in_transaction(db, lambda: branches.create_branch(db, payload, actor_id=actor.id))
    return BranchDTO.model_validate(branch)


@router.get("", response_model=BranchListResponse, summary="List branches")
async def list_branches(
    include_inactive: bool = Query(default=False),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> BranchListResponse:
    items = await branches.list_branches(db, active_only=not include_inactive)
    return BranchListResponse(items=[BranchDTO.model_validate(item) for item in items], total=len(items))


@router.get("/code/{code}", response_model=BranchDTO, summary="Look up a branch by code")
async def get_branch_by_code(
    code: str,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    return BranchDTO.model_validate(await branches.get_branch_by_code(db, code))


@router.get("/{branch_id}", response_model=BranchDTO, summary="Get a branch")
async def get_branch(
    branch_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> BranchDTO:
    return BranchDTO.model_validate(await branches.get_branch(db, branch_id))
