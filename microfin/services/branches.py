from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.branch import Branch
from microfin.schemas.branches import BranchCreate
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import DuplicateResourceError, NotFoundError


async def get_branch(db: AsyncSession, branch_id: UUID) -> Branch:
    branch = await db.get(Branch, branch_id)
    if branch is None:
        raise NotFoundError(
            code="branch_not_found",
            message="Branch not found",
            details={"branch_id": str(branch_id)},
        )
    return branch


async def get_branch_by_code(db: AsyncSession, code: str) -> Branch:
    result = await db.execute(select(Branch).where(Branch.code == code.upper()))
    branch = result.scalar_one_or_none()
    if branch is None:
        raise NotFoundError(code="branch_not_found", message="Branch not found", details={"code": code})
    return branch


async def list_branches(db: AsyncSession, *, active_only: bool = True) -> list[Branch]:
    stmt = select(Branch).order_by(Branch.code)
    if active_only:
        stmt = stmt.where(Branch.is_active.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_branch(db: AsyncSession, payload: BranchCreate, *, actor_id=None) -> Branch:
    existing = await db.execute(select(Branch.id).where(Branch.code == payload.code))
    if existing.first() is not None:
        raise DuplicateResourceError(
            code="branch_code_taken",
            message=f"Branch code {payload.code} is already in use",
            details={"code": payload.code},
        )
    branch = Branch(**payload.model_dump(), is_active=True)
    db.add(branch)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="branch.created",
        resource_type="branch",
        resource_id=branch.id,
        new_value=model_snapshot(branch),
    )
    return branch
