from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.account import Account
from microfin.models.branch import Branch
from microfin.schemas.accounts import AccountCreate, AccountStatus
from microfin.services import eligibility, products, sequences
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import ForbiddenError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


async def get_account(db: AsyncSession, account_id: UUID, *, for_update: bool = False) -> Account:
    stmt = select(Account).where(Account.id == account_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    account = result.scalar_one_or_none()
    if account is None:
        raise NotFoundError(
            code="account_not_found",
            message="Account not found",
            details={"account_id": str(account_id)},
        )
    return account


async def list_customer_accounts(db: AsyncSession, customer_id: UUID) -> list[Account]:
    stmt = select(Account).where(Account.customer_id == customer_id).order_by(Account.created_at)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def open_account(db: AsyncSession, payload: AccountCreate, *, actor_id=None) -> Account:
    """Open a deposit account after the eligibility gate and minimum deposit checks pass."""
    await eligibility.assert_account_eligibility(db, payload.customer_id, payload.product_id)
    product = await products.get_product(db, payload.product_id)
    customer = await eligibility.load_customer_with_profiles(db, payload.customer_id)

    if payload.initial_deposit < product.minimum_deposit:
        raise ValidationError(
            code="minimum_deposit_not_met",
            message=f"Minimum opening deposit for {product.code} is {product.minimum_deposit}",
            details={
                "minimum_deposit": str(product.minimum_deposit),
                "initial_deposit": str(payload.initial_deposit),
            },
        )

    branch = await db.get(Branch, customer.branch_id)
    if branch is None:
        raise NotFoundError(code="branch_not_found", message="Customer branch not found")

    account_number = await sequences.next_account_number(db, branch.code)
    now = datetime.now(timezone.utc)
    auto_activate = bool(product.auto_activate)
    account = Account(
        account_number=account_number,
        customer_id=customer.id,
        product_id=product.id,
        branch_code=branch.code,
        status=AccountStatus.ACTIVE.value if auto_activate else AccountStatus.PENDING.value,
        balance=payload.initial_deposit,
        available_balance=payload.initial_deposit,
        currency=product.currency,
        opened_by=actor_id,
        activated_at=now if auto_activate else None,
    )
    db.add(account)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="account.opened",
        resource_type="account",
        resource_id=account.id,
        new_value=model_snapshot(account),
    )
    logger.info(
        "Opened account %s for customer %s",
        account.account_number,
        customer.customer_code,
        extra={"account_number": account.account_number, "customer_code": customer.customer_code},
    )
    return account


async def activate_account(db: AsyncSession, account_id: UUID, *, actor_id=None) -> Account:
    account = await get_account(db, account_id, for_update=True)
    if account.status != AccountStatus.PENDING.value:
        raise ForbiddenError(
            code="account_not_pending",
            message="Only pending accounts can be activated",
            details={"status": account.status},
        )
    account.status = AccountStatus.ACTIVE.value
    account.activated_at = datetime.now(timezone.utc)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="account.activated",
        resource_type="account",
        resource_id=account.id,
        old_value={"status": AccountStatus.PENDING.value},
        new_value={"status": account.status},
    )
    return account
