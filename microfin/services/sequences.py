from __future__ import annotations

from datetime import date
from enum import Enum

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.id_sequence import IdSequence


class SequenceScope(str, Enum):
    LOAN = "LOAN"
    CUSTOMER = "CUSTOMER"
    ACCOUNT = "ACCOUNT"


async def next_value(
    db: AsyncSession,
    scope: SequenceScope,
    branch_code: str,
    year: int,
) -> int:
    """Atomically increment and return the counter for (scope, branch, year).

    The upsert takes a row lock on the counter, so two concurrent callers
    always observe distinct values even under READ COMMITTED.
    """
    stmt = (
        insert(IdSequence)
        .values(scope=scope.value, branch_code=branch_code, year=year, current_value=1)
        .on_conflict_do_update(
            constraint="uq_id_sequence_scope_branch_year",
            set_={"current_value": IdSequence.current_value + 1},
        )
        .returning(IdSequence.current_value)
    )
    result = await db.execute(stmt)
    return int(result.scalar_one())


def format_loan_id(branch_code: str, year: int, value: int) -> str:
    return f"LN-{branch_code}-{year % 100:02d}-{value:05d}"


def format_customer_code(branch_code: str, year: int, value: int) -> str:
    return f"{branch_code}-{year % 100:02d}-{value:05d}"


def format_account_number(branch_code: str, value: int) -> str:
    return f"MF-{branch_code}-{value:08d}"


async def next_loan_id(db: AsyncSession, branch_code: str, today: date | None = None) -> str:
    year = (today or date.today()).year
    value = await next_value(db, SequenceScope.LOAN, branch_code, year)
    return format_loan_id(branch_code, year, value)


async def next_customer_code(db: AsyncSession, branch_code: str, today: date | None = None) -> str:
    year = (today or date.today()).year
    value = await next_value(db, SequenceScope.CUSTOMER, branch_code, year)
    return format_customer_code(branch_code, year, value)


async def next_account_number(db: AsyncSession, branch_code: str) -> str:
    # account numbers carry no year; year 0 holds the branch's lifetime counter
    value = await next_value(db, SequenceScope.ACCOUNT, branch_code, 0)
    return format_account_number(branch_code, value)
