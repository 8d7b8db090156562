from __future__ import annotations

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from microfin.models.loan import Loan
from microfin.models.loan_appraisal import LoanAppraisal
from microfin.models.loan_disbursement import LoanDisbursement
from microfin.models.repayment_installment import RepaymentInstallment
from microfin.services.errors import NotFoundError


def _not_found(loan_id) -> NotFoundError:
    return NotFoundError(
        code="loan_not_found",
        message="Loan not found",
        details={"loan_id": str(loan_id)},
    )


async def get_loan_for_update(db: AsyncSession, loan_id: UUID, *, with_children: bool = False) -> Loan:
    """Lock the loan row for the rest of the transaction and return it."""
    stmt = select(Loan).where(Loan.id == loan_id).with_for_update()
    if with_children:
        stmt = stmt.options(
            selectinload(Loan.appraisal),
            selectinload(Loan.approval_decisions),
            selectinload(Loan.disbursement),
        )
    result = await db.execute(stmt)
    loan = result.scalar_one_or_none()
    if loan is None:
        raise _not_found(loan_id)
    return loan


async def get_appraisal(db: AsyncSession, loan_id: UUID) -> LoanAppraisal | None:
    stmt = select(LoanAppraisal).where(LoanAppraisal.loan_id == loan_id).with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_disbursement(db: AsyncSession, loan_id: UUID) -> LoanDisbursement | None:
    stmt = select(LoanDisbursement).where(LoanDisbursement.loan_id == loan_id).with_for_update()
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def count_installments(db: AsyncSession, loan_id: UUID) -> int:
    stmt = select(func.count(RepaymentInstallment.id)).where(RepaymentInstallment.loan_id == loan_id)
    result = await db.execute(stmt)
    return int(result.scalar_one_or_none() or 0)


async def get_loan_with_related(db: AsyncSession, loan_id: UUID) -> Loan | None:
    stmt = (
        select(Loan)
        .options(
            selectinload(Loan.appraisal),
            selectinload(Loan.approval_decisions),
            selectinload(Loan.disbursement),
        )
        .where(Loan.id == loan_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_installments(db: AsyncSession, loan_id: UUID) -> list[RepaymentInstallment]:
    stmt = (
        select(RepaymentInstallment)
        .where(RepaymentInstallment.loan_id == loan_id)
        .order_by(RepaymentInstallment.installment_number)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())
