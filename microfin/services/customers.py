from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from microfin.core.settings import settings
from microfin.models.customer import Customer, KycProfile, RiskProfile
from microfin.schemas.customers import (
    CustomerCreate,
    CustomerStatus,
    CustomerUpdate,
    KycStatus,
    KycUpdate,
    RiskLevel,
    RiskProfileUpdate,
)
from microfin.services import branches, sequences
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import (
    DuplicateResourceError,
    ForbiddenError,
    IneligibleCustomerError,
    NotFoundError,
)
from microfin.services.eligibility import kyc_reasons

logger = logging.getLogger(__name__)


def _customer_query():
    return select(Customer).options(
        selectinload(Customer.kyc_profile),
        selectinload(Customer.risk_profile),
    )


async def get_customer(db: AsyncSession, customer_id: UUID, *, for_update: bool = False) -> Customer:
    stmt = _customer_query().where(Customer.id == customer_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await db.execute(stmt)
    customer = result.scalar_one_or_none()
    if customer is None:
        raise NotFoundError(
            code="customer_not_found",
            message="Customer not found",
            details={"customer_id": str(customer_id)},
        )
    return customer


async def _ensure_national_id_free(db: AsyncSession, national_id: str | None, *, exclude_id=None) -> None:
    if not national_id:
        return
    stmt = select(Customer.id).where(Customer.national_id == national_id)
    if exclude_id is not None:
        stmt = stmt.where(Customer.id != exclude_id)
    result = await db.execute(stmt)
    if result.first() is not None:
        raise DuplicateResourceError(
            code="national_id_taken",
            message="A customer with this national ID already exists",
            details={"national_id": national_id},
        )


async def create_customer(db: AsyncSession, payload: CustomerCreate, *, actor_id=None) -> Customer:
    branch = await branches.get_branch(db, payload.branch_id)
    await _ensure_national_id_free(db, payload.national_id)

    customer_code = await sequences.next_customer_code(db, branch.code)
    customer = Customer(
        **payload.model_dump(),
        customer_code=customer_code,
        status=CustomerStatus.PROSPECT.value,
        created_by=actor_id,
    )
    customer.kyc_profile = KycProfile(
        status=KycStatus.PENDING.value,
        has_national_id=False,
        has_proof_of_address=False,
        has_photo_proof=False,
        has_income_proof=False,
    )
    customer.risk_profile = RiskProfile(risk_level=RiskLevel.MEDIUM.value)
    db.add(customer)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="customer.created",
        resource_type="customer",
        resource_id=customer.id,
        new_value=model_snapshot(customer),
    )
    return customer


async def list_customers(
    db: AsyncSession,
    *,
    search: str | None = None,
    status: CustomerStatus | None = None,
    branch_id: UUID | None = None,
    offset: int = 0,
    limit: int = 20,
) -> tuple[list[Customer], int]:
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.customer_code.ilike(pattern),
                Customer.phone.ilike(pattern),
                Customer.national_id.ilike(pattern),
            )
        )
    if status is not None:
        filters.append(Customer.status == CustomerStatus(status).value)
    if branch_id is not None:
        filters.append(Customer.branch_id == branch_id)

    count_stmt = select(func.count(Customer.id)).where(*filters)
    total = (await db.execute(count_stmt)).scalar_one_or_none() or 0
    stmt = _customer_query().where(*filters).order_by(Customer.created_at.desc()).offset(offset).limit(limit)
    result = await db.execute(stmt)
    return list(result.scalars().all()), int(total)


async def update_customer(
    db: AsyncSession, customer_id: UUID, payload: CustomerUpdate, *, actor_id=None
) -> Customer:
    customer = await get_customer(db, customer_id, for_update=True)
    changes = payload.model_dump(exclude_unset=True)
    if "national_id" in changes:
        await _ensure_national_id_free(db, changes["national_id"], exclude_id=customer.id)
    old_snapshot = model_snapshot(customer)
    for key, value in changes.items():
        setattr(customer, key, value)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="customer.updated",
        resource_type="customer",
        resource_id=customer.id,
        old_value=old_snapshot,
        new_value=model_snapshot(customer),
    )
    return customer


def _kyc_documents_complete(kyc: KycProfile) -> bool:
    return bool(kyc.has_national_id and kyc.has_proof_of_address and kyc.has_photo_proof)


async def update_kyc(db: AsyncSession, customer_id: UUID, payload: KycUpdate, *, actor_id=None) -> Customer:
    """Record which documents were sighted and derive the KYC status from them.

    KYC is COMPLETE once national ID, proof of address and photo are all on
    file; income proof is tracked but only enforced by the account gate.
    """
    customer = await get_customer(db, customer_id, for_update=True)
    kyc = customer.kyc_profile
    if kyc is None:
        kyc = KycProfile(customer_id=customer.id, status=KycStatus.PENDING.value)
        customer.kyc_profile = kyc
    old_snapshot = model_snapshot(kyc)

    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(kyc, key, value)

    if _kyc_documents_complete(kyc):
        if kyc.status != KycStatus.COMPLETE.value:
            kyc.verified_by = actor_id
            kyc.verified_at = datetime.now(timezone.utc)
        kyc.status = KycStatus.COMPLETE.value
    else:
        kyc.status = KycStatus.INCOMPLETE.value
        kyc.verified_by = None
        kyc.verified_at = None

    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="customer.kyc_updated",
        resource_type="customer",
        resource_id=customer.id,
        old_value=old_snapshot,
        new_value=model_snapshot(kyc),
    )
    return customer


async def convert_to_customer(db: AsyncSession, customer_id: UUID, *, actor_id=None) -> Customer:
    customer = await get_customer(db, customer_id, for_update=True)
    if customer.status != CustomerStatus.PROSPECT.value:
        raise ForbiddenError(
            code="not_a_prospect",
            message="Only prospects can be converted to customers",
            details={"status": customer.status},
        )
    reasons = kyc_reasons(customer.kyc_profile)
    if customer.kyc_profile is None or customer.kyc_profile.status != KycStatus.COMPLETE.value:
        raise IneligibleCustomerError.from_reasons(
            reasons, message="KYC must be complete before conversion"
        )
    customer.status = CustomerStatus.ACTIVE.value
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="customer.converted",
        resource_type="customer",
        resource_id=customer.id,
        old_value={"status": CustomerStatus.PROSPECT.value},
        new_value={"status": customer.status},
    )
    logger.info(
        "Converted prospect %s to customer",
        customer.customer_code,
        extra={"customer_code": customer.customer_code},
    )
    return customer


async def update_risk_profile(
    db: AsyncSession, customer_id: UUID, payload: RiskProfileUpdate, *, actor_id=None
) -> Customer:
    customer = await get_customer(db, customer_id, for_update=True)
    risk = customer.risk_profile
    if risk is None:
        risk = RiskProfile(customer_id=customer.id)
        customer.risk_profile = risk
    old_snapshot = model_snapshot(risk)

    now = datetime.now(timezone.utc)
    risk.risk_level = payload.risk_level
    risk.credit_score = payload.credit_score
    risk.notes = payload.notes
    risk.assessed_by = actor_id
    risk.assessed_at = now
    risk.next_review_date = (now + timedelta(days=settings.risk_review_interval_days)).date()

    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="customer.risk_updated",
        resource_type="customer",
        resource_id=customer.id,
        old_value=old_snapshot,
        new_value=model_snapshot(risk),
    )
    return customer
