from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from microfin.models.account import Account
from microfin.models.customer import Customer, KycProfile
from microfin.models.product import Product
from microfin.schemas.accounts import (
    AccountStatus,
    EligibilityReason,
    EligibilityReasonCode,
    EligibilityResult,
    ProductStatus,
)
from microfin.schemas.customers import CustomerStatus, KycStatus
from microfin.services.errors import IneligibleCustomerError


_CUSTOMER_STATUS_REASONS = {
    CustomerStatus.BLACKLISTED.value: (
        EligibilityReasonCode.CUSTOMER_BLACKLISTED,
        "Customer is blacklisted",
    ),
    CustomerStatus.INACTIVE.value: (
        EligibilityReasonCode.CUSTOMER_INACTIVE,
        "Customer is inactive",
    ),
}

_KYC_STATUS_REASONS = {
    KycStatus.PENDING.value: (EligibilityReasonCode.KYC_PENDING, "KYC verification is pending"),
    KycStatus.INCOMPLETE.value: (EligibilityReasonCode.KYC_INCOMPLETE, "KYC documentation is incomplete"),
    KycStatus.EXPIRED.value: (EligibilityReasonCode.KYC_EXPIRED, "KYC verification has expired"),
}

_REQUIRED_DOCUMENTS = (
    ("has_national_id", "national ID"),
    ("has_proof_of_address", "proof of address"),
    ("has_photo_proof", "photo"),
    ("has_income_proof", "income proof"),
)


def _reason(code: EligibilityReasonCode, message: str) -> EligibilityReason:
    return EligibilityReason(code=code, message=message)


def kyc_reasons(kyc: KycProfile | None, *, as_of_date: date | None = None) -> list[EligibilityReason]:
    """Reasons a customer's KYC blocks onboarding. Empty means KYC is usable."""
    if kyc is None:
        return [_reason(EligibilityReasonCode.KYC_MISSING, "Customer has no KYC profile")]

    # one reason per status: a specific code replaces the generic KYC_NOT_COMPLETE
    reasons: list[EligibilityReason] = []
    status_reason = _KYC_STATUS_REASONS.get(kyc.status)
    if status_reason:
        reasons.append(_reason(*status_reason))
    elif kyc.status != KycStatus.COMPLETE.value:
        reasons.append(_reason(EligibilityReasonCode.KYC_NOT_COMPLETE, f"KYC status is {kyc.status}"))

    if kyc.status == KycStatus.COMPLETE.value:
        today = as_of_date or date.today()
        if kyc.expiry_date is not None and kyc.expiry_date < today:
            reasons.append(_reason(EligibilityReasonCode.KYC_EXPIRED, "KYC verification has expired"))
        missing = [label for attr, label in _REQUIRED_DOCUMENTS if not getattr(kyc, attr)]
        if missing:
            reasons.append(
                _reason(
                    EligibilityReasonCode.KYC_DOCUMENTS_MISSING,
                    f"Missing KYC documents: {', '.join(missing)}",
                )
            )
    return reasons


def evaluate_account_eligibility(
    *,
    customer: Customer | None,
    product: Product | None,
    has_active_account: bool = False,
    as_of_date: date | None = None,
) -> EligibilityResult:
    """Collect every reason a customer cannot open ``product``.

    Only a missing customer or a missing product stops the evaluation early;
    all other findings accumulate so the officer sees the full list at once.
    """
    reasons: list[EligibilityReason] = []

    if customer is None:
        reasons.append(_reason(EligibilityReasonCode.CUSTOMER_NOT_FOUND, "Customer not found"))
        return EligibilityResult(eligible=False, reasons=reasons)

    # a specific status code replaces the generic CUSTOMER_NOT_ACTIVE
    status_reason = _CUSTOMER_STATUS_REASONS.get(customer.status)
    if status_reason:
        reasons.append(_reason(*status_reason))
    elif customer.status != CustomerStatus.ACTIVE.value:
        reasons.append(
            _reason(EligibilityReasonCode.CUSTOMER_NOT_ACTIVE, f"Customer status is {customer.status}")
        )

    reasons.extend(kyc_reasons(customer.kyc_profile, as_of_date=as_of_date))

    if product is None:
        reasons.append(_reason(EligibilityReasonCode.PRODUCT_NOT_FOUND, "Product not found"))
        return EligibilityResult(eligible=False, reasons=reasons)

    if product.status != ProductStatus.ACTIVE.value:
        reasons.append(
            _reason(EligibilityReasonCode.PRODUCT_UNAVAILABLE, f"Product {product.code} is not available")
        )

    if has_active_account and not product.allow_multiple:
        reasons.append(
            _reason(
                EligibilityReasonCode.DUPLICATE_ACTIVE_ACCOUNT,
                f"Customer already holds an active {product.code} account",
            )
        )

    return EligibilityResult(eligible=not reasons, reasons=reasons)


async def load_customer_with_profiles(db: AsyncSession, customer_id: UUID) -> Customer | None:
    stmt = (
        select(Customer)
        .options(selectinload(Customer.kyc_profile), selectinload(Customer.risk_profile))
        .where(Customer.id == customer_id)
    )
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def check_account_eligibility(
    db: AsyncSession,
    customer_id: UUID,
    product_id: UUID,
) -> EligibilityResult:
    customer = await load_customer_with_profiles(db, customer_id)
    product = await db.get(Product, product_id)
    has_active_account = False
    if customer is not None and product is not None:
        stmt = select(Account.id).where(
            Account.customer_id == customer_id,
            Account.product_id == product_id,
            Account.status == AccountStatus.ACTIVE.value,
        )
        result = await db.execute(stmt)
        has_active_account = result.first() is not None
    return evaluate_account_eligibility(
        customer=customer,
        product=product,
        has_active_account=has_active_account,
    )


async def assert_account_eligibility(
    db: AsyncSession,
    customer_id: UUID,
    product_id: UUID,
) -> EligibilityResult:
    result = await check_account_eligibility(db, customer_id, product_id)
    if not result.eligible:
        raise IneligibleCustomerError.from_reasons(
            result.reasons, message="Customer is not eligible for this product"
        )
    return result
