from datetime import date
from uuid import uuid4

import pytest

from microfin.models.account import Account
from microfin.models.customer import Customer
from microfin.models.product import Product
from microfin.schemas.accounts import EligibilityReasonCode as Code
from microfin.services import eligibility
from microfin.services.errors import IneligibleCustomerError

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_customer, make_kyc, make_product


def _codes(result) -> list[Code]:
    return [reason.code for reason in result.reasons]


def test_active_customer_with_complete_kyc_is_eligible():
    result = eligibility.evaluate_account_eligibility(customer=make_customer(), product=make_product())
    assert result.eligible is True
    assert result.reasons == []


def test_blacklisted_with_incomplete_kyc_reports_both_reasons():
    customer = make_customer(status="BLACKLISTED", kyc=make_kyc(status="INCOMPLETE", documents=False))
    result = eligibility.evaluate_account_eligibility(customer=customer, product=make_product())
    assert result.eligible is False
    assert _codes(result) == [Code.CUSTOMER_BLACKLISTED, Code.KYC_INCOMPLETE]


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("PROSPECT", Code.CUSTOMER_NOT_ACTIVE),
        ("INACTIVE", Code.CUSTOMER_INACTIVE),
        ("BLACKLISTED", Code.CUSTOMER_BLACKLISTED),
    ],
)
def test_each_customer_status_yields_a_single_reason(status, expected):
    result = eligibility.evaluate_account_eligibility(
        customer=make_customer(status=status), product=make_product()
    )
    assert _codes(result) == [expected]


def test_missing_customer_short_circuits():
    result = eligibility.evaluate_account_eligibility(customer=None, product=None)
    assert _codes(result) == [Code.CUSTOMER_NOT_FOUND]


def test_missing_product_still_reports_customer_findings():
    customer = make_customer(status="PROSPECT", kyc=None)
    result = eligibility.evaluate_account_eligibility(customer=customer, product=None)
    assert _codes(result) == [Code.CUSTOMER_NOT_ACTIVE, Code.KYC_MISSING, Code.PRODUCT_NOT_FOUND]


def test_inactive_product_and_duplicate_account_accumulate():
    product = make_product(status="INACTIVE")
    result = eligibility.evaluate_account_eligibility(
        customer=make_customer(status="INACTIVE"),
        product=product,
        has_active_account=True,
    )
    assert _codes(result) == [
        Code.CUSTOMER_INACTIVE,
        Code.PRODUCT_UNAVAILABLE,
        Code.DUPLICATE_ACTIVE_ACCOUNT,
    ]


def test_multiple_accounts_allowed_by_product():
    result = eligibility.evaluate_account_eligibility(
        customer=make_customer(),
        product=make_product(allow_multiple=True),
        has_active_account=True,
    )
    assert result.eligible is True


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("PENDING", Code.KYC_PENDING),
        ("INCOMPLETE", Code.KYC_INCOMPLETE),
        ("EXPIRED", Code.KYC_EXPIRED),
    ],
)
def test_kyc_status_reasons(status, expected):
    reasons = eligibility.kyc_reasons(make_kyc(status=status, documents=False))
    assert [reason.code for reason in reasons] == [expected]


def test_complete_kyc_missing_documents_and_expired():
    kyc = make_kyc(expiry_date=date(2025, 12, 31), has_income_proof=False)
    reasons = eligibility.kyc_reasons(kyc, as_of_date=date(2026, 1, 1))
    assert [reason.code for reason in reasons] == [Code.KYC_EXPIRED, Code.KYC_DOCUMENTS_MISSING]
    assert "income proof" in reasons[1].message


@pytest.mark.asyncio
async def test_assert_account_eligibility_raises_with_all_reasons():
    customer = make_customer(status="BLACKLISTED", kyc=make_kyc(status="PENDING", documents=False))
    product = make_product()
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    db.on_get(Product, product.id, product)

    with pytest.raises(IneligibleCustomerError) as excinfo:
        await eligibility.assert_account_eligibility(db, customer.id, product.id)

    reasons = excinfo.value.details["reasons"]
    assert [reason["code"] for reason in reasons] == ["CUSTOMER_BLACKLISTED", "KYC_PENDING"]
    assert excinfo.value.code == "customer_ineligible"


@pytest.mark.asyncio
async def test_check_account_eligibility_detects_active_account():
    customer = make_customer()
    product = make_product()
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    db.on_execute(entity_handler(Account, FakeResult(rows=[(uuid4(),)])))
    db.on_get(Product, product.id, product)

    result = await eligibility.check_account_eligibility(db, customer.id, product.id)

    assert result.eligible is False
    assert _codes(result) == [Code.DUPLICATE_ACTIVE_ACCOUNT]


def test_kyc_future_expiry_is_not_a_reason():
    kyc = make_kyc(expiry_date=date(2099, 1, 1))
    assert eligibility.kyc_reasons(kyc) == []
