from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from microfin.models.audit_log import AuditLog
from microfin.models.branch import Branch
from microfin.models.customer import Customer
from microfin.schemas.customers import CustomerCreate, CustomerUpdate, KycUpdate, RiskProfileUpdate
from microfin.services import customers, sequences
from microfin.services.errors import (
    DuplicateResourceError,
    ForbiddenError,
    IneligibleCustomerError,
    NotFoundError,
)

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_branch, make_customer, make_kyc


def _create_payload(branch_id, **overrides) -> CustomerCreate:
    data = dict(
        branch_id=branch_id,
        first_name="Wanjiru",
        last_name="Kamau",
        phone="+254711223344",
        national_id="29876543",
    )
    data.update(overrides)
    return CustomerCreate(**data)


@pytest.mark.asyncio
async def test_create_customer_starts_as_prospect(monkeypatch):
    branch = make_branch(code="MSA")
    db = FakeAsyncSession().on_get(Branch, branch.id, branch)

    async def _next_code(_db, branch_code, today=None):
        return f"{branch_code}-26-00042"

    monkeypatch.setattr(sequences, "next_customer_code", _next_code)

    customer = await customers.create_customer(db, _create_payload(branch.id), actor_id="officer-1")

    assert customer.customer_code == "MSA-26-00042"
    assert customer.status == "PROSPECT"
    assert customer.kyc_profile.status == "PENDING"
    assert customer.kyc_profile.has_national_id is False
    assert customer.risk_profile.risk_level == "MEDIUM"
    assert customer.full_name == "Wanjiru Kamau"
    assert [entry.action for entry in db.added_of(AuditLog)] == ["customer.created"]


@pytest.mark.asyncio
async def test_create_customer_rejects_duplicate_national_id():
    branch = make_branch()
    db = FakeAsyncSession().on_get(Branch, branch.id, branch)
    db.on_execute(entity_handler(Customer, FakeResult(rows=[(uuid4(),)])))

    with pytest.raises(DuplicateResourceError) as excinfo:
        await customers.create_customer(db, _create_payload(branch.id))

    assert excinfo.value.code == "national_id_taken"
    assert db.added_of(Customer) == []


@pytest.mark.asyncio
async def test_create_customer_unknown_branch():
    with pytest.raises(NotFoundError):
        await customers.create_customer(FakeAsyncSession(), _create_payload(uuid4()))


@pytest.mark.asyncio
async def test_update_customer_profile():
    customer = make_customer()
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    await customers.update_customer(db, customer.id, CustomerUpdate(occupation="Tailor", status="INACTIVE"))

    assert customer.occupation == "Tailor"
    assert customer.status == "INACTIVE"


@pytest.mark.asyncio
async def test_kyc_complete_when_core_documents_present():
    customer = make_customer(status="PROSPECT", kyc=make_kyc(status="PENDING", documents=False))
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    await customers.update_kyc(
        db,
        customer.id,
        KycUpdate(has_national_id=True, has_proof_of_address=True, has_photo_proof=True),
        actor_id="compliance-1",
    )

    kyc = customer.kyc_profile
    assert kyc.status == "COMPLETE"
    assert kyc.verified_by == "compliance-1"
    assert kyc.verified_at is not None
    assert kyc.has_income_proof is False


@pytest.mark.asyncio
async def test_kyc_incomplete_when_a_core_document_is_missing():
    customer = make_customer(status="PROSPECT", kyc=make_kyc(status="PENDING", documents=False))
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    await customers.update_kyc(
        db, customer.id, KycUpdate(has_national_id=True, has_income_proof=True), actor_id="compliance-1"
    )

    assert customer.kyc_profile.status == "INCOMPLETE"
    assert customer.kyc_profile.verified_by is None


@pytest.mark.asyncio
async def test_convert_prospect_with_complete_kyc():
    customer = make_customer(status="PROSPECT")
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    await customers.convert_to_customer(db, customer.id, actor_id="officer-1")

    assert customer.status == "ACTIVE"


@pytest.mark.asyncio
async def test_convert_requires_complete_kyc():
    customer = make_customer(status="PROSPECT", kyc=make_kyc(status="INCOMPLETE", documents=False))
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    with pytest.raises(IneligibleCustomerError) as excinfo:
        await customers.convert_to_customer(db, customer.id)

    assert [r["code"] for r in excinfo.value.details["reasons"]] == ["KYC_INCOMPLETE"]
    assert customer.status == "PROSPECT"


@pytest.mark.asyncio
async def test_convert_only_applies_to_prospects():
    customer = make_customer(status="ACTIVE")
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    with pytest.raises(ForbiddenError) as excinfo:
        await customers.convert_to_customer(db, customer.id)
    assert excinfo.value.code == "not_a_prospect"


@pytest.mark.asyncio
async def test_risk_profile_update_schedules_next_review():
    customer = make_customer()
    db = FakeAsyncSession().on_execute(entity_handler(Customer, FakeResult(scalar=customer)))

    await customers.update_risk_profile(
        db, customer.id, RiskProfileUpdate(risk_level="HIGH", credit_score=410), actor_id="compliance-1"
    )

    risk = customer.risk_profile
    assert risk.risk_level == "HIGH"
    assert risk.credit_score == 410
    assert risk.assessed_by == "compliance-1"
    expected = (datetime.now(timezone.utc) + timedelta(days=180)).date()
    assert abs((risk.next_review_date - expected).days) <= 1


@pytest.mark.asyncio
async def test_list_customers_returns_items_and_total():
    first, second = make_customer(), make_customer(first_name="Baraka")
    db = FakeAsyncSession()
    db.on_execute(
        lambda stmt: FakeResult(items=[first, second])
        if stmt.column_descriptions[0].get("entity") is Customer
        and stmt.column_descriptions[0].get("name") == "Customer"
        else None
    )
    db.on_execute(lambda _stmt: FakeResult(scalar=2))

    items, total = await customers.list_customers(db, search="a", status="ACTIVE")

    assert items == [first, second]
    assert total == 2
