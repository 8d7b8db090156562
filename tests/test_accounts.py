from decimal import Decimal

import pytest

from microfin.models.account import Account
from microfin.models.branch import Branch
from microfin.models.customer import Customer
from microfin.models.product import Product
from microfin.schemas.accounts import AccountCreate
from microfin.services import accounts, sequences
from microfin.services.errors import ForbiddenError, IneligibleCustomerError, ValidationError

from conftest import FakeAsyncSession, FakeResult, entity_handler, make_branch, make_customer, make_product


@pytest.fixture
def numbering(monkeypatch):
    async def _next_number(_db, branch_code):
        return f"MF-{branch_code}-00000007"

    monkeypatch.setattr(sequences, "next_account_number", _next_number)


def _session(customer: Customer, product: Product, branch: Branch) -> FakeAsyncSession:
    db = FakeAsyncSession()
    db.on_execute(entity_handler(Customer, FakeResult(scalar=customer)))
    db.on_get(Product, product.id, product)
    db.on_get(Branch, branch.id, branch)
    return db


@pytest.mark.asyncio
async def test_open_account_auto_activates(numbering):
    branch = make_branch()
    customer = make_customer(branch=branch)
    product = make_product(auto_activate=True)
    db = _session(customer, product, branch)

    account = await accounts.open_account(
        db,
        AccountCreate(customer_id=customer.id, product_id=product.id, initial_deposit=Decimal("1000")),
        actor_id="officer-1",
    )

    assert account.account_number == "MF-NRB-00000007"
    assert account.status == "ACTIVE"
    assert account.activated_at is not None
    assert account.balance == Decimal("1000")
    assert account.branch_code == "NRB"


@pytest.mark.asyncio
async def test_open_account_pending_without_auto_activation(numbering):
    branch = make_branch()
    customer = make_customer(branch=branch)
    product = make_product(auto_activate=False, minimum_deposit=Decimal("0"))
    db = _session(customer, product, branch)

    account = await accounts.open_account(db, AccountCreate(customer_id=customer.id, product_id=product.id))

    assert account.status == "PENDING"
    assert account.activated_at is None


@pytest.mark.asyncio
async def test_open_account_enforces_minimum_deposit(numbering):
    branch = make_branch()
    customer = make_customer(branch=branch)
    product = make_product(minimum_deposit=Decimal("500.00"))
    db = _session(customer, product, branch)

    with pytest.raises(ValidationError) as excinfo:
        await accounts.open_account(
            db,
            AccountCreate(customer_id=customer.id, product_id=product.id, initial_deposit=Decimal("499.99")),
        )

    assert excinfo.value.code == "minimum_deposit_not_met"
    assert db.added_of(Account) == []


@pytest.mark.asyncio
async def test_open_account_blocked_for_ineligible_customer(numbering):
    branch = make_branch()
    customer = make_customer(branch=branch, status="PROSPECT")
    product = make_product()
    db = _session(customer, product, branch)

    with pytest.raises(IneligibleCustomerError) as excinfo:
        await accounts.open_account(
            db, AccountCreate(customer_id=customer.id, product_id=product.id, initial_deposit=Decimal("1000"))
        )

    assert [r["code"] for r in excinfo.value.details["reasons"]] == ["CUSTOMER_NOT_ACTIVE"]


@pytest.mark.asyncio
async def test_activate_pending_account():
    account = Account(account_number="MF-NRB-00000001", status="PENDING", branch_code="NRB")
    db = FakeAsyncSession().on_execute(entity_handler(Account, FakeResult(scalar=account)))

    await accounts.activate_account(db, account.id, actor_id="bm-1")

    assert account.status == "ACTIVE"
    assert account.activated_at is not None


@pytest.mark.asyncio
async def test_activate_rejects_active_account():
    account = Account(account_number="MF-NRB-00000001", status="ACTIVE", branch_code="NRB")
    db = FakeAsyncSession().on_execute(entity_handler(Account, FakeResult(scalar=account)))

    with pytest.raises(ForbiddenError) as excinfo:
        await accounts.activate_account(db, account.id)
    assert excinfo.value.code == "account_not_pending"
