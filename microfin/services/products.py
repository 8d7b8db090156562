from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.models.product import Product
from microfin.schemas.accounts import ProductCreate, ProductStatus
from microfin.services.audit import model_snapshot, record_audit_log
from microfin.services.errors import DuplicateResourceError, NotFoundError


async def get_product(db: AsyncSession, product_id: UUID) -> Product:
    product = await db.get(Product, product_id)
    if product is None:
        raise NotFoundError(
            code="product_not_found",
            message="Product not found",
            details={"product_id": str(product_id)},
        )
    return product


async def list_products(db: AsyncSession, *, include_inactive: bool = False) -> list[Product]:
    stmt = select(Product).order_by(Product.code)
    if not include_inactive:
        stmt = stmt.where(Product.status == ProductStatus.ACTIVE.value)
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def create_product(db: AsyncSession, payload: ProductCreate, *, actor_id=None) -> Product:
    code = payload.code.strip().upper()
    existing = await db.execute(select(Product.id).where(Product.code == code))
    if existing.first() is not None:
        raise DuplicateResourceError(
            code="product_code_taken",
            message=f"Product code {code} is already in use",
            details={"code": code},
        )
    product = Product(**{**payload.model_dump(), "code": code}, status=ProductStatus.ACTIVE.value)
    db.add(product)
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="product.created",
        resource_type="product",
        resource_id=product.id,
        new_value=model_snapshot(product),
    )
    return product


async def set_product_status(
    db: AsyncSession, product_id: UUID, status: ProductStatus, *, actor_id=None
) -> Product:
    product = await get_product(db, product_id)
    old_status = product.status
    product.status = ProductStatus(status).value
    await db.flush()
    record_audit_log(
        db,
        actor_id=actor_id,
        action="product.status_changed",
        resource_type="product",
        resource_id=product.id,
        old_value={"status": old_status},
        new_value={"status": product.status},
    )
    return product
