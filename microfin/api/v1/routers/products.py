from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from microfin.api import deps
from microfin.api.deps import Actor, Role
from microfin.db.session import get_db
from microfin.schemas.accounts import ProductCreate, ProductDTO, ProductStatus
from microfin.services import products
from microfin.services.transactions import run_in_transaction

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductDTO, status_code=status.HTTP_201_CREATED, summary="Create a deposit product")
async def create_product(
    payload: ProductCreate,
    actor: Actor = Depends(deps.require_role(Role.CEO)),
    db: AsyncSession = Depends(get_db),
) -> ProductDTO:
    product = await run_in_transaction(db, lambda: products.create_product(db, payload, actor_id=actor.id))
    return ProductDTO.model_validate(product)


@router.get("", response_model=list[ProductDTO], summary="List products")
async def list_products(
    include_inactive: bool = Query(default=False),
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> list[ProductDTO]:
    items = await products.list_products(db, include_inactive=include_inactive)
    return [ProductDTO.model_validate(item) for item in items]


@router.get("/{product_id}", response_model=ProductDTO, summary="Get a product")
async def get_product(
    product_id: UUID,
    actor: Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(get_db),
) -> ProductDTO:
    return ProductDTO.model_validate(await products.get_product(db, product_id))


@router.patch("/{product_id}/activate", response_model=ProductDTO, summary="Make a product available")
async def activate_product(
    product_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.CEO)),
    db: AsyncSession = Depends(get_db),
) -> ProductDTO:
    product = await run_in_transaction(
        db, lambda: products.set_product_status(db, product_id, ProductStatus.ACTIVE, actor_id=actor.id)
    )
    return ProductDTO.model_validate(product)


@router.patch("/{product_id}/deactivate", response_model=ProductDTO, summary="Withdraw a product")
async def deactivate_product(
    product_id: UUID,
    actor: Actor = Depends(deps.require_role(Role.CEO)),
    db: AsyncSession = Depends(get_db),
) -> ProductDTO:
    product = await run_in_transaction(
        db, lambda: products.set_product_status(db, product_id, ProductStatus.INACTIVE, actor_id=actor.id)
    )
    return ProductDTO.model_validate(product)
