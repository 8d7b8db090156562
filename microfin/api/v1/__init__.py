from fastapi import APIRouter

from microfin.api.v1.routers import accounts, alerts, branches, customers, health, loans, products, tasks

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(branches.router)
api_router.include_router(customers.router)
api_router.include_router(products.router)
api_router.include_router(accounts.router)
api_router.include_router(loans.router)
api_router.include_router(alerts.router)
api_router.include_router(tasks.router)

__all__ = ["api_router"]
