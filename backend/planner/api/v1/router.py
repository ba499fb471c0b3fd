from fastapi import APIRouter

from planner.api.v1 import (
    dashboard_routes,
    health,
    products_routes,
    purchase_routes,
    rotation_routes,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["Health"])
api_router.include_router(dashboard_routes.router, prefix="/dashboard", tags=["Dashboard"])
api_router.include_router(products_routes.router, prefix="/products", tags=["Products"])
api_router.include_router(purchase_routes.router, prefix="/purchase-orders", tags=["Purchase Orders"])
api_router.include_router(rotation_routes.router, prefix="/rotation", tags=["Rotation"])
