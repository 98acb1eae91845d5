"""Main API router."""
from fastapi import APIRouter
from app.api.v1.endpoints import dine_in, orders, owner, rider

# Create main router
api_router = APIRouter()

api_router.include_router(
    orders.router,
    prefix="/orders",
    tags=["Orders"]
)

api_router.include_router(
    dine_in.router,
    prefix="/dine-in",
    tags=["Dine-in"]
)

api_router.include_router(
    owner.router,
    prefix="/owner",
    tags=["Owner"]
)

api_router.include_router(
    rider.router,
    prefix="/rider",
    tags=["Rider"]
)
