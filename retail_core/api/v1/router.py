from fastapi import APIRouter

from retail_core.api.v1.endpoints import (
    sales,
    returns,
    payments,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Sales ====================
api_router.include_router(
    sales.router,
    prefix="/sales",
    tags=["Sales"]
)

# ==================== Returns ====================
api_router.include_router(
    returns.router,
    prefix="/returns",
    tags=["Returns"]
)

# ==================== Payment Reconciliation ====================
api_router.include_router(
    payments.router,
    prefix="/payments",
    tags=["Payments"]
)
