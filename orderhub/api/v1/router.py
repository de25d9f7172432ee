from fastapi import APIRouter

from orderhub.api.v1.endpoints import (
    # Order pricing & lifecycle
    orders,
    # Cashback ledger
    cashback,
)

api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["Orders"])
api_router.include_router(cashback.router, prefix="/cashback", tags=["Cashback"])
