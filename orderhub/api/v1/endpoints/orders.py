from typing import Optional, List
import uuid
from math import ceil
from datetime import datetime

from fastapi import APIRouter, Query, Response, status

from orderhub.api.deps import DB, Actor, CurrentUserId
from orderhub.config import settings
from orderhub.core.exceptions import NotFoundError
from orderhub.models.order import OrderStatus
from orderhub.schemas.order import (
    OrderCreate,
    OrderStatusUpdate,
    OrderResponse,
    OrderDetailResponse,
    OrderListResponse,
    OrderFilters,
    StatusHistoryResponse,
)
from orderhub.schemas.quote import QuoteRequest, QuoteResult
from orderhub.services.order_service import OrderService
from orderhub.services.pricing_service import PricingService


router = APIRouter()


@router.post(
    "/quote",
    response_model=QuoteResult,
)
async def quote_order(
    data: QuoteRequest,
    db: DB,
    response: Response,
):
    """
    Price an order draft without saving it.

    The result depends on the campaigns active right now; it is marked
    cacheable for QUOTE_CACHE_TTL_SECONDS only.
    """
    service = PricingService(db)
    result = await service.quote(data)
    response.headers["Cache-Control"] = f"private, max-age={settings.QUOTE_CACHE_TTL_SECONDS}"
    return result


@router.get(
    "",
    response_model=OrderListResponse,
)
async def list_orders(
    db: DB,
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    store_org_id: Optional[uuid.UUID] = Query(None),
    supplier_org_id: Optional[uuid.UUID] = Query(None),
    status: Optional[OrderStatus] = Query(None),
    placed_from: Optional[datetime] = Query(None),
    placed_to: Optional[datetime] = Query(None),
    created_by: Optional[uuid.UUID] = Query(None),
):
    """Get paginated list of orders, newest first."""
    service = OrderService(db)
    skip = (page - 1) * size

    orders, total = await service.list_orders(OrderFilters(
        store_org_id=store_org_id,
        supplier_org_id=supplier_org_id,
        status=status,
        placed_from=placed_from,
        placed_to=placed_to,
        created_by=created_by,
        skip=skip,
        limit=size,
    ))

    return OrderListResponse(
        items=[OrderResponse.model_validate(o) for o in orders],
        total=total,
        page=page,
        size=size,
        pages=ceil(total / size) if total > 0 else 1,
    )


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
)
async def get_order(
    order_id: uuid.UUID,
    db: DB,
):
    """Get order details by ID."""
    service = OrderService(db)
    order = await service.get_order(order_id)

    if not order:
        raise NotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})

    return OrderDetailResponse.model_validate(order)


@router.get(
    "/{order_id}/history",
    response_model=List[StatusHistoryResponse],
)
async def get_order_history(
    order_id: uuid.UUID,
    db: DB,
):
    """Get status changes of an order, oldest first."""
    service = OrderService(db)
    history = await service.get_status_history(order_id)
    return [StatusHistoryResponse.model_validate(h) for h in history]


@router.post(
    "",
    response_model=OrderDetailResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_order(
    data: OrderCreate,
    db: DB,
    current_user_id: CurrentUserId,
):
    """
    Place an order.

    Items are priced from the product catalog; earned and redeemed cashback
    is posted to the store's wallet in the same transaction.
    """
    service = OrderService(db)
    order = await service.create_order(data, created_by=current_user_id)
    return OrderDetailResponse.model_validate(order)


@router.put(
    "/{order_id}/status",
    response_model=OrderDetailResponse,
)
async def update_order_status(
    order_id: uuid.UUID,
    data: OrderStatusUpdate,
    db: DB,
    current_user_id: CurrentUserId,
    actor: Actor,
):
    """
    Update order status.

    Only edges of the order lifecycle are accepted (409 otherwise). With
    X-Organization-Id / X-Organization-Type, store and supplier ownership
    rules apply (403 otherwise).
    """
    service = OrderService(db)
    order = await service.update_status(
        order_id,
        data.status,
        changed_by=current_user_id,
        note=data.note,
        actor=actor,
    )
    return OrderDetailResponse.model_validate(order)
