from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import enum
import uuid

from orderhub.models.order import OrderStatus
from orderhub.schemas.base import BaseResponseSchema, BaseCreateSchema


# ==================== ORDER ITEM SCHEMAS ====================

class OrderItemCreate(BaseModel):
    """Order item creation schema. Prices come from the product catalog."""
    product_id: uuid.UUID
    quantity: int


class OrderItemResponse(BaseResponseSchema):
    """Order item response schema."""
    id: uuid.UUID
    product_id: uuid.UUID
    product_name_snapshot: str
    quantity: int
    unit_price: Decimal
    unit_price_adjusted: Decimal
    total_price: Decimal
    applied_cashback_amount: Decimal
    created_at: datetime


# ==================== STATUS HISTORY SCHEMAS ====================

class StatusHistoryResponse(BaseResponseSchema):
    """Order status history response."""
    id: uuid.UUID
    previous_status: Optional[str] = None  # VARCHAR in DB
    new_status: str  # VARCHAR in DB
    changed_by: Optional[uuid.UUID] = None
    note: Optional[str] = None
    created_at: datetime


# ==================== ORDER SCHEMAS ====================

class OrderCreate(BaseCreateSchema):
    """
    Order creation schema.

    Items are validated by OrderService so that an empty list surfaces as
    InvalidRequestError and nothing is persisted.
    """
    store_org_id: uuid.UUID
    supplier_org_id: uuid.UUID
    shipping_address_id: Optional[uuid.UUID] = None
    payment_condition_id: Optional[uuid.UUID] = None
    store_state: Optional[str] = Field(None, min_length=2, max_length=2)
    cashback_used: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    items: List[OrderItemCreate] = []

    @field_validator('store_state', mode='before')
    @classmethod
    def uppercase_state(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


class OrderStatusUpdate(BaseModel):
    """Order status update schema."""
    status: OrderStatus
    note: Optional[str] = None


class OrganizationType(str, enum.Enum):
    """Kind of organization acting on an order."""
    STORE = "STORE"
    SUPPLIER = "SUPPLIER"


class StatusActor(BaseModel):
    """Organization on whose behalf a status change is made."""
    organization_id: uuid.UUID
    organization_type: OrganizationType


class OrderFilters(BaseModel):
    """Filters for listing orders."""
    store_org_id: Optional[uuid.UUID] = None
    supplier_org_id: Optional[uuid.UUID] = None
    status: Optional[OrderStatus] = None
    placed_from: Optional[datetime] = None
    placed_to: Optional[datetime] = None
    created_by: Optional[uuid.UUID] = None
    skip: int = Field(0, ge=0)
    limit: int = Field(20, ge=1, le=100)


class OrderResponse(BaseResponseSchema):
    """Order response schema."""
    id: uuid.UUID
    store_org_id: uuid.UUID
    supplier_org_id: uuid.UUID
    status: str
    placed_at: Optional[datetime] = None
    shipping_address_id: Optional[uuid.UUID] = None
    subtotal_amount: Decimal
    shipping_cost: Decimal
    adjustments: Decimal
    total_amount: Decimal
    total_cashback: Decimal
    cashback_used: Decimal
    amount_due: Decimal
    applied_supplier_state_condition_id: Optional[uuid.UUID] = None
    payment_condition_id: Optional[uuid.UUID] = None
    created_by: Optional[uuid.UUID] = None
    item_count: int
    created_at: datetime
    updated_at: datetime


class OrderDetailResponse(OrderResponse):
    """Detailed order response with items and history."""
    items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryResponse] = []


class OrderListResponse(BaseModel):
    """Paginated order list."""
    items: List[OrderResponse]
    total: int
    page: int
    size: int
    pages: int
