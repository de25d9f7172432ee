from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from orderhub.models.campaign import CampaignType, CampaignScope
from orderhub.models.cashback import CashbackReferenceType
from orderhub.schemas.base import BaseCreateSchema


# ==================== QUOTE REQUEST ====================

class QuoteItemInput(BaseModel):
    """Candidate order line as priced by the client."""
    product_id: uuid.UUID
    unit_price: Decimal = Field(..., decimal_places=2)
    quantity: int
    product_name_snapshot: Optional[str] = None


class QuoteRequest(BaseCreateSchema):
    """
    Order draft to be priced.

    An empty item list, a quantity below 1 or a price that is not positive
    is rejected by the pricing service with InvalidRequestError rather
    than by schema validation, so direct callers and HTTP callers get the
    same error.
    """
    store_org_id: uuid.UUID
    supplier_org_id: uuid.UUID
    shipping_address_id: Optional[uuid.UUID] = None
    payment_condition_id: Optional[uuid.UUID] = None
    store_state: Optional[str] = Field(None, min_length=2, max_length=2)
    items: List[QuoteItemInput] = []

    @field_validator('store_state', mode='before')
    @classmethod
    def uppercase_state(cls, v):
        if isinstance(v, str):
            return v.strip().upper()
        return v


# ==================== QUOTE RESULT ====================

class CalculatedItem(BaseModel):
    """Per-item breakdown of a quote."""
    product_id: uuid.UUID
    product_name_snapshot: Optional[str] = None
    quantity: int
    unit_price: Decimal
    unit_price_adjusted: Decimal
    total_price: Decimal
    applied_cashback_amount: Decimal = Decimal("0.00")


class PaymentConditionAdjustment(BaseModel):
    """Payment condition surfaced as metadata; never changes totals."""
    id: uuid.UUID
    name: str
    payment_method: str


class SupplierStateConditionAdjustment(BaseModel):
    id: uuid.UUID
    state: str
    unit_price_adjustment: Decimal = Decimal("0.00")
    cashback_percent: Decimal = Decimal("0.00")


class CampaignAdjustment(BaseModel):
    """Campaign that matched the quote."""
    id: uuid.UUID
    name: str
    type: CampaignType
    scope: CampaignScope
    cashback_percent: Optional[Decimal] = None
    gift_product_id: Optional[uuid.UUID] = None
    cashback_amount: Decimal = Decimal("0.00")


class AdjustmentDetails(BaseModel):
    payment_condition: Optional[PaymentConditionAdjustment] = None
    supplier_state_condition: Optional[SupplierStateConditionAdjustment] = None
    campaigns: List[CampaignAdjustment] = []


class CashbackContribution(BaseModel):
    """One source of cashback in a quote; becomes one EARNED ledger row."""
    reference_id: uuid.UUID
    reference_type: CashbackReferenceType
    amount: Decimal
    description: str


class QuoteResult(BaseModel):
    """Priced order draft. Not persisted; valid only for a short time."""
    subtotal_amount: Decimal
    shipping_cost: Decimal
    adjustments: Decimal
    total_amount: Decimal
    total_cashback: Decimal
    applied_supplier_state_condition_id: Optional[uuid.UUID] = None
    adjustment_details: AdjustmentDetails
    calculated_items: List[CalculatedItem]
    cashback_contributions: List[CashbackContribution] = []
    calculated_at: datetime
