from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal
import uuid

from orderhub.models.cashback import CashbackTransactionType, CashbackReferenceType
from orderhub.schemas.base import BaseResponseSchema, BaseCreateSchema


class WalletResponse(BaseResponseSchema):
    """Cashback wallet aggregates."""
    id: uuid.UUID
    organization_id: uuid.UUID
    available_balance: Decimal
    total_earned: Decimal
    total_used: Decimal
    created_at: datetime
    updated_at: datetime


class WalletListResponse(BaseModel):
    items: List[WalletResponse]
    total: int


class BalanceResponse(BaseModel):
    organization_id: uuid.UUID
    available_balance: Decimal


class TransactionResponse(BaseResponseSchema):
    """Ledger entry."""
    id: uuid.UUID
    cashback_wallet_id: uuid.UUID
    order_id: uuid.UUID
    type: str  # VARCHAR in DB
    amount: Decimal
    reference_id: Optional[uuid.UUID] = None
    reference_type: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class CashbackEarnRequest(BaseCreateSchema):
    """
    Credit request.

    Amount floors are enforced by CashbackService (InvalidAmountError),
    not by the schema, so every caller sees the same error code.
    """
    order_id: uuid.UUID
    amount: Decimal
    reference_id: Optional[uuid.UUID] = None
    reference_type: Optional[CashbackReferenceType] = None
    description: Optional[str] = None


class CashbackUseRequest(BaseCreateSchema):
    """Debit request."""
    order_id: uuid.UUID
    amount: Decimal
    description: Optional[str] = None


class CashbackHistoryFilters(BaseModel):
    """Filters for an organization's ledger history."""
    order_id: Optional[uuid.UUID] = None
    type: Optional[CashbackTransactionType] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    skip: int = Field(0, ge=0)
    limit: int = Field(100, ge=1, le=500)
