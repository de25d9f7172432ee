from typing import Optional, List
import uuid
from datetime import datetime

from fastapi import APIRouter, Query, status

from orderhub.api.deps import DB, CurrentUserId
from orderhub.models.cashback import CashbackTransactionType
from orderhub.schemas.cashback import (
    BalanceResponse,
    CashbackEarnRequest,
    CashbackHistoryFilters,
    CashbackUseRequest,
    TransactionResponse,
    WalletListResponse,
    WalletResponse,
)
from orderhub.services.cashback_service import CashbackService


router = APIRouter()


@router.get(
    "/wallets",
    response_model=WalletListResponse,
)
async def list_wallets(
    db: DB,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
):
    """List cashback wallets, largest available balance first."""
    service = CashbackService(db)
    wallets, total = await service.list_wallets(skip=skip, limit=limit)
    return WalletListResponse(
        items=[WalletResponse.model_validate(w) for w in wallets],
        total=total,
    )


@router.get(
    "/wallets/{organization_id}",
    response_model=WalletResponse,
)
async def get_wallet(
    organization_id: uuid.UUID,
    db: DB,
):
    """Get an organization's wallet, creating an empty one on first access."""
    service = CashbackService(db)
    wallet = await service.get_or_create_wallet(organization_id)
    return WalletResponse.model_validate(wallet)


@router.get(
    "/wallets/{organization_id}/balance",
    response_model=BalanceResponse,
)
async def get_balance(
    organization_id: uuid.UUID,
    db: DB,
):
    """Available balance only; no wallet is created."""
    service = CashbackService(db)
    balance = await service.get_balance(organization_id)
    return BalanceResponse(organization_id=organization_id, available_balance=balance)


@router.get(
    "/wallets/{organization_id}/transactions",
    response_model=List[TransactionResponse],
)
async def get_wallet_transactions(
    organization_id: uuid.UUID,
    db: DB,
    order_id: Optional[uuid.UUID] = Query(None),
    type: Optional[CashbackTransactionType] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Ledger entries of an organization, oldest first."""
    service = CashbackService(db)
    transactions, _ = await service.get_history(
        organization_id,
        CashbackHistoryFilters(
            order_id=order_id,
            type=type,
            created_from=created_from,
            created_to=created_to,
            skip=skip,
            limit=limit,
        ),
    )
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.get(
    "/orders/{order_id}/transactions",
    response_model=List[TransactionResponse],
)
async def get_order_transactions(
    order_id: uuid.UUID,
    db: DB,
):
    """Ledger entries tied to one order, oldest first."""
    service = CashbackService(db)
    transactions = await service.get_history_by_order(order_id)
    return [TransactionResponse.model_validate(t) for t in transactions]


@router.post(
    "/wallets/{organization_id}/earn",
    response_model=WalletResponse,
    status_code=status.HTTP_201_CREATED,
)
async def earn_cashback(
    organization_id: uuid.UUID,
    data: CashbackEarnRequest,
    db: DB,
    current_user_id: CurrentUserId,
):
    """Credit cashback manually (adjustments by back office)."""
    service = CashbackService(db)
    _, wallet = await service.earn(
        organization_id,
        data.order_id,
        data.amount,
        reference_id=data.reference_id,
        reference_type=data.reference_type,
        description=data.description,
    )
    return WalletResponse.model_validate(wallet)


@router.post(
    "/wallets/{organization_id}/use",
    response_model=WalletResponse,
    status_code=status.HTTP_201_CREATED,
)
async def use_cashback(
    organization_id: uuid.UUID,
    data: CashbackUseRequest,
    db: DB,
    current_user_id: CurrentUserId,
):
    """
    Redeem cashback.

    Fails with 400 INSUFFICIENT_CASHBACK_BALANCE when the wallet cannot
    cover the amount; nothing is written in that case.
    """
    service = CashbackService(db)
    _, wallet = await service.use(
        organization_id,
        data.order_id,
        data.amount,
        description=data.description,
    )
    return WalletResponse.model_validate(wallet)
