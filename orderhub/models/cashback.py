"""
Cashback Wallet and Ledger Models.

One wallet per organization holds materialized aggregates over an
append-only transaction log:

    available_balance == total_earned - total_used >= 0

Only CashbackService writes these tables.
"""
import uuid
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import String, DateTime, ForeignKey, Text, CheckConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderhub.core.clock import utcnow
from orderhub.core.enum_utils import enum_comment
from orderhub.database import Base
from orderhub.db_types import UUIDType, MoneyType


class CashbackTransactionType(str, enum.Enum):
    """Direction of a ledger entry."""
    EARNED = "EARNED"
    USED = "USED"


class CashbackReferenceType(str, enum.Enum):
    """What granted or consumed the cashback."""
    CAMPAIGN = "CAMPAIGN"
    SUPPLIER_STATE_CONDITION = "SUPPLIER_STATE_CONDITION"
    ORDER = "ORDER"
    MANUAL = "MANUAL"


class CashbackWallet(Base):
    """Per-organization cashback account."""
    __tablename__ = "cashback_wallets"
    __table_args__ = (
        CheckConstraint('available_balance >= 0', name='ck_wallet_balance_non_negative'),
        CheckConstraint('total_earned >= 0', name='ck_wallet_earned_non_negative'),
        CheckConstraint('total_used >= 0', name='ck_wallet_used_non_negative'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid.uuid4
    )
    organization_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        unique=True,
        nullable=False,
        comment="One wallet per organization"
    )

    available_balance: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0.00"), nullable=False
    )
    total_earned: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0.00"), nullable=False
    )
    total_used: Mapped[Decimal] = mapped_column(
        MoneyType, default=Decimal("0.00"), nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    # Relationships
    transactions: Mapped[List["CashbackTransaction"]] = relationship(
        "CashbackTransaction",
        back_populates="wallet",
        order_by="CashbackTransaction.created_at"
    )

    def __repr__(self) -> str:
        return f"<CashbackWallet(org='{self.organization_id}', balance={self.available_balance})>"


class CashbackTransaction(Base):
    """Immutable EARNED or USED ledger entry."""
    __tablename__ = "cashback_transactions"
    __table_args__ = (
        Index('ix_cashback_tx_wallet_created', 'cashback_wallet_id', 'created_at'),
        Index('ix_cashback_tx_order', 'order_id'),
        CheckConstraint('amount > 0', name='ck_cashback_tx_amount_positive'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid.uuid4
    )
    cashback_wallet_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("cashback_wallets.id", ondelete="RESTRICT"),
        nullable=False
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False
    )
    type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment=enum_comment(CashbackTransactionType)
    )
    amount: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    reference_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)
    reference_type: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment=enum_comment(CashbackReferenceType)
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Relationships
    wallet: Mapped["CashbackWallet"] = relationship("CashbackWallet", back_populates="transactions")

    def __repr__(self) -> str:
        return f"<CashbackTransaction(type='{self.type}', amount={self.amount})>"
