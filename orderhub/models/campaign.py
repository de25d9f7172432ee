"""
Supplier Promotion Campaign Models.

This module contains models for:
- Cashback and gift campaigns run by a supplier
- The explicit product list of PRODUCT-scoped campaigns

Campaigns are maintained by the campaign CRUD service; the pricing
engine only reads them.
"""
import uuid
import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional, List

from sqlalchemy import (
    String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, Index
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderhub.core.clock import utcnow, within_window
from orderhub.core.enum_utils import enum_comment
from orderhub.database import Base
from orderhub.db_types import UUIDType, MoneyType, PercentType


class CampaignType(str, enum.Enum):
    """What an eligible campaign grants."""
    CASHBACK = "CASHBACK"
    GIFT = "GIFT"


class CampaignScope(str, enum.Enum):
    """Which ordered products make a campaign eligible."""
    ALL = "ALL"
    CATEGORY = "CATEGORY"
    PRODUCT = "PRODUCT"


class Campaign(Base):
    """Time-bounded promotional rule of a supplier."""
    __tablename__ = "campaigns"
    __table_args__ = (
        Index('ix_campaign_supplier_active', 'supplier_org_id', 'active'),
        CheckConstraint(
            'end_at IS NULL OR start_at IS NULL OR end_at > start_at',
            name='ck_campaign_window_order'
        ),
        CheckConstraint(
            "type <> 'CASHBACK' OR (cashback_percent IS NOT NULL "
            "AND cashback_percent > 0 AND cashback_percent <= 100)",
            name='ck_campaign_cashback_percent'
        ),
        CheckConstraint(
            "type <> 'GIFT' OR gift_product_id IS NOT NULL",
            name='ck_campaign_gift_product'
        ),
        CheckConstraint(
            "scope <> 'CATEGORY' OR category_id IS NOT NULL",
            name='ck_campaign_category'
        ),
        CheckConstraint('min_total IS NULL OR min_total >= 0', name='ck_campaign_min_total'),
        CheckConstraint('min_quantity IS NULL OR min_quantity >= 0', name='ck_campaign_min_quantity'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType, primary_key=True, default=uuid.uuid4
    )
    supplier_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    type: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment=enum_comment(CampaignType)
    )
    scope: Mapped[str] = mapped_column(
        String(50),
        default=CampaignScope.ALL.value,
        nullable=False,
        comment=enum_comment(CampaignScope)
    )

    # Eligibility floors
    min_total: Mapped[Optional[Decimal]] = mapped_column(MoneyType, nullable=True)
    min_quantity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Benefit
    cashback_percent: Mapped[Optional[Decimal]] = mapped_column(PercentType, nullable=True)
    gift_product_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="SET NULL"),
        nullable=True
    )

    # Scope targets
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Window
    start_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Relationships
    products: Mapped[List["CampaignProduct"]] = relationship(
        "CampaignProduct",
        back_populates="campaign",
        cascade="all, delete-orphan"
    )

    @property
    def product_ids(self) -> List[uuid.UUID]:
        return [p.product_id for p in self.products]

    def is_active_at(self, at: Optional[datetime] = None) -> bool:
        """Active flag set and `at` inside [start_at, end_at]."""
        return bool(self.active) and within_window(at or utcnow(), self.start_at, self.end_at)

    def __repr__(self) -> str:
        return f"<Campaign(name='{self.name}', type='{self.type}', scope='{self.scope}')>"


class CampaignProduct(Base):
    """Product targeted by a PRODUCT-scoped campaign."""
    __tablename__ = "campaign_products"

    campaign_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("campaigns.id", ondelete="CASCADE"),
        primary_key=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="CASCADE"),
        primary_key=True
    )

    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="products")
