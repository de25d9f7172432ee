import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, DateTime, Integer, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.clock import utcnow, within_window
from orderhub.database import Base
from orderhub.db_types import UUIDType, MoneyType, PercentType


class SupplierStateCondition(Base):
    """
    Region-specific override for one supplier and one state code.

    At most one row exists per (supplier_org_id, state). A row is current
    while now lies inside its optional effective window.
    """
    __tablename__ = "supplier_state_conditions"
    __table_args__ = (
        UniqueConstraint('supplier_org_id', 'state', name='uq_supplier_state_condition'),
        CheckConstraint(
            'cashback_percent IS NULL OR (cashback_percent >= 0 AND cashback_percent <= 100)',
            name='ck_supplier_state_cashback_range'
        ),
        CheckConstraint(
            'payment_term_days IS NULL OR payment_term_days >= 0',
            name='ck_supplier_state_term_non_negative'
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    supplier_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    state: Mapped[str] = mapped_column(String(2), nullable=False, comment="2-letter region code")
    cashback_percent: Mapped[Optional[Decimal]] = mapped_column(PercentType, nullable=True)
    payment_term_days: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    unit_price_adjustment: Mapped[Optional[Decimal]] = mapped_column(
        MoneyType,
        nullable=True,
        comment="Signed per-unit price delta"
    )
    effective_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    effective_to: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    def is_current(self, at: Optional[datetime] = None) -> bool:
        return within_window(at or utcnow(), self.effective_from, self.effective_to)

    def __repr__(self) -> str:
        return f"<SupplierStateCondition(state='{self.state}', cashback={self.cashback_percent})>"
