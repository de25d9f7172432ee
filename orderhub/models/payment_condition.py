import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer, Text, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.clock import utcnow
from orderhub.database import Base
from orderhub.db_types import UUIDType


class PaymentCondition(Base):
    """Supplier payment terms. Informational only; never changes totals."""
    __tablename__ = "payment_conditions"
    __table_args__ = (
        CheckConstraint('payment_term_days >= 0', name='ck_payment_condition_term_non_negative'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    supplier_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    payment_term_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    payment_method: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="BOLETO, PIX, CREDIT_CARD, BANK_TRANSFER, ..."
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<PaymentCondition(name='{self.name}', method='{self.payment_method}')>"
