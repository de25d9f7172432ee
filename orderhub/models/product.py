import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column

from orderhub.core.clock import utcnow
from orderhub.database import Base
from orderhub.db_types import UUIDType, MoneyType


class Product(Base):
    """
    Supplier product as published by the catalog service.

    Read-only here: orders take their base price and a name snapshot from
    it, and CATEGORY campaigns match against its category.
    """
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    supplier_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False, index=True)
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    base_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    available_quantity: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
        comment="NULL when stock is not tracked"
    )
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<Product(name='{self.name}', price={self.base_price})>"
