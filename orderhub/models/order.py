import uuid
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Dict, FrozenSet, Optional, List
from decimal import Decimal

from sqlalchemy import String, DateTime, ForeignKey, Integer, Text, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from orderhub.core.clock import utcnow
from orderhub.core.enum_utils import enum_comment
from orderhub.database import Base
from orderhub.db_types import UUIDType, MoneyType

if TYPE_CHECKING:
    from orderhub.models.product import Product
    from orderhub.models.payment_condition import PaymentCondition
    from orderhub.models.supplier_condition import SupplierStateCondition


class OrderStatus(str, Enum):
    """Order lifecycle status."""
    # Pre-confirmation
    DRAFT = "DRAFT"
    PENDING = "PENDING"

    # Submitted order (entry state for created orders)
    PLACED = "PLACED"

    # Supplier processing
    CONFIRMED = "CONFIRMED"
    SEPARATED = "SEPARATED"           # Picked and separated for dispatch
    SHIPPED = "SHIPPED"

    # Final states
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.REJECTED,
})

# Legal edges of the order lifecycle. Terminal states have no outgoing edges.
ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.DRAFT: frozenset({
        OrderStatus.PENDING, OrderStatus.PLACED, OrderStatus.CANCELLED,
    }),
    OrderStatus.PENDING: frozenset({
        OrderStatus.PLACED, OrderStatus.CANCELLED, OrderStatus.REJECTED,
    }),
    OrderStatus.PLACED: frozenset({
        OrderStatus.CONFIRMED, OrderStatus.CANCELLED, OrderStatus.REJECTED,
    }),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.SEPARATED, OrderStatus.SHIPPED,
        OrderStatus.CANCELLED, OrderStatus.REJECTED,
    }),
    OrderStatus.SEPARATED: frozenset({
        OrderStatus.SHIPPED, OrderStatus.CANCELLED, OrderStatus.REJECTED,
    }),
    OrderStatus.SHIPPED: frozenset({
        OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REJECTED,
    }),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.REJECTED: frozenset(),
}

# Statuses from which a store may still cancel its own order
STORE_CANCELLABLE_STATUSES: FrozenSet[OrderStatus] = frozenset({
    OrderStatus.PLACED,
    OrderStatus.CONFIRMED,
    OrderStatus.SEPARATED,
})


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Check whether current -> target is a legal lifecycle edge."""
    return target in ORDER_STATUS_TRANSITIONS.get(current, frozenset())


class Order(Base):
    """
    Purchase order placed by a store organization with a supplier.

    Monetary fields are frozen when the order is placed; afterwards only
    the status column changes, and every change is recorded in
    order_status_history.
    """
    __tablename__ = "orders"
    __table_args__ = (
        Index('ix_order_status_created', 'status', 'created_at'),
        Index('ix_order_store_created', 'store_org_id', 'created_at'),
        Index('ix_order_supplier_created', 'supplier_org_id', 'created_at'),
        CheckConstraint('subtotal_amount >= 0', name='ck_order_subtotal_non_negative'),
        CheckConstraint('shipping_cost >= 0', name='ck_order_shipping_non_negative'),
        CheckConstraint('total_cashback >= 0', name='ck_order_cashback_non_negative'),
        CheckConstraint('cashback_used >= 0', name='ck_order_cashback_used_non_negative'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )

    # Parties (organizations are owned by the organization service)
    store_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)
    supplier_org_id: Mapped[uuid.UUID] = mapped_column(UUIDType, nullable=False)

    # Status
    status: Mapped[str] = mapped_column(
        String(50),
        default=OrderStatus.PLACED.value,
        nullable=False,
        index=True,
        comment=enum_comment(OrderStatus)
    )
    placed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True
    )

    shipping_address_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True
    )

    # Pricing
    subtotal_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="Sum of item totals at adjusted unit prices"
    )
    shipping_cost: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    adjustments: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )
    total_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        nullable=False,
        comment="subtotal_amount + shipping_cost + adjustments"
    )

    # Cashback
    total_cashback: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Cashback granted by this order"
    )
    cashback_used: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False,
        comment="Cashback redeemed against this order"
    )

    # Rules that shaped the price
    applied_supplier_state_condition_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("supplier_state_conditions.id", ondelete="SET NULL"),
        nullable=True
    )
    payment_condition_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        ForeignKey("payment_conditions.id", ondelete="SET NULL"),
        nullable=True
    )

    # Tracking
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUIDType, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False,
        index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False
    )

    # Relationships
    items: Mapped[List["OrderItem"]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position"
    )
    status_history: Mapped[List["OrderStatusHistory"]] = relationship(
        "OrderStatusHistory",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at"
    )
    payment_condition: Mapped[Optional["PaymentCondition"]] = relationship("PaymentCondition")
    applied_supplier_state_condition: Mapped[Optional["SupplierStateCondition"]] = relationship(
        "SupplierStateCondition"
    )

    @property
    def item_count(self) -> int:
        """Get total number of units ordered."""
        return sum(item.quantity for item in self.items)

    @property
    def amount_due(self) -> Decimal:
        """Total still payable after redeemed cashback, never negative."""
        return max(Decimal("0.00"), self.total_amount - (self.cashback_used or Decimal("0.00")))

    @property
    def is_terminal(self) -> bool:
        return OrderStatus(self.status) in TERMINAL_STATUSES

    def __repr__(self) -> str:
        return f"<Order(id='{self.id}', status='{self.status}')>"


class OrderItem(Base):
    """Order line item with a point-in-time product snapshot."""
    __tablename__ = "order_items"
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='ck_order_item_quantity_positive'),
        CheckConstraint('unit_price > 0', name='ck_order_item_unit_price_positive'),
        CheckConstraint('unit_price_adjusted > 0', name='ck_order_item_adjusted_price_positive'),
        CheckConstraint('total_price > 0', name='ck_order_item_total_positive'),
        CheckConstraint('applied_cashback_amount >= 0', name='ck_order_item_cashback_non_negative'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("products.id", ondelete="RESTRICT"),
        nullable=False
    )

    # Line order within the order
    position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Product snapshot (stored for historical record, never re-read)
    product_name_snapshot: Mapped[str] = mapped_column(String(255), nullable=False)

    # Quantity & Pricing
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    unit_price_adjusted: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(MoneyType, nullable=False)
    applied_cashback_amount: Mapped[Decimal] = mapped_column(
        MoneyType,
        default=Decimal("0.00"),
        nullable=False
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="items")
    product: Mapped["Product"] = relationship("Product")

    def __repr__(self) -> str:
        return f"<OrderItem(product='{self.product_name_snapshot}', qty={self.quantity})>"


class OrderStatusHistory(Base):
    """Order status change history. Rows are inserted, never updated."""
    __tablename__ = "order_status_history"
    __table_args__ = (
        Index('ix_order_status_history_order_created', 'order_id', 'created_at'),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        primary_key=True,
        default=uuid.uuid4
    )
    order_id: Mapped[uuid.UUID] = mapped_column(
        UUIDType,
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False
    )
    previous_status: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="NULL only for the creation record"
    )
    new_status: Mapped[str] = mapped_column(
        String(50),
        nullable=False
    )
    changed_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUIDType,
        nullable=True,
        comment="User who made the change; NULL for system transitions"
    )
    note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        nullable=False
    )

    # Relationships
    order: Mapped["Order"] = relationship("Order", back_populates="status_history")

    def __repr__(self) -> str:
        return f"<OrderStatusHistory(from='{self.previous_status}', to='{self.new_status}')>"
