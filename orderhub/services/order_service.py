from typing import Dict, List, Optional, Tuple
from decimal import Decimal
import uuid
import logging

from sqlalchemy import select, update, func, and_
from sqlalchemy.orm import selectinload
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from orderhub.core.clock import utcnow
from orderhub.core.enum_utils import to_enum
from orderhub.core.exceptions import (
    InvalidRequestError,
    InvalidTransitionError,
    NotFoundError,
    OrderHubError,
    PermissionDeniedError,
    StorageError,
)
from orderhub.models.order import (
    Order,
    OrderItem,
    OrderStatus,
    OrderStatusHistory,
    STORE_CANCELLABLE_STATUSES,
    can_transition,
)
from orderhub.schemas.base import round_money
from orderhub.schemas.order import OrderCreate, OrderFilters, OrganizationType, StatusActor
from orderhub.schemas.quote import QuoteItemInput, QuoteRequest, QuoteResult
from orderhub.services.cashback_service import CashbackService
from orderhub.services.pricing_service import PricingService
from orderhub.services.rule_catalog import RuleCatalog, SqlRuleCatalog

logger = logging.getLogger(__name__)


class OrderService:
    """
    Order lifecycle: creation, status transitions and reads.

    Every write is one transaction. create_order persists the order, its
    items, the first history row and all ledger postings together; a
    failure in any part leaves nothing behind.
    """

    def __init__(
        self,
        db: AsyncSession,
        catalog: Optional[RuleCatalog] = None,
        pricing: Optional[PricingService] = None,
        ledger: Optional[CashbackService] = None,
    ):
        self.db = db
        self.catalog = catalog or SqlRuleCatalog(db)
        self.pricing = pricing or PricingService(db, catalog=self.catalog)
        self.ledger = ledger or CashbackService(db)

    # ==================== READS ====================

    async def get_order(self, order_id: uuid.UUID) -> Optional[Order]:
        """Get order with items and status history."""
        stmt = (
            select(Order)
            .options(
                selectinload(Order.items),
                selectinload(Order.status_history),
            )
            .where(Order.id == order_id)
            .execution_options(populate_existing=True)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_orders(self, filters: Optional[OrderFilters] = None) -> Tuple[List[Order], int]:
        """Get paginated orders, newest first."""
        filters = filters or OrderFilters()

        conditions = []

        if filters.store_org_id:
            conditions.append(Order.store_org_id == filters.store_org_id)

        if filters.supplier_org_id:
            conditions.append(Order.supplier_org_id == filters.supplier_org_id)

        if filters.status:
            conditions.append(Order.status == filters.status.value)

        if filters.placed_from:
            conditions.append(Order.placed_at >= filters.placed_from)

        if filters.placed_to:
            conditions.append(Order.placed_at <= filters.placed_to)

        if filters.created_by:
            conditions.append(Order.created_by == filters.created_by)

        # Count
        count_stmt = select(func.count(Order.id))
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
        total = (await self.db.execute(count_stmt)).scalar()

        stmt = select(Order).options(selectinload(Order.items))
        if conditions:
            stmt = stmt.where(and_(*conditions))

        stmt = (
            stmt.order_by(Order.created_at.desc(), Order.id.desc())
            .offset(filters.skip)
            .limit(filters.limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().unique().all()), total

    async def get_status_history(self, order_id: uuid.UUID) -> List[OrderStatusHistory]:
        """Status changes of an order, oldest first."""
        exists = (await self.db.execute(select(Order.id).where(Order.id == order_id))).scalar_one_or_none()
        if exists is None:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})

        stmt = (
            select(OrderStatusHistory)
            .where(OrderStatusHistory.order_id == order_id)
            .order_by(OrderStatusHistory.created_at.asc(), OrderStatusHistory.id.asc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ==================== CREATE ====================

    async def _build_quote_items(self, data: OrderCreate) -> List[QuoteItemInput]:
        """Resolve ordered products and price them at their catalog base price."""
        if not data.items:
            raise InvalidRequestError("Order must contain at least one item")

        for index, item in enumerate(data.items):
            if item.quantity is None or item.quantity < 1:
                raise InvalidRequestError(
                    "Item quantity must be at least 1",
                    {"item_index": index, "product_id": str(item.product_id)},
                )

        products = await self.catalog.get_products(item.product_id for item in data.items)

        requested: Dict[uuid.UUID, int] = {}
        for item in data.items:
            requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

        quote_items = []
        for item in data.items:
            product = products.get(item.product_id)
            if not product:
                raise NotFoundError(
                    f"Product {item.product_id} not found",
                    {"product_id": str(item.product_id)},
                )

            if not product.active:
                raise InvalidRequestError(
                    f"Product '{product.name}' is not available",
                    {"product_id": str(product.id)},
                )

            if product.supplier_org_id != data.supplier_org_id:
                raise InvalidRequestError(
                    f"Product '{product.name}' does not belong to this supplier",
                    {"product_id": str(product.id), "supplier_org_id": str(data.supplier_org_id)},
                )

            if product.available_quantity is not None and requested[product.id] > product.available_quantity:
                raise InvalidRequestError(
                    f"Insufficient stock for '{product.name}': "
                    f"available {product.available_quantity}, requested {requested[product.id]}",
                    {"product_id": str(product.id), "available_quantity": product.available_quantity},
                )

            if product.base_price is None or product.base_price <= 0:
                raise InvalidRequestError(
                    f"Product '{product.name}' has no valid price",
                    {"product_id": str(product.id)},
                )

            quote_items.append(QuoteItemInput(
                product_id=product.id,
                unit_price=round_money(product.base_price),
                quantity=item.quantity,
                product_name_snapshot=product.name,
            ))

        return quote_items

    async def create_order(
        self,
        data: OrderCreate,
        created_by: Optional[uuid.UUID] = None
    ) -> Order:
        """
        Create a PLACED order from a store's cart.

        Raises:
            InvalidRequestError: no items, unavailable product, redeemed
                cashback above the order total
            NotFoundError: unknown product
            InsufficientBalanceError: cashback_used above the store's balance
            StorageError: the unit was rolled back
        """
        try:
            quote_items = await self._build_quote_items(data)

            quote: QuoteResult = await self.pricing.quote(QuoteRequest(
                store_org_id=data.store_org_id,
                supplier_org_id=data.supplier_org_id,
                shipping_address_id=data.shipping_address_id,
                payment_condition_id=data.payment_condition_id,
                store_state=data.store_state,
                items=quote_items,
            ))

            cashback_used = round_money(data.cashback_used or Decimal("0"))
            if cashback_used > quote.total_amount:
                raise InvalidRequestError(
                    "Cashback used cannot exceed the order total",
                    {"cashback_used": str(cashback_used), "total_amount": str(quote.total_amount)},
                )

            order = Order(
                store_org_id=data.store_org_id,
                supplier_org_id=data.supplier_org_id,
                status=OrderStatus.PLACED.value,
                placed_at=utcnow(),
                shipping_address_id=data.shipping_address_id,
                subtotal_amount=quote.subtotal_amount,
                shipping_cost=quote.shipping_cost,
                adjustments=quote.adjustments,
                total_amount=quote.total_amount,
                total_cashback=quote.total_cashback,
                cashback_used=cashback_used,
                applied_supplier_state_condition_id=quote.applied_supplier_state_condition_id,
                payment_condition_id=(
                    quote.adjustment_details.payment_condition.id
                    if quote.adjustment_details.payment_condition else None
                ),
                created_by=created_by,
            )
            self.db.add(order)
            await self.db.flush()

            for position, item in enumerate(quote.calculated_items):
                self.db.add(OrderItem(
                    order_id=order.id,
                    product_id=item.product_id,
                    position=position,
                    product_name_snapshot=item.product_name_snapshot,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    unit_price_adjusted=item.unit_price_adjusted,
                    total_price=item.total_price,
                    applied_cashback_amount=item.applied_cashback_amount,
                ))

            # Create initial status history - use string value for VARCHAR column
            self.db.add(OrderStatusHistory(
                order_id=order.id,
                previous_status=None,
                new_status=OrderStatus.PLACED.value,
                changed_by=created_by,
                note="order created",
            ))
            await self.db.flush()

            if cashback_used > 0:
                await self.ledger.post_used(
                    data.store_org_id,
                    order.id,
                    cashback_used,
                    description=f"Cashback redeemed on order {order.id}",
                )

            for contribution in quote.cashback_contributions:
                await self.ledger.post_earned(
                    data.store_org_id,
                    order.id,
                    contribution.amount,
                    reference_id=contribution.reference_id,
                    reference_type=contribution.reference_type,
                    description=contribution.description,
                )

            await self.db.commit()

        except OrderHubError:
            await self.db.rollback()
            raise
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(f"Database integrity error creating order: {e}")
            raise StorageError("Order creation failed: invalid data reference")
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error creating order: {e}")
            raise StorageError("Order creation failed: database error")

        logger.info(
            f"Order {order.id} placed by store {data.store_org_id} with supplier {data.supplier_org_id}: "
            f"total={quote.total_amount}, cashback earned={quote.total_cashback}, used={cashback_used}"
        )
        return await self.get_order(order.id)

    # ==================== STATUS ====================

    @staticmethod
    def check_actor(
        order: Order,
        current: OrderStatus,
        target: OrderStatus,
        actor: Optional[StatusActor],
    ) -> None:
        """Raise PermissionDeniedError if the acting organization may not make this change."""
        if actor is None:
            return

        if actor.organization_type == OrganizationType.STORE:
            if order.store_org_id != actor.organization_id:
                raise PermissionDeniedError("Order belongs to another store")
            if target != OrderStatus.CANCELLED:
                raise PermissionDeniedError("Stores can only cancel orders")
            if current not in STORE_CANCELLABLE_STATUSES:
                raise PermissionDeniedError(
                    f"Orders in status {current.value} can no longer be cancelled by the store",
                    {"current_status": current.value},
                )
            return

        if actor.organization_type == OrganizationType.SUPPLIER:
            if order.supplier_org_id != actor.organization_id:
                raise PermissionDeniedError("Order belongs to another supplier")
            return

        raise PermissionDeniedError("Unknown organization type")

    async def update_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        changed_by: Optional[uuid.UUID] = None,
        note: Optional[str] = None,
        actor: Optional[StatusActor] = None,
    ) -> Order:
        """
        Move an order along its lifecycle and record the change.

        The status column is only updated while it still holds the status
        that was validated, so of two concurrent changes from the same
        status exactly one wins and the other gets InvalidTransitionError.
        """
        stmt = select(Order).where(Order.id == order_id).execution_options(populate_existing=True)
        order = (await self.db.execute(stmt)).scalar_one_or_none()
        if not order:
            raise NotFoundError(f"Order {order_id} not found", {"order_id": str(order_id)})

        current = to_enum(order.status, OrderStatus)
        target = to_enum(new_status, OrderStatus)
        if target is None:
            raise InvalidRequestError(f"Unknown order status: {new_status}")

        if order.is_terminal:
            raise InvalidTransitionError(
                f"Order is already {current.value}; no further status changes are allowed",
                {"current_status": current.value, "requested_status": target.value},
            )

        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"Cannot change order status from {current.value} to {target.value}",
                {"current_status": current.value, "requested_status": target.value},
            )

        self.check_actor(order, current, target, actor)

        try:
            result = await self.db.execute(
                update(Order)
                .where(and_(Order.id == order_id, Order.status == current.value))
                .values(status=target.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise InvalidTransitionError(
                    f"Order {order_id} is no longer in status {current.value}",
                    {"expected_status": current.value, "requested_status": target.value},
                )

            self.db.add(OrderStatusHistory(
                order_id=order_id,
                previous_status=current.value,
                new_status=target.value,
                changed_by=changed_by,
                note=note,
            ))
            await self.db.commit()

        except OrderHubError:
            await self.db.rollback()
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Database error updating status of order {order_id}: {e}")
            raise StorageError("Order status update failed: database error")

        logger.info(f"Order {order_id} status {current.value} -> {target.value}")
        return await self.get_order(order_id)
