"""Read-only lookups over the rules that shape an order's price.

The pricing engine depends on the RuleCatalog interface, not on the
database, so it can be exercised against an in-memory catalog. Lookups
never raise for missing rows; an absent result means "no rule".
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Iterable, List, Optional
import uuid
import logging

from sqlalchemy import select, and_, or_
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from orderhub.core.clock import utcnow
from orderhub.models.campaign import Campaign
from orderhub.models.payment_condition import PaymentCondition
from orderhub.models.product import Product
from orderhub.models.supplier_condition import SupplierStateCondition

logger = logging.getLogger(__name__)


class RuleCatalog(ABC):
    """Capabilities the pricing engine and order service read from."""

    @abstractmethod
    async def find_active_campaigns(
        self,
        supplier_org_id: uuid.UUID,
        at: Optional[datetime] = None,
    ) -> List[Campaign]:
        """Campaigns of a supplier that are active and inside their window."""

    @abstractmethod
    async def get_payment_condition(
        self,
        payment_condition_id: uuid.UUID,
    ) -> Optional[PaymentCondition]:
        ...

    @abstractmethod
    async def get_supplier_state_condition(
        self,
        supplier_org_id: uuid.UUID,
        state: str,
        at: Optional[datetime] = None,
    ) -> Optional[SupplierStateCondition]:
        """The current condition for (supplier, state), if any."""

    @abstractmethod
    async def get_products(
        self,
        product_ids: Iterable[uuid.UUID],
    ) -> Dict[uuid.UUID, Product]:
        ...

    async def get_product_categories(
        self,
        product_ids: Iterable[uuid.UUID],
    ) -> Dict[uuid.UUID, Optional[uuid.UUID]]:
        """Map product id to category id for the products that exist."""
        products = await self.get_products(product_ids)
        return {pid: product.category_id for pid, product in products.items()}


class SqlRuleCatalog(RuleCatalog):
    """RuleCatalog backed by the reference tables."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_active_campaigns(
        self,
        supplier_org_id: uuid.UUID,
        at: Optional[datetime] = None,
    ) -> List[Campaign]:
        now = at or utcnow()

        stmt = (
            select(Campaign)
            .options(selectinload(Campaign.products))
            .where(
                and_(
                    Campaign.supplier_org_id == supplier_org_id,
                    Campaign.active == True,  # noqa: E712
                    or_(
                        Campaign.start_at.is_(None),
                        Campaign.start_at <= now
                    ),
                    or_(
                        Campaign.end_at.is_(None),
                        Campaign.end_at >= now
                    ),
                )
            )
            .order_by(Campaign.created_at.asc(), Campaign.id.asc())
        )

        result = await self.db.execute(stmt)
        campaigns = list(result.scalars().unique().all())
        logger.debug(f"Found {len(campaigns)} active campaigns for supplier {supplier_org_id}")
        return campaigns

    async def get_payment_condition(
        self,
        payment_condition_id: uuid.UUID,
    ) -> Optional[PaymentCondition]:
        stmt = select(PaymentCondition).where(PaymentCondition.id == payment_condition_id)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_supplier_state_condition(
        self,
        supplier_org_id: uuid.UUID,
        state: str,
        at: Optional[datetime] = None,
    ) -> Optional[SupplierStateCondition]:
        now = at or utcnow()

        stmt = select(SupplierStateCondition).where(
            and_(
                SupplierStateCondition.supplier_org_id == supplier_org_id,
                SupplierStateCondition.state == state.upper(),
                or_(
                    SupplierStateCondition.effective_from.is_(None),
                    SupplierStateCondition.effective_from <= now
                ),
                or_(
                    SupplierStateCondition.effective_to.is_(None),
                    SupplierStateCondition.effective_to >= now
                ),
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_products(
        self,
        product_ids: Iterable[uuid.UUID],
    ) -> Dict[uuid.UUID, Product]:
        ids = list(set(product_ids))
        if not ids:
            return {}

        stmt = select(Product).where(Product.id.in_(ids))
        result = await self.db.execute(stmt)
        return {product.id: product for product in result.scalars().all()}
