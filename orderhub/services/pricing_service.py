"""Pricing & Promotion Resolver for order drafts.

Computes a quote for a candidate order without persisting anything:
- Per-item totals and order subtotal
- Adjustment sources evaluated in order (supplier-state condition,
  payment condition, supplier campaigns)
- Cashback from eligible campaigns, distributed across items
- Flat shipping fee when a shipping address is given

Source of Truth:
- RuleCatalog: campaigns, payment conditions, supplier-state conditions
- Settings: shipping fee and which adjustment sources are enabled

A quote reflects catalog state at calculation time. Campaigns can start
or stop between calls, so clients should not reuse a quote beyond
QUOTE_CACHE_TTL_SECONDS.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence
import uuid
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderhub.config import settings
from orderhub.core.clock import utcnow
from orderhub.core.exceptions import InvalidRequestError, StorageError
from orderhub.models.campaign import Campaign, CampaignScope, CampaignType
from orderhub.models.cashback import CashbackReferenceType
from orderhub.db_types import ZERO
from orderhub.schemas.base import round_money
from orderhub.schemas.quote import (
    AdjustmentDetails,
    CalculatedItem,
    CampaignAdjustment,
    CashbackContribution,
    PaymentConditionAdjustment,
    QuoteRequest,
    QuoteResult,
    SupplierStateConditionAdjustment,
)
from orderhub.services.rule_catalog import RuleCatalog, SqlRuleCatalog

logger = logging.getLogger(__name__)


@dataclass
class QuoteContext:
    """Mutable state shared by the adjustment sources of one quote."""
    request: QuoteRequest
    items: List[CalculatedItem]
    at: datetime
    subtotal: Decimal = ZERO
    details: AdjustmentDetails = field(default_factory=AdjustmentDetails)
    contributions: List[CashbackContribution] = field(default_factory=list)
    applied_supplier_state_condition_id: Optional[uuid.UUID] = None
    _product_categories: Optional[Dict[uuid.UUID, Optional[uuid.UUID]]] = None

    def __post_init__(self):
        self.recompute_subtotal()

    @property
    def total_quantity(self) -> int:
        return sum(item.quantity for item in self.items)

    @property
    def product_ids(self) -> List[uuid.UUID]:
        return [item.product_id for item in self.items]

    def recompute_subtotal(self) -> None:
        self.subtotal = sum((item.total_price for item in self.items), ZERO)

    def add_cashback(
        self,
        reference_id: uuid.UUID,
        reference_type: CashbackReferenceType,
        percent: Decimal,
        description: str,
    ) -> Decimal:
        """Record subtotal x percent / 100 as a cashback contribution."""
        amount = round_money(self.subtotal * Decimal(percent) / Decimal("100"))
        if amount > ZERO:
            self.contributions.append(CashbackContribution(
                reference_id=reference_id,
                reference_type=reference_type,
                amount=amount,
                description=description,
            ))
        return amount

    async def product_categories(self, catalog: RuleCatalog) -> Dict[uuid.UUID, Optional[uuid.UUID]]:
        if self._product_categories is None:
            self._product_categories = await catalog.get_product_categories(self.product_ids)
        return self._product_categories


class AdjustmentSource(ABC):
    """One rule source consulted while building a quote."""

    name: str = "adjustment"

    @abstractmethod
    async def apply(self, ctx: QuoteContext, catalog: RuleCatalog) -> None:
        ...


class SupplierStateConditionSource(AdjustmentSource):
    """
    Region override for the store's state.

    Applies the condition's signed per-unit price delta, then its cashback
    percentage on the adjusted subtotal. Runs before campaigns so that
    campaign floors see adjusted prices.
    """

    name = "supplier_state_condition"

    async def apply(self, ctx: QuoteContext, catalog: RuleCatalog) -> None:
        state = ctx.request.store_state
        if not state:
            return

        condition = await catalog.get_supplier_state_condition(
            ctx.request.supplier_org_id, state, at=ctx.at
        )
        if not condition or not condition.is_current(ctx.at):
            return

        delta = Decimal(condition.unit_price_adjustment or ZERO)
        if delta != ZERO:
            for item in ctx.items:
                adjusted = round_money(item.unit_price + delta)
                if adjusted <= ZERO:
                    raise InvalidRequestError(
                        f"Adjusted unit price for product {item.product_id} must be positive",
                        {"product_id": str(item.product_id), "unit_price_adjustment": str(delta)},
                    )
                item.unit_price_adjusted = adjusted
                item.total_price = round_money(adjusted * item.quantity)
            ctx.recompute_subtotal()

        ctx.applied_supplier_state_condition_id = condition.id
        cashback_percent = Decimal(condition.cashback_percent or ZERO)
        ctx.details.supplier_state_condition = SupplierStateConditionAdjustment(
            id=condition.id,
            state=condition.state,
            unit_price_adjustment=delta,
            cashback_percent=cashback_percent,
        )

        if cashback_percent > ZERO:
            ctx.add_cashback(
                condition.id,
                CashbackReferenceType.SUPPLIER_STATE_CONDITION,
                cashback_percent,
                f"Cashback earned from supplier condition for state {condition.state}",
            )


class PaymentConditionSource(AdjustmentSource):
    """Attach the chosen payment condition as metadata. Unknown ids are ignored."""

    name = "payment_condition"

    async def apply(self, ctx: QuoteContext, catalog: RuleCatalog) -> None:
        if not ctx.request.payment_condition_id:
            return

        condition = await catalog.get_payment_condition(ctx.request.payment_condition_id)
        if not condition:
            logger.info(f"Payment condition {ctx.request.payment_condition_id} not found, ignoring")
            return

        ctx.details.payment_condition = PaymentConditionAdjustment(
            id=condition.id,
            name=condition.name or "Payment condition",
            payment_method=condition.payment_method,
        )


class CampaignSource(AdjustmentSource):
    """
    Active campaigns of the supplier.

    Eligibility short-circuits in this order: minimum total, minimum
    quantity, product scope, category scope, campaign window. Eligible
    CASHBACK campaigns each add subtotal x percent; GIFT campaigns are
    listed with no cashback.
    """

    name = "campaigns"

    def __init__(self, validate_category: bool = True):
        self.validate_category = validate_category

    async def apply(self, ctx: QuoteContext, catalog: RuleCatalog) -> None:
        campaigns = await catalog.find_active_campaigns(ctx.request.supplier_org_id, at=ctx.at)

        for campaign in campaigns:
            if not await self.campaign_applies(campaign, ctx, catalog):
                continue

            cashback_amount = ZERO
            if campaign.type == CampaignType.CASHBACK.value and campaign.cashback_percent:
                cashback_amount = ctx.add_cashback(
                    campaign.id,
                    CashbackReferenceType.CAMPAIGN,
                    campaign.cashback_percent,
                    f'Cashback earned from campaign "{campaign.name}"',
                )

            ctx.details.campaigns.append(CampaignAdjustment(
                id=campaign.id,
                name=campaign.name,
                type=CampaignType(campaign.type),
                scope=CampaignScope(campaign.scope),
                cashback_percent=campaign.cashback_percent,
                gift_product_id=campaign.gift_product_id,
                cashback_amount=cashback_amount,
            ))

    async def campaign_applies(
        self,
        campaign: Campaign,
        ctx: QuoteContext,
        catalog: RuleCatalog,
    ) -> bool:
        if campaign.min_total is not None and ctx.subtotal < Decimal(campaign.min_total):
            return False

        if campaign.min_quantity is not None and ctx.total_quantity < campaign.min_quantity:
            return False

        if campaign.scope == CampaignScope.PRODUCT.value:
            targeted = set(campaign.product_ids)
            if not any(pid in targeted for pid in ctx.product_ids):
                return False

        if campaign.scope == CampaignScope.CATEGORY.value and self.validate_category:
            if campaign.category_id is None:
                return False
            categories = await ctx.product_categories(catalog)
            if not any(categories.get(pid) == campaign.category_id for pid in ctx.product_ids):
                return False

        return campaign.is_active_at(ctx.at)


def default_adjustment_sources() -> List[AdjustmentSource]:
    """Sources enabled by configuration, in evaluation order."""
    sources: List[AdjustmentSource] = []
    if settings.APPLY_SUPPLIER_STATE_CONDITIONS:
        sources.append(SupplierStateConditionSource())
    sources.append(PaymentConditionSource())
    sources.append(CampaignSource(validate_category=settings.VALIDATE_CAMPAIGN_CATEGORY))
    return sources


def distribute_cashback(items: List[CalculatedItem], subtotal: Decimal, total_cashback: Decimal) -> None:
    """
    Split order cashback across items in proportion to their totals.

    Shares are rounded half-up to cents; the rounding remainder goes to the
    item with the largest share (the last one on ties), so the shares always
    add up to total_cashback exactly.
    """
    if total_cashback <= ZERO or subtotal <= ZERO or not items:
        for item in items:
            item.applied_cashback_amount = ZERO
        return

    shares = [round_money(item.total_price * total_cashback / subtotal) for item in items]
    remainder = total_cashback - sum(shares, ZERO)
    if remainder != ZERO:
        target = max(range(len(shares)), key=lambda i: (shares[i], i))
        shares[target] = shares[target] + remainder

    for item, share in zip(items, shares):
        item.applied_cashback_amount = share


class PricingService:
    """
    Service for pricing order drafts.

    Pricing Flow:
    1. Item totals at the client's unit prices
    2. Adjustment sources (see default_adjustment_sources)
    3. Cashback distribution across items
    4. Shipping fee and totals

    Example:
    - 2 items at 100.00, shipping address given
    - One 10% CASHBACK campaign, no floors
    - subtotal 200.00, shipping 25.00, total 225.00
    - cashback 20.00, 10.00 per item
    """

    def __init__(
        self,
        db: Optional[AsyncSession] = None,
        catalog: Optional[RuleCatalog] = None,
        sources: Optional[Sequence[AdjustmentSource]] = None,
    ):
        if catalog is None:
            if db is None:
                raise ValueError("PricingService needs a database session or a rule catalog")
            catalog = SqlRuleCatalog(db)
        self.db = db
        self.catalog = catalog
        self.sources = list(sources) if sources is not None else default_adjustment_sources()

    @staticmethod
    def validate_request(data: QuoteRequest) -> None:
        if not data.items:
            raise InvalidRequestError("Order must contain at least one item")

        for index, item in enumerate(data.items):
            if item.quantity is None or item.quantity < 1:
                raise InvalidRequestError(
                    "Item quantity must be at least 1",
                    {"item_index": index, "product_id": str(item.product_id)},
                )
            if item.unit_price is None or Decimal(item.unit_price) <= ZERO:
                raise InvalidRequestError(
                    "Item unit price must be greater than zero",
                    {"item_index": index, "product_id": str(item.product_id)},
                )

    async def quote(self, data: QuoteRequest, at: Optional[datetime] = None) -> QuoteResult:
        """
        Price an order draft.

        Args:
            data: Store, supplier, optional shipping address / payment
                condition / store state, and the priced items
            at: Evaluation instant for campaign windows (defaults to now)

        Returns:
            QuoteResult with totals, per-item breakdown and the rules applied

        Raises:
            InvalidRequestError: empty item list or non-positive quantity/price
            StorageError: the rule catalog could not be read
        """
        self.validate_request(data)
        now = at or utcnow()

        items = []
        for item in data.items:
            unit_price = round_money(item.unit_price)
            items.append(CalculatedItem(
                product_id=item.product_id,
                product_name_snapshot=item.product_name_snapshot,
                quantity=item.quantity,
                unit_price=unit_price,
                unit_price_adjusted=unit_price,
                total_price=round_money(unit_price * item.quantity),
            ))

        ctx = QuoteContext(request=data, items=items, at=now)

        try:
            for source in self.sources:
                await source.apply(ctx, self.catalog)
        except SQLAlchemyError as e:
            logger.error(f"Database error while pricing order for store {data.store_org_id}: {e}")
            raise StorageError("Order calculation failed: rule catalog unavailable")

        subtotal = round_money(ctx.subtotal)
        total_cashback = sum((c.amount for c in ctx.contributions), ZERO)
        distribute_cashback(ctx.items, subtotal, total_cashback)

        shipping_cost = round_money(settings.SHIPPING_FLAT_FEE) if data.shipping_address_id else ZERO
        adjustments = ZERO
        total_amount = round_money(subtotal + shipping_cost + adjustments)

        logger.info(
            f"Quote for store {data.store_org_id} / supplier {data.supplier_org_id}: "
            f"subtotal={subtotal}, total={total_amount}, cashback={total_cashback}, "
            f"campaigns={len(ctx.details.campaigns)}"
        )

        return QuoteResult(
            subtotal_amount=subtotal,
            shipping_cost=shipping_cost,
            adjustments=adjustments,
            total_amount=total_amount,
            total_cashback=round_money(total_cashback),
            applied_supplier_state_condition_id=ctx.applied_supplier_state_condition_id,
            adjustment_details=ctx.details,
            calculated_items=ctx.items,
            cashback_contributions=ctx.contributions,
            calculated_at=now,
        )
