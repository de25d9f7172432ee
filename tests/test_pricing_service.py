import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from orderhub.core.exceptions import InvalidRequestError
from orderhub.models.campaign import CampaignScope, CampaignType
from orderhub.models.cashback import CashbackReferenceType
from orderhub.schemas.quote import CalculatedItem, QuoteRequest
from orderhub.services.pricing_service import (
    CampaignSource,
    PaymentConditionSource,
    PricingService,
    SupplierStateConditionSource,
    default_adjustment_sources,
    distribute_cashback,
)
from tests.factories import (
    make_campaign,
    make_payment_condition,
    make_product,
    make_state_condition,
    quote_request,
)


A, B, C = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()


async def test_subtotal_shipping_and_total(pricing, store_id, supplier_id):
    request = quote_request(
        store_id, supplier_id,
        [(A, "100.00", 2), (B, "50.50", 1)],
        shipping_address_id=uuid.uuid4(),
    )

    result = await pricing.quote(request)

    assert result.subtotal_amount == Decimal("250.50")
    assert result.shipping_cost == Decimal("25.00")
    assert result.adjustments == Decimal("0.00")
    assert result.total_amount == Decimal("275.50")
    assert result.total_cashback == Decimal("0.00")
    assert [i.total_price for i in result.calculated_items] == [Decimal("200.00"), Decimal("50.50")]
    assert all(i.unit_price_adjusted == i.unit_price for i in result.calculated_items)


async def test_no_shipping_without_address(pricing, store_id, supplier_id):
    result = await pricing.quote(quote_request(store_id, supplier_id, [(A, "10.00", 1)]))

    assert result.shipping_cost == Decimal("0.00")
    assert result.total_amount == Decimal("10.00")


async def test_empty_items_rejected(pricing, store_id, supplier_id):
    request = QuoteRequest(store_org_id=store_id, supplier_org_id=supplier_id, items=[])

    with pytest.raises(InvalidRequestError):
        await pricing.quote(request)


@pytest.mark.parametrize(
    "price, quantity",
    [("10.00", 0), ("10.00", -2), ("0", 1), ("-5.00", 1)],
    ids=["zero-quantity", "negative-quantity", "zero-price", "negative-price"],
)
async def test_bad_item_rejected(pricing, store_id, supplier_id, price, quantity):
    request = quote_request(store_id, supplier_id, [(B, "20.00", 1), (A, price, quantity)])

    with pytest.raises(InvalidRequestError) as exc_info:
        await pricing.quote(request)

    assert exc_info.value.details["item_index"] == 1


async def test_min_total_floor(pricing, catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, min_total=Decimal("100.00")))

    below = await pricing.quote(quote_request(store_id, supplier_id, [(A, "99.99", 1)]))
    at_floor = await pricing.quote(quote_request(store_id, supplier_id, [(A, "100.00", 1)]))

    assert below.total_cashback == Decimal("0.00")
    assert below.adjustment_details.campaigns == []
    assert at_floor.total_cashback == Decimal("10.00")
    assert len(at_floor.adjustment_details.campaigns) == 1


async def test_min_quantity_floor(pricing, catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, min_quantity=3))

    too_few = await pricing.quote(quote_request(store_id, supplier_id, [(A, "10.00", 1), (B, "10.00", 1)]))
    enough = await pricing.quote(quote_request(store_id, supplier_id, [(A, "10.00", 2), (B, "10.00", 1)]))

    assert too_few.total_cashback == Decimal("0.00")
    assert enough.total_cashback == Decimal("3.00")


async def test_product_scope_needs_a_targeted_product(pricing, catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, scope=CampaignScope.PRODUCT, product_ids=[A, B]))

    other = await pricing.quote(quote_request(store_id, supplier_id, [(C, "100.00", 1)]))
    targeted = await pricing.quote(quote_request(store_id, supplier_id, [(A, "100.00", 1), (C, "100.00", 1)]))

    assert other.total_cashback == Decimal("0.00")
    # Cashback is computed on the full subtotal once the campaign applies
    assert targeted.total_cashback == Decimal("20.00")


async def test_category_scope_checks_ordered_products(pricing, catalog, store_id, supplier_id):
    drinks = uuid.uuid4()
    coffee = make_product(supplier_id, category_id=drinks)
    soap = make_product(supplier_id, category_id=uuid.uuid4())
    catalog.add(coffee, soap)
    catalog.add(make_campaign(supplier_id, scope=CampaignScope.CATEGORY, category_id=drinks))

    no_match = await pricing.quote(quote_request(store_id, supplier_id, [(soap.id, "50.00", 2)]))
    match = await pricing.quote(quote_request(store_id, supplier_id, [(coffee.id, "50.00", 2)]))

    assert no_match.total_cashback == Decimal("0.00")
    assert match.total_cashback == Decimal("10.00")


async def test_category_scope_unchecked_when_validation_disabled(catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, scope=CampaignScope.CATEGORY, category_id=uuid.uuid4()))
    service = PricingService(catalog=catalog, sources=[CampaignSource(validate_category=False)])

    result = await service.quote(quote_request(store_id, supplier_id, [(A, "50.00", 2)]))

    assert result.total_cashback == Decimal("10.00")


async def test_cashback_distributed_across_items(pricing, catalog, store_id, supplier_id):
    campaign = make_campaign(supplier_id, cashback_percent="10.00")
    catalog.add(campaign)

    result = await pricing.quote(quote_request(store_id, supplier_id, [(A, "100.00", 1), (B, "100.00", 1)]))

    assert result.total_cashback == Decimal("20.00")
    assert [i.applied_cashback_amount for i in result.calculated_items] == [Decimal("10.00"), Decimal("10.00")]
    assert len(result.cashback_contributions) == 1
    contribution = result.cashback_contributions[0]
    assert contribution.reference_id == campaign.id
    assert contribution.reference_type == CashbackReferenceType.CAMPAIGN
    assert contribution.amount == Decimal("20.00")


async def test_item_shares_always_sum_to_total(pricing, catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, cashback_percent="3.33"))

    result = await pricing.quote(
        quote_request(store_id, supplier_id, [(A, "10.00", 1), (B, "10.00", 1), (C, "10.00", 1)])
    )

    # 30.00 x 3.33% = 0.999 -> 1.00; shares round to 0.33 and the last tied share absorbs the cent
    assert result.total_cashback == Decimal("1.00")
    shares = [i.applied_cashback_amount for i in result.calculated_items]
    assert shares == [Decimal("0.33"), Decimal("0.33"), Decimal("0.34")]
    assert sum(shares) == result.total_cashback


def test_remainder_goes_to_largest_share():
    items = [
        CalculatedItem(product_id=pid, quantity=1, unit_price=price,
                       unit_price_adjusted=price, total_price=price)
        for pid, price in [(A, Decimal("20.00")), (B, Decimal("5.00")), (C, Decimal("5.00"))]
    ]

    distribute_cashback(items, Decimal("30.00"), Decimal("0.10"))

    # Rounded shares 0.07 + 0.02 + 0.02 overshoot by a cent; the largest share gives it back
    assert [i.applied_cashback_amount for i in items] == [Decimal("0.06"), Decimal("0.02"), Decimal("0.02")]


def test_no_cashback_leaves_items_at_zero():
    items = [
        CalculatedItem(product_id=A, quantity=1, unit_price=Decimal("20.00"),
                       unit_price_adjusted=Decimal("20.00"), total_price=Decimal("20.00")),
    ]

    distribute_cashback(items, Decimal("20.00"), Decimal("0.00"))

    assert items[0].applied_cashback_amount == Decimal("0.00")


async def test_campaigns_stack_and_gifts_add_nothing(pricing, catalog, store_id, supplier_id):
    catalog.add(
        make_campaign(supplier_id, name="Ten", cashback_percent="10.00"),
        make_campaign(supplier_id, name="Five", cashback_percent="5.00"),
        make_campaign(
            supplier_id,
            name="Free mug",
            type=CampaignType.GIFT,
            cashback_percent=None,
            gift_product_id=uuid.uuid4(),
        ),
    )

    result = await pricing.quote(quote_request(store_id, supplier_id, [(A, "100.00", 2)]))

    assert result.total_cashback == Decimal("30.00")
    assert len(result.cashback_contributions) == 2
    names = {c.name: c for c in result.adjustment_details.campaigns}
    assert set(names) == {"Ten", "Five", "Free mug"}
    assert names["Free mug"].cashback_amount == Decimal("0.00")
    assert names["Free mug"].type == CampaignType.GIFT


async def test_campaign_outside_window_ignored(pricing, catalog, store_id, supplier_id):
    now = datetime.now(timezone.utc)
    catalog.add(
        make_campaign(supplier_id, name="Ended", end_at=now - timedelta(days=1)),
        make_campaign(supplier_id, name="Future", start_at=now + timedelta(days=1)),
        make_campaign(supplier_id, name="Inactive", active=False),
        make_campaign(uuid.uuid4(), name="Other supplier"),
    )

    result = await pricing.quote(quote_request(store_id, supplier_id, [(A, "100.00", 1)]))

    assert result.total_cashback == Decimal("0.00")
    assert result.adjustment_details.campaigns == []


async def test_payment_condition_is_metadata_only(pricing, catalog, store_id, supplier_id):
    condition = make_payment_condition(supplier_id, name="Net 30", payment_method="PIX")
    catalog.add(condition)

    known = await pricing.quote(
        quote_request(store_id, supplier_id, [(A, "100.00", 1)], payment_condition_id=condition.id)
    )
    unknown = await pricing.quote(
        quote_request(store_id, supplier_id, [(A, "100.00", 1)], payment_condition_id=uuid.uuid4())
    )

    assert known.adjustment_details.payment_condition.id == condition.id
    assert known.adjustment_details.payment_condition.payment_method == "PIX"
    assert known.total_amount == Decimal("100.00")
    assert unknown.adjustment_details.payment_condition is None
    assert unknown.total_amount == Decimal("100.00")


async def test_supplier_state_condition_adjusts_prices(catalog, store_id, supplier_id):
    condition = make_state_condition(supplier_id, state="SP", cashback_percent="2.00", unit_price_adjustment="-5.00")
    catalog.add(condition)
    service = PricingService(
        catalog=catalog,
        sources=[SupplierStateConditionSource(), PaymentConditionSource(), CampaignSource()],
    )

    result = await service.quote(quote_request(store_id, supplier_id, [(A, "25.00", 4)], store_state="sp"))

    item = result.calculated_items[0]
    assert item.unit_price == Decimal("25.00")
    assert item.unit_price_adjusted == Decimal("20.00")
    assert result.subtotal_amount == Decimal("80.00")
    assert result.total_cashback == Decimal("1.60")
    assert result.applied_supplier_state_condition_id == condition.id
    assert result.cashback_contributions[0].reference_type == CashbackReferenceType.SUPPLIER_STATE_CONDITION


async def test_supplier_state_condition_cannot_zero_a_price(catalog, store_id, supplier_id):
    catalog.add(make_state_condition(supplier_id, state="RJ", unit_price_adjustment="-10.00"))
    service = PricingService(catalog=catalog, sources=[SupplierStateConditionSource()])

    with pytest.raises(InvalidRequestError):
        await service.quote(quote_request(store_id, supplier_id, [(A, "10.00", 1)], store_state="RJ"))


async def test_supplier_state_conditions_off_by_default(pricing, catalog, store_id, supplier_id):
    catalog.add(make_state_condition(supplier_id, state="SP", cashback_percent="2.00", unit_price_adjustment="-5.00"))

    result = await pricing.quote(quote_request(store_id, supplier_id, [(A, "25.00", 4)], store_state="SP"))

    assert not any(isinstance(s, SupplierStateConditionSource) for s in default_adjustment_sources())
    assert result.subtotal_amount == Decimal("100.00")
    assert result.applied_supplier_state_condition_id is None


async def test_totals_are_consistent(pricing, catalog, store_id, supplier_id):
    catalog.add(make_campaign(supplier_id, cashback_percent="7.50"))

    result = await pricing.quote(
        quote_request(
            store_id, supplier_id,
            [(A, "19.99", 3), (B, "4.35", 7), (C, "120.10", 1)],
            shipping_address_id=uuid.uuid4(),
        )
    )

    assert result.subtotal_amount == sum(i.total_price for i in result.calculated_items)
    assert result.total_amount == result.subtotal_amount + result.shipping_cost + result.adjustments
    assert sum(i.applied_cashback_amount for i in result.calculated_items) == result.total_cashback
    assert result.total_cashback == sum(c.amount for c in result.cashback_contributions)
