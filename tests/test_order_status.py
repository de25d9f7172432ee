import asyncio
import uuid

import pytest

from orderhub.core.exceptions import InvalidTransitionError, NotFoundError, PermissionDeniedError
from orderhub.models.order import (
    ORDER_STATUS_TRANSITIONS,
    TERMINAL_STATUSES,
    OrderStatus,
    can_transition,
)
from orderhub.schemas.order import OrderCreate, OrderItemCreate, OrganizationType, StatusActor
from orderhub.services.order_service import OrderService


@pytest.fixture
async def placed_order(db, seed_product, store_id, supplier_id):
    product = await seed_product(base_price="15.00")
    return await OrderService(db).create_order(OrderCreate(
        store_org_id=store_id,
        supplier_org_id=supplier_id,
        items=[OrderItemCreate(product_id=product.id, quantity=2)],
    ))


def test_terminal_statuses_have_no_exits():
    for status in TERMINAL_STATUSES:
        assert ORDER_STATUS_TRANSITIONS[status] == frozenset()
        for target in OrderStatus:
            assert not can_transition(status, target)


@pytest.mark.parametrize(
    "current, target, allowed",
    [
        (OrderStatus.PLACED, OrderStatus.CONFIRMED, True),
        (OrderStatus.CONFIRMED, OrderStatus.SHIPPED, True),
        (OrderStatus.CONFIRMED, OrderStatus.SEPARATED, True),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED, True),
        (OrderStatus.SHIPPED, OrderStatus.REJECTED, True),
        (OrderStatus.PENDING, OrderStatus.CANCELLED, True),
        (OrderStatus.PLACED, OrderStatus.DELIVERED, False),
        (OrderStatus.PLACED, OrderStatus.PLACED, False),
        (OrderStatus.SHIPPED, OrderStatus.CONFIRMED, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_every_non_terminal_status_can_be_cancelled_or_rejected():
    for status in OrderStatus:
        if status in TERMINAL_STATUSES:
            continue
        assert can_transition(status, OrderStatus.CANCELLED) or can_transition(status, OrderStatus.REJECTED)


async def test_happy_path_records_history(db, placed_order):
    service = OrderService(db)
    user_id = uuid.uuid4()

    for target in (OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
        order = await service.update_status(placed_order.id, target, changed_by=user_id, note=f"to {target.value}")
        assert order.status == target.value

    history = await service.get_status_history(placed_order.id)
    assert [(h.previous_status, h.new_status) for h in history] == [
        (None, "PLACED"),
        ("PLACED", "CONFIRMED"),
        ("CONFIRMED", "SHIPPED"),
        ("SHIPPED", "DELIVERED"),
    ]
    assert history[-1].changed_by == user_id
    assert history[-1].note == "to DELIVERED"


async def test_cancelled_order_is_final(db, placed_order):
    service = OrderService(db)
    await service.update_status(placed_order.id, OrderStatus.CANCELLED)

    with pytest.raises(InvalidTransitionError):
        await service.update_status(placed_order.id, OrderStatus.CONFIRMED)

    history = await service.get_status_history(placed_order.id)
    assert len(history) == 2


async def test_illegal_edge_leaves_order_untouched(db, placed_order):
    service = OrderService(db)

    with pytest.raises(InvalidTransitionError):
        await service.update_status(placed_order.id, OrderStatus.DELIVERED)

    order = await service.get_order(placed_order.id)
    assert order.status == OrderStatus.PLACED.value
    assert len(order.status_history) == 1


async def test_unknown_order(db):
    service = OrderService(db)

    with pytest.raises(NotFoundError):
        await service.update_status(uuid.uuid4(), OrderStatus.CONFIRMED)
    with pytest.raises(NotFoundError):
        await service.get_status_history(uuid.uuid4())


async def test_store_can_cancel_own_order(db, placed_order, store_id):
    actor = StatusActor(organization_id=store_id, organization_type=OrganizationType.STORE)

    order = await OrderService(db).update_status(placed_order.id, OrderStatus.CANCELLED, actor=actor)

    assert order.status == OrderStatus.CANCELLED.value


async def test_store_cannot_confirm(db, placed_order, store_id):
    actor = StatusActor(organization_id=store_id, organization_type=OrganizationType.STORE)

    with pytest.raises(PermissionDeniedError):
        await OrderService(db).update_status(placed_order.id, OrderStatus.CONFIRMED, actor=actor)


async def test_store_cannot_cancel_after_shipping(db, placed_order, store_id):
    service = OrderService(db)
    await service.update_status(placed_order.id, OrderStatus.CONFIRMED)
    await service.update_status(placed_order.id, OrderStatus.SHIPPED)
    actor = StatusActor(organization_id=store_id, organization_type=OrganizationType.STORE)

    with pytest.raises(PermissionDeniedError):
        await service.update_status(placed_order.id, OrderStatus.CANCELLED, actor=actor)


async def test_store_on_cancelled_order_gets_transition_error(db, placed_order, store_id):
    service = OrderService(db)
    await service.update_status(placed_order.id, OrderStatus.CANCELLED)
    actor = StatusActor(organization_id=store_id, organization_type=OrganizationType.STORE)

    with pytest.raises(InvalidTransitionError):
        await service.update_status(placed_order.id, OrderStatus.CANCELLED, actor=actor)
    with pytest.raises(InvalidTransitionError):
        await service.update_status(placed_order.id, OrderStatus.CONFIRMED, actor=actor)


async def test_other_organizations_are_denied(db, placed_order):
    service = OrderService(db)

    with pytest.raises(PermissionDeniedError):
        await service.update_status(
            placed_order.id,
            OrderStatus.CANCELLED,
            actor=StatusActor(organization_id=uuid.uuid4(), organization_type=OrganizationType.STORE),
        )
    with pytest.raises(PermissionDeniedError):
        await service.update_status(
            placed_order.id,
            OrderStatus.CONFIRMED,
            actor=StatusActor(organization_id=uuid.uuid4(), organization_type=OrganizationType.SUPPLIER),
        )


async def test_supplier_moves_own_order(db, placed_order, supplier_id):
    actor = StatusActor(organization_id=supplier_id, organization_type=OrganizationType.SUPPLIER)

    order = await OrderService(db).update_status(placed_order.id, OrderStatus.CONFIRMED, actor=actor)

    assert order.status == OrderStatus.CONFIRMED.value


async def test_concurrent_transitions_have_one_winner(session_factory, placed_order):
    async def confirm():
        async with session_factory() as session:
            return await OrderService(session).update_status(placed_order.id, OrderStatus.CONFIRMED)

    results = await asyncio.gather(confirm(), confirm(), confirm(), return_exceptions=True)

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    assert len(winners) == 1
    assert all(isinstance(e, InvalidTransitionError) for e in losers)

    async with session_factory() as session:
        history = await OrderService(session).get_status_history(placed_order.id)
        assert [h.new_status for h in history] == ["PLACED", "CONFIRMED"]
