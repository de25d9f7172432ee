"""Shared pytest fixtures for the order pricing and cashback tests."""
import os
import tempfile

# Settings are read at import time; point them at a scratch database first.
os.environ.setdefault(
    "DATABASE_URL",
    "sqlite+aiosqlite:///" + os.path.join(tempfile.gettempdir(), "orderhub-tests.db"),
)

import uuid  # noqa: E402
from decimal import Decimal  # noqa: E402

import pytest  # noqa: E402

from orderhub.database import build_engine, build_session_factory, init_db  # noqa: E402
from orderhub.models.order import Order, OrderStatus  # noqa: E402
from orderhub.models.product import Product  # noqa: E402
from orderhub.services.pricing_service import (  # noqa: E402
    CampaignSource,
    PaymentConditionSource,
    PricingService,
)
from tests.factories import InMemoryRuleCatalog  # noqa: E402


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite database per test, so separate sessions really are separate connections."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orderhub.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def catalog():
    return InMemoryRuleCatalog()


@pytest.fixture
def pricing(catalog):
    return PricingService(
        catalog=catalog,
        sources=[PaymentConditionSource(), CampaignSource(validate_category=True)],
    )


@pytest.fixture
def store_id():
    return uuid.uuid4()


@pytest.fixture
def supplier_id():
    return uuid.uuid4()


@pytest.fixture
def seed_product(db, supplier_id):
    """Insert a product of the test supplier and return it."""

    async def _seed(
        name: str = "Coffee 500g",
        base_price: str = "100.00",
        available_quantity=None,
        active: bool = True,
        supplier_org_id=None,
        category_id=None,
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            supplier_org_id=supplier_org_id or supplier_id,
            category_id=category_id,
            name=name,
            base_price=Decimal(base_price),
            available_quantity=available_quantity,
            active=active,
        )
        db.add(product)
        await db.commit()
        return product

    return _seed


@pytest.fixture
def seed_order(db, store_id, supplier_id):
    """Insert a bare PLACED order for ledger postings to reference; returns its id."""

    async def _seed(store_org_id=None) -> uuid.UUID:
        order = Order(
            id=uuid.uuid4(),
            store_org_id=store_org_id or store_id,
            supplier_org_id=supplier_id,
            status=OrderStatus.PLACED.value,
            subtotal_amount=Decimal("0.00"),
            total_amount=Decimal("0.00"),
        )
        db.add(order)
        await db.commit()
        return order.id

    return _seed
