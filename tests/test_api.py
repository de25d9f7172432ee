import uuid
from decimal import Decimal

import httpx
import pytest

from orderhub.database import get_db
from orderhub.main import app
from orderhub.models.product import Product


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def user_headers():
    return {"X-User-Id": str(uuid.uuid4())}


@pytest.fixture
async def product(session_factory, supplier_id):
    async with session_factory() as session:
        row = Product(
            id=uuid.uuid4(),
            supplier_org_id=supplier_id,
            name="Olive oil 500ml",
            base_price=Decimal("32.90"),
            active=True,
        )
        session.add(row)
        await session.commit()
        return row


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["database"] == "connected"


async def test_quote(client, store_id, supplier_id):
    response = await client.post("/api/v1/orders/quote", json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "shipping_address_id": str(uuid.uuid4()),
        "items": [
            {"product_id": str(uuid.uuid4()), "unit_price": "100.00", "quantity": 2},
        ],
    })

    assert response.status_code == 200
    body = response.json()
    assert Decimal(body["subtotal_amount"]) == Decimal("200.00")
    assert Decimal(body["shipping_cost"]) == Decimal("25.00")
    assert Decimal(body["total_amount"]) == Decimal("225.00")
    assert "max-age" in response.headers["cache-control"]


async def test_quote_without_items(client, store_id, supplier_id):
    response = await client.post("/api/v1/orders/quote", json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [],
    })

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_REQUEST"


@pytest.mark.parametrize(
    "item",
    [
        {"unit_price": "100.00", "quantity": 0},
        {"unit_price": "0", "quantity": 1},
        {"unit_price": "100.00", "quantity": "many"},
    ],
    ids=["zero-quantity", "zero-price", "non-numeric-quantity"],
)
async def test_quote_with_bad_item(client, store_id, supplier_id, item):
    response = await client.post("/api/v1/orders/quote", json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [{"product_id": str(uuid.uuid4()), **item}],
    })

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_REQUEST"


async def test_create_order_with_zero_quantity(client, product, store_id, supplier_id, user_headers):
    response = await client.post("/api/v1/orders", headers=user_headers, json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [{"product_id": str(product.id), "quantity": 0}],
    })

    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_REQUEST"


async def test_create_order_requires_user(client, product, store_id, supplier_id):
    response = await client.post("/api/v1/orders", json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [{"product_id": str(product.id), "quantity": 1}],
    })

    assert response.status_code == 401


async def test_order_lifecycle(client, product, store_id, supplier_id, user_headers):
    response = await client.post("/api/v1/orders", headers=user_headers, json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [{"product_id": str(product.id), "quantity": 3}],
    })
    assert response.status_code == 201
    order = response.json()
    assert order["status"] == "PLACED"
    assert Decimal(order["total_amount"]) == Decimal("98.70")
    assert order["items"][0]["product_name_snapshot"] == "Olive oil 500ml"
    order_id = order["id"]

    response = await client.get(f"/api/v1/orders/{order_id}")
    assert response.status_code == 200
    assert response.json()["item_count"] == 3

    response = await client.put(
        f"/api/v1/orders/{order_id}/status",
        headers=user_headers,
        json={"status": "CONFIRMED", "note": "stock reserved"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"

    response = await client.put(
        f"/api/v1/orders/{order_id}/status",
        headers=user_headers,
        json={"status": "PLACED"},
    )
    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_STATUS_TRANSITION"

    response = await client.get(f"/api/v1/orders/{order_id}/history")
    assert [h["new_status"] for h in response.json()] == ["PLACED", "CONFIRMED"]

    response = await client.get("/api/v1/orders", params={"store_org_id": str(store_id)})
    assert response.json()["total"] == 1


async def test_store_actor_cannot_confirm(client, product, store_id, supplier_id, user_headers):
    created = await client.post("/api/v1/orders", headers=user_headers, json={
        "store_org_id": str(store_id),
        "supplier_org_id": str(supplier_id),
        "items": [{"product_id": str(product.id), "quantity": 1}],
    })
    order_id = created.json()["id"]
    store_headers = {
        **user_headers,
        "X-Organization-Id": str(store_id),
        "X-Organization-Type": "STORE",
    }

    response = await client.put(
        f"/api/v1/orders/{order_id}/status", headers=store_headers, json={"status": "CONFIRMED"}
    )
    assert response.status_code == 403

    response = await client.put(
        f"/api/v1/orders/{order_id}/status", headers=store_headers, json={"status": "CANCELLED"}
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"


async def test_unknown_order(client):
    response = await client.get(f"/api/v1/orders/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"

    response = await client.get(f"/api/v1/orders/{uuid.uuid4()}/history")
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


async def test_cashback_earn_and_use(client, seed_order, store_id, user_headers):
    order_id = str(await seed_order())
    base = f"/api/v1/cashback/wallets/{store_id}"

    response = await client.post(f"{base}/earn", headers=user_headers, json={
        "order_id": order_id, "amount": "50.00", "reference_type": "MANUAL",
    })
    assert response.status_code == 201
    assert Decimal(response.json()["available_balance"]) == Decimal("50.00")

    response = await client.post(f"{base}/use", headers=user_headers, json={"order_id": order_id, "amount": "30.00"})
    assert response.status_code == 201
    assert Decimal(response.json()["available_balance"]) == Decimal("20.00")

    response = await client.post(f"{base}/use", headers=user_headers, json={"order_id": order_id, "amount": "25.00"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "INSUFFICIENT_CASHBACK_BALANCE"

    response = await client.post(f"{base}/earn", headers=user_headers, json={"order_id": order_id, "amount": "0"})
    assert response.status_code == 400
    assert response.json()["error_code"] == "INVALID_CASHBACK_AMOUNT"

    response = await client.get(f"{base}/transactions")
    assert [t["type"] for t in response.json()] == ["EARNED", "USED"]

    response = await client.get(f"/api/v1/cashback/orders/{order_id}/transactions")
    assert len(response.json()) == 2

    response = await client.get(base)
    wallet = response.json()
    assert Decimal(wallet["total_earned"]) == Decimal("50.00")
    assert Decimal(wallet["total_used"]) == Decimal("30.00")


async def test_wallet_created_on_first_access(client):
    organization_id = uuid.uuid4()

    response = await client.get(f"/api/v1/cashback/wallets/{organization_id}")

    assert response.status_code == 200
    assert Decimal(response.json()["available_balance"]) == Decimal("0.00")
    listing = await client.get("/api/v1/cashback/wallets")
    assert listing.json()["total"] == 1


async def test_cashback_for_unknown_order(client, store_id, user_headers):
    response = await client.post(f"/api/v1/cashback/wallets/{store_id}/earn", headers=user_headers, json={
        "order_id": str(uuid.uuid4()), "amount": "10.00",
    })

    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"
    assert "retry-after" not in response.headers
