import uuid
from decimal import Decimal

import pytest
from httpx import ASGITransport, AsyncClient

import retail_core.main as main_module
from retail_core.database import get_db
from retail_core.main import app


@pytest.fixture
async def client(session_factory, monkeypatch):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    monkeypatch.setattr(main_module, "async_session_factory", session_factory)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def post_sale(client, product_id, quantity, **extra):
    line = {"product_id": str(product_id), "quantity": str(quantity)}
    line.update(extra)
    return await client.post("/api/v1/sales", json={"lines": [line], "payment_method": "cash"})


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"


async def test_create_and_fetch_sale(client, make_product, stock_of):
    product_id = await make_product(stock="10", unit_price="100.00", tax_rate="5")

    response = await post_sale(client, product_id, 3, discount_percentage="10")

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "COMPLETED"
    assert Decimal(body["calculated_total"]) == Decimal("283.50")
    assert Decimal(body["lines"][0]["discount_percentage"]) == Decimal("10.00")
    assert await stock_of(product_id) == Decimal("7")

    fetched = await client.get(f"/api/v1/sales/{body['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["invoice_number"] == body["invoice_number"]

    by_number = await client.get(f"/api/v1/sales/number/{body['invoice_number']}")
    assert by_number.json()["id"] == body["id"]


async def test_insufficient_stock_is_conflict(client, make_product):
    product_id = await make_product(name="Cotton Saree", stock="5")

    response = await post_sale(client, product_id, 10)

    assert response.status_code == 409
    body = response.json()
    assert body["type"] == "InsufficientStockError"
    assert body["context"]["product_name"] == "Cotton Saree"
    assert Decimal(body["context"]["available"]) == Decimal("5")


async def test_empty_sale_is_bad_request(client):
    response = await client.post("/api/v1/sales", json={"lines": []})

    assert response.status_code == 400
    assert response.json()["type"] == "ValidationError"


async def test_unknown_sale_is_not_found(client):
    response = await client.get(f"/api/v1/sales/{uuid.uuid4()}")

    assert response.status_code == 404
    missing = await client.get("/api/v1/sales/number/INV00000000000")
    assert missing.status_code == 404


async def test_return_lifecycle(client, make_product, stock_of):
    product_id = await make_product(stock="10", unit_price="100.00", tax_rate="5")
    sale = (await post_sale(client, product_id, 2, discount_amount="20.00")).json()
    line_id = sale["lines"][0]["id"]

    returnable = await client.get(f"/api/v1/sales/{sale['id']}/returnable-lines")
    assert returnable.status_code == 200
    assert Decimal(returnable.json()[0]["returnable_quantity"]) == Decimal("2")

    created = await client.post("/api/v1/returns", json={
        "sale_id": sale["id"],
        "reason": "Wrong size",
        "lines": [{"sale_line_id": line_id, "quantity": "1"}],
    })
    assert created.status_code == 201
    sales_return = created.json()
    assert sales_return["status"] == "PENDING"
    assert Decimal(sales_return["refund_amount"]) == Decimal("94.50")
    assert await stock_of(product_id) == Decimal("8")

    processed = await client.post(
        f"/api/v1/returns/{sales_return['id']}/process",
        json={"refund_method": "cash", "processed_by": "manager"},
    )
    assert processed.status_code == 200
    assert processed.json()["status"] == "COMPLETED"
    assert await stock_of(product_id) == Decimal("9")

    again = await client.post(
        f"/api/v1/returns/{sales_return['id']}/process",
        json={"refund_method": "cash"},
    )
    assert again.status_code == 422
    assert again.json()["context"]["current_status"] == "COMPLETED"

    history = await client.get(f"/api/v1/sales/{sale['id']}/returns")
    assert [r["id"] for r in history.json()] == [sales_return["id"]]


async def test_over_return_reports_line_errors(client, make_product):
    product_id = await make_product(stock="10")
    sale = (await post_sale(client, product_id, 1)).json()
    line_id = sale["lines"][0]["id"]

    response = await client.post("/api/v1/returns", json={
        "sale_id": sale["id"],
        "reason": "Wrong size",
        "lines": [{"sale_line_id": line_id, "quantity": "2"}],
    })

    assert response.status_code == 400
    assert line_id in response.json()["context"]["errors"]


async def test_cancel_return(client, make_product):
    product_id = await make_product(stock="10")
    sale = (await post_sale(client, product_id, 1)).json()
    sales_return = (await client.post("/api/v1/returns", json={
        "sale_id": sale["id"],
        "reason": "Changed mind",
        "lines": [{"sale_line_id": sale["lines"][0]["id"], "quantity": "1"}],
    })).json()

    response = await client.post(
        f"/api/v1/returns/{sales_return['id']}/cancel", json={"reason": "Kept item"}
    )

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    fetched = await client.get(f"/api/v1/returns/{sales_return['id']}")
    assert fetched.json()["cancellation_reason"] == "Kept item"


async def test_payment_approval_flow(client, make_product):
    product_id = await make_product(stock="10", unit_price="650.00", tax_rate="5")
    sale = (await post_sale(client, product_id, 1)).json()

    paid = await client.post(f"/api/v1/payments/sales/{sale['id']}", json={"amount_received": "650.00"})
    assert paid.status_code == 200
    result = paid.json()
    assert result["requires_approval"] is True
    assert Decimal(result["payment_adjustment"]) == Decimal("-32.50")
    assert result["adjustment_type"] == "MANAGER_DISCRETION"

    pending = await client.get("/api/v1/payments/pending-approvals")
    assert [s["id"] for s in pending.json()] == [sale["id"]]

    approved = await client.post(
        f"/api/v1/payments/sales/{sale['id']}/approve", json={"approver": "store-manager"}
    )
    assert approved.status_code == 200
    assert approved.json()["status"] == "COMPLETED"

    fetched = (await client.get(f"/api/v1/sales/{sale['id']}")).json()
    assert Decimal(fetched["final_total"]) == Decimal("650.00")
    assert fetched["approved_by"] == "store-manager"


async def test_cancel_sale_endpoint(client, make_product, stock_of):
    product_id = await make_product(stock="10")
    sale = (await post_sale(client, product_id, 4)).json()

    response = await client.post(f"/api/v1/sales/{sale['id']}/cancel", json={"reason": "Voided"})

    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert await stock_of(product_id) == Decimal("10")

    again = await client.post(f"/api/v1/sales/{sale['id']}/cancel", json={"reason": "Voided"})
    assert again.status_code == 422
