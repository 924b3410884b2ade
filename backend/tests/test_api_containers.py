import pytest


@pytest.fixture
def deposit_sale(client):
    client.post("/api/products", json={
        "id": "gas-1", "name": "Gas 15kg", "category": "gas", "price": 300,
        "stock": 10, "empty_stock": 0, "deposit_amount": 200,
    })
    client.post("/api/sales", json={"id": "sale-1", "total": 600, "payment": 600, "customer_id": "C1"})
    client.post("/api/sales/sale-1/items", json={"items": [{
        "id": "item-1", "product_id": "gas-1", "product_name": "Gas 15kg", "price": 300,
        "quantity": 2, "subtotal": 600, "sale_mode": "deposit", "deposit_amount": 200,
    }]})
    return {
        "id": "oc-1",
        "sale_id": "sale-1",
        "sale_item_id": "item-1",
        "product_id": "gas-1",
        "customer_id": "C1",
        "quantity": 2,
        "deposit_amount": 200,
    }


def test_insert_outstanding_is_idempotent(client, deposit_sale):
    resp = client.post("/api/outstanding-containers", json=deposit_sale)
    assert resp.status_code == 201
    assert resp.get_json()["refund_amount"] == 400

    assert client.post("/api/outstanding-containers", json=deposit_sale).status_code == 200
    assert client.get("/api/outstanding-containers").get_json()["count"] == 1


def test_insert_outstanding_requires_known_sale_item(client, deposit_sale):
    resp = client.post("/api/outstanding-containers", json={**deposit_sale, "sale_item_id": "item-x"})
    assert resp.status_code == 404


def test_insert_outstanding_validates_quantity(client, deposit_sale):
    resp = client.post("/api/outstanding-containers", json={**deposit_sale, "quantity": 0})
    assert resp.status_code == 400


def test_return_refunds_and_grows_empty_stock(client, deposit_sale):
    client.post("/api/outstanding-containers", json=deposit_sale)

    resp = client.post("/api/outstanding-containers/oc-1/return", json={"user_id": "cashier-1"})

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "returned"
    assert body["returned_by_user_id"] == "cashier-1"
    assert body["refund_amount"] == 400

    product = client.get("/api/products").get_json()["items"][0]
    assert product["empty_stock"] == 2

    logs = client.get("/api/stock-logs?product_id=gas-1").get_json()["items"]
    assert [log["reason"] for log in logs] == ["deposit_return"]


def test_second_return_conflicts(client, deposit_sale):
    client.post("/api/outstanding-containers", json=deposit_sale)
    client.post("/api/outstanding-containers/oc-1/return", json={})

    assert client.post("/api/outstanding-containers/oc-1/return", json={}).status_code == 409


def test_return_unknown_is_404(client, deposit_sale):
    assert client.post("/api/outstanding-containers/none/return", json={}).status_code == 404


def test_list_filters_by_status_and_customer(client, deposit_sale):
    client.post("/api/outstanding-containers", json=deposit_sale)
    client.post("/api/outstanding-containers", json={**deposit_sale, "id": "oc-2", "customer_id": "C2"})
    client.post("/api/outstanding-containers/oc-1/return", json={})

    pending = client.get("/api/outstanding-containers").get_json()["items"]
    assert [r["id"] for r in pending] == ["oc-2"]

    returned = client.get("/api/outstanding-containers?status=returned").get_json()["items"]
    assert [r["id"] for r in returned] == ["oc-1"]

    everything = client.get("/api/outstanding-containers?status=all&customer_id=C1").get_json()["items"]
    assert [r["id"] for r in everything] == ["oc-1"]

    assert client.get("/api/outstanding-containers?status=lost").status_code == 400
