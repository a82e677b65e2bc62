import uuid

from fastapi import FastAPI
from fastapi.testclient import TestClient

from cardapio.core.database import get_db
from cardapio.core.error_handlers import install_error_handlers
from cardapio.routers.orders import router as orders_router
from tests.db_helpers import build_session, seed_catalog


def _build_client():
    db = build_session()
    seed = seed_catalog(db)

    app = FastAPI()
    install_error_handlers(app)
    app.include_router(orders_router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app), seed


def _payload(seed, **overrides):
    payload = {
        "customer_id": str(seed.customer_id),
        "establishment_id": str(seed.establishment_id),
        "items": [
            {"product_id": str(seed.burger_id), "quantity": 2},
            {"product_id": str(seed.fries_id), "quantity": 1},
        ],
    }
    payload.update(overrides)
    return payload


def test_quote_returns_priced_draft():
    client, seed = _build_client()

    response = client.post("/api/orders/quote", json=_payload(seed, coupon_code="save10", loyalty_points=100))

    assert response.status_code == 200
    body = response.json()
    assert body["subtotal_cents"] == 2500
    assert body["discount_cents"] == 250
    assert body["loyalty_discount_cents"] == 100
    assert body["total_cents"] == 2150
    assert body["status"] == "PENDING"


def test_order_lifecycle_over_http():
    client, seed = _build_client()

    created = client.post("/api/orders", json=_payload(seed, actor="caixa"))
    assert created.status_code == 201
    order_id = created.json()["id"]
    assert created.json()["status"] == "PENDING"
    assert [item["quantity"] for item in created.json()["items"]] == [2, 1]

    processing = client.patch(f"/api/orders/{order_id}/status", json={"status": "PROCESSING"})
    completed = client.patch(f"/api/orders/{order_id}/status", json={"status": "COMPLETED", "actor": "cozinha"})
    assert processing.status_code == 200
    assert completed.status_code == 200
    assert completed.json()["completed_at"] is not None

    fetched = client.get(f"/api/orders/{order_id}")
    assert fetched.status_code == 200
    assert fetched.json()["status"] == "COMPLETED"

    events = client.get(f"/api/orders/{order_id}/events").json()
    statuses = [event["event_type"] for event in events if event["event_type"] != "POINTS_EARNED"]
    assert statuses == ["PENDING", "PROCESSING", "COMPLETED"]
    assert events[0]["payload"]["actor"] == "caixa"


def test_invalid_transition_returns_409():
    client, seed = _build_client()
    order_id = client.post("/api/orders", json=_payload(seed)).json()["id"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "COMPLETED"})

    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"
    assert response.json()["retryable"] is False


def test_unavailable_product_returns_422():
    client, seed = _build_client()
    items = [{"product_id": str(seed.pizza_id), "quantity": 1}]

    response = client.post("/api/orders", json=_payload(seed, items=items))

    assert response.status_code == 422
    assert response.json()["code"] == "product_unavailable"


def test_zero_quantity_returns_422():
    client, seed = _build_client()
    items = [{"product_id": str(seed.burger_id), "quantity": 0}]

    response = client.post("/api/orders", json=_payload(seed, items=items))

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_quantity"


def test_coupon_reuse_returns_already_used():
    client, seed = _build_client()

    first = client.post("/api/orders", json=_payload(seed, coupon_code="SAVE10"))
    second = client.post("/api/orders", json=_payload(seed, coupon_code="SAVE10"))

    assert first.status_code == 201
    assert second.status_code == 422
    assert second.json()["code"] == "coupon_already_used"


def test_insufficient_points_returns_422():
    client, seed = _build_client()

    response = client.post("/api/orders", json=_payload(seed, loyalty_points=500))

    assert response.status_code == 422
    assert response.json()["code"] == "insufficient_points"


def test_unknown_order_returns_404():
    client, _seed = _build_client()

    response = client.get(f"/api/orders/{uuid.uuid4()}")

    assert response.status_code == 404
    assert response.json()["detail"] == "Pedido não encontrado"


def test_unknown_status_returns_409():
    client, seed = _build_client()
    order_id = client.post("/api/orders", json=_payload(seed)).json()["id"]

    response = client.patch(f"/api/orders/{order_id}/status", json={"status": "SHIPPED"})

    assert response.status_code == 409
