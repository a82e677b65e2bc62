from fastapi import FastAPI
from fastapi.testclient import TestClient

from cardapio.core.database import get_db
from cardapio.routers.categories import router as categories_router
from cardapio.routers.coupons import router as coupons_router
from cardapio.routers.customers import router as customers_router
from cardapio.routers.establishments import router as establishments_router
from cardapio.routers.ingredients import router as ingredients_router
from cardapio.routers.orders import router as orders_router
from cardapio.routers.products import router as products_router
from tests.db_helpers import build_session
from tests.fixtures_data import CUSTOMER, ESTABLISHMENT


def _build_client() -> TestClient:
    db = build_session()

    app = FastAPI()
    for router in (
        establishments_router,
        categories_router,
        products_router,
        ingredients_router,
        customers_router,
        coupons_router,
        orders_router,
    ):
        app.include_router(router)
    app.dependency_overrides[get_db] = lambda: db

    return TestClient(app)


def test_establishment_crud_status_codes():
    client = _build_client()

    created = client.post("/establishments", json=ESTABLISHMENT)
    assert created.status_code == 201
    establishment_id = created.json()["id"]
    assert created.json()["name"] == "Burger House"

    listed = client.get("/establishments")
    assert [item["id"] for item in listed.json()] == [establishment_id]

    updated = client.put(f"/establishments/{establishment_id}", json={**ESTABLISHMENT, "name": "Burger House 2"})
    assert updated.status_code == 204
    assert client.get(f"/establishments/{establishment_id}").json()["name"] == "Burger House 2"

    deleted = client.delete(f"/establishments/{establishment_id}")
    assert deleted.status_code == 204
    assert client.get(f"/establishments/{establishment_id}").status_code == 404


def test_missing_establishment_returns_404():
    client = _build_client()

    response = client.get("/establishments/00000000-0000-0000-0000-000000000000")

    assert response.status_code == 404
    assert response.json()["detail"] == "Estabelecimento não encontrado"


def test_products_are_soft_deleted_and_filtered_by_establishment():
    client = _build_client()
    establishment_id = client.post("/establishments", json=ESTABLISHMENT).json()["id"]
    category = client.post("/api/categories", json={"establishment_id": establishment_id, "name": "Lanches"})
    assert category.status_code == 201

    product = client.post(
        "/api/products",
        json={
            "establishment_id": establishment_id,
            "category_id": category.json()["id"],
            "name": "Burger Classic",
            "price_cents": 1000,
        },
    )
    assert product.status_code == 201
    product_id = product.json()["id"]

    listed = client.get("/api/products", params={"establishment_id": establishment_id})
    assert [item["id"] for item in listed.json()] == [product_id]

    deleted = client.delete(f"/api/products/{product_id}")
    assert deleted.status_code == 200
    assert deleted.json()["is_active"] is False
    assert client.get("/api/products", params={"establishment_id": establishment_id}).json() == []
    assert len(client.get("/api/products", params={"include_inactive": True}).json()) == 1


def test_product_ingredient_link_and_duplicate_ingredient():
    client = _build_client()
    establishment_id = client.post("/establishments", json=ESTABLISHMENT).json()["id"]
    product_id = client.post(
        "/api/products",
        json={"establishment_id": establishment_id, "name": "Burger Classic", "price_cents": 1000},
    ).json()["id"]

    cheese = client.post("/api/ingredients", json={"name": "Queijo"})
    assert cheese.status_code == 201
    duplicate = client.post("/api/ingredients", json={"name": "Queijo"})
    assert duplicate.status_code == 409

    linked = client.put(f"/api/products/{product_id}/ingredients/{cheese.json()['id']}", json={"quantity": "2 fatias"})
    assert linked.status_code == 200
    assert linked.json()["ingredients"] == [{"ingredient_id": cheese.json()["id"], "quantity": "2 fatias"}]

    in_use = client.delete(f"/api/ingredients/{cheese.json()['id']}")
    assert in_use.status_code == 409


def test_coupon_codes_are_stored_uppercase():
    client = _build_client()
    payload = {
        "code": "natal10",
        "discount_type": "percent",
        "discount_value": 10,
        "valid_from": "2026-12-01",
        "valid_until": "2026-12-31",
        "max_uses": 50,
    }

    created = client.post("/api/coupons", json=payload)
    assert created.status_code == 201
    assert created.json()["code"] == "NATAL10"
    assert created.json()["uses_count"] == 0

    assert client.post("/api/coupons", json={**payload, "code": "NATAL10"}).status_code == 409
    assert client.get("/api/coupons/natal10").status_code == 200


def test_coupon_window_is_validated():
    client = _build_client()

    response = client.post(
        "/api/coupons",
        json={
            "code": "BAD",
            "discount_type": "fixed",
            "discount_value": 100,
            "valid_from": "2026-12-31",
            "valid_until": "2026-12-01",
        },
    )

    assert response.status_code == 422


def test_customer_loyalty_after_completed_order():
    client = _build_client()
    establishment_id = client.post("/establishments", json=ESTABLISHMENT).json()["id"]
    product_id = client.post(
        "/api/products",
        json={"establishment_id": establishment_id, "name": "Burger Classic", "price_cents": 1000},
    ).json()["id"]

    customer = client.post("/api/customers", json=CUSTOMER)
    assert customer.status_code == 201
    assert "password_hash" not in customer.json()
    customer_id = customer.json()["id"]
    assert client.post("/api/customers", json=CUSTOMER).status_code == 409

    empty = client.get(f"/api/customers/{customer_id}/loyalty").json()
    assert empty["points_balance"] == 0
    assert empty["transactions"] == []

    order_id = client.post(
        "/api/orders",
        json={
            "customer_id": customer_id,
            "establishment_id": establishment_id,
            "items": [{"product_id": product_id, "quantity": 3}],
        },
    ).json()["id"]
    client.patch(f"/api/orders/{order_id}/status", json={"status": "PROCESSING"})
    client.patch(f"/api/orders/{order_id}/status", json={"status": "COMPLETED"})

    loyalty = client.get(f"/api/customers/{customer_id}/loyalty").json()
    assert loyalty["points_balance"] == 30
    assert [item["points_delta"] for item in loyalty["transactions"]] == [30]

    assert client.delete(f"/establishments/{establishment_id}").status_code == 409
