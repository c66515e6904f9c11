# Overview: Pytest coverage for the product catalogue (CRUD, search, low stock, barcode lookup).

import pytest

from wholesale.models import Product, ChangeEvent
from wholesale.services import products_service
from wholesale.validation import ConflictError
from conftest import auth_headers


class TestProductService:

    def test_create_defaults_category(self, db_session, org_a):
        created = products_service.create_product(
            patch={"name": "Lollipops", "selling_price": 500}, org_id=org_a.id
        )
        assert created["category"] == "Chocolates"
        assert created["stock_quantity"] == 0

    def test_duplicate_barcode_conflict(self, db_session, org_a, product_a):
        with pytest.raises(ConflictError):
            products_service.create_product(
                patch={"name": "Copy", "selling_price": 1, "barcode": product_a.barcode}, org_id=org_a.id
            )

    def test_same_barcode_allowed_in_other_org(self, db_session, org_b, product_a):
        created = products_service.create_product(
            patch={"name": "Copy", "selling_price": 1, "barcode": product_a.barcode}, org_id=org_b.id
        )
        assert created["barcode"] == product_a.barcode

    def test_search_by_name_and_barcode(self, db_session, org_a, product_a):
        products_service.create_product(patch={"name": "Gummy Bears", "selling_price": 800}, org_id=org_a.id)

        assert products_service.list_products(org_a.id, search="chocolate")["count"] == 1
        assert products_service.list_products(org_a.id, search="619123")["count"] == 1
        assert products_service.list_products(org_a.id)["count"] == 2

    def test_low_stock(self, db_session, org_a, product_a):
        products_service.create_product(
            patch={"name": "Gummy Bears", "selling_price": 800, "stock_quantity": 12}, org_id=org_a.id
        )

        result = products_service.list_products(org_a.id, low_stock_only=True)
        assert [p["name"] for p in result["items"]] == ["Gummy Bears"]
        assert result["low_stock_count"] == 1
        assert result["low_stock_threshold"] == 50

    def test_categories_include_custom(self, db_session, org_a):
        products_service.create_product(
            patch={"name": "Olive Oil", "selling_price": 15000, "category": "Oils"}, org_id=org_a.id
        )
        categories = products_service.list_categories(org_a.id)
        assert categories[:5] == ["Chocolates", "Candies", "Biscuits", "Snacks", "Grocery Items"]
        assert "Oils" in categories

    def test_barcode_lookup_scoped(self, db_session, org_a, org_b, product_a):
        assert products_service.find_by_barcode("6191234567890", org_a.id)["id"] == product_a.id
        assert products_service.find_by_barcode("6191234567890", org_b.id) is None

    def test_delete_product_on_invoice_conflict(self, db_session, org_a, product_a, invoice_a):
        with pytest.raises(ConflictError):
            products_service.delete_product(product_id=product_a.id, org_id=org_a.id)
        assert db_session.get(Product, product_a.id) is not None

    def test_update_records_change(self, db_session, org_a, product_a):
        products_service.update_product(product_id=product_a.id, patch={"stock_quantity": 7}, org_id=org_a.id)

        event = (
            db_session.query(ChangeEvent)
            .filter_by(org_id=org_a.id, table_name="products")
            .order_by(ChangeEvent.id.desc())
            .first()
        )
        assert event.event_type == "UPDATE"
        assert event.entity_id == product_a.id


class TestProductRoutes:

    def test_create_requires_name_and_price(self, client, token_a):
        resp = client.post("/api/products", json={"name": "No price"}, headers=auth_headers(token_a))
        assert resp.status_code == 400
        assert "selling_price" in resp.json["error"]

    def test_create_rejects_negative_price(self, client, token_a):
        resp = client.post("/api/products", json={"name": "Bad", "selling_price": -1},
                           headers=auth_headers(token_a))
        assert resp.status_code == 400

    def test_create_rejects_unknown_field(self, client, token_a):
        resp = client.post("/api/products", json={"name": "X", "selling_price": 1, "org_id": 99},
                           headers=auth_headers(token_a))
        assert resp.status_code == 400

    def test_crud_round(self, client, token_a):
        headers = auth_headers(token_a)

        resp = client.post("/api/products", json={
            "name": "Biscuits Tunisiana",
            "category": "Biscuits",
            "cost_price": 400,
            "selling_price": 650,
            "stock_quantity": 240,
            "barcode": "6190000000001",
            "expiry_date": "2027-03-01",
        }, headers=headers)
        assert resp.status_code == 201
        product_id = resp.json["id"]
        assert resp.json["expiry_date"] == "2027-03-01"

        resp = client.put(f"/api/products/{product_id}", json={"selling_price": 700}, headers=headers)
        assert resp.status_code == 200
        assert resp.json["selling_price"] == 700

        resp = client.get("/api/products/barcode/6190000000001", headers=headers)
        assert resp.status_code == 200
        assert resp.json["id"] == product_id

        resp = client.delete(f"/api/products/{product_id}", headers=headers)
        assert resp.status_code == 200

        resp = client.get(f"/api/products/{product_id}", headers=headers)
        assert resp.status_code == 404

    def test_unknown_barcode_404(self, client, token_a):
        resp = client.get("/api/products/barcode/0000", headers=auth_headers(token_a))
        assert resp.status_code == 404
        assert resp.json["barcode"] == "0000"

    def test_duplicate_barcode_409(self, client, token_a, product_a):
        resp = client.post("/api/products", json={
            "name": "Dup", "selling_price": 1, "barcode": product_a.barcode,
        }, headers=auth_headers(token_a))
        assert resp.status_code == 409

    def test_paginated_list(self, client, token_a, product_a):
        resp = client.get("/api/products?page=1&per_page=500", headers=auth_headers(token_a))
        assert resp.status_code == 200
        assert resp.json["pagination"]["per_page"] == 100
        assert resp.json["pagination"]["total"] == 1
