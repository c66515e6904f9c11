# Overview: Pytest coverage for customer records and their outstanding balance.

import pytest

from wholesale.models import Customer
from wholesale.services import customer_service, payment_service
from wholesale.validation import ConflictError
from conftest import auth_headers


class TestCustomerService:

    def test_search_by_name_or_phone(self, db_session, org_a, customer_a):
        customer_service.create_customer(patch={
            "shop_name": "Kiosque Yasmine",
            "owner_name": "Yasmine B.",
            "phone": "+216 55 000 111",
            "address": "Rue de Marseille",
        }, org_id=org_a.id)

        assert customer_service.list_customers(org_a.id, search="amen")["count"] == 1
        assert customer_service.list_customers(org_a.id, search="55 000")["count"] == 1
        assert customer_service.list_customers(org_a.id)["count"] == 2

    def test_outstanding_tracks_invoices_and_payments(self, db_session, org_a, customer_a, invoice_a):
        payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=30000)

        result = customer_service.list_customers(org_a.id)
        assert result["items"][0]["outstanding_balance"] == 70000
        assert result["total_outstanding"] == 70000
        assert customer_service.compute_outstanding_balance(customer_a.id) == 70000

    def test_detail_has_invoice_count(self, db_session, org_a, customer_a, invoice_a):
        detail = customer_service.get_customer(customer_a.id, org_a.id)
        assert detail["invoice_count"] == 1

    def test_delete_with_invoices_conflict(self, db_session, org_a, customer_a, invoice_a):
        with pytest.raises(ConflictError):
            customer_service.delete_customer(customer_id=customer_a.id, org_id=org_a.id)
        assert db_session.get(Customer, customer_a.id) is not None

    def test_delete_without_invoices(self, db_session, org_a, customer_a):
        assert customer_service.delete_customer(customer_id=customer_a.id, org_id=org_a.id) is True
        assert db_session.get(Customer, customer_a.id) is None


class TestCustomerRoutes:

    def test_create_requires_fields(self, client, token_a):
        resp = client.post("/api/customers", json={"shop_name": "Only a name"}, headers=auth_headers(token_a))
        assert resp.status_code == 400
        assert "Missing required fields" in resp.json["error"]

    def test_outstanding_balance_not_writable(self, client, token_a, customer_a):
        resp = client.put(f"/api/customers/{customer_a.id}", json={"outstanding_balance": 0},
                          headers=auth_headers(token_a))
        assert resp.status_code == 400

    def test_coordinates_range(self, client, token_a, customer_a):
        resp = client.put(f"/api/customers/{customer_a.id}", json={"latitude": 123.0},
                          headers=auth_headers(token_a))
        assert resp.status_code == 400

        resp = client.put(f"/api/customers/{customer_a.id}", json={"latitude": 36.8, "longitude": 10.18},
                          headers=auth_headers(token_a))
        assert resp.status_code == 200
        assert resp.json["latitude"] == 36.8

    def test_create_and_get(self, client, token_a):
        headers = auth_headers(token_a)
        resp = client.post("/api/customers", json={
            "shop_name": "Epicerie Fine",
            "owner_name": "Mohamed S.",
            "phone": "+216 71 000 000",
            "address": "Sousse",
        }, headers=headers)
        assert resp.status_code == 201
        assert resp.json["outstanding_balance"] == 0

        resp = client.get(f"/api/customers/{resp.json['id']}", headers=headers)
        assert resp.status_code == 200
        assert resp.json["invoice_count"] == 0

    def test_delete_with_invoices_409(self, client, token_a, customer_a, invoice_a):
        resp = client.delete(f"/api/customers/{customer_a.id}", headers=auth_headers(token_a))
        assert resp.status_code == 409
