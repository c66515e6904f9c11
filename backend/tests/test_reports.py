# Overview: Pytest coverage for dashboard and analytics reports.

from wholesale.services import reporting_service, invoice_service, payment_service
from conftest import auth_headers


def _paid_invoice(org, customer, product, invoice_date="2026-02-10"):
    detail = invoice_service.create_invoice(
        org_id=org.id,
        customer_id=customer.id,
        items=[{"product_id": product.id, "quantity": 1}],
        invoice_date=invoice_date,
    )
    payment_service.record_payment(org_id=org.id, invoice_id=detail["id"], amount=detail["total_amount"])
    return detail


class TestDashboard:

    def test_headline_numbers(self, db_session, org_a, invoice_a):
        data = reporting_service.dashboard(org_a.id)

        assert data["total_revenue"] == 100000
        assert data["outstanding_balance"] == 100000
        assert data["unpaid_invoices"] == 1
        assert data["total_products"] == 1
        assert data["low_stock_products"] == 0
        assert data["total_customers"] == 1
        assert data["recent_invoices"][0]["customer_name"] == "Epicerie El Amen"

    def test_recent_invoices_capped_at_ten(self, db_session, org_a, customer_a, product_a):
        created = [
            _paid_invoice(org_a, customer_a, product_a, invoice_date=f"2026-03-{day:02d}")
            for day in range(1, 13)
        ]

        recent = reporting_service.dashboard(org_a.id)["recent_invoices"]

        assert len(recent) == 10
        assert [r["id"] for r in recent] == [c["id"] for c in reversed(created)][:10]

    def test_empty_org(self, db_session, org_b):
        data = reporting_service.dashboard(org_b.id)
        assert data["total_revenue"] == 0
        assert data["recent_invoices"] == []


class TestAnalytics:

    def test_collection_rate(self, db_session, org_a, customer_a, product_a, invoice_a):
        _paid_invoice(org_a, customer_a, product_a)

        data = reporting_service.analytics_summary(org_a.id)

        assert data["invoice_count"] == 2
        assert data["total_invoiced"] == 110000
        assert data["total_collected"] == 10000
        assert data["paid_invoices"] == 1
        assert data["unpaid_invoices"] == 1
        assert data["collection_rate"] == 50.0
        assert data["average_invoice_value"] == 55000

    def test_no_invoices(self, db_session, org_a):
        data = reporting_service.analytics_summary(org_a.id)
        assert data["collection_rate"] == 0.0
        assert data["average_invoice_value"] == 0

    def test_monthly_sales(self, db_session, org_a, customer_a, product_a):
        invoice_service.create_invoice(
            org_id=org_a.id, customer_id=customer_a.id,
            items=[{"product_id": product_a.id, "quantity": 3}],
            invoice_date="2026-01-05",
        )
        _paid_invoice(org_a, customer_a, product_a, invoice_date="2026-02-10")

        rows = reporting_service.monthly_sales(org_a.id)["rows"]
        assert rows == [
            {"month": "2026-01", "invoiced": 30000, "collected": 0, "invoice_count": 1},
            {"month": "2026-02", "invoiced": 10000, "collected": 10000, "invoice_count": 1},
        ]

        rows = reporting_service.monthly_sales(org_a.id, start="2026-02-01")["rows"]
        assert [r["month"] for r in rows] == ["2026-02"]

    def test_profit_uses_cost_price(self, db_session, org_a, invoice_a):
        data = reporting_service.profit_loss(org_a.id)
        assert data["total_revenue"] == 100000
        assert data["total_cost"] == 60000
        assert data["total_profit"] == 40000

    def test_top_lists(self, db_session, org_a, customer_a, product_a, invoice_a):
        customers = reporting_service.top_customers(org_a.id)["rows"]
        assert customers == [{
            "customer_id": customer_a.id,
            "shop_name": "Epicerie El Amen",
            "total": 100000,
            "orders": 1,
            "outstanding": 100000,
        }]

        products = reporting_service.top_products(org_a.id)["rows"]
        assert products[0]["product_id"] == product_a.id
        assert products[0]["quantity"] == 10
        assert products[0]["revenue"] == 100000


class TestReportRoutes:

    def test_bad_range(self, client, token_a):
        resp = client.get("/api/reports/analytics?start=2026-03-01&end=2026-01-01",
                          headers=auth_headers(token_a))
        assert resp.status_code == 400

    def test_dashboard_scoped(self, client, token_b, invoice_a):
        resp = client.get("/api/reports/dashboard", headers=auth_headers(token_b))
        assert resp.status_code == 200
        assert resp.json["total_revenue"] == 0
        assert resp.json["total_customers"] == 0
