# Overview: Pytest coverage for payment recording, deletion and invoice reconciliation.

"""
Payment Reconciliation Tests

Every test checks the reconciliation invariant after the operation:
    invoice.paid_amount == sum(payment.amount for payment in invoice.payments)
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from wholesale.models import Invoice, Payment, Customer, ChangeEvent
from wholesale.services import payment_service
from wholesale.services.concurrency import run_with_retry
from wholesale.services.reconciliation import PaymentOutOfRangeError
from wholesale.services.tenant_service import TenantAccessError
from conftest import auth_headers


def _invoice(db_session, invoice_id) -> Invoice:
    invoice = db_session.get(Invoice, invoice_id)
    db_session.refresh(invoice)
    return invoice


def _assert_invariant(db_session, invoice_id):
    invoice = _invoice(db_session, invoice_id)
    payments = db_session.query(Payment).filter_by(invoice_id=invoice_id).all()
    assert invoice.paid_amount == sum(p.amount for p in payments)
    return invoice


class TestRecordPayment:
    """payment_service.record_payment"""

    def test_partial_payment(self, db_session, org_a, invoice_a):
        """40.000 on a 100.000 invoice -> partial."""
        result = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=40000)

        assert result["invoice"]["paid_amount"] == 40000
        assert result["invoice"]["payment_status"] == "partial"
        invoice = _assert_invariant(db_session, invoice_a["id"])
        assert invoice.payment_status == "partial"

    def test_two_payments_then_delete_one(self, db_session, org_a, invoice_a):
        """total 100.000, pay 40.000 + 60.000 -> paid; delete 60.000 -> 40.000 partial."""
        payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=40000)
        second = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=60000)

        invoice = _assert_invariant(db_session, invoice_a["id"])
        assert invoice.paid_amount == 100000
        assert invoice.payment_status == "paid"

        result = payment_service.delete_payment(org_id=org_a.id, payment_id=second["payment"]["id"])

        assert result["invoice"]["paid_amount"] == 40000
        assert result["invoice"]["payment_status"] == "partial"
        _assert_invariant(db_session, invoice_a["id"])

    def test_delete_only_payment_returns_to_unpaid(self, db_session, org_a, invoice_a):
        paid = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=100000)
        assert paid["invoice"]["payment_status"] == "paid"

        result = payment_service.delete_payment(org_id=org_a.id, payment_id=paid["payment"]["id"])

        assert result["invoice"]["paid_amount"] == 0
        assert result["invoice"]["payment_status"] == "unpaid"
        _assert_invariant(db_session, invoice_a["id"])

    def test_amount_above_outstanding_writes_nothing(self, db_session, org_a, invoice_a):
        with pytest.raises(PaymentOutOfRangeError) as exc:
            payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=100001)

        assert "100.000 TND" in str(exc.value)
        assert db_session.query(Payment).count() == 0
        invoice = _invoice(db_session, invoice_a["id"])
        assert invoice.paid_amount == 0
        assert invoice.payment_status == "unpaid"

    def test_zero_amount_rejected(self, db_session, org_a, invoice_a):
        with pytest.raises(PaymentOutOfRangeError) as exc:
            payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=0)
        assert str(exc.value) == "Payment amount must be greater than 0"

    def test_invalid_method_rejected(self, db_session, org_a, invoice_a):
        with pytest.raises(payment_service.PaymentError):
            payment_service.record_payment(
                org_id=org_a.id, invoice_id=invoice_a["id"], amount=1000, payment_method="bitcoin"
            )

    def test_customer_outstanding_follows_payments(self, db_session, org_a, customer_a, invoice_a):
        customer = db_session.get(Customer, customer_a.id)
        assert customer.outstanding_balance == 100000

        result = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=25000)
        db_session.refresh(customer)
        assert customer.outstanding_balance == 75000

        payment_service.delete_payment(org_id=org_a.id, payment_id=result["payment"]["id"])
        db_session.refresh(customer)
        assert customer.outstanding_balance == 100000

    def test_failure_mid_transaction_leaves_invoice_untouched(self, db_session, org_a, invoice_a, monkeypatch):
        """Payment insert and invoice update commit together or not at all."""
        def boom(customer):
            raise RuntimeError("simulated failure")

        monkeypatch.setattr(payment_service, "refresh_outstanding_balance", boom)

        with pytest.raises(RuntimeError):
            payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=40000)
        db_session.rollback()

        assert db_session.query(Payment).count() == 0
        invoice = _invoice(db_session, invoice_a["id"])
        assert invoice.paid_amount == 0
        assert invoice.payment_status == "unpaid"

    def test_cross_tenant_invoice_rejected(self, db_session, org_b, invoice_a):
        with pytest.raises(TenantAccessError):
            payment_service.record_payment(org_id=org_b.id, invoice_id=invoice_a["id"], amount=1000)
        assert db_session.query(Payment).count() == 0

    def test_change_events_emitted(self, db_session, org_a, invoice_a):
        result = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=1000)

        events = db_session.query(ChangeEvent).filter_by(org_id=org_a.id, table_name="payments").all()
        assert [(e.event_type, e.entity_id) for e in events] == [("INSERT", result["payment"]["id"])]


class TestPaymentQueries:

    def test_list_payments_search_and_total(self, db_session, org_a, invoice_a):
        payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=10000)
        payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=5000)

        result = payment_service.list_payments(org_a.id, search=invoice_a["invoice_number"][-6:])
        assert result["count"] == 2
        assert result["total_collected"] == 15000
        assert result["items"][0]["invoice_number"] == invoice_a["invoice_number"]

        assert payment_service.list_payments(org_a.id, search="NO-SUCH")["count"] == 0

    def test_get_invoice_payments(self, db_session, org_a, invoice_a):
        payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=10000)
        result = payment_service.get_invoice_payments(org_a.id, invoice_a["id"])

        assert result["count"] == 1
        assert result["invoice"]["paid_amount"] == 10000


class TestRetry:
    """run_with_retry around optimistic-lock conflicts."""

    def test_retries_stale_data_then_succeeds(self, db_session):
        calls = []

        def op():
            calls.append(1)
            if len(calls) == 1:
                raise StaleDataError("version mismatch")
            return "ok"

        assert run_with_retry(op, backoff_base=0) == "ok"
        assert len(calls) == 2

    def test_gives_up_after_attempts(self, db_session):
        def op():
            raise StaleDataError("version mismatch")

        with pytest.raises(StaleDataError):
            run_with_retry(op, attempts=2, backoff_base=0)


class TestPaymentRoutes:
    """HTTP surface for /api/payments."""

    def test_record_and_delete_via_api(self, client, token_a, invoice_a):
        headers = auth_headers(token_a)

        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 40000,
            "payment_method": "bank_transfer",
            "payment_date": "2026-01-15",
        }, headers=headers)
        assert resp.status_code == 201
        assert resp.json["invoice"]["payment_status"] == "partial"
        assert resp.json["payment"]["payment_date"] == "2026-01-15"

        payment_id = resp.json["payment"]["id"]
        resp = client.delete(f"/api/payments/{payment_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json["invoice"]["payment_status"] == "unpaid"

    def test_overpayment_returns_400(self, client, token_a, invoice_a):
        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 200000,
        }, headers=auth_headers(token_a))

        assert resp.status_code == 400
        assert "cannot exceed outstanding balance" in resp.json["error"]

    def test_decimal_amount_rejected(self, client, token_a, invoice_a):
        """Amounts are integer minor units."""
        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 40.5,
        }, headers=auth_headers(token_a))
        assert resp.status_code == 400

    def test_oversized_amount_rejected(self, client, db_session, token_a, invoice_a):
        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 10**30,
        }, headers=auth_headers(token_a))

        assert resp.status_code == 400
        assert "cannot exceed" in resp.json["error"]
        assert db_session.query(Payment).count() == 0

    def test_non_string_method_rejected(self, client, db_session, token_a, invoice_a):
        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 1000,
            "payment_method": 5,
        }, headers=auth_headers(token_a))

        assert resp.status_code == 400
        assert "Invalid payment method" in resp.json["error"]
        assert db_session.query(Payment).count() == 0

    def test_foreign_invoice_is_404(self, client, token_b, invoice_a):
        resp = client.post("/api/payments", json={
            "invoice_id": invoice_a["id"],
            "amount": 1000,
        }, headers=auth_headers(token_b))
        assert resp.status_code == 404

    def test_foreign_payment_delete_is_404(self, client, org_a, token_b, invoice_a):
        paid = payment_service.record_payment(org_id=org_a.id, invoice_id=invoice_a["id"], amount=1000)
        resp = client.delete(f"/api/payments/{paid['payment']['id']}", headers=auth_headers(token_b))
        assert resp.status_code == 404

    def test_requires_auth(self, client, db_session):
        assert client.get("/api/payments").status_code == 401
