"""
Pytest fixtures for the wholesale backend tests.

Provides test database setup, two-tenant fixtures, and test client helpers.
"""

import pytest
from wholesale import create_app
from wholesale.config import TestingConfig
from wholesale.extensions import db
from wholesale.models import Organization, Profile, BusinessSettings, Customer, Product
from wholesale.services.auth_service import hash_password

PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


def _make_org(db_session, name: str, tax_rate_bps: int = 0) -> Organization:
    org = Organization(name=name, is_active=True)
    db_session.add(org)
    db_session.flush()
    db_session.add(BusinessSettings(org_id=org.id, business_name=name, currency="TND", tax_rate_bps=tax_rate_bps))
    db_session.commit()
    return org


@pytest.fixture(scope='function')
def org_a(db_session):
    """Create Organization A (first tenant)."""
    return _make_org(db_session, "Org A - Sahel Distribution")


@pytest.fixture(scope='function')
def org_b(db_session):
    """Create Organization B (second tenant)."""
    return _make_org(db_session, "Org B - Cap Bon Grossiste")


def _make_profile(db_session, org, email: str) -> Profile:
    profile = Profile(
        org_id=org.id,
        email=email,
        full_name=email.split("@")[0],
        role="owner",
        password_hash=hash_password(PASSWORD),
    )
    db_session.add(profile)
    db_session.commit()
    return profile


@pytest.fixture(scope='function')
def profile_a(db_session, org_a):
    """Owner profile in Organization A."""
    return _make_profile(db_session, org_a, "owner_a@sahel.tn")


@pytest.fixture(scope='function')
def profile_b(db_session, org_b):
    """Owner profile in Organization B."""
    return _make_profile(db_session, org_b, "owner_b@capbon.tn")


@pytest.fixture(scope='function')
def token_a(client, profile_a):
    return get_auth_token(client, profile_a.email, PASSWORD)


@pytest.fixture(scope='function')
def token_b(client, profile_b):
    return get_auth_token(client, profile_b.email, PASSWORD)


def _make_customer(db_session, org, shop_name: str, phone: str) -> Customer:
    customer = Customer(
        org_id=org.id,
        shop_name=shop_name,
        owner_name="Owner of " + shop_name,
        phone=phone,
        address="Avenue Habib Bourguiba",
        outstanding_balance=0,
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def customer_a(db_session, org_a):
    return _make_customer(db_session, org_a, "Epicerie El Amen", "+216 20 123 456")


@pytest.fixture(scope='function')
def customer_b(db_session, org_b):
    return _make_customer(db_session, org_b, "Superette Nour", "+216 98 765 432")


def _make_product(db_session, org, name: str, selling_price: int, cost_price: int, stock: int = 100, barcode=None) -> Product:
    product = Product(
        org_id=org.id,
        name=name,
        category="Chocolates",
        cost_price=cost_price,
        selling_price=selling_price,
        stock_quantity=stock,
        barcode=barcode,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session, org_a):
    """10.000 TND chocolate bar in Organization A (cost 6.000)."""
    return _make_product(db_session, org_a, "Chocolate Bar", 10000, 6000, barcode="6191234567890")


@pytest.fixture(scope='function')
def product_b(db_session, org_b):
    return _make_product(db_session, org_b, "Biscuits Pack", 2500, 1500)


@pytest.fixture(scope='function')
def invoice_a(app, db_session, org_a, customer_a, product_a):
    """
    Invoice in Organization A: 10 x 10.000 TND, no discount, no tax.

    total_amount = 100000 (100.000 TND)
    """
    from wholesale.services.invoice_service import create_invoice

    detail = create_invoice(
        org_id=org_a.id,
        customer_id=customer_a.id,
        items=[{"product_id": product_a.id, "quantity": 10}],
    )
    return detail


def get_auth_token(client, email: str, password: str) -> str:
    """Helper to get auth token for a profile."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
