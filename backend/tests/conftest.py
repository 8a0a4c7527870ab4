"""
Pytest fixtures for stockledger tests.

Provides the app on in-memory SQLite, a clean database per test, and
tenant/product/variant/invoice fixtures.
"""

import pytest

from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Product, ProductVariant, PurchaseInvoice, Tenant


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


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


@pytest.fixture(scope='function')
def tenant(db_session):
    """Create Tenant A."""
    tenant = Tenant(name="Tenant A - Acme Corp", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def other_tenant(db_session):
    """Create Tenant B."""
    tenant = Tenant(name="Tenant B - Beta Inc", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def product(db_session, tenant):
    """Widget with 10 on hand, bought last at 5.00."""
    product = Product(
        tenant_id=tenant.id,
        name="Widget",
        current_quantity=10,
        last_purchase_price_cents=500,
        current_retail_price_cents=750,
        min_stock_level=2,
    )
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def variants(db_session, product):
    """Red and Blue variants of Widget, both empty."""
    red = ProductVariant(product_id=product.id, color="Red", size="M", current_quantity=0)
    blue = ProductVariant(product_id=product.id, color="Blue", size="M", current_quantity=0)
    db_session.add_all([red, blue])
    db_session.commit()
    return red, blue


@pytest.fixture(scope='function')
def make_invoice(db_session, tenant):
    """Factory for empty purchase invoices of the default tenant."""
    def _make(number="INV-001", tenant_id=None):
        invoice = PurchaseInvoice(
            tenant_id=tenant_id or tenant.id,
            invoice_number=number,
            supplier_name="Supplier Co",
        )
        db_session.add(invoice)
        db_session.commit()
        return invoice
    return _make
