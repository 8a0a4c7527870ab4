# Overview: Pytest coverage for the flask CLI command groups.

import pytest

from stockledger.models import Tenant
from stockledger.services import purchase_service
from stockledger.services.line_items import LineItem


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_tenants_create_and_list(runner, db_session):
    result = runner.invoke(args=["tenants", "create", "--name", "Gamma LLC", "--code", "GAMMA"])
    assert result.exit_code == 0
    assert "PASS Created tenant: Gamma LLC" in result.output
    assert db_session.query(Tenant).filter_by(code="GAMMA").count() == 1

    duplicate = runner.invoke(args=["tenants", "create", "--name", "Again", "--code", "GAMMA"])
    assert "already exists" in duplicate.output

    listing = runner.invoke(args=["tenants", "list"])
    assert "Gamma LLC" in listing.output


def test_inventory_summary(runner, db_session, tenant, product):
    result = runner.invoke(args=["inventory", "summary", "--tenant-id", str(tenant.id)])
    assert result.exit_code == 0
    assert "Products:        1" in result.output
    assert "Stock value:     50.00" in result.output


def test_unknown_tenant_fails(runner, db_session):
    result = runner.invoke(args=["inventory", "summary", "--tenant-id", "4242"])
    assert result.exit_code != 0
    assert "Tenant 4242 not found" in result.output


def test_inventory_history(runner, db_session, tenant, make_invoice):
    invoice = make_invoice()
    purchase_service.apply_purchase_create(
        tenant.id, [LineItem(name="Lamp", quantity=2, price_cents=1000)], invoice.id, invoice.invoice_number,
    )

    result = runner.invoke(args=["inventory", "history", "--tenant-id", str(tenant.id)])
    assert result.exit_code == 0
    assert "CREATE" in result.output
    assert "Invoice: INV-001" in result.output


def test_inventory_verify_clean(runner, db_session, tenant, make_invoice):
    invoice = make_invoice()
    purchase_service.apply_purchase_create(
        tenant.id, [LineItem(name="Lamp", quantity=2, price_cents=1000)], invoice.id, invoice.invoice_number,
    )

    result = runner.invoke(args=["inventory", "verify", "--tenant-id", str(tenant.id)])
    assert result.exit_code == 0
    assert "PASS" in result.output


def test_inventory_verify_reports_drift(runner, db_session, tenant, product):
    result = runner.invoke(args=["inventory", "verify", "--tenant-id", str(tenant.id)])
    assert result.exit_code == 1
    assert "quantity=10 log_sum=0" in result.output
