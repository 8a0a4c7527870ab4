# Overview: Pytest coverage for line item resolution to products and variants.

from stockledger.models import Product, ProductVariant
from stockledger.services.line_items import LineItem
from stockledger.services.repository import StockRepository
from stockledger.services.resolver import resolve, resolve_by_name


def test_variant_id_wins(db_session, tenant, product, variants):
    red, _ = variants
    resolution = resolve(StockRepository(), tenant.id, LineItem(name="Something else", quantity=1, variant_id=red.id))

    assert resolution.found
    assert resolution.variant.id == red.id
    assert resolution.product.id == product.id
    assert resolution.target is resolution.variant
    assert resolution.key == ("variant", red.id)


def test_product_id_before_name(db_session, tenant, product):
    other = Product(tenant_id=tenant.id, name="Gadget", current_quantity=0)
    db_session.add(other)
    db_session.commit()

    resolution = resolve(StockRepository(), tenant.id, LineItem(name="Gadget", quantity=1, product_id=product.id))
    assert resolution.product.id == product.id
    assert resolution.key == ("product", product.id)


def test_name_is_case_insensitive_and_trimmed(db_session, tenant, product):
    resolution = resolve(StockRepository(), tenant.id, LineItem(name="  wIdGeT ", quantity=1))
    assert resolution.product.id == product.id
    assert resolution.variant is None
    assert resolution.target is resolution.product


def test_no_fuzzy_matching(db_session, tenant, product):
    resolution = resolve(StockRepository(), tenant.id, LineItem(name="Widgets", quantity=1))
    assert not resolution.found
    assert resolution.key is None


def test_foreign_variant_falls_through_to_name(db_session, tenant, other_tenant, product):
    foreign = Product(tenant_id=other_tenant.id, name="Foreign", current_quantity=0)
    db_session.add(foreign)
    db_session.flush()
    foreign_variant = ProductVariant(product_id=foreign.id, color="Green", current_quantity=9)
    db_session.add(foreign_variant)
    db_session.commit()

    resolution = resolve(
        StockRepository(), tenant.id, LineItem(name="Widget", quantity=1, variant_id=foreign_variant.id),
    )
    assert resolution.variant is None
    assert resolution.product.id == product.id


def test_foreign_product_id_is_not_resolved(db_session, tenant, other_tenant):
    foreign = Product(tenant_id=other_tenant.id, name="Foreign", current_quantity=0)
    db_session.add(foreign)
    db_session.commit()

    resolution = resolve(StockRepository(), tenant.id, LineItem(name="Foreign", quantity=1, product_id=foreign.id))
    assert not resolution.found


def test_active_only_skips_inactive(db_session, tenant, product, variants):
    red, _ = variants
    red.is_active = False
    db_session.commit()

    line = LineItem(name="Widget", quantity=1, variant_id=red.id)
    assert resolve(StockRepository(), tenant.id, line).variant.id == red.id
    # Inactive variant falls through to the (active) product by name
    assert resolve(StockRepository(), tenant.id, line, active_only=True).variant is None


def test_resolve_by_name_ignores_ids(db_session, tenant, product):
    assert resolve_by_name(StockRepository(), tenant.id, "WIDGET").product.id == product.id
    assert not resolve_by_name(StockRepository(), tenant.id, "").found
