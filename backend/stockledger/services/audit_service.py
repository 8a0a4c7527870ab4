# Overview: Read side of the product audit log: history and quantity drift checks.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, ProductLog, ProductVariant


def get_product_history(
    tenant_id: int,
    product_id: int | None = None,
    *,
    variant_id: int | None = None,
    limit: int | None = 100,
) -> list[ProductLog]:
    """Log rows for a tenant (optionally one product or variant), newest first."""
    query = db.session.query(ProductLog).filter(ProductLog.tenant_id == tenant_id)
    if product_id is not None:
        query = query.filter(ProductLog.product_id == product_id)
    if variant_id is not None:
        query = query.filter(ProductLog.product_variant_id == variant_id)
    query = query.order_by(ProductLog.id.desc())
    if limit is not None:
        query = query.limit(limit)
    return query.all()


def verify_log_consistency(tenant_id: int) -> list[dict]:
    """
    Compare each product/variant quantity with the sum of its log deltas.

    Returns one entry per record that drifts. Product-level sums only count
    logs with no variant, since variant logs move the variant's quantity.

    Known sources of drift: the purge of a deleted invoice's purchase-item
    logs, and stock written outside apply_delta().
    """
    product_sums = dict(
        db.session.query(ProductLog.product_id, func.coalesce(func.sum(ProductLog.quantity), 0))
        .filter(
            ProductLog.tenant_id == tenant_id,
            ProductLog.product_variant_id.is_(None),
        )
        .group_by(ProductLog.product_id)
        .all()
    )
    variant_sums = dict(
        db.session.query(ProductLog.product_variant_id, func.coalesce(func.sum(ProductLog.quantity), 0))
        .filter(
            ProductLog.tenant_id == tenant_id,
            ProductLog.product_variant_id.isnot(None),
        )
        .group_by(ProductLog.product_variant_id)
        .all()
    )

    drift: list[dict] = []
    products = (
        db.session.query(Product)
        .filter(Product.tenant_id == tenant_id)
        .order_by(Product.id.asc())
        .all()
    )
    for product in products:
        expected = int(product_sums.get(product.id, 0))
        if expected != product.current_quantity:
            drift.append({
                "product_id": product.id,
                "variant_id": None,
                "name": product.name,
                "current_quantity": product.current_quantity,
                "log_sum": expected,
            })

    variants = (
        db.session.query(ProductVariant)
        .join(Product, ProductVariant.product_id == Product.id)
        .filter(Product.tenant_id == tenant_id)
        .order_by(ProductVariant.id.asc())
        .all()
    )
    for variant in variants:
        expected = int(variant_sums.get(variant.id, 0))
        if expected != variant.current_quantity:
            drift.append({
                "product_id": variant.product_id,
                "variant_id": variant.id,
                "name": f"{variant.product.name} ({variant.label})",
                "current_quantity": variant.current_quantity,
                "log_sum": expected,
            })

    return drift
