# Overview: The single stock mutation primitive plus product auto-creation and stock summaries.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func

from ..errors import StockValidationError
from ..extensions import db
from ..models import Product, ProductLog, ProductVariant
from ..time_utils import apply_markup_cents, utcnow
from .line_items import LineItem
"""
Stock mutation invariants (authoritative)

- Every quantity change goes through apply_delta(); nothing else writes
  current_quantity.
- apply_delta() writes exactly one ProductLog row, in the same unit of work,
  with new_quantity = old_quantity + quantity.
- Negative results follow NEGATIVE_STOCK_POLICY:
    clamp  -> stock stops at 0; the log records the applied delta and the
              requested delta is kept in notes (lossy, flagged as a warning)
    reject -> StockValidationError, nothing is written
- When a variant is targeted, the parent product's last purchase price and
  updated_at still move, for reporting continuity.
"""

ACTION_CREATE = "CREATE"
ACTION_INCREASE = "INCREASE"
ACTION_DECREASE = "DECREASE"
ACTION_PRICE_UPDATE = "PURCHASE_PRICE_UPDATE"

POLICY_CLAMP = "clamp"
POLICY_REJECT = "reject"


@dataclass
class StockChange:
    log: ProductLog
    requested: int
    applied: int

    @property
    def clamped(self) -> bool:
        return self.applied != self.requested


def _negative_policy() -> str:
    policy = str(current_app.config.get("NEGATIVE_STOCK_POLICY", POLICY_CLAMP)).lower()
    if policy not in (POLICY_CLAMP, POLICY_REJECT):
        raise ValueError(f"unknown NEGATIVE_STOCK_POLICY {policy!r}")
    return policy


def describe_target(product: Product, variant: ProductVariant | None = None) -> str:
    if variant is not None:
        return f"{product.name} ({variant.label})"
    return product.name


def apply_delta(
    repo,
    *,
    tenant_id: int,
    product: Product,
    variant: ProductVariant | None = None,
    delta: int,
    reason: str,
    reference: str,
    notes: str | None = None,
    action: str | None = None,
    price_cents: int | None = None,
    purchase_item_id: int | None = None,
    return_id: int | None = None,
    order_id: int | None = None,
    policy: str | None = None,
) -> StockChange:
    """
    Move a product's (or variant's) quantity by delta and append its log row.

    The row is re-read under FOR UPDATE before the new quantity is computed,
    so the read-modify-write happens against the locked current value.

    Raises StockValidationError under the reject policy when the result
    would go below zero.
    """
    target = variant if variant is not None else product
    repo.lock_row(target)
    if variant is not None and price_cents is not None:
        repo.lock_row(product)

    old_quantity = int(target.current_quantity or 0)
    requested = int(delta)
    applied = requested

    if old_quantity + requested < 0:
        if (policy or _negative_policy()) == POLICY_REJECT:
            raise StockValidationError(
                f"Insufficient stock for {describe_target(product, variant)}: "
                f"have {old_quantity}, cannot remove {-requested}"
            )
        applied = -old_quantity
        clamp_note = f"Requested {requested}, clamped at zero (applied {applied})"
        notes = f"{notes}. {clamp_note}" if notes else clamp_note

    new_quantity = old_quantity + applied
    target.current_quantity = new_quantity

    old_price = product.last_purchase_price_cents
    if price_cents is not None:
        product.last_purchase_price_cents = price_cents
    if variant is not None or price_cents is not None:
        product.updated_at = utcnow()

    if action is None:
        action = ACTION_INCREASE if requested >= 0 else ACTION_DECREASE

    log = ProductLog(
        tenant_id=tenant_id,
        product_id=product.id,
        product_variant_id=variant.id if variant is not None else None,
        purchase_item_id=purchase_item_id,
        return_id=return_id,
        order_id=order_id,
        action=action,
        quantity=applied,
        old_quantity=old_quantity,
        new_quantity=new_quantity,
        old_price_cents=old_price if price_cents is not None else None,
        new_price_cents=price_cents,
        reason=reason,
        reference=reference,
        notes=notes,
    )
    repo.add_log(log)
    return StockChange(log=log, requested=requested, applied=applied)


def record_price_update(
    repo,
    *,
    tenant_id: int,
    product: Product,
    variant: ProductVariant | None = None,
    old_price_cents: int | None,
    new_price_cents: int,
    reason: str,
    reference: str,
    notes: str | None = None,
    purchase_item_id: int | None = None,
) -> ProductLog:
    """Zero-quantity PURCHASE_PRICE_UPDATE log; only last_purchase_price moves."""
    repo.lock_row(product)
    target = variant if variant is not None else product
    quantity = int(target.current_quantity or 0)

    product.last_purchase_price_cents = new_price_cents
    product.updated_at = utcnow()

    log = ProductLog(
        tenant_id=tenant_id,
        product_id=product.id,
        product_variant_id=variant.id if variant is not None else None,
        purchase_item_id=purchase_item_id,
        action=ACTION_PRICE_UPDATE,
        quantity=0,
        old_quantity=quantity,
        new_quantity=quantity,
        old_price_cents=old_price_cents,
        new_price_cents=new_price_cents,
        reason=reason,
        reference=reference,
        notes=notes,
    )
    repo.add_log(log)
    return log


def create_product_from_line(
    repo,
    *,
    tenant_id: int,
    line: LineItem,
    reason: str,
    reference: str,
    notes: str | None = None,
    purchase_item_id: int | None = None,
) -> tuple[Product, ProductLog]:
    """
    Create a Product seeded from a purchase line and write its CREATE log.

    Seeds: quantity = line quantity, last purchase price = line price,
    retail price = price x RETAIL_MARKUP (half-up), min stock 0, max stock 2 x qty.
    """
    if not (line.name or "").strip():
        raise StockValidationError("cannot create a product without a name")
    markup = current_app.config.get("RETAIL_MARKUP", "1.5")
    quantity = int(line.quantity)

    product = Product(
        tenant_id=tenant_id,
        name=line.name.strip(),
        current_quantity=quantity,
        last_purchase_price_cents=line.price_cents,
        current_retail_price_cents=apply_markup_cents(line.price_cents, markup),
        min_stock_level=0,
        max_stock_level=quantity * 2,
        is_active=True,
    )
    repo.add_product(product)

    log = ProductLog(
        tenant_id=tenant_id,
        product_id=product.id,
        purchase_item_id=purchase_item_id,
        action=ACTION_CREATE,
        quantity=quantity,
        old_quantity=0,
        new_quantity=quantity,
        old_price_cents=None,
        new_price_cents=line.price_cents,
        reason=reason,
        reference=reference,
        notes=notes or f"New product created with initial quantity of {quantity}",
    )
    repo.add_log(log)
    return product, log


def get_inventory_summary(tenant_id: int) -> dict:
    """
    Stock totals for a tenant.

    Value is quantity x last purchase price; variants are valued at their
    parent product's last purchase price. Low stock means
    current_quantity <= min_stock_level among active products.
    """
    product_row = db.session.query(
        func.count(Product.id).label("records"),
        func.coalesce(func.sum(Product.current_quantity), 0).label("units"),
        func.coalesce(
            func.sum(Product.current_quantity * func.coalesce(Product.last_purchase_price_cents, 0)),
            0,
        ).label("value"),
    ).filter(Product.tenant_id == tenant_id).one()

    variant_row = (
        db.session.query(
            func.count(ProductVariant.id).label("records"),
            func.coalesce(func.sum(ProductVariant.current_quantity), 0).label("units"),
            func.coalesce(
                func.sum(
                    ProductVariant.current_quantity * func.coalesce(Product.last_purchase_price_cents, 0)
                ),
                0,
            ).label("value"),
        )
        .join(Product, ProductVariant.product_id == Product.id)
        .filter(Product.tenant_id == tenant_id)
        .one()
    )

    low_stock = (
        db.session.query(Product)
        .filter(
            Product.tenant_id == tenant_id,
            Product.is_active.is_(True),
            Product.current_quantity <= Product.min_stock_level,
        )
        .order_by(Product.name.asc())
        .all()
    )

    return {
        "tenant_id": tenant_id,
        "product_count": int(product_row.records or 0),
        "variant_count": int(variant_row.records or 0),
        "total_units": int(product_row.units or 0) + int(variant_row.units or 0),
        "inventory_value_cents": int(product_row.value or 0) + int(variant_row.value or 0),
        "low_stock": [
            {
                "id": p.id,
                "name": p.name,
                "current_quantity": p.current_quantity,
                "min_stock_level": p.min_stock_level,
            }
            for p in low_stock
        ],
    }
