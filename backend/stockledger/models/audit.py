from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductLog(db.Model):
    """
    Append-only record of one stock quantity change.

    INVARIANT: new_quantity = old_quantity + quantity for the product/variant
    at the time of writing. Rows are never updated. The only delete path is the
    purge of logs linked to a deleted purchase invoice's items; logs written by
    returns, orders, and delete/restore reversals carry no purchase_item_id and
    survive that purge.

    ACTIONS: CREATE, INCREASE, DECREASE, PURCHASE_PRICE_UPDATE.
    """
    __tablename__ = "product_logs"
    __table_args__ = (
        db.Index("ix_product_logs_tenant_product", "tenant_id", "product_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)
    purchase_item_id = db.Column(db.Integer, db.ForeignKey("purchase_items.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    action = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    old_quantity = db.Column(db.Integer, nullable=False, default=0)
    new_quantity = db.Column(db.Integer, nullable=False, default=0)
    old_price_cents = db.Column(db.Integer, nullable=True)
    new_price_cents = db.Column(db.Integer, nullable=True)

    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "product_variant_id": self.product_variant_id,
            "purchase_item_id": self.purchase_item_id,
            "return_id": self.return_id,
            "order_id": self.order_id,
            "action": self.action,
            "quantity": self.quantity,
            "old_quantity": self.old_quantity,
            "new_quantity": self.new_quantity,
            "old_price_cents": self.old_price_cents,
            "new_price_cents": self.new_price_cents,
            "reason": self.reason,
            "reference": self.reference,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
