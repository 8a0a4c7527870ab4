from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PurchaseInvoice(db.Model):
    """
    Supplier purchase invoice.

    SOFT DELETE: deleting an invoice reverses its stock effect and flags the
    invoice and its items; restoring re-applies the stock effect and clears
    the flags. Rows are never removed.
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "invoice_number", name="uq_purchase_invoices_tenant_number"),
        db.Index("ix_purchase_invoices_tenant_deleted", "tenant_id", "is_deleted"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    invoice_number = db.Column(db.String(64), nullable=False)
    supplier_name = db.Column(db.String(255), nullable=True)
    invoice_date = db.Column(db.DateTime(timezone=True), nullable=True)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    deleted_by = db.Column(db.String(64), nullable=True)
    delete_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship(
        "PurchaseItem",
        back_populates="invoice",
        lazy=True,
        order_by="PurchaseItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "invoice_number": self.invoice_number,
            "supplier_name": self.supplier_name,
            "invoice_date": to_utc_z(self.invoice_date),
            "total_amount_cents": self.total_amount_cents,
            "notes": self.notes,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
            "deleted_by": self.deleted_by,
            "delete_reason": self.delete_reason,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseItem(db.Model):
    """Line item on a PurchaseInvoice, linked to the stock record it moved."""
    __tablename__ = "purchase_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)

    # Independent of the parent invoice's flag: edits soft-delete single lines
    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    invoice = db.relationship("PurchaseInvoice", back_populates="items")
    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_invoice_id": self.purchase_invoice_id,
            "name": self.name,
            "purchase_price_cents": self.purchase_price_cents,
            "quantity": self.quantity,
            "product_id": self.product_id,
            "product_variant_id": self.product_variant_id,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at),
        }


class Return(db.Model):
    """
    Return document.

    SUPPLIER returns send goods back to a supplier (stock decreases) and may
    reference the originating PurchaseInvoice. CUSTOMER_FULL / CUSTOMER_PARTIAL
    returns take goods back from a customer (stock increases) and may
    reference the originating Order.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "return_number", name="uq_returns_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    return_number = db.Column(db.String(64), nullable=False)
    return_type = db.Column(db.String(32), nullable=False, default="SUPPLIER")
    status = db.Column(db.String(16), nullable=False, default="PROCESSED", index=True)
    reason = db.Column(db.String(255), nullable=True)
    handling_method = db.Column(db.String(16), nullable=True)  # REDUCE_AP | REFUND

    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("ReturnItem", back_populates="return_doc", lazy=True, order_by="ReturnItem.id")
    purchase_invoice = db.relationship("PurchaseInvoice", backref=db.backref("returns", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "return_number": self.return_number,
            "return_type": self.return_type,
            "status": self.status,
            "reason": self.reason,
            "handling_method": self.handling_method,
            "purchase_invoice_id": self.purchase_invoice_id,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
        }


class ReturnItem(db.Model):
    __tablename__ = "return_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)

    product_name = db.Column(db.String(255), nullable=False)
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    return_doc = db.relationship("Return", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "product_name": self.product_name,
            "purchase_price_cents": self.purchase_price_cents,
            "quantity": self.quantity,
            "product_variant_id": self.product_variant_id,
            "reason": self.reason,
        }


class Order(db.Model):
    """
    Customer order.

    LIFECYCLE: PENDING -> CONFIRMED -> DISPATCHED -> COMPLETED, or CANCELLED.
    Only CONFIRMED/DISPATCHED/COMPLETED orders hold an allocation.

    SHAPES: lines live either in the normalized OrderItem rows or, for legacy
    orders, in the selected_products / product_quantities JSON text columns.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_orders_tenant_number"),
        db.Index("ix_orders_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    order_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="PENDING")

    selected_products = db.Column(db.Text, nullable=True)
    product_quantities = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", back_populates="order", lazy=True, order_by="OrderItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "order_number": self.order_number,
            "status": self.status,
            "items": [item.to_dict() for item in self.items],
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    product_variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    order = db.relationship("Order", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_variant_id": self.product_variant_id,
            "name": self.name,
            "quantity": self.quantity,
            "price_cents": self.price_cents,
        }
