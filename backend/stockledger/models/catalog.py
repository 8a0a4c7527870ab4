from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Stock record for a product.

    MULTI-TENANT: scoped by tenant_id. Names are unique per tenant,
    case-insensitively (functional index below); resolution by name relies on it.

    QUANTITY: current_quantity is the stored running balance. Every change to it
    is paired with exactly one ProductLog row written in the same unit of work.
    Products are never hard-deleted; is_active is toggled elsewhere.

    CONCURRENCY: version_id is an optimistic lock column. A concurrent writer
    that loses the race gets StaleDataError and the unit of work is retried.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(120), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    last_purchase_price_cents = db.Column(db.Integer, nullable=True)
    current_retail_price_cents = db.Column(db.Integer, nullable=True)
    min_stock_level = db.Column(db.Integer, nullable=False, default=0)
    max_stock_level = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} qty={self.current_quantity} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "sku": self.sku,
            "current_quantity": self.current_quantity,
            "last_purchase_price_cents": self.last_purchase_price_cents,
            "current_retail_price_cents": self.current_retail_price_cents,
            "min_stock_level": self.min_stock_level,
            "max_stock_level": self.max_stock_level,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


# Case-insensitive uniqueness of product names within a tenant
db.Index(
    "uq_products_tenant_lower_name",
    Product.tenant_id,
    db.func.lower(Product.name),
    unique=True,
)


class ProductVariant(db.Model):
    """
    Colour/size variant of a Product with its own quantity.

    When a line item names a variant, the stock mutation lands here instead of
    on the parent product. Tenant scoping is inherited through product_id.
    """
    __tablename__ = "product_variants"
    __table_args__ = (
        db.UniqueConstraint("product_id", "color", "size", name="uq_variants_product_color_size"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    color = db.Column(db.String(64), nullable=True)
    size = db.Column(db.String(64), nullable=True)
    sku = db.Column(db.String(64), nullable=True)

    current_quantity = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("variants", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def label(self) -> str:
        parts = [p for p in (self.color, self.size) if p]
        return ", ".join(parts) if parts else f"variant {self.id}"

    def __repr__(self) -> str:
        return f"<ProductVariant id={self.id} product_id={self.product_id} {self.label!r} qty={self.current_quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "color": self.color,
            "size": self.size,
            "sku": self.sku,
            "current_quantity": self.current_quantity,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
