# Overview: Tenant-scoped record store used by the reconcilers and the allocator.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import (
    Order,
    Product,
    ProductLog,
    ProductVariant,
    PurchaseInvoice,
    PurchaseItem,
    Return,
)
from .concurrency import lock_for_update


ALLOCATION_STATUSES = ("CONFIRMED", "DISPATCHED", "COMPLETED")


class StockRepository:
    """
    Narrow persistence interface handed to every reconciler.

    WHY: reconciliation logic never reaches into db.session directly, so a
    caller can run it against another session (or a fake in tests) by passing
    repo=StockRepository(session).

    MULTI-TENANT: every read is filtered by tenant_id. Variants have no
    tenant column; they are scoped through their parent product.

    Nothing here commits. The caller's unit of work (run_in_transaction) does.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    # ------------------------------------------------------------------
    # Products and variants
    # ------------------------------------------------------------------

    def get_product(self, tenant_id: int, product_id: int, *, lock: bool = False) -> Product | None:
        query = self.session.query(Product).filter(
            Product.id == product_id,
            Product.tenant_id == tenant_id,
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    def get_variant(self, tenant_id: int, variant_id: int, *, lock: bool = False) -> ProductVariant | None:
        query = (
            self.session.query(ProductVariant)
            .join(Product, ProductVariant.product_id == Product.id)
            .filter(
                ProductVariant.id == variant_id,
                Product.tenant_id == tenant_id,
            )
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    def find_product_by_name(self, tenant_id: int, name: str, *, lock: bool = False) -> Product | None:
        """Case-insensitive exact match. No fuzzy matching."""
        normalized = (name or "").strip().lower()
        if not normalized:
            return None
        query = self.session.query(Product).filter(
            Product.tenant_id == tenant_id,
            func.lower(Product.name) == normalized,
        )
        if lock:
            query = lock_for_update(query)
        return query.order_by(Product.id.asc()).first()

    def lock_row(self, row) -> None:
        """Re-read a product/variant row under SELECT ... FOR UPDATE."""
        self.session.flush()
        self.session.refresh(row, with_for_update=True)

    def add_product(self, product: Product) -> Product:
        self.session.add(product)
        self.session.flush()
        return product

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def add_log(self, log: ProductLog) -> ProductLog:
        self.session.add(log)
        self.session.flush()
        return log

    def has_order_log(self, tenant_id: int, order_id: int, reason: str) -> bool:
        return (
            self.session.query(ProductLog.id)
            .filter(
                ProductLog.tenant_id == tenant_id,
                ProductLog.order_id == order_id,
                ProductLog.reason == reason,
            )
            .first()
            is not None
        )

    def purge_logs_for_purchase_items(self, purchase_item_ids) -> int:
        """Bulk-delete logs linked to the given purchase items. Returns rows deleted."""
        ids = [i for i in purchase_item_ids if i is not None]
        if not ids:
            return 0
        return (
            self.session.query(ProductLog)
            .filter(ProductLog.purchase_item_id.in_(ids))
            .delete(synchronize_session=False)
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def add(self, row):
        self.session.add(row)
        self.session.flush()
        return row

    def get_purchase_invoice(self, tenant_id: int, invoice_id: int) -> PurchaseInvoice | None:
        return (
            self.session.query(PurchaseInvoice)
            .filter(
                PurchaseInvoice.id == invoice_id,
                PurchaseInvoice.tenant_id == tenant_id,
            )
            .first()
        )

    def get_purchase_item(self, tenant_id: int, item_id: int) -> PurchaseItem | None:
        return (
            self.session.query(PurchaseItem)
            .filter(
                PurchaseItem.id == item_id,
                PurchaseItem.tenant_id == tenant_id,
            )
            .first()
        )

    def get_return(self, tenant_id: int, return_id: int) -> Return | None:
        return (
            self.session.query(Return)
            .filter(Return.id == return_id, Return.tenant_id == tenant_id)
            .first()
        )

    def returns_for_invoice(self, tenant_id: int, invoice_id: int, *, return_type: str | None = None):
        query = self.session.query(Return).filter(
            Return.tenant_id == tenant_id,
            Return.purchase_invoice_id == invoice_id,
        )
        if return_type is not None:
            query = query.filter(Return.return_type == return_type)
        return query.order_by(Return.id.asc()).all()

    def get_order(self, tenant_id: int, order_id: int, *, lock: bool = False) -> Order | None:
        query = self.session.query(Order).filter(Order.id == order_id, Order.tenant_id == tenant_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def allocation_relevant_orders(self, tenant_id: int, *, exclude_order_id: int | None = None):
        """Orders that hold a stock allocation (CONFIRMED, DISPATCHED, COMPLETED)."""
        query = self.session.query(Order).filter(
            Order.tenant_id == tenant_id,
            Order.status.in_(ALLOCATION_STATUSES),
        )
        if exclude_order_id is not None:
            query = query.filter(Order.id != exclude_order_id)
        return query.order_by(Order.id.asc()).all()
