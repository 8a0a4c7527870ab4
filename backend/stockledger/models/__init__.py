from .tenancy import Tenant
from .catalog import Product, ProductVariant
from .documents import PurchaseInvoice, PurchaseItem, Return, ReturnItem, Order, OrderItem
from .audit import ProductLog
from .accounting import Account, LedgerTransaction, LedgerLine

__all__ = [
    "Tenant",
    "Product",
    "ProductVariant",
    "PurchaseInvoice",
    "PurchaseItem",
    "Return",
    "ReturnItem",
    "Order",
    "OrderItem",
    "ProductLog",
    "Account",
    "LedgerTransaction",
    "LedgerLine",
]
