# Overview: Canonical line item and result types passed across the reconciler boundary.

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable, Mapping

from ..errors import StockValidationError
from ..models import OrderItem, PurchaseItem, ReturnItem
"""
Every reconciler works on LineItem, never on raw request payloads.

- One shape for purchase, return, and order lines.
- Money is integer cents.
- Legacy order payloads (selected_products + product_quantities, either as
  decoded objects or JSON text) are converted here, once, by lines_from_legacy.
"""


@dataclass(frozen=True)
class LineItem:
    name: str
    quantity: int
    price_cents: int = 0
    product_id: int | None = None
    variant_id: int | None = None
    id: int | None = None

    def validate(self) -> "LineItem":
        """Raise StockValidationError for a line no reconciler can act on."""
        if not isinstance(self.name, str) or not self.name.strip():
            if self.product_id is None and self.variant_id is None:
                raise StockValidationError("line item has no name, product id, or variant id")
        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise StockValidationError(f"quantity must be an integer, got {self.quantity!r}")
        if self.quantity < 0:
            raise StockValidationError(f"quantity must be >= 0, got {self.quantity}")
        if self.price_cents is not None and self.price_cents < 0:
            raise StockValidationError(f"price must be >= 0, got {self.price_cents}")
        return self

    @property
    def normalized_name(self) -> str:
        return (self.name or "").strip().lower()

    @property
    def label(self) -> str:
        """How errors and warnings name this line: name, then line id, variant id, product id."""
        if isinstance(self.name, str) and self.name.strip():
            return self.name
        if self.id is not None:
            return f"item {self.id}"
        if self.variant_id is not None:
            return f"variant {self.variant_id}"
        return f"product {self.product_id}"

    @classmethod
    def from_purchase_item(cls, item) -> "LineItem":
        return cls(
            id=item.id,
            name=item.name,
            quantity=int(item.quantity or 0),
            price_cents=int(item.purchase_price_cents or 0),
            product_id=item.product_id,
            variant_id=item.product_variant_id,
        )

    @classmethod
    def from_return_item(cls, item) -> "LineItem":
        return cls(
            id=item.id,
            name=item.product_name,
            quantity=int(item.quantity or 0),
            price_cents=int(item.purchase_price_cents or 0),
            variant_id=item.product_variant_id,
        )

    @classmethod
    def from_order_item(cls, item) -> "LineItem":
        return cls(
            id=item.id,
            name=item.name,
            quantity=int(item.quantity or 0),
            price_cents=int(item.price_cents or 0),
            product_id=item.product_id,
            variant_id=item.product_variant_id,
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "LineItem":
        """Build a line from a decoded payload dict (snake_case or legacy camelCase keys)."""
        if "price_cents" in data:
            price_cents = _to_int(data.get("price_cents"), "price_cents")
        else:
            price_cents = to_cents(data.get("purchase_price", data.get("purchasePrice", data.get("price"))))
        return cls(
            id=_optional_int(data.get("id")),
            name=str(data.get("name") or data.get("product_name") or data.get("productName") or ""),
            quantity=_to_int(data.get("quantity", 0), "quantity"),
            price_cents=price_cents,
            product_id=_optional_int(data.get("product_id", data.get("productId"))),
            variant_id=_optional_int(
                data.get("variant_id", data.get("productVariantId", data.get("variantId")))
            ),
        )


def to_cents(value) -> int:
    """Convert a currency amount (number or numeric string) to integer cents, half-up."""
    if value is None or value == "":
        return 0
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise StockValidationError(f"invalid price {value!r}") from exc
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _to_int(value, field_name: str) -> int:
    if isinstance(value, bool):
        raise StockValidationError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise StockValidationError(f"{field_name} must be an integer, got {value!r}") from exc


def _optional_int(value) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def ensure_lines(items: Iterable[Any] | None) -> list[LineItem]:
    """Accept LineItems, document item rows, or payload dicts; return LineItems."""
    lines: list[LineItem] = []
    for item in items or []:
        if isinstance(item, LineItem):
            lines.append(item)
        elif isinstance(item, PurchaseItem):
            lines.append(LineItem.from_purchase_item(item))
        elif isinstance(item, ReturnItem):
            lines.append(LineItem.from_return_item(item))
        elif isinstance(item, OrderItem):
            lines.append(LineItem.from_order_item(item))
        elif isinstance(item, Mapping):
            lines.append(LineItem.from_mapping(item))
        else:
            raise StockValidationError(f"unsupported line item {item!r}")
    return lines


def _decode_json(value, what: str):
    if isinstance(value, (str, bytes)):
        if not value.strip():
            return None
        try:
            return json.loads(value)
        except ValueError as exc:
            raise StockValidationError(f"Invalid {what} format") from exc
    return value


def lines_from_legacy(selected_products, product_quantities=None) -> list[LineItem]:
    """
    Convert the legacy order shape into LineItems.

    selected_products: list (or dict of values, or JSON text) of product dicts
        carrying id, name, and optionally variantId/productVariantId, quantity, price.
    product_quantities: map (or JSON text) keyed by "{productId}_{variantId}"
        or by product id.

    Quantity precedence: composite key, then product id key, then the product's
    own quantity, then 1. Entries with no name are skipped.
    """
    products = _decode_json(selected_products, "selectedProducts")
    quantities = _decode_json(product_quantities, "productQuantities")

    if isinstance(products, Mapping):
        products = list(products.values())
    if not isinstance(products, list):
        return []
    if not isinstance(quantities, Mapping):
        quantities = {}

    lines: list[LineItem] = []
    for product in products:
        if not isinstance(product, Mapping):
            continue
        name = product.get("name")
        if not name:
            continue

        product_id = _optional_int(product.get("id", product.get("productId")))
        variant_id = _optional_int(product.get("productVariantId", product.get("variantId")))

        candidates = []
        if product_id is not None and variant_id is not None:
            candidates.append(quantities.get(f"{product_id}_{variant_id}"))
        if product_id is not None:
            candidates.append(quantities.get(str(product_id), quantities.get(product_id)))
        candidates.append(product.get("quantity"))
        # Missing or zero entries fall through to the next source
        quantity = next((q for q in candidates if q), 1)

        lines.append(
            LineItem(
                name=str(name),
                quantity=_to_int(quantity, "quantity"),
                price_cents=to_cents(product.get("price")),
                product_id=product_id,
                variant_id=variant_id,
            )
        )
    return lines


def order_lines(order) -> list[LineItem]:
    """Normalized OrderItem rows when the order has any, else its legacy JSON pair."""
    if order.items:
        return [LineItem.from_order_item(item) for item in order.items]
    return lines_from_legacy(order.selected_products, order.product_quantities)


def resolution_key(line: LineItem) -> tuple:
    """Key used to pair lines across two versions of a document."""
    if line.variant_id is not None:
        return ("variant", line.variant_id)
    if line.product_id is not None:
        return ("product", line.product_id)
    return ("name", line.normalized_name)


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class ItemError:
    """One per-item failure; kind is the error class name (NotFoundError, StockValidationError)."""
    item: str
    kind: str
    message: str

    def to_dict(self) -> dict:
        return {"item": self.item, "kind": self.kind, "message": self.message}


@dataclass
class ReconcileResult:
    updated: int = 0
    created: int = 0
    logs_created: int = 0
    errors: list[ItemError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, item: str, exc: Exception) -> None:
        self.errors.append(ItemError(item=item, kind=type(exc).__name__, message=str(exc)))

    def to_dict(self) -> dict:
        return {
            "updated": self.updated,
            "created": self.created,
            "logs_created": self.logs_created,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }


@dataclass
class ReversalResult:
    """Outcome of purchase delete (reversed) or restore (restored)."""
    reversed: int = 0
    restored: int = 0
    logs_created: int = 0
    logs_purged: int = 0
    items_affected: int = 0
    returns_detached: int = 0
    errors: list[ItemError] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def add_error(self, item: str, exc: Exception) -> None:
        self.errors.append(ItemError(item=item, kind=type(exc).__name__, message=str(exc)))

    def to_dict(self) -> dict:
        return {
            "reversed": self.reversed,
            "restored": self.restored,
            "logs_created": self.logs_created,
            "logs_purged": self.logs_purged,
            "items_affected": self.items_affected,
            "returns_detached": self.returns_detached,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": list(self.warnings),
        }


@dataclass
class StockShortfall:
    """Structured per-line rejection from order availability validation."""
    item: str
    requested: int
    available: int | None
    message: str
    product_id: int | None = None
    variant_id: int | None = None

    def to_dict(self) -> dict:
        return {
            "item": self.item,
            "requested": self.requested,
            "available": self.available,
            "message": self.message,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
        }


@dataclass
class ValidationResult:
    errors: list[StockShortfall] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "errors": [e.to_dict() for e in self.errors]}


# =============================================================================
# EDIT MATCHING
# =============================================================================

PRICE_MATCH_TOLERANCE_CENTS = 1


def same_group(old: LineItem, new: LineItem) -> bool:
    """
    Whether two lines share a resolution key group.

    Variant ids decide when either side has one; then product ids when both
    sides have one; otherwise the lowercased names.
    """
    if old.variant_id is not None or new.variant_id is not None:
        return old.variant_id == new.variant_id
    if old.product_id is not None and new.product_id is not None:
        return old.product_id == new.product_id
    return old.normalized_name == new.normalized_name


def pair_lines(old_lines: list[LineItem], new_lines: list[LineItem]):
    """
    Pair the lines of two versions of a document.

    Passes, each over the lines still unmatched:
    1. explicit line id, across all old lines
    2. same key group, same name, price within 1 cent
    3. same key group (the line kept its identity but changed price)

    Returns (pairs, removed, added): pairs is a list of (old, new), removed
    holds old lines with no counterpart, added holds new lines with none.
    """
    unmatched_old = list(old_lines)
    pairs: list[tuple[LineItem, LineItem]] = []
    pending_new: list[LineItem] = []

    for new in new_lines:
        match = None
        if new.id is not None:
            match = next((old for old in unmatched_old if old.id == new.id), None)
        if match is not None:
            unmatched_old.remove(match)
            pairs.append((match, new))
        else:
            pending_new.append(new)

    def _similar(old: LineItem, new: LineItem) -> bool:
        return (
            same_group(old, new)
            and old.normalized_name == new.normalized_name
            and abs(int(old.price_cents or 0) - int(new.price_cents or 0)) <= PRICE_MATCH_TOLERANCE_CENTS
        )

    still_pending: list[LineItem] = []
    for new in pending_new:
        match = next((old for old in unmatched_old if _similar(old, new)), None)
        if match is not None:
            unmatched_old.remove(match)
            pairs.append((match, new))
        else:
            still_pending.append(new)

    added: list[LineItem] = []
    for new in still_pending:
        match = next(
            (old for old in unmatched_old if same_group(old, new)),
            None,
        )
        if match is not None:
            unmatched_old.remove(match)
            pairs.append((match, new))
        else:
            added.append(new)

    return pairs, unmatched_old, added


def identity_changed(old: LineItem, new: LineItem) -> bool:
    """A variant change, or a name change where neither side names a variant."""
    if old.variant_id != new.variant_id:
        return True
    if old.variant_id is None and old.normalized_name != new.normalized_name:
        return True
    return False


def line_value_cents(lines: Iterable[LineItem]) -> int:
    return sum(int(line.price_cents or 0) * int(line.quantity or 0) for line in lines)
