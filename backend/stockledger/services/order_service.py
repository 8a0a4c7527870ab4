"""
Order Allocator

WHY: Stock committed to live orders is not available to new ones. This module
computes that committed quantity, validates requests against what is left,
applies the decrement when an order is confirmed, and applies net deltas when
an allocated order is edited.

DEFINITIONS:
- Allocation-relevant order: status in CONFIRMED, DISPATCHED, COMPLETED
- Allocated: sum of line quantities across allocation-relevant orders, per
  product (lines without a variant) and per variant
- Available: current_quantity - allocated

LIFECYCLE:
PENDING -> CONFIRMED (stock decremented) -> DISPATCHED / COMPLETED
PENDING -> CANCELLED (no stock effect, PENDING never allocated)
CONFIRMED -> CANCELLED

Both order shapes (normalized OrderItem rows, or the legacy selected_products
+ product_quantities pair) produce identical stock effects; they meet as
LineItems before any resolution happens.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field

from flask import current_app

from ..errors import NotFoundError, StockValidationError
from .concurrency import run_in_transaction
from .line_items import (
    LineItem,
    ReconcileResult,
    StockShortfall,
    ValidationResult,
    lines_from_legacy,
    order_lines,
)
from .repository import ALLOCATION_STATUSES, StockRepository
from .resolver import resolve
from .stock_service import apply_delta, describe_target


# =============================================================================
# ORDER STATUS CONSTANTS
# =============================================================================

ORDER_STATUS_PENDING = "PENDING"
ORDER_STATUS_CONFIRMED = "CONFIRMED"
ORDER_STATUS_DISPATCHED = "DISPATCHED"
ORDER_STATUS_COMPLETED = "COMPLETED"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_TRANSITIONS = {
    ORDER_STATUS_PENDING: {ORDER_STATUS_CONFIRMED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_CONFIRMED: {ORDER_STATUS_DISPATCHED, ORDER_STATUS_COMPLETED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_DISPATCHED: {ORDER_STATUS_COMPLETED},
    ORDER_STATUS_COMPLETED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

REASON_CONFIRMED = "Order confirmed"
REASON_EDITED = "Order quantity updated"


@dataclass
class Allocations:
    by_product: dict = field(default_factory=lambda: defaultdict(int))
    by_variant: dict = field(default_factory=lambda: defaultdict(int))

    def for_key(self, key: tuple) -> int:
        kind, ident = key
        if kind == "variant":
            return int(self.by_variant.get(ident, 0))
        return int(self.by_product.get(ident, 0))

    def add(self, key: tuple, quantity: int) -> None:
        kind, ident = key
        if kind == "variant":
            self.by_variant[ident] += quantity
        else:
            self.by_product[ident] += quantity


def is_allocation_relevant(order) -> bool:
    return order is not None and order.status in ALLOCATION_STATUSES


def _label(line: LineItem) -> str:
    return line.label


def _as_lines(items, quantities=None) -> list[LineItem]:
    """LineItems pass through; anything else is read as the legacy order shape."""
    if isinstance(items, (list, tuple)) and items and all(isinstance(i, LineItem) for i in items):
        return list(items)
    return lines_from_legacy(items, quantities)


def _tally_order(repo, tenant_id: int, order, allocations: Allocations) -> None:
    for line in order_lines(order):
        resolution = resolve(repo, tenant_id, line)
        if resolution.found:
            allocations.add(resolution.key, line.quantity)


def compute_allocations(
    tenant_id: int,
    exclude_order_id: int | None = None,
    *,
    repo: StockRepository | None = None,
) -> Allocations:
    """Committed quantity per product and per variant over allocation-relevant orders."""
    repo = repo or StockRepository()
    allocations = Allocations()
    for order in repo.allocation_relevant_orders(tenant_id, exclude_order_id=exclude_order_id):
        _tally_order(repo, tenant_id, order, allocations)
    return allocations


def validate_order_stock(
    tenant_id: int,
    items,
    quantities=None,
    exclude_order_id: int | None = None,
    *,
    repo: StockRepository | None = None,
) -> ValidationResult:
    """
    Check requested lines against available stock. Never mutates.

    available = current_quantity - allocated to other live orders. With
    exclude_order_id, that order's allocation is left out, and (when
    ORDER_EDIT_CREDITS_OWN_ALLOCATION is on) its own allocation is credited
    back, since its confirm decrement is already inside current_quantity.

    Inactive products and variants count as not found. Lines resolving to
    the same record are checked against their combined quantity.
    """
    repo = repo or StockRepository()
    lines = _as_lines(items, quantities)
    allocations = compute_allocations(tenant_id, exclude_order_id, repo=repo)

    own = Allocations()
    if exclude_order_id is not None and current_app.config.get("ORDER_EDIT_CREDITS_OWN_ALLOCATION", True):
        order = repo.get_order(tenant_id, exclude_order_id)
        if is_allocation_relevant(order):
            _tally_order(repo, tenant_id, order, own)

    result = ValidationResult()
    requested: dict = defaultdict(int)
    targets: dict = {}

    for line in lines:
        try:
            line.validate()
        except StockValidationError as exc:
            result.errors.append(StockShortfall(
                item=_label(line), requested=line.quantity, available=None, message=str(exc),
                product_id=line.product_id, variant_id=line.variant_id,
            ))
            continue

        resolution = resolve(repo, tenant_id, line, active_only=True)
        if not resolution.found:
            result.errors.append(StockShortfall(
                item=_label(line),
                requested=line.quantity,
                available=None,
                message=f"Product not found: {_label(line)}",
                product_id=line.product_id,
                variant_id=line.variant_id,
            ))
            continue
        requested[resolution.key] += line.quantity
        targets.setdefault(resolution.key, resolution)

    for key, quantity in requested.items():
        resolution = targets[key]
        current = int(resolution.target.current_quantity or 0)
        available = current - allocations.for_key(key) + own.for_key(key)
        if quantity > available:
            name = describe_target(resolution.product, resolution.variant)
            result.errors.append(StockShortfall(
                item=name,
                requested=quantity,
                available=available,
                message=f"Insufficient stock for {name}. Available: {available}, Requested: {quantity}",
                product_id=resolution.product.id,
                variant_id=resolution.variant.id if resolution.variant is not None else None,
            ))
    return result


# =============================================================================
# CONFIRM
# =============================================================================

def _confirm_lines(repo, tenant_id: int, order, order_ref: str, result: ReconcileResult) -> None:
    reference = f"Order: {order_ref}"
    for line in order_lines(order):
        try:
            line.validate()
            resolution = resolve(repo, tenant_id, line, lock=True)
            if not resolution.found:
                raise NotFoundError(f"Product not found in inventory: {_label(line)}")
            change = apply_delta(
                repo,
                tenant_id=tenant_id,
                product=resolution.product,
                variant=resolution.variant,
                delta=-line.quantity,
                reason=REASON_CONFIRMED,
                reference=reference,
                notes=f"Quantity decreased by {line.quantity} due to order confirmation",
                order_id=order.id,
            )
            if change.clamped:
                result.warnings.append(
                    f"{describe_target(resolution.product, resolution.variant)}: order quantity "
                    f"{line.quantity} exceeds stock, clamped to {-change.applied}"
                )
            result.updated += 1
            result.logs_created += 1
        except (NotFoundError, StockValidationError) as exc:
            result.add_error(_label(line), exc)
            current_app.logger.warning("Order %s: %s", order_ref, exc)


def apply_order_confirm(
    tenant_id: int,
    order_id: int,
    order_ref: str | None = None,
    *,
    repo: StockRepository | None = None,
) -> ReconcileResult:
    """
    DECREASE stock by every line of an order being confirmed.

    Does not change the order's status; transition_order_status() does both.
    The order must be PENDING, or CONFIRMED with no confirmation logs yet, so
    stock is taken out at most once per order.

    Raises:
        NotFoundError: order missing for the tenant
        StockValidationError: order in another status, or already confirmed
    """
    repo = repo or StockRepository()

    def _op():
        order = repo.get_order(tenant_id, order_id, lock=True)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status not in (ORDER_STATUS_PENDING, ORDER_STATUS_CONFIRMED):
            raise StockValidationError(f"Cannot confirm order {order.order_number} in status {order.status}")
        if repo.has_order_log(tenant_id, order.id, REASON_CONFIRMED):
            raise StockValidationError(f"Order {order.order_number} has already been confirmed")
        result = ReconcileResult()
        _confirm_lines(repo, tenant_id, order, order_ref or order.order_number, result)
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s confirmed: %s updated, %s logs, %s errors",
        order_ref or order_id, result.updated, result.logs_created, len(result.errors),
    )
    return result


# =============================================================================
# EDIT
# =============================================================================

def apply_order_edit(
    tenant_id: int,
    order_id: int,
    old_items,
    old_qty,
    new_items,
    new_qty,
    order_ref: str | None = None,
    *,
    repo: StockRepository | None = None,
) -> ReconcileResult:
    """
    Apply the net stock delta of an edit to an already-allocated order.

    netDelta = new quantity - old quantity per resolved record, applied as one
    DECREASE (ordered more) or INCREASE (ordered less). No reverse-then-reapply.
    A no-op unless the order is allocation-relevant. The order's own stored
    lines are the caller's to update.
    """
    repo = repo or StockRepository()
    old_lines = _as_lines(old_items, old_qty)
    new_lines = _as_lines(new_items, new_qty)

    def _op():
        order = repo.get_order(tenant_id, order_id, lock=True)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        result = ReconcileResult()
        if not is_allocation_relevant(order):
            return result

        ref = order_ref or order.order_number
        reference = f"Order Edit: {ref}"
        old_totals: dict = defaultdict(int)
        new_totals: dict = defaultdict(int)
        targets: dict = {}
        order_of_keys: list = []

        for totals, lines in ((old_totals, old_lines), (new_totals, new_lines)):
            for line in lines:
                try:
                    line.validate()
                    resolution = resolve(repo, tenant_id, line, lock=True)
                    if not resolution.found:
                        raise NotFoundError(f"Product not found in inventory: {_label(line)}")
                except (NotFoundError, StockValidationError) as exc:
                    result.add_error(_label(line), exc)
                    continue
                key = resolution.key
                totals[key] += line.quantity
                if key not in targets:
                    targets[key] = resolution
                    order_of_keys.append(key)

        for key in order_of_keys:
            old_quantity = old_totals.get(key, 0)
            new_quantity = new_totals.get(key, 0)
            diff = new_quantity - old_quantity
            if diff == 0:
                continue
            resolution = targets[key]
            try:
                change = apply_delta(
                    repo,
                    tenant_id=tenant_id,
                    product=resolution.product,
                    variant=resolution.variant,
                    delta=-diff,
                    reason=REASON_EDITED,
                    reference=reference,
                    notes=(
                        f"Quantity {'decreased' if diff > 0 else 'increased'} by {abs(diff)} "
                        f"(from {old_quantity} to {new_quantity} in order)"
                    ),
                    order_id=order.id,
                )
            except StockValidationError as exc:
                result.add_error(describe_target(resolution.product, resolution.variant), exc)
                continue
            if change.clamped:
                result.warnings.append(
                    f"{describe_target(resolution.product, resolution.variant)}: edit decrease of "
                    f"{diff} clamped to {-change.applied}"
                )
            result.updated += 1
            result.logs_created += 1
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s edited: %s updated, %s logs, %s errors",
        order_ref or order_id, result.updated, result.logs_created, len(result.errors),
    )
    return result


# =============================================================================
# STATUS TRANSITIONS
# =============================================================================

def transition_order_status(
    tenant_id: int,
    order_id: int,
    new_status: str,
    *,
    repo: StockRepository | None = None,
) -> ReconcileResult:
    """
    Move an order along its lifecycle.

    PENDING -> CONFIRMED applies the confirm decrement in the same unit of
    work as the status change, unless apply_order_confirm() already took the
    stock out. Other legal transitions have no stock effect.

    Raises:
        NotFoundError: order missing for the tenant
        StockValidationError: transition not allowed from the current status
    """
    repo = repo or StockRepository()
    new_status = str(new_status or "").upper()

    def _op():
        order = repo.get_order(tenant_id, order_id, lock=True)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")

        allowed = ORDER_TRANSITIONS.get(order.status, set())
        if new_status not in allowed:
            raise StockValidationError(
                f"Cannot move order {order.order_number} from {order.status} to {new_status}"
            )

        result = ReconcileResult()
        if (
            order.status == ORDER_STATUS_PENDING
            and new_status == ORDER_STATUS_CONFIRMED
            and not repo.has_order_log(tenant_id, order.id, REASON_CONFIRMED)
        ):
            _confirm_lines(repo, tenant_id, order, order.order_number, result)
        order.status = new_status
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Order %s -> %s: %s updated, %s logs",
        order_id, new_status, result.updated, result.logs_created,
    )
    return result
