"""
Return Reconciler

WHY: Returns move stock in both directions. A supplier return sends goods
back (stock decreases); a customer return takes goods back (stock increases).
Editing a return moves only the difference, with the purchase-edit pairing
rules and the stock sign set by the direction.

DESIGN PRINCIPLES:
- Resolution: variant first, then product id, then name; never creates
- Unresolved lines are recorded in result.errors; the rest of the return
  still applies
- Supplier decreases clamp at zero (warning) unless NEGATIVE_STOCK_POLICY=reject
- Return logs carry return_id and never a purchase_item_id, so they survive
  the deletion of the invoice they came from
- No dedup key beyond the caller: submitting the same return twice moves
  stock twice

ACCOUNTING:
- Supplier, REDUCE_AP: Dr 2000 Accounts Payable / Cr 1300 Inventory
- Supplier, REFUND:    Dr 1000 Cash (or the given refund account) / Cr 1300
- Customer:            Dr 4100 Sales Returns / Cr 1200 Accounts Receivable
"""

from __future__ import annotations

from collections import defaultdict

from flask import current_app

from ..errors import NotFoundError, StockValidationError
from .concurrency import run_in_transaction
from .ledger_service import (
    ACCOUNT_CASH,
    ACCOUNT_INVENTORY,
    ACCOUNT_PAYABLE,
    ACCOUNT_RECEIVABLE,
    ACCOUNT_SALES_RETURNS,
    LedgerWriter,
    transfer_lines,
)
from .line_items import (
    LineItem,
    ReconcileResult,
    StockShortfall,
    ValidationResult,
    ensure_lines,
    identity_changed,
    line_value_cents,
    pair_lines,
)
from .repository import StockRepository
from .resolver import resolve
from .stock_service import apply_delta, describe_target


# =============================================================================
# RETURN CONSTANTS
# =============================================================================

DIRECTION_SUPPLIER = "SUPPLIER"
DIRECTION_CUSTOMER = "CUSTOMER"

RETURN_TYPE_SUPPLIER = "SUPPLIER"
RETURN_TYPE_CUSTOMER_FULL = "CUSTOMER_FULL"
RETURN_TYPE_CUSTOMER_PARTIAL = "CUSTOMER_PARTIAL"

RETURN_STATUS_REJECTED = "REJECTED"

HANDLING_REDUCE_AP = "REDUCE_AP"
HANDLING_REFUND = "REFUND"

REASON_SUPPLIER_RETURN = "Product return processed"
REASON_CUSTOMER_RETURN = "Customer return processed"
REASON_ITEM_UPDATED = "Return item updated"
REASON_ITEM_REMOVED = "Return item removed"
REASON_ITEM_ADDED = "Return item added"
REASON_ITEM_CHANGED = "Return item product changed"


def normalize_direction(direction: str) -> str:
    """SUPPLIER, or CUSTOMER for any of CUSTOMER / CUSTOMER_FULL / CUSTOMER_PARTIAL."""
    value = str(direction or "").upper()
    if value == DIRECTION_SUPPLIER:
        return DIRECTION_SUPPLIER
    if value in (DIRECTION_CUSTOMER, RETURN_TYPE_CUSTOMER_FULL, RETURN_TYPE_CUSTOMER_PARTIAL):
        return DIRECTION_CUSTOMER
    raise StockValidationError(f"Unknown return direction: {direction!r}")


def _sign(direction: str) -> int:
    return -1 if direction == DIRECTION_SUPPLIER else 1


def _label(line: LineItem) -> str:
    return line.label


def _move(repo, tenant_id: int, line: LineItem, delta: int, result: ReconcileResult, *,
          reason: str, reference: str, notes: str, return_id: int | None) -> bool:
    """Apply delta to the line's target; record NotFoundError when unresolved."""
    resolution = resolve(repo, tenant_id, line, lock=True)
    if not resolution.found:
        result.add_error(_label(line), NotFoundError(f"Product not found in inventory: {_label(line)}"))
        current_app.logger.warning("%s: product not found: %s", reference, _label(line))
        return False

    change = apply_delta(
        repo,
        tenant_id=tenant_id,
        product=resolution.product,
        variant=resolution.variant,
        delta=delta,
        reason=reason,
        reference=reference,
        notes=notes,
        return_id=return_id,
    )
    if change.clamped:
        message = (
            f"{describe_target(resolution.product, resolution.variant)}: return of "
            f"{-change.requested} exceeds stock, clamped to {-change.applied}"
        )
        result.warnings.append(message)
        current_app.logger.warning("%s: %s", reference, message)
    result.updated += 1
    result.logs_created += 1
    return True


def _resolve_handling(repo, tenant_id: int, return_id: int | None, handling_method: str | None) -> str:
    if handling_method:
        return handling_method.upper()
    if return_id is not None:
        return_doc = repo.get_return(tenant_id, return_id)
        if return_doc is not None and return_doc.handling_method:
            return return_doc.handling_method.upper()
    return HANDLING_REDUCE_AP


def accounting_lines(direction: str, amount_cents: int, *, handling_method: str = HANDLING_REDUCE_AP,
                     refund_account_code: str | None = None, description: str | None = None):
    """Posting lines for a return worth amount_cents (negative for an edit that shrinks it)."""
    if direction == DIRECTION_CUSTOMER:
        return transfer_lines(ACCOUNT_SALES_RETURNS, ACCOUNT_RECEIVABLE, amount_cents, description)
    if handling_method == HANDLING_REFUND:
        return transfer_lines(refund_account_code or ACCOUNT_CASH, ACCOUNT_INVENTORY, amount_cents, description)
    if handling_method == HANDLING_REDUCE_AP:
        return transfer_lines(ACCOUNT_PAYABLE, ACCOUNT_INVENTORY, amount_cents, description)
    raise StockValidationError(f"Unknown return handling method: {handling_method!r}")


def _post(repo, ledger, tenant_id: int, direction: str, amount_cents: int, *, return_id, handling_method,
          refund_account_code, description: str, reference: str) -> None:
    method = _resolve_handling(repo, tenant_id, return_id, handling_method)
    lines = accounting_lines(
        direction,
        amount_cents,
        handling_method=method,
        refund_account_code=refund_account_code,
        description=description,
    )
    ledger.post(
        tenant_id,
        description=description,
        lines=lines,
        reference=reference,
        return_id=return_id,
    )


# =============================================================================
# APPLY
# =============================================================================

def apply_return(
    tenant_id: int,
    items,
    direction: str,
    doc_ref: str,
    *,
    return_id: int | None = None,
    handling_method: str | None = None,
    refund_account_code: str | None = None,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReconcileResult:
    """
    Apply a return's stock effect.

    SUPPLIER: DECREASE per line (clamped at zero with a warning).
    CUSTOMER: INCREASE per line.

    Raises:
        StockValidationError: unknown direction or handling method
        ImbalancedLedgerError, TransactionFailure: whole call rolled back
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    direction = normalize_direction(direction)
    lines = ensure_lines(items)
    reference = f"Return: {doc_ref}"
    reason = REASON_SUPPLIER_RETURN if direction == DIRECTION_SUPPLIER else REASON_CUSTOMER_RETURN
    verb = "decreased" if direction == DIRECTION_SUPPLIER else "increased"

    def _op():
        result = ReconcileResult()
        applied: list[LineItem] = []
        for line in lines:
            try:
                line.validate()
                if _move(
                    repo, tenant_id, line, _sign(direction) * line.quantity, result,
                    reason=reason,
                    reference=reference,
                    notes=f"Quantity {verb} by {line.quantity} due to return",
                    return_id=return_id,
                ):
                    applied.append(line)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(line), exc)

        if post_accounting:
            _post(
                repo, ledger, tenant_id, direction, line_value_cents(applied),
                return_id=return_id,
                handling_method=handling_method,
                refund_account_code=refund_account_code,
                description=f"{direction.title()} return {doc_ref}",
                reference=reference,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Return %s (%s): %s updated, %s logs, %s errors, %s warnings",
        doc_ref, direction, result.updated, result.logs_created, len(result.errors), len(result.warnings),
    )
    return result


def apply_return_edit(
    tenant_id: int,
    old_items,
    new_items,
    direction: str,
    doc_ref: str,
    *,
    return_id: int | None = None,
    handling_method: str | None = None,
    refund_account_code: str | None = None,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReconcileResult:
    """
    Move stock by the difference between two versions of a return.

    Pairing follows the purchase edit. For a supplier return the stock sign is
    inverted: returning more takes more stock out, returning less puts it back.
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    direction = normalize_direction(direction)
    sign = _sign(direction)
    old_lines = ensure_lines(old_items)
    new_lines = ensure_lines(new_items)
    reference = f"Return Edit: {doc_ref}"

    def _op():
        result = ReconcileResult()
        pairs, removed, added = pair_lines(old_lines, new_lines)
        accepted_old: list[LineItem] = []
        accepted_new: list[LineItem] = []

        for old in removed:
            try:
                _move(
                    repo, tenant_id, old, -sign * old.quantity, result,
                    reason=REASON_ITEM_REMOVED,
                    reference=reference,
                    notes=f"Reversed {old.quantity} units of removed return item",
                    return_id=return_id,
                )
                accepted_old.append(old)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(old), exc)

        for old, new in pairs:
            try:
                new.validate()
                if identity_changed(old, new):
                    _move(
                        repo, tenant_id, old, -sign * old.quantity, result,
                        reason=REASON_ITEM_CHANGED,
                        reference=reference,
                        notes=f'Reversed {old.quantity} units of "{old.name}"',
                        return_id=return_id,
                    )
                    _move(
                        repo, tenant_id, new, sign * new.quantity, result,
                        reason=REASON_ITEM_CHANGED,
                        reference=reference,
                        notes=f'Applied {new.quantity} units of "{new.name}"',
                        return_id=return_id,
                    )
                elif new.quantity != old.quantity:
                    diff = new.quantity - old.quantity
                    _move(
                        repo, tenant_id, new, sign * diff, result,
                        reason=REASON_ITEM_UPDATED,
                        reference=reference,
                        notes=f"Return quantity changed from {old.quantity} to {new.quantity}",
                        return_id=return_id,
                    )
                accepted_old.append(old)
                accepted_new.append(new)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(new), exc)

        for new in added:
            try:
                new.validate()
                _move(
                    repo, tenant_id, new, sign * new.quantity, result,
                    reason=REASON_ITEM_ADDED,
                    reference=reference,
                    notes=f"Applied {new.quantity} units of new return item",
                    return_id=return_id,
                )
                accepted_new.append(new)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(new), exc)

        if post_accounting:
            _post(
                repo, ledger, tenant_id, direction,
                line_value_cents(accepted_new) - line_value_cents(accepted_old),
                return_id=return_id,
                handling_method=handling_method,
                refund_account_code=refund_account_code,
                description=f"{direction.title()} return {doc_ref} edited",
                reference=reference,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Return edit %s (%s): %s updated, %s logs, %s errors",
        doc_ref, direction, result.updated, result.logs_created, len(result.errors),
    )
    return result


# =============================================================================
# SUPPLIER RETURN VALIDATION
# =============================================================================

def _tally(lines, by_variant: dict, by_name: dict) -> None:
    for line in lines:
        if line.variant_id is not None:
            by_variant[line.variant_id] += line.quantity
        by_name[line.normalized_name] += line.quantity


def validate_supplier_return(
    tenant_id: int,
    invoice_id: int,
    items,
    *,
    exclude_return_id: int | None = None,
    repo: StockRepository | None = None,
) -> ValidationResult:
    """
    Check a supplier return against what its invoice bought.

    Returnable = bought on the invoice - already sent back by earlier
    non-rejected supplier returns of the same invoice. Lines with a variant
    are checked per variant, others per product name. Never mutates.

    Raises:
        NotFoundError: invoice missing or deleted
    """
    repo = repo or StockRepository()
    invoice = repo.get_purchase_invoice(tenant_id, invoice_id)
    if invoice is None or invoice.is_deleted:
        raise NotFoundError(f"Purchase invoice {invoice_id} not found")

    bought_variant: dict = defaultdict(int)
    bought_name: dict = defaultdict(int)
    _tally(
        [LineItem.from_purchase_item(i) for i in invoice.items if not i.is_deleted],
        bought_variant,
        bought_name,
    )

    returned_variant: dict = defaultdict(int)
    returned_name: dict = defaultdict(int)
    for return_doc in repo.returns_for_invoice(tenant_id, invoice.id, return_type=RETURN_TYPE_SUPPLIER):
        if return_doc.status == RETURN_STATUS_REJECTED or return_doc.id == exclude_return_id:
            continue
        _tally([LineItem.from_return_item(i) for i in return_doc.items], returned_variant, returned_name)

    requested: dict = defaultdict(int)
    labels: dict = {}
    for line in ensure_lines(items):
        key = ("variant", line.variant_id) if line.variant_id is not None else ("name", line.normalized_name)
        requested[key] += line.quantity
        labels.setdefault(key, line)

    result = ValidationResult()
    for key, quantity in requested.items():
        line = labels[key]
        if key[0] == "variant":
            available = bought_variant[key[1]] - returned_variant[key[1]]
        else:
            available = bought_name[key[1]] - returned_name[key[1]]
        if quantity > available:
            message = (
                f"Cannot return {quantity} of {_label(line)}: only {max(available, 0)} "
                f"returnable from invoice {invoice.invoice_number}"
            )
            result.errors.append(StockShortfall(
                item=_label(line),
                requested=quantity,
                available=max(available, 0),
                message=message,
                variant_id=line.variant_id,
            ))
    return result
