"""
Purchase Reconciler

WHY: A purchase invoice moves stock in on create, and every later change to
the invoice (edit, soft delete, restore) must move exactly the difference,
with one audit log row per quantity change and a matching accounting posting.

DESIGN PRINCIPLES:
- One unit of work per call: stock, logs, item links, and the ledger posting
  commit together or not at all (run_in_transaction)
- Resolution failures on create/edit auto-create the product; on
  delete/restore they are recorded in result.errors and the rest continues
- Edits move deltas, never reverse-then-reapply
- Delete purges the invoice's purchase-item logs; the reversal logs it writes
  are not linked to a purchase item and survive, as do return logs

ACCOUNTING:
- Create:  Dr 1300 Inventory / Cr 2000 Accounts Payable (invoice value)
- Edit:    the value difference, sides flipped when it shrinks
- Delete:  Dr 2000 / Cr 1300 (reverses the live items' value)
- Restore: Dr 1300 / Cr 2000 again
"""

from __future__ import annotations

from flask import current_app

from ..errors import NotFoundError, StockValidationError
from ..models import PurchaseItem
from ..time_utils import utcnow
from .concurrency import run_in_transaction
from .ledger_service import ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, LedgerWriter, transfer_lines
from .line_items import (
    LineItem,
    ReconcileResult,
    ReversalResult,
    ensure_lines,
    identity_changed,
    line_value_cents,
    pair_lines,
)
from .repository import StockRepository
from .resolver import resolve, resolve_by_name
from .stock_service import (
    apply_delta,
    create_product_from_line,
    describe_target,
    record_price_update,
)


# =============================================================================
# CONSTANTS
# =============================================================================

REVERSAL_BY_NAME = "name"
REVERSAL_BY_VARIANT = "variant"

REASON_RECEIVED = "Purchase invoice received"
REASON_NEW_PRODUCT = "New product from purchase invoice"
REASON_ITEM_DELETED = "Purchase invoice item deleted"
REASON_NAME_CORRECTED = "Product name corrected in purchase invoice"
REASON_VARIANT_CHANGED = "Product variant changed in purchase invoice"
REASON_ITEM_UPDATED = "Purchase invoice item updated"
REASON_PRICE_UPDATED = "Purchase price updated in invoice"
REASON_ITEM_ADDED = "New item added to purchase invoice"
REASON_NEW_PRODUCT_EDIT = "New product from purchase invoice edit"
REASON_DELETED = "Purchase invoice deleted - inventory reversal"
REASON_RESTORED = "Purchase invoice restored - inventory restored"

DEFAULT_DELETED_BY = "system"
DEFAULT_DELETE_REASON = "Invoice deleted by user - inventory reversed"


def _label(line: LineItem) -> str:
    return line.label


def _reversal_mode() -> str:
    mode = str(current_app.config.get("REVERSAL_RESOLUTION", REVERSAL_BY_NAME)).lower()
    if mode not in (REVERSAL_BY_NAME, REVERSAL_BY_VARIANT):
        raise ValueError(f"unknown REVERSAL_RESOLUTION {mode!r}")
    return mode


def _resolve_for_reversal(repo, tenant_id: int, line: LineItem):
    """
    Delete/restore resolution.

    REVERSAL_RESOLUTION=name keeps the legacy name-only lookup, which ignores
    the item's variant and lands on the parent product. =variant uses the same
    resolver as create/edit.
    """
    if _reversal_mode() == REVERSAL_BY_VARIANT:
        return resolve(repo, tenant_id, line, lock=True)
    return resolve_by_name(repo, tenant_id, line.name, lock=True)


def _load_invoice(repo, tenant_id: int, invoice_id: int):
    invoice = repo.get_purchase_invoice(tenant_id, invoice_id)
    if invoice is None:
        raise NotFoundError(f"Purchase invoice {invoice_id} not found")
    return invoice


def _find_row(repo, tenant_id: int, invoice, line: LineItem, claimed: set, *, by_name: bool = True):
    """
    The live PurchaseItem row behind a line, or None.

    By line id when the line has one; otherwise (by_name) the first unclaimed
    live row on the invoice with the same name and a compatible variant.
    """
    if line.id is not None:
        row = repo.get_purchase_item(tenant_id, line.id)
        if row is not None and row.purchase_invoice_id == invoice.id and row.id not in claimed:
            claimed.add(row.id)
            return row
        return None
    if not by_name:
        return None
    for row in invoice.items:
        if row.is_deleted or row.id in claimed:
            continue
        if (row.name or "").strip().lower() != line.normalized_name:
            continue
        if line.variant_id is not None and row.product_variant_id != line.variant_id:
            continue
        claimed.add(row.id)
        return row
    return None


def _new_row(repo, tenant_id: int, invoice, line: LineItem, claimed: set) -> PurchaseItem:
    # Product and variant links are set by _link once the line has resolved
    row = PurchaseItem(
        tenant_id=tenant_id,
        invoice=invoice,
        name=(line.name or "").strip(),
        purchase_price_cents=line.price_cents,
        quantity=line.quantity,
    )
    repo.add(row)
    claimed.add(row.id)
    return row


def _ensure_stockable(repo, tenant_id: int, line: LineItem, fallback: LineItem | None = None) -> None:
    """
    Raise before any row is written when a line can neither be resolved nor
    create a product. fallback is a second line whose target may take the stock.
    """
    if resolve(repo, tenant_id, line, lock=True).found:
        return
    if fallback is not None and resolve(repo, tenant_id, fallback, lock=True).found:
        return
    if not (line.name or "").strip():
        raise StockValidationError(f"Product not found and no name to create it: {_label(line)}")


def _link(row: PurchaseItem, line: LineItem, product, variant=None) -> None:
    row.name = line.name.strip()
    row.quantity = line.quantity
    row.purchase_price_cents = line.price_cents
    row.product_id = product.id if product is not None else None
    row.product_variant_id = variant.id if variant is not None else None


def _stock_in(repo, tenant_id: int, line: LineItem, row: PurchaseItem, result: ReconcileResult, *,
              reference: str, reason: str, new_reason: str, notes: str | None = None) -> None:
    """INCREASE a resolved target by the line quantity, or CREATE a product for it."""
    resolution = resolve(repo, tenant_id, line, lock=True)
    if resolution.found:
        apply_delta(
            repo,
            tenant_id=tenant_id,
            product=resolution.product,
            variant=resolution.variant,
            delta=line.quantity,
            price_cents=line.price_cents,
            reason=reason,
            reference=reference,
            notes=notes or f"Quantity increased by {line.quantity} from purchase",
            purchase_item_id=row.id,
        )
        _link(row, line, resolution.product, resolution.variant)
        result.updated += 1
    else:
        product, _ = create_product_from_line(
            repo,
            tenant_id=tenant_id,
            line=line,
            reason=new_reason,
            reference=reference,
            purchase_item_id=row.id,
        )
        _link(row, line, product)
        result.created += 1
    result.logs_created += 1


def _stock_out(repo, tenant_id: int, line: LineItem, result: ReconcileResult, *,
               reference: str, reason: str, notes: str, purchase_item_id: int | None) -> bool:
    """DECREASE the line's target by its quantity. Returns False when unresolved."""
    resolution = resolve(repo, tenant_id, line, lock=True)
    if not resolution.found:
        result.add_error(_label(line), NotFoundError(f"Product not found: {_label(line)}"))
        return False
    change = apply_delta(
        repo,
        tenant_id=tenant_id,
        product=resolution.product,
        variant=resolution.variant,
        delta=-line.quantity,
        reason=reason,
        reference=reference,
        notes=notes,
        purchase_item_id=purchase_item_id,
    )
    if change.clamped:
        result.warnings.append(
            f"{describe_target(resolution.product, resolution.variant)}: decrease of "
            f"{-change.requested} clamped to {-change.applied}"
        )
    result.updated += 1
    result.logs_created += 1
    return True


def _post(ledger, tenant_id: int, amount_cents: int, *, description: str, reference: str, invoice_id: int) -> None:
    lines = transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, amount_cents, description=description)
    ledger.post(
        tenant_id,
        description=description,
        lines=lines,
        reference=reference,
        purchase_invoice_id=invoice_id,
    )


# =============================================================================
# CREATE
# =============================================================================

def apply_purchase_create(
    tenant_id: int,
    items,
    invoice_id: int,
    invoice_ref: str,
    *,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReconcileResult:
    """
    Stock in every line of a new purchase invoice.

    Found products/variants get an INCREASE and a new last purchase price;
    unknown names create a Product (CREATE log). Each line is linked to the
    PurchaseItem row it came from (created when the line has no id).

    Raises:
        NotFoundError: invoice does not exist for the tenant
        ImbalancedLedgerError, TransactionFailure: whole call rolled back
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    lines = ensure_lines(items)
    reference = f"Invoice: {invoice_ref}"

    def _op():
        result = ReconcileResult()
        invoice = _load_invoice(repo, tenant_id, invoice_id)
        accepted: list[LineItem] = []
        claimed: set = set()

        for line in lines:
            try:
                line.validate()
                _ensure_stockable(repo, tenant_id, line)
                row = _find_row(repo, tenant_id, invoice, line, claimed) or _new_row(
                    repo, tenant_id, invoice, line, claimed
                )
                _stock_in(
                    repo, tenant_id, line, row, result,
                    reference=reference,
                    reason=REASON_RECEIVED,
                    new_reason=REASON_NEW_PRODUCT,
                )
                accepted.append(line)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(line), exc)
                current_app.logger.warning("Purchase %s: skipped %s: %s", invoice_ref, _label(line), exc)

        invoice.total_amount_cents = line_value_cents(accepted)
        if post_accounting:
            _post(
                ledger, tenant_id, line_value_cents(accepted),
                description=f"Purchase invoice {invoice_ref}",
                reference=reference,
                invoice_id=invoice.id,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Purchase %s: %s updated, %s created, %s logs, %s errors",
        invoice_ref, result.updated, result.created, result.logs_created, len(result.errors),
    )
    return result


# =============================================================================
# EDIT
# =============================================================================

def _apply_pair(repo, tenant_id: int, invoice, old: LineItem, new: LineItem,
                result: ReconcileResult, reference: str, claimed: set) -> None:
    # A transfer needs the new target; a plain update may fall back to the old one
    _ensure_stockable(repo, tenant_id, new, None if identity_changed(old, new) else old)
    row = (
        _find_row(repo, tenant_id, invoice, old, claimed)
        or _find_row(repo, tenant_id, invoice, new, claimed, by_name=False)
        or _new_row(repo, tenant_id, invoice, new, claimed)
    )

    if identity_changed(old, new):
        # Transfer: two log rows, never a net delta
        if old.variant_id != new.variant_id:
            reason = REASON_VARIANT_CHANGED
            change = "variant change"
        else:
            reason = REASON_NAME_CORRECTED
            change = f'product name change from "{old.name}" to "{new.name}"'
        _stock_out(
            repo, tenant_id, old, result,
            reference=reference,
            reason=reason,
            notes=f"Quantity decreased by {old.quantity} due to {change}",
            purchase_item_id=row.id,
        )
        _stock_in(
            repo, tenant_id, new, row, result,
            reference=reference,
            reason=reason,
            new_reason=reason,
            notes=f"Quantity increased by {new.quantity} due to {change}",
        )
        return

    resolution = resolve(repo, tenant_id, new, lock=True)
    if not resolution.found:
        resolution = resolve(repo, tenant_id, old, lock=True)
    if not resolution.found:
        # Old target no longer resolvable: stock the new line as if added
        _stock_in(
            repo, tenant_id, new, row, result,
            reference=reference,
            reason=REASON_ITEM_ADDED,
            new_reason=REASON_NEW_PRODUCT_EDIT,
        )
        return

    quantity_diff = new.quantity - old.quantity
    price_changed = int(new.price_cents or 0) != int(old.price_cents or 0)

    if quantity_diff != 0:
        change = apply_delta(
            repo,
            tenant_id=tenant_id,
            product=resolution.product,
            variant=resolution.variant,
            delta=quantity_diff,
            price_cents=new.price_cents if price_changed else None,
            reason=REASON_ITEM_UPDATED,
            reference=reference,
            notes=(
                f"Quantity {'increased' if quantity_diff > 0 else 'decreased'} by {abs(quantity_diff)} "
                f"(from {old.quantity} to {new.quantity})"
            ),
            purchase_item_id=row.id,
        )
        if change.clamped:
            result.warnings.append(
                f"{describe_target(resolution.product, resolution.variant)}: decrease of "
                f"{-change.requested} clamped to {-change.applied}"
            )
        result.updated += 1
        result.logs_created += 1
    elif price_changed:
        record_price_update(
            repo,
            tenant_id=tenant_id,
            product=resolution.product,
            variant=resolution.variant,
            old_price_cents=old.price_cents,
            new_price_cents=new.price_cents,
            reason=REASON_PRICE_UPDATED,
            reference=reference,
            notes=f"Purchase price changed from {old.price_cents} to {new.price_cents}",
            purchase_item_id=row.id,
        )
        result.updated += 1
        result.logs_created += 1

    _link(row, new, resolution.product, resolution.variant)


def apply_purchase_edit(
    tenant_id: int,
    old_items,
    new_items,
    invoice_id: int,
    invoice_ref: str,
    *,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReconcileResult:
    """
    Move stock by the difference between two versions of an invoice's items.

    Lines are paired first (line id, then name + price within a key group,
    then key group alone). Then:
    - unpaired old line: DECREASE by its quantity, PurchaseItem soft-deleted
    - unpaired new line: INCREASE (or CREATE), PurchaseItem persisted if new
    - pair with a changed identity: DECREASE old target, INCREASE new target
    - pair with a changed quantity: one delta log (new - old)
    - pair with only a changed price: one zero-quantity PURCHASE_PRICE_UPDATE
    - unchanged pair: nothing
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    old_lines = ensure_lines(old_items)
    new_lines = ensure_lines(new_items)
    reference = f"Invoice Edit: {invoice_ref}"

    def _op():
        result = ReconcileResult()
        invoice = _load_invoice(repo, tenant_id, invoice_id)
        if invoice.is_deleted:
            raise StockValidationError(f"Purchase invoice {invoice_ref} is deleted; restore it before editing")

        pairs, removed, added = pair_lines(old_lines, new_lines)
        accepted_new: list[LineItem] = []
        accepted_old: list[LineItem] = []
        claimed: set = set()
        now = utcnow()

        for old in removed:
            try:
                row = _find_row(repo, tenant_id, invoice, old, claimed)
                _stock_out(
                    repo, tenant_id, old, result,
                    reference=reference,
                    reason=REASON_ITEM_DELETED,
                    notes=f"Quantity decreased by {old.quantity} due to purchase item deletion",
                    purchase_item_id=row.id if row is not None else None,
                )
                if row is not None:
                    row.is_deleted = True
                    row.deleted_at = now
                accepted_old.append(old)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(old), exc)

        for old, new in pairs:
            try:
                new.validate()
                _apply_pair(repo, tenant_id, invoice, old, new, result, reference, claimed)
                accepted_old.append(old)
                accepted_new.append(new)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(new), exc)

        for new in added:
            try:
                new.validate()
                _ensure_stockable(repo, tenant_id, new)
                row = _find_row(repo, tenant_id, invoice, new, claimed, by_name=False) or _new_row(
                    repo, tenant_id, invoice, new, claimed
                )
                _stock_in(
                    repo, tenant_id, new, row, result,
                    reference=reference,
                    reason=REASON_ITEM_ADDED,
                    new_reason=REASON_NEW_PRODUCT_EDIT,
                    notes=f"Quantity increased by {new.quantity} from new purchase item",
                )
                accepted_new.append(new)
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(new), exc)

        for warning in result.warnings:
            current_app.logger.warning("Purchase edit %s: %s", invoice_ref, warning)

        invoice.total_amount_cents = line_value_cents(
            [LineItem.from_purchase_item(i) for i in invoice.items if not i.is_deleted]
        )
        if post_accounting:
            _post(
                ledger, tenant_id, line_value_cents(accepted_new) - line_value_cents(accepted_old),
                description=f"Purchase invoice {invoice_ref} edited",
                reference=reference,
                invoice_id=invoice.id,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Purchase edit %s: %s updated, %s created, %s logs, %s errors",
        invoice_ref, result.updated, result.created, result.logs_created, len(result.errors),
    )
    return result


# =============================================================================
# DELETE / RESTORE
# =============================================================================

def reverse_purchase(
    tenant_id: int,
    invoice_id: int,
    invoice_ref: str,
    *,
    deleted_by: str | None = None,
    delete_reason: str | None = None,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReversalResult:
    """
    Soft-delete an invoice and reverse its stock effect.

    - Every live item gets a full DECREASE (unlinked to the item)
    - Logs linked to the invoice's items are purged
    - Returns referencing the invoice are detached (their logs stay)
    - Items and invoice are flagged deleted with one shared timestamp
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    reference = f"Invoice Deletion: {invoice_ref}"

    def _op():
        result = ReversalResult()
        invoice = _load_invoice(repo, tenant_id, invoice_id)
        if invoice.is_deleted:
            raise StockValidationError(f"Purchase invoice {invoice_ref} is already deleted")

        live_items = [item for item in invoice.items if not item.is_deleted]

        for item in live_items:
            line = LineItem.from_purchase_item(item)
            try:
                resolution = _resolve_for_reversal(repo, tenant_id, line)
                if not resolution.found:
                    raise NotFoundError(f"Product not found for reversal: {line.name}")
                change = apply_delta(
                    repo,
                    tenant_id=tenant_id,
                    product=resolution.product,
                    variant=resolution.variant,
                    delta=-line.quantity,
                    reason=REASON_DELETED,
                    reference=reference,
                    notes=f"Reversed {line.quantity} units from deleted purchase",
                )
                if change.clamped:
                    result.warnings.append(
                        f"{describe_target(resolution.product, resolution.variant)}: reversal of "
                        f"{-change.requested} clamped to {-change.applied}"
                    )
                result.reversed += 1
                result.logs_created += 1
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(line), exc)
                current_app.logger.warning("Invoice deletion %s: %s", invoice_ref, exc)

        result.logs_purged = repo.purge_logs_for_purchase_items([item.id for item in invoice.items])

        for return_doc in list(invoice.returns):
            return_doc.purchase_invoice_id = None
            result.returns_detached += 1

        now = utcnow()
        for item in live_items:
            item.is_deleted = True
            item.deleted_at = now
        result.items_affected = len(live_items)

        invoice.is_deleted = True
        invoice.deleted_at = now
        invoice.deleted_by = deleted_by or DEFAULT_DELETED_BY
        invoice.delete_reason = delete_reason or DEFAULT_DELETE_REASON

        if post_accounting:
            _post(
                ledger, tenant_id, -line_value_cents(LineItem.from_purchase_item(i) for i in live_items),
                description=f"Purchase invoice {invoice_ref} deleted",
                reference=reference,
                invoice_id=invoice.id,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Invoice deletion %s: %s reversed, %s logs purged, %s returns detached, %s errors",
        invoice_ref, result.reversed, result.logs_purged, result.returns_detached, len(result.errors),
    )
    return result


def reapply_purchase(
    tenant_id: int,
    invoice_id: int,
    invoice_ref: str,
    *,
    repo: StockRepository | None = None,
    ledger: LedgerWriter | None = None,
    post_accounting: bool = True,
) -> ReversalResult:
    """
    Restore a soft-deleted invoice: INCREASE every item the deletion flagged.

    Items removed by an earlier edit (deleted at a different time than the
    invoice) stay deleted. Purged logs are not resurrected; new restoration
    logs are written instead.

    Raises:
        NotFoundError: no deleted invoice with that id for the tenant
    """
    repo = repo or StockRepository()
    ledger = ledger or LedgerWriter(repo.session)
    reference = f"Invoice Restoration: {invoice_ref}"

    def _op():
        result = ReversalResult()
        invoice = repo.get_purchase_invoice(tenant_id, invoice_id)
        if invoice is None or not invoice.is_deleted:
            raise NotFoundError(f"Deleted purchase invoice {invoice_id} not found")

        items = [
            item for item in invoice.items
            if item.is_deleted and item.deleted_at == invoice.deleted_at
        ]

        for item in items:
            line = LineItem.from_purchase_item(item)
            try:
                resolution = _resolve_for_reversal(repo, tenant_id, line)
                if not resolution.found:
                    raise NotFoundError(f"Product not found for restoration: {line.name}")
                apply_delta(
                    repo,
                    tenant_id=tenant_id,
                    product=resolution.product,
                    variant=resolution.variant,
                    delta=line.quantity,
                    price_cents=line.price_cents,
                    reason=REASON_RESTORED,
                    reference=reference,
                    notes=f"Restored {line.quantity} units from restored purchase",
                )
                result.restored += 1
                result.logs_created += 1
            except (NotFoundError, StockValidationError) as exc:
                result.add_error(_label(line), exc)
                current_app.logger.warning("Invoice restoration %s: %s", invoice_ref, exc)

            item.is_deleted = False
            item.deleted_at = None
        result.items_affected = len(items)

        invoice.is_deleted = False
        invoice.deleted_at = None
        invoice.deleted_by = None
        invoice.delete_reason = None

        if post_accounting:
            _post(
                ledger, tenant_id, line_value_cents(LineItem.from_purchase_item(i) for i in items),
                description=f"Purchase invoice {invoice_ref} restored",
                reference=reference,
                invoice_id=invoice.id,
            )
        return result

    result = run_in_transaction(_op)
    current_app.logger.info(
        "Invoice restoration %s: %s restored, %s logs, %s errors",
        invoice_ref, result.restored, result.logs_created, len(result.errors),
    )
    return result
