# Overview: Exception hierarchy shared by the reconciliation services.

"""
Error kinds raised by the inventory core.

Per-item problems (an unresolved product on a return line, a decrease that
would go negative under the reject policy) are NOT raised out of the
reconcilers; they are collected as ItemError entries on the result. Only
document-level problems and the two fatal kinds below propagate:

- ImbalancedLedgerError: accounting lines do not balance. Aborts the unit of work.
- TransactionFailure: the store failed underneath us. Aborts the unit of work.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for inventory core errors."""


class NotFoundError(InventoryError):
    """Raised when an entity or document cannot be resolved for a tenant."""


class StockValidationError(InventoryError):
    """Raised for insufficient stock, malformed lines, or illegal transitions."""


class ImbalancedLedgerError(InventoryError):
    """Raised when posting lines do not sum to zero net."""

    def __init__(self, debit_cents: int, credit_cents: int):
        self.debit_cents = debit_cents
        self.credit_cents = credit_cents
        super().__init__(
            f"Transaction is not balanced. Debits: {debit_cents}, Credits: {credit_cents}"
        )


class TransactionFailure(InventoryError):
    """Raised when the underlying store fails and the unit of work is rolled back."""
