# Overview: Double-entry posting with the balance check inventory events must pass.

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from flask import current_app

from ..errors import ImbalancedLedgerError, NotFoundError
from ..extensions import db
from ..models import Account, LedgerLine, LedgerTransaction
from ..time_utils import utcnow
"""
Ledger Balancer invariants (authoritative)

- A posting is accepted only if sum(debits) == sum(credits) within
  LEDGER_TOLERANCE_CENTS (default 1 cent).
- An imbalanced posting raises ImbalancedLedgerError before anything is
  written; the caller's unit of work then rolls back the stock and log
  writes staged alongside it.
- The writer never commits.
- Balances move with the account's normal side:
    ASSET, EXPENSE              -> debit increases
    LIABILITY, EQUITY, INCOME   -> credit increases
"""

ACCOUNT_CASH = "1000"
ACCOUNT_RECEIVABLE = "1200"
ACCOUNT_INVENTORY = "1300"
ACCOUNT_PAYABLE = "2000"
ACCOUNT_SALES_RETURNS = "4100"

# Accounts the inventory engine posts to; created on first use per tenant
DEFAULT_ACCOUNTS = {
    ACCOUNT_CASH: ("Cash", "ASSET"),
    ACCOUNT_RECEIVABLE: ("Accounts Receivable", "ASSET"),
    ACCOUNT_INVENTORY: ("Inventory", "ASSET"),
    ACCOUNT_PAYABLE: ("Accounts Payable", "LIABILITY"),
    ACCOUNT_SALES_RETURNS: ("Sales Returns", "INCOME"),
}

DEBIT_NORMAL_TYPES = {"ASSET", "EXPENSE"}


@dataclass(frozen=True)
class PostingLine:
    account_code: str
    debit_cents: int = 0
    credit_cents: int = 0
    description: str | None = None


def check_balanced(lines: Iterable[PostingLine], tolerance_cents: int | None = None) -> int:
    """Raise ImbalancedLedgerError unless debits equal credits; return the total."""
    if tolerance_cents is None:
        tolerance_cents = int(current_app.config.get("LEDGER_TOLERANCE_CENTS", 1))
    lines = list(lines)
    total_debits = sum(int(line.debit_cents or 0) for line in lines)
    total_credits = sum(int(line.credit_cents or 0) for line in lines)
    # Tolerance is inclusive of the cent: a difference of exactly tolerance passes
    if abs(total_debits - total_credits) > tolerance_cents:
        raise ImbalancedLedgerError(total_debits, total_credits)
    return total_debits


def transfer_lines(debit_code: str, credit_code: str, amount_cents: int, description: str | None = None) -> list[PostingLine]:
    """
    Two-line posting moving amount_cents from credit_code to debit_code.

    A negative amount flips the sides, so edits can post a signed difference.
    Zero returns no lines.
    """
    amount_cents = int(amount_cents)
    if amount_cents == 0:
        return []
    if amount_cents < 0:
        debit_code, credit_code = credit_code, debit_code
        amount_cents = -amount_cents
    return [
        PostingLine(debit_code, debit_cents=amount_cents, description=description),
        PostingLine(credit_code, credit_cents=amount_cents, description=description),
    ]


def _transaction_number() -> str:
    return f"TXN-{utcnow().year}-{uuid.uuid4().hex[:10].upper()}"


class LedgerWriter:
    """
    Accounting-ledger writer injected into the reconcilers (ledger=...).

    Subclasses can override lines_for_post() to transform the submitted lines;
    post() balances whatever that returns.
    """

    def __init__(self, session=None):
        self.session = session if session is not None else db.session

    def ensure_account(self, tenant_id: int, code: str) -> Account:
        """
        Return the tenant's account for code, creating a default one if missing.

        Safe to call repeatedly (idempotent). Codes outside DEFAULT_ACCOUNTS
        must already exist.
        """
        account = (
            self.session.query(Account)
            .filter_by(tenant_id=tenant_id, code=code)
            .first()
        )
        if account:
            return account
        if code not in DEFAULT_ACCOUNTS:
            raise NotFoundError(f"Account {code} not found for tenant {tenant_id}")

        name, account_type = DEFAULT_ACCOUNTS[code]
        account = Account(tenant_id=tenant_id, code=code, name=name, type=account_type, balance_cents=0)
        self.session.add(account)
        self.session.flush()
        return account

    def lines_for_post(self, lines: list[PostingLine]) -> list[PostingLine]:
        return lines

    def post(
        self,
        tenant_id: int,
        *,
        description: str,
        lines: Iterable[PostingLine],
        reference: str | None = None,
        purchase_invoice_id: int | None = None,
        return_id: int | None = None,
        transaction_date: datetime | None = None,
    ) -> LedgerTransaction | None:
        """
        Balance-check and write one transaction. Returns None for an empty posting.

        Raises:
            ImbalancedLedgerError: debits and credits differ beyond tolerance
            NotFoundError: a line names an unknown non-default account code
        """
        lines = self.lines_for_post(list(lines))
        if not lines:
            return None

        total = check_balanced(lines)

        txn = LedgerTransaction(
            tenant_id=tenant_id,
            transaction_number=_transaction_number(),
            description=description,
            reference=reference,
            transaction_date=transaction_date or utcnow(),
            total_cents=total,
            purchase_invoice_id=purchase_invoice_id,
            return_id=return_id,
        )
        self.session.add(txn)
        self.session.flush()

        for line in lines:
            account = self.ensure_account(tenant_id, line.account_code)
            debit = int(line.debit_cents or 0)
            credit = int(line.credit_cents or 0)
            self.session.add(LedgerLine(
                transaction_id=txn.id,
                account_id=account.id,
                debit_cents=debit,
                credit_cents=credit,
                description=line.description,
            ))
            if account.type in DEBIT_NORMAL_TYPES:
                account.balance_cents = (account.balance_cents or 0) + debit - credit
            else:
                account.balance_cents = (account.balance_cents or 0) + credit - debit

        self.session.flush()
        current_app.logger.info(
            "Posted %s (%s): %s cents across %s lines",
            txn.transaction_number, description, total, len(lines),
        )
        return txn
