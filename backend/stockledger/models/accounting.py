from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Account(db.Model):
    """
    Chart-of-accounts entry with a running balance.

    balance_cents moves with the account's normal side: ASSET and EXPENSE
    accounts grow on debit, LIABILITY, EQUITY and INCOME accounts grow on credit.
    """
    __tablename__ = "accounts"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "code", name="uq_accounts_tenant_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    code = db.Column(db.String(16), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    balance_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "balance_cents": self.balance_cents,
            "is_active": self.is_active,
        }


class LedgerTransaction(db.Model):
    """Header of one balanced double-entry posting."""
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "transaction_number", name="uq_ledger_transactions_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    transaction_number = db.Column(db.String(32), nullable=False)
    description = db.Column(db.String(255), nullable=False)
    reference = db.Column(db.String(255), nullable=True)
    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False)
    total_cents = db.Column(db.Integer, nullable=False, default=0)

    purchase_invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    lines = db.relationship("LedgerLine", back_populates="transaction", lazy=True, order_by="LedgerLine.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "transaction_number": self.transaction_number,
            "description": self.description,
            "reference": self.reference,
            "transaction_date": to_utc_z(self.transaction_date),
            "total_cents": self.total_cents,
            "purchase_invoice_id": self.purchase_invoice_id,
            "return_id": self.return_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class LedgerLine(db.Model):
    __tablename__ = "ledger_lines"
    __table_args__ = (
        db.CheckConstraint("debit_cents >= 0 AND credit_cents >= 0", name="ck_ledger_lines_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)

    debit_cents = db.Column(db.Integer, nullable=False, default=0)
    credit_cents = db.Column(db.Integer, nullable=False, default=0)
    description = db.Column(db.String(255), nullable=True)

    transaction = db.relationship("LedgerTransaction", back_populates="lines")
    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "account_code": self.account.code if self.account else None,
            "debit_cents": self.debit_cents,
            "credit_cents": self.credit_cents,
            "description": self.description,
        }
