# Overview: Pytest coverage for the ledger balance check and the posting writer.

import pytest

from stockledger.errors import ImbalancedLedgerError, NotFoundError
from stockledger.models import Account, LedgerTransaction
from stockledger.services.ledger_service import (
    ACCOUNT_INVENTORY,
    ACCOUNT_PAYABLE,
    LedgerWriter,
    PostingLine,
    check_balanced,
    transfer_lines,
)


class TestCheckBalanced:

    def test_balanced_lines_return_total(self):
        lines = [PostingLine("1300", debit_cents=1500), PostingLine("2000", credit_cents=1500)]
        assert check_balanced(lines, tolerance_cents=1) == 1500

    def test_one_cent_difference_is_tolerated(self):
        lines = [PostingLine("1300", debit_cents=1001), PostingLine("2000", credit_cents=1000)]
        assert check_balanced(lines, tolerance_cents=1) == 1001

    def test_imbalance_raises_with_totals(self):
        lines = [PostingLine("1300", debit_cents=1500), PostingLine("2000", credit_cents=1000)]
        with pytest.raises(ImbalancedLedgerError) as excinfo:
            check_balanced(lines, tolerance_cents=1)
        assert excinfo.value.debit_cents == 1500
        assert excinfo.value.credit_cents == 1000

    def test_tolerance_defaults_from_config(self, app):
        lines = [PostingLine("1300", debit_cents=3), PostingLine("2000", credit_cents=0)]
        with pytest.raises(ImbalancedLedgerError):
            check_balanced(lines)


class TestTransferLines:

    def test_positive_amount(self):
        debit, credit = transfer_lines("1300", "2000", 700)
        assert (debit.account_code, debit.debit_cents) == ("1300", 700)
        assert (credit.account_code, credit.credit_cents) == ("2000", 700)

    def test_negative_amount_flips_sides(self):
        debit, credit = transfer_lines("1300", "2000", -700)
        assert (debit.account_code, debit.debit_cents) == ("2000", 700)
        assert (credit.account_code, credit.credit_cents) == ("1300", 700)

    def test_zero_amount_has_no_lines(self):
        assert transfer_lines("1300", "2000", 0) == []


class TestLedgerWriter:

    def test_post_writes_lines_and_moves_balances(self, db_session, tenant):
        writer = LedgerWriter()
        txn = writer.post(
            tenant.id,
            description="Stock purchase",
            lines=transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, 2500),
            reference="Invoice: INV-1",
        )
        db_session.commit()

        assert txn.transaction_number.startswith("TXN-")
        assert txn.total_cents == 2500
        assert len(txn.lines) == 2

        inventory = db_session.query(Account).filter_by(tenant_id=tenant.id, code=ACCOUNT_INVENTORY).one()
        payable = db_session.query(Account).filter_by(tenant_id=tenant.id, code=ACCOUNT_PAYABLE).one()
        assert (inventory.type, inventory.balance_cents) == ("ASSET", 2500)
        assert (payable.type, payable.balance_cents) == ("LIABILITY", 2500)

    def test_reverse_posting_returns_balances_to_zero(self, db_session, tenant):
        writer = LedgerWriter()
        writer.post(tenant.id, description="in", lines=transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, 900))
        writer.post(tenant.id, description="out", lines=transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, -900))
        db_session.commit()

        balances = {a.code: a.balance_cents for a in db_session.query(Account).filter_by(tenant_id=tenant.id)}
        assert balances == {ACCOUNT_INVENTORY: 0, ACCOUNT_PAYABLE: 0}

    def test_empty_posting_writes_nothing(self, db_session, tenant):
        assert LedgerWriter().post(tenant.id, description="nothing", lines=[]) is None
        assert db_session.query(LedgerTransaction).count() == 0

    def test_ensure_account_is_idempotent(self, db_session, tenant):
        writer = LedgerWriter()
        first = writer.ensure_account(tenant.id, ACCOUNT_INVENTORY)
        second = writer.ensure_account(tenant.id, ACCOUNT_INVENTORY)
        assert first.id == second.id
        assert db_session.query(Account).count() == 1

    def test_unknown_account_code_raises(self, db_session, tenant):
        with pytest.raises(NotFoundError):
            LedgerWriter().post(tenant.id, description="bad", lines=transfer_lines("9999", ACCOUNT_PAYABLE, 100))

    def test_accounts_are_per_tenant(self, db_session, tenant, other_tenant):
        writer = LedgerWriter()
        writer.post(tenant.id, description="a", lines=transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, 100))
        writer.post(other_tenant.id, description="b", lines=transfer_lines(ACCOUNT_INVENTORY, ACCOUNT_PAYABLE, 300))
        db_session.commit()

        own = db_session.query(Account).filter_by(tenant_id=tenant.id, code=ACCOUNT_INVENTORY).one()
        assert own.balance_cents == 100
