# Overview: Pytest coverage for bank accounts, transfers and ledger consistency.

import pytest

from fintab.models import BankAccount, BankTransaction
from fintab.services import bank_service
from fintab.services.bank_service import (
    BankAccountNotFoundError,
    BankValidationError,
    InsufficientFundsError,
)
from fintab.validation import ConflictError


@pytest.fixture
def savings(db_session, business, owner):
    return bank_service.create_account(
        business_id=business.id,
        bank_name="First Bank",
        account_name="Savings",
        account_number="0002",
        opening_balance_cents=200,
        user_id=owner.id,
    )


def _balance(db_session, account_id):
    return db_session.get(BankAccount, account_id).balance_cents


class TestAccounts:

    def test_opening_balance_is_a_ledger_row(self, db_session, bank_account):
        rows = db_session.query(BankTransaction).filter_by(account_id=bank_account.id).all()
        assert len(rows) == 1
        assert rows[0].type == "deposit"
        assert rows[0].amount_cents == 20000
        assert bank_service.verify_ledger(bank_account)["ok"] is True

    def test_duplicate_account_number_is_a_conflict(self, business, bank_account):
        with pytest.raises(ConflictError):
            bank_service.create_account(
                business_id=business.id,
                bank_name="Other Bank",
                account_name="Copy",
                account_number="0001",
            )

    def test_account_limit(self, app, business):
        app.config["MAX_BANK_ACCOUNTS"] = 2
        try:
            for n in range(2):
                bank_service.create_account(
                    business_id=business.id, bank_name="B", account_name=f"A{n}", account_number=f"N{n}",
                )
            with pytest.raises(BankValidationError):
                bank_service.create_account(
                    business_id=business.id, bank_name="B", account_name="A3", account_number="N3",
                )
        finally:
            app.config["MAX_BANK_ACCOUNTS"] = 10

    def test_accounts_are_business_scoped(self, business, bank_account):
        with pytest.raises(BankAccountNotFoundError):
            bank_service.get_account(business.id + 1, bank_account.id)


class TestDepositsAndWithdrawals:

    @pytest.mark.parametrize("amount", [0, -100])
    def test_non_positive_deposit_is_rejected(self, db_session, business, owner, bank_account, amount):
        with pytest.raises(BankValidationError):
            bank_service.deposit(
                business_id=business.id, account_id=bank_account.id, amount_cents=amount, user_id=owner.id,
            )
        assert _balance(db_session, bank_account.id) == 20000

    def test_deposit_and_withdraw(self, db_session, business, owner, bank_account):
        bank_service.deposit(business_id=business.id, account_id=bank_account.id, amount_cents=500, user_id=owner.id)
        bank_service.withdraw(business_id=business.id, account_id=bank_account.id, amount_cents=1500, user_id=owner.id)

        assert _balance(db_session, bank_account.id) == 19000
        assert bank_service.verify_ledger(db_session.get(BankAccount, bank_account.id))["ok"] is True

    def test_overdraw_is_rejected(self, db_session, business, owner, savings):
        with pytest.raises(InsufficientFundsError):
            bank_service.withdraw(business_id=business.id, account_id=savings.id, amount_cents=201, user_id=owner.id)
        assert _balance(db_session, savings.id) == 200

    def test_inactive_account_refuses_deposits(self, business, owner, savings):
        bank_service.set_account_status(business_id=business.id, account_id=savings.id, status="Inactive")
        with pytest.raises(BankValidationError):
            bank_service.deposit(business_id=business.id, account_id=savings.id, amount_cents=10, user_id=owner.id)


class TestTransfers:

    def test_insufficient_funds_leaves_balances_unchanged(self, db_session, business, owner, bank_account, savings):
        with pytest.raises(InsufficientFundsError):
            bank_service.transfer(
                business_id=business.id,
                from_account_id=savings.id,
                to_account_id=bank_account.id,
                amount_cents=250,
                user_id=owner.id,
            )

        db_session.rollback()
        assert _balance(db_session, savings.id) == 200
        assert _balance(db_session, bank_account.id) == 20000
        assert db_session.query(BankTransaction).filter(BankTransaction.type.like("transfer%")).count() == 0

    def test_transfer_conserves_total_and_writes_two_rows(self, db_session, business, owner, bank_account, savings):
        out_tx, in_tx = bank_service.transfer(
            business_id=business.id,
            from_account_id=bank_account.id,
            to_account_id=savings.id,
            amount_cents=5000,
            user_id=owner.id,
            description="Move to savings",
        )

        assert _balance(db_session, bank_account.id) == 15000
        assert _balance(db_session, savings.id) == 5200
        assert out_tx.amount_cents == -5000
        assert in_tx.amount_cents == 5000
        assert out_tx.reference_id == in_tx.reference_id
        assert out_tx.reference_id.startswith("TRF-")
        assert out_tx.occurred_at == in_tx.occurred_at

        for account_id in (bank_account.id, savings.id):
            assert bank_service.verify_ledger(db_session.get(BankAccount, account_id))["ok"] is True

    def test_same_account_is_rejected(self, business, owner, bank_account):
        with pytest.raises(BankValidationError):
            bank_service.transfer(
                business_id=business.id,
                from_account_id=bank_account.id,
                to_account_id=bank_account.id,
                amount_cents=1,
                user_id=owner.id,
            )

    def test_zero_amount_is_rejected(self, business, owner, bank_account, savings):
        with pytest.raises(BankValidationError):
            bank_service.transfer(
                business_id=business.id,
                from_account_id=bank_account.id,
                to_account_id=savings.id,
                amount_cents=0,
                user_id=owner.id,
            )
