# Overview: Bank accounts and their append-only transaction ledger.

"""
Bank Ledger Service

INVARIANT: for every account, balance_cents == sum(transactions.amount_cents).
Every function that changes a balance writes the matching transaction row
in the same commit, under a row lock on the account(s).

Transfers lock both accounts in ascending id order and write a
transfer_out (negative) / transfer_in (positive) pair with one shared
timestamp and reference.
"""

from __future__ import annotations

import secrets

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import BankAccount, BankTransaction
from ..validation import ValidationError, ConflictError
from fintab.time_utils import utcnow
from .concurrency import lock_for_update, lock_many_in_order, run_with_retry


class BankValidationError(ValidationError):
    pass


class InsufficientFundsError(ConflictError):
    pass


class BankAccountNotFoundError(LookupError):
    pass


ACCOUNT_STATUSES = {"Active", "Inactive"}


def _check_amount(amount_cents) -> int:
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool):
        raise BankValidationError("amount_cents must be an integer")
    if amount_cents <= 0:
        raise BankValidationError("Amount must be greater than zero")
    return amount_cents


def _post(account: BankAccount, type: str, amount_cents: int, *, user_id, description=None, reference_id=None, occurred_at=None) -> BankTransaction:
    """Apply a signed amount to the balance and append its ledger row. No commit."""
    account.balance_cents = account.balance_cents + amount_cents
    tx = BankTransaction(
        business_id=account.business_id,
        account_id=account.id,
        type=type,
        amount_cents=amount_cents,
        description=description,
        reference_id=reference_id,
        user_id=user_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(tx)
    return tx


def get_account(business_id: int, account_id: int) -> BankAccount:
    account = db.session.query(BankAccount).filter_by(id=account_id, business_id=business_id).first()
    if not account:
        raise BankAccountNotFoundError("Bank account not found")
    return account


def _locked_account(business_id: int, account_id: int) -> BankAccount:
    account = lock_for_update(
        db.session.query(BankAccount).filter_by(id=account_id, business_id=business_id)
    ).first()
    if not account:
        raise BankAccountNotFoundError("Bank account not found")
    return account


def list_accounts(business_id: int, include_inactive: bool = True) -> list[BankAccount]:
    query = db.session.query(BankAccount).filter_by(business_id=business_id)
    if not include_inactive:
        query = query.filter_by(status="Active")
    return query.order_by(BankAccount.id.asc()).all()


def create_account(
    *,
    business_id: int,
    bank_name: str,
    account_name: str,
    account_number: str,
    opening_balance_cents: int = 0,
    user_id: int | None = None,
) -> BankAccount:
    """
    Register a bank account. A non-zero opening balance is booked as a
    deposit so the ledger sums to the balance from the first row.
    """
    bank_name = (bank_name or "").strip()
    account_name = (account_name or "").strip()
    account_number = (account_number or "").strip()
    if not bank_name or not account_name or not account_number:
        raise BankValidationError("bank_name, account_name and account_number are required")
    if not isinstance(opening_balance_cents, int) or opening_balance_cents < 0:
        raise BankValidationError("opening_balance_cents must be a non-negative integer")

    limit = current_app.config.get("MAX_BANK_ACCOUNTS", 10)
    if db.session.query(BankAccount).filter_by(business_id=business_id).count() >= limit:
        raise BankValidationError(f"A business can have at most {limit} bank accounts")

    duplicate = db.session.query(BankAccount).filter_by(
        business_id=business_id,
        account_number=account_number,
    ).first()
    if duplicate:
        raise ConflictError("An account with this number already exists")

    account = BankAccount(
        business_id=business_id,
        bank_name=bank_name,
        account_name=account_name,
        account_number=account_number,
        balance_cents=0,
        status="Active",
    )
    db.session.add(account)
    db.session.flush()

    if opening_balance_cents:
        _post(account, "deposit", opening_balance_cents, user_id=user_id, description="Opening balance")

    db.session.commit()
    return account


def set_account_status(*, business_id: int, account_id: int, status: str) -> BankAccount:
    if status not in ACCOUNT_STATUSES:
        raise BankValidationError("status must be Active or Inactive")

    def _op():
        account = _locked_account(business_id, account_id)
        account.status = status
        db.session.commit()
        return account

    return run_with_retry(_op)


def deposit(*, business_id: int, account_id: int, amount_cents: int, user_id: int | None, description: str | None = None) -> BankTransaction:
    _check_amount(amount_cents)

    def _op():
        account = _locked_account(business_id, account_id)
        if account.status != "Active":
            raise BankValidationError("Account is inactive")
        tx = _post(account, "deposit", amount_cents, user_id=user_id, description=description or "Deposit")
        db.session.commit()
        return tx

    return run_with_retry(_op)


def withdraw(*, business_id: int, account_id: int, amount_cents: int, user_id: int | None, description: str | None = None) -> BankTransaction:
    _check_amount(amount_cents)

    def _op():
        account = _locked_account(business_id, account_id)
        if account.status != "Active":
            raise BankValidationError("Account is inactive")
        if account.balance_cents < amount_cents:
            raise InsufficientFundsError("Insufficient funds")
        tx = _post(account, "withdrawal", -amount_cents, user_id=user_id, description=description or "Withdrawal")
        db.session.commit()
        return tx

    return run_with_retry(_op)


def transfer(
    *,
    business_id: int,
    from_account_id: int,
    to_account_id: int,
    amount_cents: int,
    user_id: int | None,
    description: str | None = None,
) -> tuple[BankTransaction, BankTransaction]:
    """
    Move funds between two accounts of the same business.

    Raises:
        BankValidationError: amount <= 0, same account, inactive account
        InsufficientFundsError: source balance below amount
        BankAccountNotFoundError: unknown account
    """
    _check_amount(amount_cents)
    if from_account_id == to_account_id:
        raise BankValidationError("Cannot transfer to the same account")

    def _op():
        accounts = lock_many_in_order(BankAccount, [from_account_id, to_account_id])
        source = accounts.get(from_account_id)
        target = accounts.get(to_account_id)
        if source is None or target is None or source.business_id != business_id or target.business_id != business_id:
            raise BankAccountNotFoundError("Bank account not found")
        if source.status != "Active" or target.status != "Active":
            raise BankValidationError("Both accounts must be active")
        if source.balance_cents < amount_cents:
            raise InsufficientFundsError("Insufficient funds")

        now = utcnow()
        reference = f"TRF-{secrets.token_hex(6).upper()}"
        note = description or f"Transfer {source.account_name} -> {target.account_name}"
        out_tx = _post(source, "transfer_out", -amount_cents, user_id=user_id, description=note, reference_id=reference, occurred_at=now)
        in_tx = _post(target, "transfer_in", amount_cents, user_id=user_id, description=note, reference_id=reference, occurred_at=now)
        db.session.commit()
        return out_tx, in_tx

    return run_with_retry(_op)


def credit_sale(account: BankAccount, sale, *, user_id: int | None) -> BankTransaction:
    """Book a verified bank-receipt sale. Caller holds the lock and commits."""
    return _post(
        account,
        "sale_credit",
        sale.total_cents,
        user_id=user_id,
        description=f"Sale {sale.document_number}",
        reference_id=sale.document_number,
    )


def list_transactions(business_id: int, account_id: int, limit: int = 200) -> list[BankTransaction]:
    get_account(business_id, account_id)
    return (
        db.session.query(BankTransaction)
        .filter_by(business_id=business_id, account_id=account_id)
        .order_by(BankTransaction.id.desc())
        .limit(limit)
        .all()
    )


def verify_ledger(account: BankAccount) -> dict:
    total = (
        db.session.query(func.coalesce(func.sum(BankTransaction.amount_cents), 0))
        .filter(BankTransaction.account_id == account.id)
        .scalar()
    )
    return {
        "account_id": account.id,
        "balance_cents": account.balance_cents,
        "ledger_sum_cents": int(total),
        "ok": int(total) == account.balance_cents,
    }
