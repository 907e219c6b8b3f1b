from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class BankAccount(db.Model):
    """
    Business bank account with a running balance.

    INVARIANT: balance_cents == sum(transactions.amount_cents). Every balance
    change is written together with its BankTransaction row in one commit.
    """
    __tablename__ = "bank_accounts"
    __table_args__ = (
        db.UniqueConstraint("business_id", "account_number", name="uq_bank_accounts_business_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    bank_name = db.Column(db.String(128), nullable=False)
    account_name = db.Column(db.String(128), nullable=False)
    account_number = db.Column(db.String(64), nullable=False)

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    # Active / Inactive
    status = db.Column(db.String(16), nullable=False, default="Active")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    transactions = db.relationship(
        "BankTransaction",
        backref="account",
        lazy="dynamic",
        order_by="BankTransaction.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "bank_name": self.bank_name,
            "account_name": self.account_name,
            "account_number": self.account_number,
            "balance_cents": self.balance_cents,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class BankTransaction(db.Model):
    """
    Append-only ledger row. amount_cents is signed: credits positive,
    debits negative.

    A transfer writes a transfer_out / transfer_in pair sharing the same
    reference_id and occurred_at.
    """
    __tablename__ = "bank_transactions"
    __table_args__ = (
        db.Index("ix_bank_transactions_account_occurred", "account_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=False, index=True)

    # deposit, withdrawal, transfer_in, transfer_out, sale_credit
    type = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    reference_id = db.Column(db.String(64), nullable=True, index=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "account_id": self.account_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "reference_id": self.reference_id,
            "user_id": self.user_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
