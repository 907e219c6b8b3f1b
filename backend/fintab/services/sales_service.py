"""
Sales Service - receipts ledger and bank-receipt verification

Sales are written by checkout_service; this module reads them and moves
pending bank-receipt sales to their final status.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta

from sqlalchemy import func

from ..extensions import db
from ..models import BankAccount, Sale, SaleLine, User
from ..validation import ValidationError, ConflictError
from fintab.time_utils import utcnow
from . import pricing
from .bank_service import credit_sale
from .checkout_service import CASH_PAYMENT_METHOD, deduct_sale_stock
from .concurrency import lock_for_update, run_with_retry
from .notification_service import notify_users
from .permission_service import PermissionDeniedError, has_access, log_security_event
from .workflow_role_service import holds_workflow_role


SALE_STATUSES = {
    "completed",
    "proforma",
    "pending_approval",
    "rejected",
    "client_order",
    "approved_by_owner",
    "pending_bank_verification",
    "completed_bank_verified",
    "rejected_bank_not_verified",
}

# Statuses counted as settled revenue
FINALIZED_SALE_STATUSES = {"completed", "completed_bank_verified", "approved_by_owner"}


class SaleNotFoundError(LookupError):
    pass


class SaleStateError(ConflictError):
    pass


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def get_sale(business_id: int, sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id, business_id=business_id).first()
    if not sale:
        raise SaleNotFoundError("Sale not found")
    return sale


def list_sales(
    business_id: int,
    *,
    status: str | None = None,
    customer_id: int | None = None,
    staff_user_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Sale], int]:
    """Receipts view, newest first. Returns (page, total)."""
    if status is not None and status not in SALE_STATUSES:
        raise ValidationError(f"Unknown sale status: {status}")

    query = db.session.query(Sale).filter(Sale.business_id == business_id)
    if status:
        query = query.filter(Sale.status == status)
    if customer_id:
        query = query.filter(Sale.customer_id == customer_id)
    if staff_user_id:
        query = query.filter(Sale.user_id == staff_user_id)
    if from_date:
        query = query.filter(Sale.created_at >= _day_bounds(from_date)[0])
    if to_date:
        query = query.filter(Sale.created_at < _day_bounds(to_date)[1])

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    rows = query.order_by(Sale.created_at.desc(), Sale.id.desc()).offset(offset).limit(limit).all()
    return rows, total


def verify_bank_sale(
    *,
    business_id: int,
    sale_id: int,
    actor: User,
    membership,
    approve: bool,
    note: str | None = None,
) -> Sale:
    """
    Settle a sale paid by bank receipt.

    approve=True -> completed_bank_verified: the destination account is
    credited with the sale total and stock is deducted.
    approve=False -> rejected_bank_not_verified: nothing else moves.
    """
    if not (has_access(actor, membership, "VERIFY_BANK_SALE") or holds_workflow_role(actor, membership, "bank_verifier")):
        log_security_event(
            user_id=actor.id,
            event_type="PERMISSION_DENIED",
            success=False,
            resource="sales.verify_bank",
            action="VERIFY_BANK_SALE",
            reason="Missing permission: VERIFY_BANK_SALE",
            business_id=business_id,
        )
        raise PermissionDeniedError("You are not allowed to verify bank payments")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id, business_id=business_id)).first()
        if not sale:
            raise SaleNotFoundError("Sale not found")
        if sale.status != "pending_bank_verification":
            raise SaleStateError(f"Sale is {sale.status}, not awaiting bank verification")

        if approve:
            account = lock_for_update(
                db.session.query(BankAccount).filter_by(id=sale.bank_account_id, business_id=business_id)
            ).first()
            if account is None:
                raise ValidationError("Destination bank account no longer exists")
            credit_sale(account, sale, user_id=actor.id)
            lines = [
                pricing.PricedLine(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    product_name=line.product_name,
                    variant_label=line.variant_label,
                    quantity=line.quantity,
                    unit_price_cents=line.unit_price_cents,
                    commission_percentage=pricing.to_decimal(line.commission_percentage),
                )
                for line in sale.lines
            ]
            deduct_sale_stock(sale, lines, user_id=actor.id)
            sale.status = "completed_bank_verified"
        else:
            sale.status = "rejected_bank_not_verified"

        sale.verification_note = note
        sale.verified_by_user_id = actor.id
        sale.verified_at = utcnow()

        notify_users(
            business_id,
            {sale.created_by_user_id},
            title="Bank payment verified" if approve else "Bank payment rejected",
            message=f"Sale {sale.document_number} is now {sale.status}.",
            type="success" if approve else "warning",
            link=f"/sales/{sale.id}",
            exclude_user_id=actor.id,
        )
        db.session.commit()
        return sale

    return run_with_retry(_op)


def cash_sales_total(business_id: int, day: date) -> int:
    """Sum of completed cash sales on day; the expected amount of a cash count."""
    start, end = _day_bounds(day)
    total = (
        db.session.query(func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(
            Sale.business_id == business_id,
            Sale.status == "completed",
            Sale.payment_method == CASH_PAYMENT_METHOD,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .scalar()
    )
    return int(total)


def commission_summary(business_id: int, *, from_date: date | None = None, to_date: date | None = None, staff_user_id: int | None = None) -> list[dict]:
    """Commission earned per staff member over finalized sales."""
    query = (
        db.session.query(
            Sale.user_id,
            User.display_name,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
            func.coalesce(func.sum(Sale.commission_cents), 0),
        )
        .join(User, User.id == Sale.user_id)
        .filter(Sale.business_id == business_id, Sale.status.in_(FINALIZED_SALE_STATUSES))
    )
    if from_date:
        query = query.filter(Sale.created_at >= _day_bounds(from_date)[0])
    if to_date:
        query = query.filter(Sale.created_at < _day_bounds(to_date)[1])
    if staff_user_id:
        query = query.filter(Sale.user_id == staff_user_id)

    rows = query.group_by(Sale.user_id, User.display_name).order_by(User.display_name.asc()).all()
    return [
        {
            "user_id": user_id,
            "user_name": name,
            "sale_count": count,
            "sales_total_cents": int(sales_total),
            "commission_cents": int(commission),
        }
        for user_id, name, count, sales_total, commission in rows
    ]
