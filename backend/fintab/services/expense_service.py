# Overview: Expense requests and their review into booked expenses.

from __future__ import annotations

from ..extensions import db
from ..models import Expense, ExpenseRequest, User
from ..validation import ValidationError, ConflictError
from fintab.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .notification_service import notify_users
from .permission_service import require_permission


EXPENSE_PAYMENT_METHODS = {"Cash", "Card", "Bank Transfer", "Other"}
REQUEST_STATUSES = {"pending", "approved", "rejected"}


class ExpenseRequestNotFoundError(LookupError):
    pass


def create_request(*, business_id: int, user: User, payload: dict) -> ExpenseRequest:
    category = (payload.get("category") or "").strip()
    description = (payload.get("description") or "").strip()
    if not category or not description:
        raise ValidationError("category and description are required")

    amount = payload.get("amount_cents")
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    method = payload.get("payment_method") or "Cash"
    if method not in EXPENSE_PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(sorted(EXPENSE_PAYMENT_METHODS))}")

    request_row = ExpenseRequest(
        business_id=business_id,
        user_id=user.id,
        category=category,
        description=description,
        amount_cents=amount,
        payment_method=method,
        merchant=(payload.get("merchant") or "").strip() or None,
        status="pending",
    )
    db.session.add(request_row)
    db.session.commit()
    return request_row


def review(
    *,
    business_id: int,
    request_id: int,
    actor: User,
    membership,
    approve: bool,
    reason: str | None = None,
) -> ExpenseRequest:
    """
    Approve (books an Expense for the request) or reject (reason required).
    Only pending requests can be reviewed; the requester is notified.
    """
    require_permission(actor, membership, "APPROVE_EXPENSE", resource="expenses.review", business_id=business_id)
    reason = (reason or "").strip()
    if not approve and not reason:
        raise ValidationError("A rejection reason is required")

    def _op():
        request_row = lock_for_update(
            db.session.query(ExpenseRequest).filter_by(id=request_id, business_id=business_id)
        ).first()
        if not request_row:
            raise ExpenseRequestNotFoundError("Expense request not found")
        if request_row.status != "pending":
            raise ConflictError(f"Expense request is already {request_row.status}")

        now = utcnow()
        request_row.reviewed_by_user_id = actor.id
        request_row.reviewed_at = now
        if approve:
            request_row.status = "approved"
            db.session.add(Expense(
                business_id=business_id,
                category=request_row.category,
                description=request_row.description,
                amount_cents=request_row.amount_cents,
                expense_date=now.date(),
                status="active",
                expense_request_id=request_row.id,
                created_by_user_id=actor.id,
            ))
        else:
            request_row.status = "rejected"
            request_row.rejection_reason = reason

        notify_users(
            business_id,
            {request_row.user_id},
            title=f"Expense request {request_row.status}",
            message=request_row.description if approve else f"{request_row.description}: {reason}",
            type="success" if approve else "warning",
            link="/expenses/requests",
            exclude_user_id=actor.id,
        )
        db.session.commit()
        return request_row

    return run_with_retry(_op)


def list_requests(business_id: int, *, status: str | None = None, user_id: int | None = None) -> list[ExpenseRequest]:
    if status and status not in REQUEST_STATUSES:
        raise ValidationError(f"Unknown status: {status}")
    query = db.session.query(ExpenseRequest).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)
    if user_id:
        query = query.filter_by(user_id=user_id)
    return query.order_by(ExpenseRequest.id.desc()).all()


def list_expenses(business_id: int, include_deleted: bool = False) -> list[Expense]:
    query = db.session.query(Expense).filter_by(business_id=business_id)
    if not include_deleted:
        query = query.filter_by(status="active")
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()
