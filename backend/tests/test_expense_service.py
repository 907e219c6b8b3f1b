# Overview: Pytest coverage for expense requests and their review.

import pytest

from fintab.models import Expense, Notification
from fintab.services import expense_service
from fintab.services.permission_service import PermissionDeniedError
from fintab.validation import ConflictError, ValidationError


@pytest.fixture
def request_row(business, staff, staff_membership):
    return expense_service.create_request(business_id=business.id, user=staff, payload={
        "category": "Supplies",
        "description": "Receipt paper",
        "amount_cents": 1250,
        "payment_method": "Cash",
    })


def test_request_needs_positive_amount(business, staff, staff_membership):
    with pytest.raises(ValidationError):
        expense_service.create_request(business_id=business.id, user=staff, payload={
            "category": "Supplies", "description": "Pens", "amount_cents": 0,
        })


def test_unknown_payment_method(business, staff, staff_membership):
    with pytest.raises(ValidationError):
        expense_service.create_request(business_id=business.id, user=staff, payload={
            "category": "Supplies", "description": "Pens", "amount_cents": 100, "payment_method": "Barter",
        })


def test_approval_books_expense_and_notifies(db_session, business, owner, owner_membership, staff, request_row):
    reviewed = expense_service.review(
        business_id=business.id, request_id=request_row.id, actor=owner, membership=owner_membership, approve=True,
    )

    assert reviewed.status == "approved"
    expense = db_session.query(Expense).filter_by(expense_request_id=request_row.id).one()
    assert expense.amount_cents == 1250
    note = db_session.query(Notification).filter_by(user_id=staff.id).one()
    assert note.title == "Expense request approved"


def test_rejection_needs_reason(business, owner, owner_membership, request_row):
    with pytest.raises(ValidationError):
        expense_service.review(
            business_id=business.id, request_id=request_row.id, actor=owner, membership=owner_membership, approve=False,
        )


def test_request_is_reviewed_once(db_session, business, owner, owner_membership, request_row):
    expense_service.review(
        business_id=business.id, request_id=request_row.id, actor=owner, membership=owner_membership,
        approve=False, reason="Duplicate",
    )
    with pytest.raises(ConflictError):
        expense_service.review(
            business_id=business.id, request_id=request_row.id, actor=owner, membership=owner_membership, approve=True,
        )
    assert db_session.query(Expense).count() == 0


def test_staff_cannot_review(business, staff, staff_membership, request_row):
    with pytest.raises(PermissionDeniedError):
        expense_service.review(
            business_id=business.id, request_id=request_row.id, actor=staff, membership=staff_membership, approve=True,
        )
