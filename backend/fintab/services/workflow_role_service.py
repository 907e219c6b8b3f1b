# Overview: Named sign-off duties (cash counter, stock verifier, ...) per business.

from __future__ import annotations

from ..extensions import db
from ..models import WorkflowRoleAssignment, Membership, User
from fintab.time_utils import utcnow
from .permission_service import is_owner_or_admin


class WorkflowRoleError(Exception):
    """Raised for unknown role keys or invalid assignees."""
    pass


# role_key -> display label
WORKFLOW_ROLES = {
    "cash_counter": "Cash Counter (1st Signature)",
    "cash_verifier": "Cash Verifier (2nd Signature)",
    "cash_approver": "Cash Approver (Final)",
    "receiving_clerk": "Receiving Clerk (1st Signature)",
    "receiving_verifier": "Receiving Verifier (2nd Signature)",
    "receiving_approver": "Receiving Approver (Final)",
    "costing_manager": "Costing Manager (1st Signature)",
    "costing_approver": "Costing Approver (2nd Signature and Final)",
    "stock_manager": "Stock Manager (Physical Count)",
    "stock_verifier": "Stock Verifier (2nd Signature)",
    "stock_approver": "Stock Approver (Final)",
    "bank_verifier": "Bank Receipt Verifier",
}


def _check_key(role_key: str) -> None:
    if role_key not in WORKFLOW_ROLES:
        raise WorkflowRoleError(f"Unknown workflow role: {role_key}")


def holder_user_ids(business_id: int, role_key: str) -> list[int]:
    _check_key(role_key)
    rows = (
        db.session.query(WorkflowRoleAssignment.user_id)
        .filter_by(business_id=business_id, role_key=role_key)
        .order_by(WorkflowRoleAssignment.id.asc())
        .all()
    )
    return [row[0] for row in rows]


def holds_workflow_role(user: User, membership: Membership | None, role_key: str) -> bool:
    """
    Owners and admins stand in for every workflow role; everyone else needs
    an explicit assignment in the membership's business.
    """
    _check_key(role_key)
    if is_owner_or_admin(user, membership):
        return True
    if membership is None or not membership.is_active:
        return False
    return user.id in holder_user_ids(membership.business_id, role_key)


def list_workflow_roles(business_id: int) -> dict[str, list[dict]]:
    """Every declared role key; an empty list means nobody holds it."""
    result: dict[str, list[dict]] = {key: [] for key in WORKFLOW_ROLES}
    rows = (
        db.session.query(WorkflowRoleAssignment)
        .filter_by(business_id=business_id)
        .order_by(WorkflowRoleAssignment.id.asc())
        .all()
    )
    for row in rows:
        if row.role_key in result:
            result[row.role_key].append(row.to_dict())
    return result


def assign_workflow_role(
    *,
    business,
    role_key: str,
    user_id: int,
    assigned_by_user_id: int | None,
) -> WorkflowRoleAssignment:
    """
    Give user_id the role. When the business does not allow multiple
    assignees the previous holders are replaced.
    """
    _check_key(role_key)

    membership = db.session.query(Membership).filter_by(
        business_id=business.id,
        user_id=user_id,
        status="Active",
    ).first()
    if not membership:
        raise WorkflowRoleError("Assignee must be an active member of the business")

    existing = db.session.query(WorkflowRoleAssignment).filter_by(
        business_id=business.id,
        role_key=role_key,
        user_id=user_id,
    ).first()
    if existing:
        return existing

    if not business.allow_multiple_assignees:
        db.session.query(WorkflowRoleAssignment).filter_by(
            business_id=business.id,
            role_key=role_key,
        ).delete(synchronize_session=False)

    assignment = WorkflowRoleAssignment(
        business_id=business.id,
        role_key=role_key,
        user_id=user_id,
        assigned_by_user_id=assigned_by_user_id,
        assigned_at=utcnow(),
    )
    db.session.add(assignment)
    db.session.commit()
    return assignment


def unassign_workflow_role(*, business_id: int, role_key: str, user_id: int) -> bool:
    _check_key(role_key)
    deleted = db.session.query(WorkflowRoleAssignment).filter_by(
        business_id=business_id,
        role_key=role_key,
        user_id=user_id,
    ).delete(synchronize_session=False)
    db.session.commit()
    return bool(deleted)
