# Overview: Generic multi-signature sign-off engine for audit records.

"""
Approval Service

One engine drives every audit kind declared in approval_kinds:

    submit    -> first stage signed, record created
    advance   -> next stage signed (repeat until every stage is signed)
    finalize  -> approver records the outcome (accepted / rejected / flagged)

RULES:
- Each signature needs the stage's workflow role (owners/admins hold all).
- With business.enforce_unique_signers on, the signer of one stage cannot
  sign the next one on the same record.
- advance names the stage it moves from; if the record has already moved
  past it (two verifiers racing), the late call is rejected with a conflict.
- Side effects of an accepted record (stock in, cost update) run inside the
  same commit as the final signature.
"""

from __future__ import annotations

import logging
import random

from sqlalchemy import func

from ..extensions import db
from ..models import ApprovalAuditEntry, ApprovalRecord, ApprovalSignature, Business, Product, StockAdjustment, User
from ..validation import ConflictError
from fintab.time_utils import utcnow
from .approval_kinds import (
    TERMINAL_STATUSES,
    ApprovalValidationError,
    WorkflowDefinition,
    get_workflow,
    variance,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .notification_service import notify_users, notify_workflow_role
from .permission_service import PermissionDeniedError, log_security_event
from .workflow_role_service import WORKFLOW_ROLES, holds_workflow_role

logger = logging.getLogger(__name__)

__all__ = [
    "ApprovalValidationError",
    "ApprovalAuthorizationError",
    "ApprovalConflictError",
    "ApprovalNotFoundError",
    "submit",
    "advance",
    "finalize",
    "get_record",
    "list_records",
    "variance",
    "select_audit_items",
]


class ApprovalAuthorizationError(PermissionDeniedError):
    pass


class ApprovalConflictError(ConflictError):
    pass


class ApprovalNotFoundError(LookupError):
    pass


def _require_role(business: Business, actor: User, membership, workflow: WorkflowDefinition, role_key: str, action: str) -> None:
    if holds_workflow_role(actor, membership, role_key):
        return
    log_security_event(
        user_id=actor.id,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=f"approvals.{workflow.kind}",
        action=action,
        reason=f"Missing workflow role: {role_key}",
        business_id=business.id,
    )
    raise ApprovalAuthorizationError(f"Only the {WORKFLOW_ROLES[role_key]} can do this")


def _signer_role(actor: User, membership) -> str:
    if membership is not None:
        return membership.role
    return "SuperAdmin" if actor.is_super_admin else "Unknown"


def _sign(record: ApprovalRecord, stage: str, actor: User, membership, status: str, note: str) -> None:
    now = utcnow()
    record.signatures.append(ApprovalSignature(
        stage=stage,
        user_id=actor.id,
        user_name=actor.display_name,
        role=_signer_role(actor, membership),
        signed_at=now,
    ))
    record.audit_entries.append(ApprovalAuditEntry(
        sequence=len(record.audit_entries) + 1,
        status=status,
        actor_id=actor.id,
        actor_name=actor.display_name,
        note=note,
        occurred_at=now,
    ))
    record.status = status


def _link(record: ApprovalRecord) -> str:
    return f"/approvals/{record.kind}/{record.id}"


def get_record(business_id: int, record_id: int, kind: str | None = None) -> ApprovalRecord:
    query = db.session.query(ApprovalRecord).filter_by(id=record_id, business_id=business_id)
    if kind:
        query = query.filter_by(kind=kind)
    record = query.first()
    if not record:
        raise ApprovalNotFoundError("Approval record not found")
    return record


def list_records(business_id: int, kind: str | None = None, status: str | None = None, limit: int = 100) -> list[ApprovalRecord]:
    query = db.session.query(ApprovalRecord).filter_by(business_id=business_id)
    if kind:
        get_workflow(kind)
        query = query.filter_by(kind=kind)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(ApprovalRecord.created_at.desc(), ApprovalRecord.id.desc()).limit(limit).all()


def submit(*, business: Business, actor: User, membership, kind: str, payload: dict) -> ApprovalRecord:
    """
    Create a record carrying the first stage signature.

    Raises:
        ApprovalValidationError: payload rejected by the kind's validator
        ApprovalAuthorizationError: actor lacks the first stage role
    """
    workflow = get_workflow(kind)
    first = workflow.stages[0]
    _require_role(business, actor, membership, workflow, first.role_key, "submit")

    data = workflow.validate(business, payload or {})

    record = ApprovalRecord(
        business_id=business.id,
        kind=workflow.kind,
        document_number=next_document_number(business_id=business.id, document_type=workflow.document_type),
        status=first.status,
        created_by_user_id=actor.id,
    )
    workflow.build(record, data)
    _sign(record, first.name, actor, membership, first.status, first.note)
    db.session.add(record)
    db.session.flush()

    following = workflow.stages[1]
    notify_workflow_role(
        business.id,
        following.role_key,
        title=f"{workflow.label} awaiting signature",
        message=f"{record.document_number} was submitted by {actor.display_name} and needs a second signature.",
        link=_link(record),
        exclude_user_id=actor.id,
    )
    db.session.commit()

    logger.info("approval submitted kind=%s record=%s by user=%s", kind, record.id, actor.id)
    return record


def advance(
    *,
    business: Business,
    record_id: int,
    actor: User,
    membership,
    from_stage: str,
    note: str | None = None,
) -> ApprovalRecord:
    """
    Sign the stage after from_stage.

    Raises:
        ApprovalConflictError: record is no longer at from_stage, or is terminal
        ApprovalAuthorizationError: missing role, or same signer as from_stage
    """

    def _op():
        record = lock_for_update(
            db.session.query(ApprovalRecord).filter_by(id=record_id, business_id=business.id)
        ).first()
        if not record:
            raise ApprovalNotFoundError("Approval record not found")
        workflow = get_workflow(record.kind)

        if record.status in TERMINAL_STATUSES:
            raise ApprovalConflictError(f"Record is already {record.status}")
        current = workflow.stage_named(from_stage)
        if current is None:
            raise ApprovalValidationError(f"Unknown stage: {from_stage}")
        latest = record.latest_signature
        if latest is None or latest.stage != from_stage:
            raise ApprovalConflictError(
                f"Record has moved on from {from_stage}; reload and try again"
            )
        target = workflow.next_stage(from_stage)
        if target is None:
            raise ApprovalConflictError("Every stage is signed; the record awaits a final decision")

        _require_role(business, actor, membership, workflow, target.role_key, "advance")
        if business.enforce_unique_signers and latest.user_id == actor.id:
            raise ApprovalAuthorizationError("Self-verification is not allowed: a different person must sign this stage")

        stage_note = target.note if not note else f"{target.note} {note.strip()}"
        _sign(record, target.name, actor, membership, target.status, stage_note)

        following = workflow.next_stage(target.name)
        notify_workflow_role(
            business.id,
            following.role_key if following else workflow.final_role,
            title=f"{workflow.label} awaiting {'signature' if following else 'final approval'}",
            message=f"{record.document_number} was signed by {actor.display_name}.",
            link=_link(record),
            exclude_user_id=actor.id,
        )
        db.session.commit()
        return record

    return run_with_retry(_op)


def finalize(
    *,
    business: Business,
    record_id: int,
    actor: User,
    membership,
    outcome: str,
    note: str | None = None,
) -> ApprovalRecord:
    """
    Record the approver's outcome and run the accepted side effect.

    Raises:
        ApprovalValidationError: outcome not allowed for this kind
        ApprovalConflictError: stages unsigned or record already terminal
        ApprovalAuthorizationError: missing final role / excluded signer
    """

    def _op():
        record = lock_for_update(
            db.session.query(ApprovalRecord).filter_by(id=record_id, business_id=business.id)
        ).first()
        if not record:
            raise ApprovalNotFoundError("Approval record not found")
        workflow = get_workflow(record.kind)

        if outcome not in workflow.outcomes:
            allowed = ", ".join(sorted(workflow.outcomes))
            raise ApprovalValidationError(f"outcome must be one of: {allowed}")
        if record.status in TERMINAL_STATUSES:
            raise ApprovalConflictError(f"Record is already {record.status}")
        if record.status != workflow.stages[-1].status:
            raise ApprovalConflictError("Every stage must be signed before the final decision")

        _require_role(business, actor, membership, workflow, workflow.final_role, "finalize")
        if outcome == "accepted" and business.enforce_unique_signers and workflow.final_excludes_stage:
            excluded = record.signature_for(workflow.final_excludes_stage)
            if excluded is not None and excluded.user_id == actor.id:
                raise ApprovalAuthorizationError("The first signer cannot give the final approval")

        final_note = workflow.final_note.format(status=outcome)
        if note:
            final_note = f"{final_note} {note.strip()}"
        _sign(record, "approver", actor, membership, outcome, final_note)

        if outcome == "accepted" and workflow.on_accepted is not None:
            workflow.on_accepted(record, actor.id)

        notify_users(
            business.id,
            {record.created_by_user_id},
            title=f"{workflow.label} {outcome}",
            message=f"{record.document_number} was {outcome} by {actor.display_name}.",
            type="success" if outcome == "accepted" else "warning",
            link=_link(record),
            exclude_user_id=actor.id,
        )
        db.session.commit()
        return record

    record = run_with_retry(_op)
    logger.info("approval finalized kind=%s record=%s outcome=%s by user=%s", record.kind, record.id, outcome, actor.id)
    return record


def select_audit_items(business: Business, count: int | None = None, rng: random.Random | None = None) -> list[Product]:
    """
    Products to count in this week's check.

    Two highest stock values (price x stock), then the two products with the
    most stock history, then random picks until count is reached.
    """
    count = business.weekly_check_count if count is None else count
    if count <= 0:
        return []
    rng = rng or random.Random()

    products = (
        db.session.query(Product)
        .filter_by(business_id=business.id, is_active=True)
        .order_by(Product.id.asc())
        .all()
    )
    chosen: list[Product] = []

    def _take(candidates, limit):
        for product in candidates:
            if limit <= 0 or len(chosen) >= count:
                break
            if product not in chosen:
                chosen.append(product)
                limit -= 1

    by_value = sorted(products, key=lambda p: (-(p.price_cents * p.stock), p.id))
    _take(by_value, 2)

    movement = dict(
        db.session.query(StockAdjustment.product_id, func.count(StockAdjustment.id))
        .filter(StockAdjustment.business_id == business.id)
        .group_by(StockAdjustment.product_id)
        .all()
    )
    by_movement = sorted(products, key=lambda p: (-movement.get(p.id, 0), p.id))
    _take(by_movement, 2)

    remaining = [p for p in products if p not in chosen]
    rng.shuffle(remaining)
    _take(remaining, count - len(chosen))
    return chosen
