from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z, to_iso_date


class ApprovalRecord(db.Model):
    """
    Audit record that needs sequential sign-off (cash count, goods receiving,
    weekly inventory check, goods costing).

    LIFECYCLE: status always names the latest signed stage
    (first_signed, second_signed / checked, verified) or a terminal outcome
    (accepted, rejected, flagged).

    IMMUTABLE HISTORY: signatures and audit entries are append-only; records
    are never deleted, only superseded by a later status.
    """
    __tablename__ = "approval_records"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_number", name="uq_approval_records_docnum"),
        db.Index("ix_approval_records_business_kind_status", "business_id", "kind", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    # cash_count, goods_receiving, weekly_inventory_check, goods_costing
    kind = db.Column(db.String(32), nullable=False)
    document_number = db.Column(db.String(64), nullable=False)
    status = db.Column(db.String(32), nullable=False)

    record_date = db.Column(db.Date, nullable=False)
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    linked_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    # Cash count amounts
    expected_amount_cents = db.Column(db.Integer, nullable=True)
    counted_amount_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)

    # Kind-specific derived figures (goods costing inputs and results)
    details = db.Column(db.JSON, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    lines = db.relationship(
        "ApprovalRecordLine", backref="record", lazy=True,
        cascade="all, delete-orphan", order_by="ApprovalRecordLine.id",
    )
    signatures = db.relationship(
        "ApprovalSignature", backref="record", lazy=True,
        cascade="all, delete-orphan", order_by="ApprovalSignature.id",
    )
    audit_entries = db.relationship(
        "ApprovalAuditEntry", backref="record", lazy=True,
        cascade="all, delete-orphan", order_by="ApprovalAuditEntry.sequence",
    )

    def signature_for(self, stage: str):
        for sig in self.signatures:
            if sig.stage == stage:
                return sig
        return None

    @property
    def latest_signature(self):
        return self.signatures[-1] if self.signatures else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "kind": self.kind,
            "document_number": self.document_number,
            "status": self.status,
            "date": to_iso_date(self.record_date),
            "reference": self.reference,
            "notes": self.notes,
            "linked_product_id": self.linked_product_id,
            "expected_amount_cents": self.expected_amount_cents,
            "counted_amount_cents": self.counted_amount_cents,
            "difference_cents": self.difference_cents,
            "details": self.details,
            "items": [line.to_dict() for line in self.lines],
            "signatures": {sig.stage: sig.to_dict() for sig in self.signatures},
            "audit_log": [entry.to_dict() for entry in self.audit_entries],
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ApprovalRecordLine(db.Model):
    """Counted line: difference = counted - expected (over positive, short negative)."""
    __tablename__ = "approval_record_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("approval_records.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)
    product_name = db.Column(db.String(255), nullable=False)
    product_number = db.Column(db.String(64), nullable=True)

    expected_quantity = db.Column(db.Integer, nullable=False)
    counted_quantity = db.Column(db.Integer, nullable=False)
    difference = db.Column(db.Integer, nullable=False)
    note = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_number": self.product_number,
            "expected_quantity": self.expected_quantity,
            "counted_quantity": self.counted_quantity,
            "difference": self.difference,
            "note": self.note,
        }


class ApprovalSignature(db.Model):
    __tablename__ = "approval_signatures"
    __table_args__ = (
        db.UniqueConstraint("record_id", "stage", name="uq_approval_signatures_stage"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("approval_records.id"), nullable=False, index=True)
    stage = db.Column(db.String(32), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    user_name = db.Column(db.String(128), nullable=False)
    role = db.Column(db.String(32), nullable=True)
    signed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "role": self.role,
            "timestamp": to_utc_z(self.signed_at),
        }


class ApprovalAuditEntry(db.Model):
    """Append-only transition log, one row per status change."""
    __tablename__ = "approval_audit_entries"
    __table_args__ = (
        db.UniqueConstraint("record_id", "sequence", name="uq_approval_audit_sequence"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    record_id = db.Column(db.Integer, db.ForeignKey("approval_records.id"), nullable=False, index=True)
    sequence = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(32), nullable=False)
    actor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    actor_name = db.Column(db.String(128), nullable=False)
    note = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "timestamp": to_utc_z(self.occurred_at),
            "status": self.status,
            "actor_id": self.actor_id,
            "actor_name": self.actor_name,
            "note": self.note,
        }
