from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Atomic per-business document sequences.

    WHY: Prevent race conditions when generating document numbers
    (sales, cash counts, receiving, inventory checks, costing).
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_type", name="uq_doc_sequences_business_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "document_type": self.document_type,
            "next_number": self.next_number,
            "updated_at": to_utc_z(self.updated_at),
        }
