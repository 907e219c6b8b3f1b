# Overview: Per-business document number allocation (S-000001, CC-000001, ...).

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


# document_type -> prefix
DOCUMENT_PREFIXES = {
    "SALE": "S",
    "CASH_COUNT": "CC",
    "GOODS_RECEIVING": "GR",
    "WEEKLY_INVENTORY_CHECK": "WIC",
    "GOODS_COSTING": "GC",
}


def next_document_number(*, business_id: int, document_type: str, pad: int = 6) -> str:
    """
    Allocate the next document number for a business/type.

    Runs inside the caller's transaction: the UPDATE takes the row lock on
    (business_id, document_type) and the number is only consumed if the
    caller commits. A first allocation races on the unique constraint; the
    loser falls back to the UPDATE path inside a savepoint.
    """
    if not business_id:
        raise DocumentSequenceError("business_id is required")
    prefix = DOCUMENT_PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    def _read_current() -> int:
        return (
            db.session.query(DocumentSequence.next_number)
            .filter_by(business_id=business_id, document_type=document_type)
            .scalar()
        )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _read_current() - 1
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    business_id=business_id,
                    document_type=document_type,
                    next_number=2,
                ))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _read_current() - 1

    return f"{prefix}-{next_num:0{pad}d}"
