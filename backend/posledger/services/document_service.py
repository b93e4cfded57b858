# Overview: Service-layer operations for document numbering.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import InternalError
from ..extensions import db
from ..models import DocumentSequence
from posledger.time_utils import current_year

DOC_SALE = "SALE"
DOC_QUOTE = "QUOTE"
DOC_PURCHASE = "PURCHASE"

DOCUMENT_PREFIXES = {
    DOC_SALE: "SO",
    DOC_QUOTE: "QT",
    DOC_PURCHASE: "PO",
}


class DocumentSequenceError(InternalError):
    """Raised when document sequence operations fail."""
    default_code = "DOCUMENT_SEQUENCE"


def _claim(business_id: int, document_type: str, year: int) -> int | None:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.business_id == business_id,
            DocumentSequence.document_type == document_type,
            DocumentSequence.year == year,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(business_id=business_id, document_type=document_type, year=year)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    business_id: int,
    document_type: str,
    prefix: str | None = None,
    year: int | None = None,
    pad: int = 5,
) -> str:
    """
    Allocate the next number for (business, document type, year).

    Must run inside the caller's unit of work: the counter row stays
    write-locked until that unit commits, so two concurrent sales can never
    receive the same number, and a rolled-back sale gives its number back.
    """
    if not business_id:
        raise DocumentSequenceError("business_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    prefix = prefix or DOCUMENT_PREFIXES.get(document_type)
    if not prefix:
        raise DocumentSequenceError(
            f"No prefix configured for {document_type}", details={"document_type": document_type}
        )
    year = year or current_year()

    next_num = _claim(business_id, document_type, year)
    if next_num is None:
        seq = DocumentSequence(
            business_id=business_id,
            document_type=document_type,
            year=year,
            next_number=2,
        )
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the row first
            next_num = _claim(business_id, document_type, year)
            if next_num is None:
                raise

    return f"{prefix}-{year}-{next_num:0{pad}d}"
