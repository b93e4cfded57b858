# Overview: Pytest coverage for document numbering.

import pytest
from posledger.errors import InternalError
from posledger.extensions import db
from posledger.models import DocumentSequence
from posledger.services.concurrency import unit_of_work
from posledger.services.document_service import (
    DOC_PURCHASE,
    DOC_QUOTE,
    DOC_SALE,
    DocumentSequenceError,
    next_document_number,
)


def _next(business_id, document_type, **kwargs):
    with unit_of_work():
        return next_document_number(business_id=business_id, document_type=document_type, **kwargs)


class TestDocumentNumbering:

    def test_first_numbers_per_type(self, business):
        assert _next(business.id, DOC_SALE, year=2026) == "SO-2026-00001"
        assert _next(business.id, DOC_QUOTE, year=2026) == "QT-2026-00001"
        assert _next(business.id, DOC_PURCHASE, year=2026) == "PO-2026-00001"

    def test_numbers_increase(self, business):
        numbers = [_next(business.id, DOC_SALE, year=2026) for _ in range(3)]
        assert numbers == ["SO-2026-00001", "SO-2026-00002", "SO-2026-00003"]

    def test_year_restarts_sequence(self, business):
        _next(business.id, DOC_SALE, year=2026)
        _next(business.id, DOC_SALE, year=2026)

        assert _next(business.id, DOC_SALE, year=2027) == "SO-2027-00001"

    def test_businesses_number_independently(self, business, other_business):
        _next(business.id, DOC_SALE, year=2026)

        assert _next(other_business.id, DOC_SALE, year=2026) == "SO-2026-00001"

    def test_rollback_returns_the_number(self, business):
        with pytest.raises(RuntimeError):
            with unit_of_work():
                next_document_number(business_id=business.id, document_type=DOC_SALE, year=2026)
                raise RuntimeError("boom")

        assert _next(business.id, DOC_SALE, year=2026) == "SO-2026-00001"

    def test_counter_row_tracks_next_number(self, business):
        _next(business.id, DOC_SALE, year=2026)
        _next(business.id, DOC_SALE, year=2026)

        seq = db.session.query(DocumentSequence).filter_by(business_id=business.id, document_type=DOC_SALE).one()
        assert seq.next_number == 3

    def test_custom_prefix_and_padding(self, business):
        assert _next(business.id, DOC_SALE, year=2026, prefix="POS", pad=3) == "POS-2026-001"

    def test_unknown_type_without_prefix(self, business):
        with pytest.raises(DocumentSequenceError):
            _next(business.id, "CREDIT_NOTE")

    def test_sequence_errors_carry_a_stable_code(self, business):
        with pytest.raises(DocumentSequenceError) as exc:
            _next(business.id, "CREDIT_NOTE")

        assert isinstance(exc.value, InternalError)
        assert exc.value.code == "DOCUMENT_SEQUENCE"
        assert exc.value.status_code == 500
        assert exc.value.details == {"document_type": "CREDIT_NOTE"}
