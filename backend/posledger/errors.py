# Overview: Domain error taxonomy and its mapping onto HTTP responses.

"""
posledger error taxonomy (authoritative)

Every failure raised by the transaction engine is one of five kinds:

- NotFoundError      referenced row absent, inactive, or owned by another business
- ConflictError      uniqueness violation (second open shift, second delivery)
- BadRequestError    malformed or unresolvable references in the request
- BusinessRuleError  well-formed request that violates domain policy
- InternalError      unexpected store failure; logged with context, surfaced generically

Each error carries a stable machine-readable `code` and optional `details`
so callers can present actionable feedback (e.g. available stock).
"""

from __future__ import annotations

from typing import Any

from flask import Flask, current_app, jsonify
from werkzeug.exceptions import HTTPException


class PosLedgerError(Exception):
    """Base class for errors raised by the engine."""

    status_code = 500
    default_code = "INTERNAL"

    def __init__(self, message: str, *, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(PosLedgerError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(PosLedgerError):
    status_code = 409
    default_code = "CONFLICT"


class BadRequestError(PosLedgerError):
    status_code = 400
    default_code = "BAD_REQUEST"


class BusinessRuleError(PosLedgerError):
    status_code = 422
    default_code = "BUSINESS_RULE"


class InternalError(PosLedgerError):
    status_code = 500
    default_code = "INTERNAL"


class InsufficientStockError(BusinessRuleError):
    default_code = "INSUFFICIENT_STOCK"

    def __init__(self, *, product_id: int, location_id: int, available: int, requested: int, product_name: str | None = None):
        label = f'"{product_name}"' if product_name else f"product {product_id}"
        super().__init__(
            f"Insufficient stock for {label}: available {available}, requested {requested}",
            details={
                "product_id": product_id,
                "location_id": location_id,
                "available": available,
                "requested": requested,
            },
        )
        self.available = available
        self.requested = requested


class InsufficientCreditError(BusinessRuleError):
    default_code = "INSUFFICIENT_CREDIT"

    def __init__(self, *, customer_id: int, available_cents: int, requested_cents: int):
        super().__init__(
            f"Insufficient credit: available {available_cents / 100:.2f}, "
            f"requested {requested_cents / 100:.2f}",
            details={
                "customer_id": customer_id,
                "available_cents": available_cents,
                "requested_cents": requested_cents,
            },
        )


class ShiftRequiredError(BusinessRuleError):
    default_code = "SHIFT_REQUIRED"


class AlreadyClosedError(BusinessRuleError):
    default_code = "SHIFT_ALREADY_CLOSED"


class InvalidStateError(BusinessRuleError):
    default_code = "INVALID_STATE"


def register_error_handlers(app: Flask) -> None:
    """Map the taxonomy onto status codes and the JSON error envelope."""

    @app.errorhandler(PosLedgerError)
    def _handle_domain_error(exc: PosLedgerError):
        if isinstance(exc, InternalError):
            current_app.logger.error("Internal error: %s", exc.message, extra={"details": exc.details})
            body = {"code": exc.code, "message": "Internal server error", "details": {}}
        else:
            body = exc.to_dict()
        return jsonify({"error": body}), exc.status_code

    @app.errorhandler(HTTPException)
    def _handle_http_error(exc: HTTPException):
        code = (exc.name or "HTTP_ERROR").upper().replace(" ", "_")
        body = {"code": code, "message": exc.description or exc.name, "details": {}}
        return jsonify({"error": body}), exc.code or 500

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        current_app.logger.exception("Unhandled error")
        body = {"code": InternalError.default_code, "message": "Internal server error", "details": {}}
        return jsonify({"error": body}), 500
