from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from posledger.errors import BadRequestError
from posledger.models import PAYMENT_METHODS
from posledger.time_utils import parse_iso_datetime

"""
Typed request structs, one per operation.

Routes parse JSON into these; services accept only these already-coerced
values and never look at raw payloads.
"""

# Maximum amount: $9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000


class ValidationError(BadRequestError):
    """400-level input problem."""

    default_code = "VALIDATION_ERROR"


def _require_mapping(payload: Any, what: str = "body") -> dict:
    if not isinstance(payload, dict):
        raise ValidationError(f"{what} must be a JSON object")
    return payload


def _int(payload: dict, key: str, *, required: bool = True, default: int | None = None,
         minimum: int | None = None, maximum: int | None = None) -> int | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return default

    # Reject bools, floats and scientific notation; accept plain digit strings
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer", details={"field": key})
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{key} must be a plain integer", details={"field": key})
        try:
            value = int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer", details={"field": key})
    elif not isinstance(value, int):
        raise ValidationError(f"{key} must be an integer", details={"field": key})

    if minimum is not None and value < minimum:
        raise ValidationError(f"{key} must be >= {minimum}", details={"field": key})
    if maximum is not None and value > maximum:
        raise ValidationError(f"{key} must be <= {maximum}", details={"field": key})
    return value


def _str(payload: dict, key: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string", details={"field": key})
    value = value.strip()
    if required and not value:
        raise ValidationError(f"{key} is required", details={"field": key})
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{key} must be at most {max_length} characters", details={"field": key})
    return value or None


def _datetime(payload: dict, key: str, *, required: bool = False) -> datetime | None:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return None
    if isinstance(value, datetime):
        return value
    try:
        dt = parse_iso_datetime(value) if isinstance(value, str) else None
    except ValueError:
        dt = None
    if dt is None:
        raise ValidationError(f"{key} must be an ISO-8601 datetime", details={"field": key})
    return dt


def _list(payload: dict, key: str, *, required: bool = True) -> list:
    value = payload.get(key)
    if value is None:
        if required:
            raise ValidationError(f"{key} is required", details={"field": key})
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{key} must be a list", details={"field": key})
    return value


# =============================================================================
# ORDERS
# =============================================================================

@dataclass(frozen=True)
class LineItem:
    product_id: int
    quantity: int
    unit_price_cents: int | None = None  # None -> catalog sale price
    discount_cents: int = 0  # per unit

    @classmethod
    def from_json(cls, payload: Any) -> "LineItem":
        data = _require_mapping(payload, "line")
        return cls(
            product_id=_int(data, "product_id", minimum=1),
            quantity=_int(data, "quantity", minimum=1, maximum=MAX_QUANTITY),
            unit_price_cents=_int(data, "unit_price_cents", required=False, minimum=0, maximum=MAX_AMOUNT_CENTS),
            discount_cents=_int(data, "discount_cents", required=False, default=0, minimum=0, maximum=MAX_AMOUNT_CENTS),
        )


@dataclass(frozen=True)
class PaymentItem:
    method: str
    amount_cents: int
    reference: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "PaymentItem":
        data = _require_mapping(payload, "payment")
        method = (_str(data, "method", required=True) or "").upper()
        if method not in PAYMENT_METHODS:
            raise ValidationError(
                f"Unknown payment method {method!r}",
                details={"field": "method", "allowed": sorted(PAYMENT_METHODS)},
            )
        return cls(
            method=method,
            amount_cents=_int(data, "amount_cents", minimum=1, maximum=MAX_AMOUNT_CENTS),
            reference=_str(data, "reference", max_length=128),
        )


def _lines(data: dict) -> list[LineItem]:
    lines = [LineItem.from_json(item) for item in _list(data, "lines")]
    if not lines:
        raise ValidationError("At least one line is required", details={"field": "lines"})
    return lines


def _payments(data: dict, *, required: bool = True) -> list[PaymentItem]:
    payments = [PaymentItem.from_json(item) for item in _list(data, "payments", required=required)]
    if required and not payments:
        raise ValidationError("At least one payment is required", details={"field": "payments"})
    return payments


@dataclass(frozen=True)
class CreateSaleRequest:
    lines: list[LineItem]
    payments: list[PaymentItem]
    customer_id: int | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "CreateSaleRequest":
        data = _require_mapping(payload)
        return cls(
            lines=_lines(data),
            payments=_payments(data),
            customer_id=_int(data, "customer_id", required=False, minimum=1),
            notes=_str(data, "notes", max_length=2000),
        )


@dataclass(frozen=True)
class CreateQuoteRequest:
    lines: list[LineItem]
    customer_id: int | None = None
    notes: str | None = None
    valid_until: datetime | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "CreateQuoteRequest":
        data = _require_mapping(payload)
        return cls(
            lines=_lines(data),
            customer_id=_int(data, "customer_id", required=False, minimum=1),
            notes=_str(data, "notes", max_length=2000),
            valid_until=_datetime(data, "valid_until"),
        )


@dataclass(frozen=True)
class ConfirmQuoteRequest:
    payments: list[PaymentItem]

    @classmethod
    def from_json(cls, payload: Any) -> "ConfirmQuoteRequest":
        return cls(payments=_payments(_require_mapping(payload)))


@dataclass(frozen=True)
class CancelRequest:
    reason: str

    @classmethod
    def from_json(cls, payload: Any) -> "CancelRequest":
        data = _require_mapping(payload)
        return cls(reason=_str(data, "reason", required=True, max_length=500))


@dataclass(frozen=True)
class ReturnItem:
    product_id: int
    quantity: int

    @classmethod
    def from_json(cls, payload: Any) -> "ReturnItem":
        data = _require_mapping(payload, "item")
        return cls(
            product_id=_int(data, "product_id", minimum=1),
            quantity=_int(data, "quantity", minimum=1, maximum=MAX_QUANTITY),
        )


@dataclass(frozen=True)
class ReturnRequest:
    items: list[ReturnItem]
    reason: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "ReturnRequest":
        data = _require_mapping(payload)
        items = [ReturnItem.from_json(item) for item in _list(data, "items")]
        if not items:
            raise ValidationError("At least one item is required", details={"field": "items"})
        return cls(items=items, reason=_str(data, "reason", max_length=500))


# =============================================================================
# SHIFTS
# =============================================================================

@dataclass(frozen=True)
class OpenShiftRequest:
    till_id: int
    opening_float_cents: int
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "OpenShiftRequest":
        data = _require_mapping(payload)
        return cls(
            till_id=_int(data, "till_id", minimum=1),
            opening_float_cents=_int(data, "opening_float_cents", minimum=0, maximum=MAX_AMOUNT_CENTS),
            notes=_str(data, "notes", max_length=2000),
        )


@dataclass(frozen=True)
class CloseShiftRequest:
    counted_cents: int
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "CloseShiftRequest":
        data = _require_mapping(payload)
        return cls(
            counted_cents=_int(data, "counted_cents", minimum=0, maximum=MAX_AMOUNT_CENTS),
            notes=_str(data, "notes", max_length=2000),
        )


# =============================================================================
# PURCHASES
# =============================================================================

@dataclass(frozen=True)
class PurchaseLineItem:
    product_id: int
    quantity: int
    unit_cost_cents: int

    @classmethod
    def from_json(cls, payload: Any) -> "PurchaseLineItem":
        data = _require_mapping(payload, "line")
        return cls(
            product_id=_int(data, "product_id", minimum=1),
            quantity=_int(data, "quantity", minimum=1, maximum=MAX_QUANTITY),
            unit_cost_cents=_int(data, "unit_cost_cents", minimum=0, maximum=MAX_AMOUNT_CENTS),
        )


@dataclass(frozen=True)
class CreatePurchaseRequest:
    supplier_id: int
    lines: list[PurchaseLineItem] = field(default_factory=list)
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "CreatePurchaseRequest":
        data = _require_mapping(payload)
        lines = [PurchaseLineItem.from_json(item) for item in _list(data, "lines")]
        if not lines:
            raise ValidationError("At least one line is required", details={"field": "lines"})
        return cls(
            supplier_id=_int(data, "supplier_id", minimum=1),
            lines=lines,
            notes=_str(data, "notes", max_length=2000),
        )


@dataclass(frozen=True)
class ReceivePurchaseRequest:
    location_id: int

    @classmethod
    def from_json(cls, payload: Any) -> "ReceivePurchaseRequest":
        return cls(location_id=_int(_require_mapping(payload), "location_id", minimum=1))


# =============================================================================
# INVENTORY
# =============================================================================

@dataclass(frozen=True)
class MovementRequest:
    product_id: int
    location_id: int
    movement_type: str
    quantity: int
    unit_cost_cents: int | None = None
    reason: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "MovementRequest":
        data = _require_mapping(payload)
        return cls(
            product_id=_int(data, "product_id", minimum=1),
            location_id=_int(data, "location_id", minimum=1),
            movement_type=(_str(data, "movement_type", required=True) or "").upper(),
            quantity=_int(data, "quantity", minimum=0, maximum=MAX_QUANTITY),
            unit_cost_cents=_int(data, "unit_cost_cents", required=False, minimum=0, maximum=MAX_AMOUNT_CENTS),
            reason=_str(data, "reason", max_length=500),
        )


@dataclass(frozen=True)
class TransferRequest:
    product_id: int
    from_location_id: int
    to_location_id: int
    quantity: int
    reason: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "TransferRequest":
        data = _require_mapping(payload)
        return cls(
            product_id=_int(data, "product_id", minimum=1),
            from_location_id=_int(data, "from_location_id", minimum=1),
            to_location_id=_int(data, "to_location_id", minimum=1),
            quantity=_int(data, "quantity", minimum=1, maximum=MAX_QUANTITY),
            reason=_str(data, "reason", max_length=500),
        )


# =============================================================================
# DELIVERIES
# =============================================================================

@dataclass(frozen=True)
class CreateDeliveryRequest:
    order_id: int
    address: str
    driver_id: int | None = None
    scheduled_for: datetime | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "CreateDeliveryRequest":
        data = _require_mapping(payload)
        return cls(
            order_id=_int(data, "order_id", minimum=1),
            address=_str(data, "address", required=True, max_length=500),
            driver_id=_int(data, "driver_id", required=False, minimum=1),
            scheduled_for=_datetime(data, "scheduled_for"),
            notes=_str(data, "notes", max_length=2000),
        )


@dataclass(frozen=True)
class DeliveryStatusRequest:
    status: str
    failure_reason: str | None = None
    scheduled_for: datetime | None = None
    notes: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> "DeliveryStatusRequest":
        data = _require_mapping(payload)
        return cls(
            status=(_str(data, "status", required=True) or "").upper(),
            failure_reason=_str(data, "failure_reason", max_length=500),
            scheduled_for=_datetime(data, "scheduled_for"),
            notes=_str(data, "notes", max_length=2000),
        )
