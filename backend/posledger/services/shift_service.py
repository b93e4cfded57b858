"""
Cash Shift Register Service

WHY: Track tills, operator shifts, and cash accountability. A sale may only
be rung up while its operator has an open shift, and the shift close is
where the drawer count is reconciled against what the sales say should be
there.

DESIGN PRINCIPLES:
- At most one open shift per till, and per operator across all tills
  (enforced by partial unique indexes as well as by the checks here)
- Shifts are immutable once closed
- Expected cash = opening float + cash tendered - change given, over the
  shift's COMPLETED and RETURNED orders (cancelled sales do not count)
- Variance = counted - expected
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AlreadyClosedError,
    BadRequestError,
    BusinessRuleError,
    ConflictError,
    NotFoundError,
    ShiftRequiredError,
)
from ..extensions import db
from ..models import (
    CashShift,
    Order,
    Payment,
    Till,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_RETURNED,
    PAYMENT_CASH,
)
from posledger.time_utils import utcnow
from . import event_service
from .concurrency import lock_for_update, unit_of_work

# Orders whose cash stays in the drawer
CASH_COUNTED_STATUSES = (ORDER_STATUS_COMPLETED, ORDER_STATUS_RETURNED)


# =============================================================================
# TILL MANAGEMENT
# =============================================================================

def create_till(business_id: int, name: str) -> Till:
    """Create a till. Tills are never deleted, only deactivated."""
    name = (name or "").strip()
    if not name:
        raise BadRequestError("Till name is required")

    with unit_of_work():
        existing = db.session.query(Till).filter_by(business_id=business_id, name=name).first()
        if existing:
            raise ConflictError(f"Till '{name}' already exists")
        till = Till(business_id=business_id, name=name, is_active=True)
        db.session.add(till)
    return till


# =============================================================================
# SHIFT MANAGEMENT
# =============================================================================

def open_shift(
    business_id: int,
    till_id: int,
    operator_id: int,
    opening_float_cents: int,
    notes: str | None = None,
) -> CashShift:
    """
    Open a new shift on a till.

    Raises:
        NotFoundError: till missing, inactive or foreign
        ConflictError: till or operator already has an open shift
    """
    if opening_float_cents < 0:
        raise BadRequestError("Opening float cannot be negative")

    with unit_of_work():
        till = lock_for_update(
            db.session.query(Till).filter_by(id=till_id, business_id=business_id)
        ).first()
        if till is None or not till.is_active:
            raise NotFoundError(f"Till {till_id} not found")

        open_on_till = db.session.query(CashShift).filter_by(till_id=till_id, closed_at=None).first()
        if open_on_till:
            raise ConflictError(
                f"Till already has an open shift (shift {open_on_till.id})",
                code="TILL_SHIFT_OPEN",
                details={"shift_id": open_on_till.id},
            )

        open_for_operator = db.session.query(CashShift).filter_by(operator_id=operator_id, closed_at=None).first()
        if open_for_operator:
            raise ConflictError(
                f"Operator already has an open shift (shift {open_for_operator.id})",
                code="OPERATOR_SHIFT_OPEN",
                details={"shift_id": open_for_operator.id, "till_id": open_for_operator.till_id},
            )

        shift = CashShift(
            business_id=business_id,
            till_id=till_id,
            operator_id=operator_id,
            opening_float_cents=opening_float_cents,
            opened_at=utcnow(),
            notes=(notes or "").strip() or None,
        )
        try:
            with db.session.begin_nested():
                db.session.add(shift)
        except IntegrityError as exc:
            # Lost the race to a concurrent open
            raise ConflictError("An open shift already exists for this till or operator") from exc

    event_service.emit(
        "shift.opened",
        entity_type="cash_shift",
        entity_id=shift.id,
        business_id=business_id,
        till_id=till_id,
        operator_id=operator_id,
        opening_float_cents=opening_float_cents,
    )
    return shift


def _cash_totals(shift_id: int) -> tuple[int, int, int]:
    """(cash tendered, change given, order count) for the shift's counted orders."""
    cash_in = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Order, Order.id == Payment.order_id)
        .filter(
            Order.shift_id == shift_id,
            Order.status.in_(CASH_COUNTED_STATUSES),
            Payment.method == PAYMENT_CASH,
        )
        .scalar()
    )
    change_row = (
        db.session.query(
            func.coalesce(func.sum(Order.change_cents), 0),
            func.count(Order.id),
        )
        .filter(Order.shift_id == shift_id, Order.status.in_(CASH_COUNTED_STATUSES))
        .one()
    )
    return int(cash_in or 0), int(change_row[0] or 0), int(change_row[1] or 0)


def close_shift(
    business_id: int,
    shift_id: int,
    counted_cents: int,
    actor_id: int,
    actor_role: str | None = None,
    notes: str | None = None,
) -> CashShift:
    """
    Close a shift and freeze expected / variance.

    Only the opening operator or an elevated role (ELEVATED_ROLES) may close.

    Raises:
        NotFoundError: shift missing or foreign
        AlreadyClosedError: shift was already closed
        BusinessRuleError: actor may not close this shift
    """
    if counted_cents < 0:
        raise BadRequestError("Counted amount cannot be negative")

    elevated = {r.upper() for r in current_app.config.get("ELEVATED_ROLES", ())}

    with unit_of_work():
        shift = lock_for_update(
            db.session.query(CashShift).filter_by(id=shift_id, business_id=business_id)
        ).populate_existing().first()
        if shift is None:
            raise NotFoundError(f"Shift {shift_id} not found")
        if shift.closed_at is not None:
            raise AlreadyClosedError(f"Shift {shift_id} is already closed")
        if shift.operator_id != actor_id and (actor_role or "").upper() not in elevated:
            raise BusinessRuleError(
                "Only the shift operator or a manager can close this shift",
                code="SHIFT_NOT_OWNED",
            )

        cash_in, change_out, _ = _cash_totals(shift.id)
        expected = shift.opening_float_cents + cash_in - change_out

        shift.counted_cents = counted_cents
        shift.expected_cents = expected
        shift.variance_cents = counted_cents - expected
        shift.closed_at = utcnow()
        shift.closed_by_id = actor_id
        closing_note = (notes or "").strip()
        if closing_note:
            shift.notes = f"{shift.notes}\nClose: {closing_note}" if shift.notes else f"Close: {closing_note}"

    event_service.emit(
        "shift.closed",
        entity_type="cash_shift",
        entity_id=shift.id,
        business_id=business_id,
        till_id=shift.till_id,
        operator_id=shift.operator_id,
        closed_by_id=actor_id,
        expected_cents=shift.expected_cents,
        counted_cents=shift.counted_cents,
        variance_cents=shift.variance_cents,
    )
    return shift


def get_open_shift_for_operator(business_id: int, operator_id: int) -> CashShift | None:
    return (
        db.session.query(CashShift)
        .filter_by(business_id=business_id, operator_id=operator_id, closed_at=None)
        .first()
    )


def require_open_shift(business_id: int, operator_id: int, *, lock: bool = False) -> CashShift:
    """The operator's open shift, or ShiftRequiredError."""
    query = db.session.query(CashShift).filter_by(
        business_id=business_id, operator_id=operator_id, closed_at=None
    )
    if lock:
        query = lock_for_update(query).populate_existing()
    shift = query.first()
    if shift is None:
        raise ShiftRequiredError(
            "An open cash shift is required to complete a sale",
            details={"operator_id": operator_id},
        )
    return shift


def get_shift(business_id: int, shift_id: int) -> CashShift:
    shift = db.session.get(CashShift, shift_id)
    if shift is None or shift.business_id != business_id:
        raise NotFoundError(f"Shift {shift_id} not found")
    return shift


def list_shifts(
    business_id: int | None = None,
    till_id: int | None = None,
    operator_id: int | None = None,
    is_open: bool | None = None,
) -> list[CashShift]:
    query = db.session.query(CashShift)
    if business_id is not None:
        query = query.filter(CashShift.business_id == business_id)
    if till_id is not None:
        query = query.filter(CashShift.till_id == till_id)
    if operator_id is not None:
        query = query.filter(CashShift.operator_id == operator_id)
    if is_open is True:
        query = query.filter(CashShift.closed_at.is_(None))
    elif is_open is False:
        query = query.filter(CashShift.closed_at.isnot(None))
    return query.order_by(CashShift.opened_at.desc(), CashShift.id.desc()).all()


def get_shift_summary(business_id: int, shift_id: int) -> dict:
    """Running totals for a shift; for an open shift expected_cents is 'so far'."""
    shift = get_shift(business_id, shift_id)
    cash_in, change_out, order_count = _cash_totals(shift.id)
    expected = shift.opening_float_cents + cash_in - change_out
    return {
        "shift": shift.to_dict(),
        "order_count": order_count,
        "cash_in_cents": cash_in,
        "change_given_cents": change_out,
        "expected_cents": shift.expected_cents if shift.closed_at else expected,
    }
