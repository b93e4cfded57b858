# Overview: Customer credit policy embedded in the order workflow.

from __future__ import annotations

from decimal import Decimal

from ..errors import InsufficientCreditError, InternalError
from ..extensions import db
from ..models import Customer, Order
from .catalog_service import get_customer
from .concurrency import lock_for_update
from .pricing_service import round_cents

"""
posledger Customer Credit Invariants (authoritative)

- 0 <= credit_used_cents <= credit_limit_cents, maintained only here.
- All changes run inside the order workflow's unit of work, against the
  customer row locked in that unit.
- Sale: credit portion is checked against (limit - used) and added to used.
- Cancel: everything the order still holds is released.
- Return: release credit_used * returned / order_total, capped at what the
  order still holds; rounded once, half-up.
"""


def check_available(customer: Customer, amount_cents: int) -> None:
    available = customer.credit_available_cents
    if amount_cents > available:
        raise InsufficientCreditError(
            customer_id=customer.id,
            available_cents=available,
            requested_cents=amount_cents,
        )


def charge(business_id: int, customer_id: int, amount_cents: int) -> Customer:
    """Lock the customer, re-check availability, and take the credit."""
    customer = get_customer(business_id, customer_id, lock=True)
    if amount_cents <= 0:
        return customer
    check_available(customer, amount_cents)
    customer.credit_used_cents += amount_cents
    return customer


def release(business_id: int, customer_id: int, amount_cents: int) -> int:
    """Give credit back; never drives credit_used below zero. Returns amount released."""
    if amount_cents <= 0:
        return 0
    # An inactive customer still gets their credit back
    customer = _locked_for_release(business_id, customer_id)
    released = min(amount_cents, customer.credit_used_cents)
    customer.credit_used_cents -= released
    return released


def _locked_for_release(business_id: int, customer_id: int) -> Customer:
    customer = (
        lock_for_update(db.session.query(Customer).filter_by(id=customer_id, business_id=business_id))
        .populate_existing()
        .first()
    )
    if customer is None:
        raise InternalError(
            "Customer referenced by an order does not exist",
            details={"customer_id": customer_id},
        )
    return customer


def outstanding(order: Order) -> int:
    """Credit the order still holds against its customer."""
    return max(order.credit_used_cents - order.credit_released_cents, 0)


def proportional_release_amount(order: Order, returned_amount_cents: int) -> int:
    if order.credit_used_cents <= 0 or order.total_cents <= 0 or returned_amount_cents <= 0:
        return 0
    share = Decimal(order.credit_used_cents) * Decimal(returned_amount_cents) / Decimal(order.total_cents)
    return min(round_cents(share), outstanding(order))
