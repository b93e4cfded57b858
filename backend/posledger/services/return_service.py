"""
Order Workflow: customer returns (full and partial)

WHY: Goods come back after a completed sale. The stock goes back on the
shelf through RETURN movements, the money share of what came back is
recorded on the order, and any credit the sale consumed is given back in
proportion.

RULES:
- Only COMPLETED orders accept returns.
- Items name products; a product spread over several lines is allocated
  to those lines in line order.
- Per line, quantity_returned never exceeds quantity (over-return is a
  BusinessRuleError, a product not on the order is a BadRequestError).
- Returned amount per line = returned_qty / quantity * line total (tax
  included). When the return completes the order, the amount is whatever
  of the order total had not been returned yet, so repeated partial
  returns always add up to the total exactly.
- Credit released = credit_used * returned / order_total, capped at the
  credit still held; a completing return releases everything still held.
- Completing return -> RETURNED; otherwise the order stays COMPLETED and
  gets a "[PARTIAL RETURN $x.xx]" note.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from ..cache import invalidate_stock
from ..errors import BadRequestError, BusinessRuleError, InvalidStateError
from ..models import (
    Order,
    StockMovement,
    MOVEMENT_RETURN,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_RETURNED,
    REF_RETURN,
)
from ..validation import ReturnItem
from . import credit_service, event_service, stock_service
from .concurrency import unit_of_work
from .pricing_service import round_cents
from .sales_service import get_order_for_update

RETURN_FULL = "FULL"
RETURN_PARTIAL = "PARTIAL"


@dataclass
class ReturnResult:
    order: Order
    kind: str
    returned_amount_cents: int
    credit_released_cents: int
    movements: list[StockMovement] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "order": self.order.to_dict(include_lines=True),
            "kind": self.kind,
            "returned_amount_cents": self.returned_amount_cents,
            "credit_released_cents": self.credit_released_cents,
            "movements": [m.to_dict() for m in self.movements],
        }


def _aggregate(items: list[ReturnItem]) -> dict[int, int]:
    wanted: dict[int, int] = {}
    for item in items:
        if item.quantity <= 0:
            raise BadRequestError("Return quantity must be positive", details={"product_id": item.product_id})
        wanted[item.product_id] = wanted.get(item.product_id, 0) + item.quantity
    return wanted


def _append_note(existing: str | None, note: str) -> str:
    return f"{existing}\n{note}" if existing else note


def return_sale(
    business_id: int,
    order_id: int,
    items: list[ReturnItem],
    reason: str | None = None,
    actor_id: int | None = None,
) -> ReturnResult:
    """
    Take back some or all goods from a completed sale.

    Raises:
        NotFoundError: order missing
        BusinessRuleError: order not COMPLETED, or over-return
        BadRequestError: empty request, or product not on the order
    """
    if not items:
        raise BadRequestError("At least one item is required")
    wanted = _aggregate(items)

    movements = []
    with unit_of_work():
        order = get_order_for_update(business_id, order_id)
        if order.status != ORDER_STATUS_COMPLETED:
            raise InvalidStateError(
                f"Only completed orders accept returns (order is {order.status})",
                details={"status": order.status},
            )

        lines = list(order.lines)
        allocations = []  # (line, qty)
        for product_id, qty in wanted.items():
            product_lines = [line for line in lines if line.product_id == product_id]
            if not product_lines:
                raise BadRequestError(
                    f"Product {product_id} is not on order {order.number}",
                    code="PRODUCT_NOT_ON_ORDER",
                    details={"product_id": product_id},
                )
            returnable = sum(line.quantity - line.quantity_returned for line in product_lines)
            if qty > returnable:
                raise BusinessRuleError(
                    f"Cannot return {qty} of product {product_id}: only {returnable} returnable",
                    code="OVER_RETURN",
                    details={"product_id": product_id, "requested": qty, "returnable": returnable},
                )
            remaining = qty
            for line in product_lines:
                if remaining == 0:
                    break
                take = min(remaining, line.quantity - line.quantity_returned)
                if take > 0:
                    allocations.append((line, take))
                    remaining -= take

        amount = Decimal(0)
        for line, take in allocations:
            amount += Decimal(take) * Decimal(line.total_cents) / Decimal(line.quantity)
            line.quantity_returned += take

        completes = all(line.quantity_returned == line.quantity for line in lines)
        if completes:
            returned_amount = order.total_cents - order.returned_amount_cents
        else:
            returned_amount = round_cents(amount)

        tracked = [(line, take) for line, take in allocations if line.stock_tracked]
        stock_service.lock_balances(business_id, order.location_id, [line.product_id for line, _ in tracked])
        for line, take in tracked:
            movement, _ = stock_service.apply_movement(
                business_id=business_id,
                product_id=line.product_id,
                location_id=order.location_id,
                movement_type=MOVEMENT_RETURN,
                quantity=take,
                unit_cost_cents=line.unit_cost_cents,
                reference_type=REF_RETURN,
                reference_id=order.id,
                reason=reason,
                actor_id=actor_id,
            )
            movements.append(movement)

        if completes:
            to_release = credit_service.outstanding(order)
        else:
            to_release = credit_service.proportional_release_amount(order, returned_amount)
        released = 0
        if to_release and order.customer_id is not None:
            released = credit_service.release(business_id, order.customer_id, to_release)
        order.credit_released_cents += released
        order.returned_amount_cents += returned_amount

        suffix = f" {reason}" if reason else ""
        if completes:
            order.status = ORDER_STATUS_RETURNED
            order.notes = _append_note(order.notes, f"[FULL RETURN]{suffix}")
            kind = RETURN_FULL
        else:
            order.notes = _append_note(order.notes, f"[PARTIAL RETURN ${returned_amount / 100:.2f}]{suffix}")
            kind = RETURN_PARTIAL

    if movements:
        invalidate_stock(business_id)
    event_service.emit(
        "order.returned",
        entity_type="order",
        entity_id=order.id,
        business_id=business_id,
        number=order.number,
        kind=kind,
        returned_amount_cents=returned_amount,
        credit_released_cents=released,
        movement_count=len(movements),
        actor_id=actor_id,
    )
    return ReturnResult(
        order=order,
        kind=kind,
        returned_amount_cents=returned_amount,
        credit_released_cents=released,
        movements=movements,
    )
