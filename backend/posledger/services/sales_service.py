"""
Order Workflow: sales, quotations, confirmation and cancellation

WHY: A sale touches four ledgers at once (order documents, stock, customer
credit, the shift's cash). They either all change or none do, so every
mutation below happens inside exactly one unit of work.

LIFECYCLE:
- create_sale:   -> COMPLETED (stock out, credit charged)
- create_quote:  -> QUOTE (no ledger effect)
- confirm_quote: QUOTE -> COMPLETED (same effects as create_sale)
- cancel_sale:   COMPLETED -> CANCELLED (stock back, credit released)
                 QUOTE -> CANCELLED (no ledger effect)
Returns live in return_service.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import or_

from ..cache import invalidate_stock
from ..errors import BadRequestError, BusinessRuleError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    Order,
    OrderLine,
    Payment,
    Product,
    StockMovement,
    MOVEMENT_OUTBOUND,
    MOVEMENT_RETURN,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_QUOTE,
    ORDER_STATUS_RETURNED,
    PAYMENT_CUSTOMER_CREDIT,
    PAYMENT_MIXED,
    REF_CANCELLATION,
    REF_ORDER,
    REF_QUOTE_CONFIRMATION,
)
from ..validation import LineItem, PaymentItem
from posledger.time_utils import utcnow
from . import credit_service, event_service, stock_service
from .catalog_service import get_customer, get_primary_location, load_products
from .concurrency import lock_for_update, unit_of_work
from .document_service import DOC_QUOTE, DOC_SALE, next_document_number
from .pricing_service import PricedLine, OrderTotals, price_line, resolve_tax_included, summarize
from .shift_service import require_open_shift


@dataclass(frozen=True)
class PreparedLine:
    product: Product
    priced: PricedLine


@dataclass(frozen=True)
class PaymentPlan:
    payments: list[PaymentItem]
    paid_cents: int
    credit_cents: int
    change_cents: int
    method: str


# =============================================================================
# PREPARATION (no writes)
# =============================================================================

def prepare_lines(business_id: int, lines: list[LineItem]) -> tuple[list[PreparedLine], OrderTotals]:
    """Resolve products and price every line. Unknown products are a BadRequest."""
    if not lines:
        raise BadRequestError("An order needs at least one line")

    products = load_products(business_id, [line.product_id for line in lines])
    prepared = []
    for line in lines:
        product = products[line.product_id]
        unit_price = line.unit_price_cents if line.unit_price_cents is not None else product.sale_price_cents
        priced = price_line(
            quantity=line.quantity,
            unit_price_cents=unit_price,
            discount_cents=line.discount_cents,
            tax_rate_bps=product.tax_rate_bps,
            tax_included=resolve_tax_included(product.tax_included),
        )
        prepared.append(PreparedLine(product=product, priced=priced))
    return prepared, summarize([p.priced for p in prepared])


def stock_requirements(items) -> dict[int, int]:
    """Quantity per stock-tracked product; items are (product_id, quantity, tracked)."""
    needed: dict[int, int] = {}
    for product_id, quantity, tracked in items:
        if tracked:
            needed[product_id] = needed.get(product_id, 0) + quantity
    return needed


def plan_payments(
    business_id: int,
    payments: list[PaymentItem],
    total_cents: int,
    customer_id: int | None,
) -> PaymentPlan:
    """
    Check tender against the total.

    Credit payments count toward the total but must not exceed it, need a
    customer, and are pre-checked against the customer's available credit
    (re-checked on the locked row inside the unit).
    """
    if not payments:
        raise BadRequestError("At least one payment is required")

    paid = sum(p.amount_cents for p in payments)
    if paid < total_cents:
        raise BusinessRuleError(
            f"Payments {paid / 100:.2f} do not cover total {total_cents / 100:.2f}",
            code="INSUFFICIENT_PAYMENT",
            details={"paid_cents": paid, "total_cents": total_cents},
        )

    credit = sum(p.amount_cents for p in payments if p.method == PAYMENT_CUSTOMER_CREDIT)
    if credit:
        if customer_id is None:
            raise BadRequestError("Credit payments require a customer", code="CUSTOMER_REQUIRED")
        if credit > total_cents:
            raise BusinessRuleError(
                "Credit portion cannot exceed the order total",
                code="CREDIT_EXCEEDS_TOTAL",
                details={"credit_cents": credit, "total_cents": total_cents},
            )
        credit_service.check_available(get_customer(business_id, customer_id), credit)

    method = payments[0].method if len(payments) == 1 else PAYMENT_MIXED
    return PaymentPlan(
        payments=list(payments),
        paid_cents=paid,
        credit_cents=credit,
        change_cents=paid - total_cents,
        method=method,
    )


# =============================================================================
# WRITES (caller owns the unit)
# =============================================================================

def _add_lines(order: Order, prepared: list[PreparedLine]) -> list[OrderLine]:
    rows = []
    for item in prepared:
        priced = item.priced
        row = OrderLine(
            order_id=order.id,
            product_id=item.product.id,
            quantity=priced.quantity,
            quantity_returned=0,
            unit_price_cents=priced.unit_price_cents,
            unit_cost_cents=item.product.cost_price_cents,
            discount_cents=priced.discount_cents,
            tax_rate_bps=priced.tax_rate_bps,
            tax_included=priced.tax_included,
            stock_tracked=item.product.track_stock,
            tax_cents=priced.tax_cents,
            subtotal_cents=priced.subtotal_cents,
            total_cents=priced.total_cents,
        )
        db.session.add(row)
        rows.append(row)
    db.session.flush()
    return rows


def _add_payments(order: Order, plan: PaymentPlan) -> None:
    for item in plan.payments:
        db.session.add(Payment(
            order_id=order.id,
            method=item.method,
            amount_cents=item.amount_cents,
            reference=item.reference,
        ))
    order.payment_method = plan.method
    order.amount_paid_cents = plan.paid_cents
    order.change_cents = plan.change_cents
    order.credit_used_cents = plan.credit_cents


def _post_outbound(order: Order, lines: list[OrderLine], reference_type: str, actor_id: int) -> list[StockMovement]:
    """Take stock for every tracked line against freshly locked balances."""
    tracked = [line for line in lines if line.stock_tracked]
    stock_service.lock_balances(order.business_id, order.location_id, [line.product_id for line in tracked])

    movements = []
    for line in tracked:
        movement, _ = stock_service.apply_movement(
            business_id=order.business_id,
            product_id=line.product_id,
            location_id=order.location_id,
            movement_type=MOVEMENT_OUTBOUND,
            quantity=line.quantity,
            unit_cost_cents=line.unit_cost_cents,
            reference_type=reference_type,
            reference_id=order.id,
            actor_id=actor_id,
            product_name=line.product.name if line.product else None,
        )
        movements.append(movement)
    return movements


# =============================================================================
# OPERATIONS
# =============================================================================

def create_sale(
    business_id: int,
    actor_id: int,
    lines: list[LineItem],
    payments: list[PaymentItem],
    customer_id: int | None = None,
    notes: str | None = None,
) -> Order:
    """
    Ring up a completed sale.

    Raises:
        ShiftRequiredError: actor has no open shift
        BadRequestError: unknown products, credit without customer
        NotFoundError: customer missing or inactive
        InsufficientStockError / InsufficientCreditError / BusinessRuleError
    """
    require_open_shift(business_id, actor_id)
    prepared, totals = prepare_lines(business_id, lines)
    if customer_id is not None:
        get_customer(business_id, customer_id)

    location = get_primary_location(business_id)
    products = {p.product.id: p.product for p in prepared}
    needed = stock_requirements(
        (p.product.id, p.priced.quantity, p.product.track_stock) for p in prepared
    )
    stock_service.check_availability(location.id, needed, products)

    plan = plan_payments(business_id, payments, totals.total_cents, customer_id)

    with unit_of_work():
        shift = require_open_shift(business_id, actor_id, lock=True)
        number = next_document_number(business_id=business_id, document_type=DOC_SALE)

        now = utcnow()
        order = Order(
            business_id=business_id,
            number=number,
            status=ORDER_STATUS_COMPLETED,
            customer_id=customer_id,
            till_id=shift.till_id,
            shift_id=shift.id,
            location_id=location.id,
            created_by_id=actor_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            notes=notes,
            created_at=now,
            completed_at=now,
        )
        db.session.add(order)
        db.session.flush()

        rows = _add_lines(order, prepared)
        _add_payments(order, plan)
        movements = _post_outbound(order, rows, REF_ORDER, actor_id)
        if plan.credit_cents:
            credit_service.charge(business_id, customer_id, plan.credit_cents)

    invalidate_stock(business_id)
    event_service.emit(
        "order.created",
        entity_type="order",
        entity_id=order.id,
        business_id=business_id,
        number=order.number,
        total_cents=order.total_cents,
        payment_method=order.payment_method,
        credit_used_cents=order.credit_used_cents,
        shift_id=order.shift_id,
        movement_count=len(movements),
        actor_id=actor_id,
    )
    return order


def create_quote(
    business_id: int,
    actor_id: int,
    lines: list[LineItem],
    customer_id: int | None = None,
    notes: str | None = None,
    valid_until=None,
) -> Order:
    """Price an order without touching stock, payments, credit or shifts."""
    prepared, totals = prepare_lines(business_id, lines)
    if customer_id is not None:
        get_customer(business_id, customer_id)

    with unit_of_work():
        number = next_document_number(business_id=business_id, document_type=DOC_QUOTE)
        order = Order(
            business_id=business_id,
            number=number,
            status=ORDER_STATUS_QUOTE,
            customer_id=customer_id,
            created_by_id=actor_id,
            subtotal_cents=totals.subtotal_cents,
            discount_cents=totals.discount_cents,
            tax_cents=totals.tax_cents,
            total_cents=totals.total_cents,
            notes=notes,
            valid_until=valid_until,
            created_at=utcnow(),
        )
        db.session.add(order)
        db.session.flush()
        _add_lines(order, prepared)

    event_service.emit(
        "quote.created",
        entity_type="order",
        entity_id=order.id,
        business_id=business_id,
        number=order.number,
        total_cents=order.total_cents,
        actor_id=actor_id,
    )
    return order


def get_order_for_update(business_id: int, order_id: int) -> Order:
    order = (
        lock_for_update(db.session.query(Order).filter_by(id=order_id, business_id=business_id))
        .populate_existing()
        .first()
    )
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def confirm_quote(
    business_id: int,
    order_id: int,
    payments: list[PaymentItem],
    actor_id: int,
) -> Order:
    """
    Turn a QUOTE into a COMPLETED sale at the quoted prices.

    Same checks and ledger effects as create_sale; the order keeps its
    quotation number. Line cost snapshots are refreshed, since this is when
    the goods actually leave.
    """
    require_open_shift(business_id, actor_id)
    quote = get_order(business_id, order_id)
    if quote.status != ORDER_STATUS_QUOTE:
        raise InvalidStateError(
            f"Only quotations can be confirmed (order is {quote.status})",
            details={"status": quote.status},
        )
    if quote.valid_until is not None and quote.valid_until < utcnow():
        raise BusinessRuleError("Quotation has expired", code="QUOTE_EXPIRED")

    location = get_primary_location(business_id)
    products = load_products(business_id, [line.product_id for line in quote.lines])
    needed = stock_requirements(
        (line.product_id, line.quantity, products[line.product_id].track_stock) for line in quote.lines
    )
    stock_service.check_availability(location.id, needed, products)
    plan = plan_payments(business_id, payments, quote.total_cents, quote.customer_id)

    with unit_of_work():
        shift = require_open_shift(business_id, actor_id, lock=True)
        order = get_order_for_update(business_id, order_id)
        if order.status != ORDER_STATUS_QUOTE:
            raise InvalidStateError(f"Only quotations can be confirmed (order is {order.status})")

        for line in order.lines:
            product = products[line.product_id]
            line.unit_cost_cents = product.cost_price_cents
            line.stock_tracked = product.track_stock

        now = utcnow()
        order.status = ORDER_STATUS_COMPLETED
        order.till_id = shift.till_id
        order.shift_id = shift.id
        order.location_id = location.id
        order.confirmed_at = now
        order.completed_at = now

        _add_payments(order, plan)
        db.session.flush()
        movements = _post_outbound(order, list(order.lines), REF_QUOTE_CONFIRMATION, actor_id)
        if plan.credit_cents:
            credit_service.charge(business_id, order.customer_id, plan.credit_cents)

    invalidate_stock(business_id)
    event_service.emit(
        "quote.confirmed",
        entity_type="order",
        entity_id=order.id,
        business_id=business_id,
        number=order.number,
        total_cents=order.total_cents,
        payment_method=order.payment_method,
        shift_id=order.shift_id,
        movement_count=len(movements),
        actor_id=actor_id,
    )
    return order


def cancel_sale(business_id: int, order_id: int, reason: str, actor_id: int) -> Order:
    """
    Cancel a completed sale (or a quotation).

    Never deletes anything: reversing RETURN movements are appended for
    whatever quantity is still out (sold minus already returned), and the
    credit the order still holds is released in full.

    Raises:
        NotFoundError: order missing
        BusinessRuleError: order already CANCELLED or RETURNED
    """
    reason = (reason or "").strip()
    if not reason:
        raise BadRequestError("A cancellation reason is required")

    movements = []
    with unit_of_work():
        order = get_order_for_update(business_id, order_id)
        if order.status in (ORDER_STATUS_CANCELLED, ORDER_STATUS_RETURNED):
            raise InvalidStateError(
                f"Order {order.number} is already {order.status.lower()}",
                details={"status": order.status},
            )

        released = 0
        if order.status == ORDER_STATUS_COMPLETED:
            outstanding_lines = [
                line for line in order.lines
                if line.stock_tracked and line.quantity - line.quantity_returned > 0
            ]
            stock_service.lock_balances(
                business_id, order.location_id, [line.product_id for line in outstanding_lines]
            )
            for line in outstanding_lines:
                movement, _ = stock_service.apply_movement(
                    business_id=business_id,
                    product_id=line.product_id,
                    location_id=order.location_id,
                    movement_type=MOVEMENT_RETURN,
                    quantity=line.quantity - line.quantity_returned,
                    unit_cost_cents=line.unit_cost_cents,
                    reference_type=REF_CANCELLATION,
                    reference_id=order.id,
                    reason=reason,
                    actor_id=actor_id,
                )
                movements.append(movement)

            to_release = credit_service.outstanding(order)
            if to_release and order.customer_id is not None:
                released = credit_service.release(business_id, order.customer_id, to_release)
                order.credit_released_cents += released

        order.status = ORDER_STATUS_CANCELLED
        order.cancel_reason = reason
        order.cancelled_by_id = actor_id
        order.cancelled_at = utcnow()

    if movements:
        invalidate_stock(business_id)
    event_service.emit(
        "order.cancelled",
        entity_type="order",
        entity_id=order.id,
        business_id=business_id,
        number=order.number,
        credit_released_cents=released,
        movement_count=len(movements),
        actor_id=actor_id,
    )
    return order


# =============================================================================
# QUERIES
# =============================================================================

def get_order(business_id: int, order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None or order.business_id != business_id:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_orders(
    business_id: int,
    status: str | None = None,
    customer_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Order]:
    query = db.session.query(Order).filter(Order.business_id == business_id)
    if status:
        query = query.filter(Order.status == status.upper())
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Order.number.ilike(pattern), Order.notes.ilike(pattern)))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(offset).limit(limit).all()
