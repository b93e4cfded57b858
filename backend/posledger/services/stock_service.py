# Overview: Stock Ledger; balances plus the append-only movement history behind them.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..cache import get_cache, invalidate_stock, stock_prefix
from ..errors import BadRequestError, InsufficientStockError
from ..extensions import db
from ..models import (
    Product,
    StockBalance,
    StockMovement,
    MOVEMENT_ADJUSTMENT,
    MOVEMENT_INBOUND,
    MOVEMENT_OUTBOUND,
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    MOVEMENT_TYPES,
    DECREMENTING_TYPES,
    REF_MANUAL,
    REF_TRANSFER,
)
from . import event_service
from .catalog_service import get_location, get_primary_location, get_product  # noqa: F401
from .concurrency import lock_for_update, unit_of_work

"""
posledger Stock Ledger (authoritative)

- apply_movement() is the only writer of StockBalance and StockMovement.
- It must run inside a unit of work and always re-reads (and locks) the
  balance row it is about to change; a balance read before the unit began
  is never trusted.
- ADJUSTMENT sets the balance to the movement quantity; every other type
  adds or subtracts.
- A movement that would leave a negative balance is rejected with
  InsufficientStockError and nothing is written.
- Replaying movements for a (product, location) in id order reproduces the
  current balance (see replay_balance()).
"""

MANUAL_MOVEMENT_TYPES = {MOVEMENT_INBOUND, MOVEMENT_OUTBOUND, MOVEMENT_ADJUSTMENT}


def _locked_balance(business_id: int, product_id: int, location_id: int) -> StockBalance:
    query = lock_for_update(
        db.session.query(StockBalance).filter_by(product_id=product_id, location_id=location_id)
    ).populate_existing()
    balance = query.first()
    if balance is not None:
        return balance

    balance = StockBalance(
        business_id=business_id,
        product_id=product_id,
        location_id=location_id,
        quantity=0,
    )
    try:
        with db.session.begin_nested():
            db.session.add(balance)
    except IntegrityError:
        # Created concurrently; use theirs
        balance = query.first()
        if balance is None:
            raise
    return balance


def lock_balances(business_id: int, location_id: int, product_ids) -> None:
    """Lock several balances at one location in product order, so concurrent sales cannot deadlock."""
    for product_id in sorted(set(product_ids)):
        _locked_balance(business_id, product_id, location_id)


def _current_quantity(product_id: int, location_id: int) -> int:
    qty = (
        db.session.query(StockBalance.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )
    return int(qty or 0)


def apply_movement(
    *,
    business_id: int,
    product_id: int,
    location_id: int,
    movement_type: str,
    quantity: int,
    reference_type: str,
    reference_id: int | None = None,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
    actor_id: int | None = None,
    counterpart_location_id: int | None = None,
    product_name: str | None = None,
) -> tuple[StockMovement, StockBalance]:
    """
    Apply one movement against a freshly locked balance. Caller owns the unit.

    Returns (movement, balance) after flush.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise BadRequestError(f"Unknown movement type {movement_type!r}")
    if movement_type == MOVEMENT_ADJUSTMENT:
        if quantity < 0:
            raise BadRequestError("Adjustment target quantity cannot be negative")
    elif quantity <= 0:
        raise BadRequestError("Movement quantity must be positive", details={"quantity": quantity})

    balance = _locked_balance(business_id, product_id, location_id)
    before = balance.quantity

    if movement_type == MOVEMENT_ADJUSTMENT:
        after = quantity
    elif movement_type in DECREMENTING_TYPES:
        after = before - quantity
    else:
        after = before + quantity

    if after < 0:
        raise InsufficientStockError(
            product_id=product_id,
            location_id=location_id,
            available=before,
            requested=quantity,
            product_name=product_name,
        )

    balance.quantity = after
    movement = StockMovement(
        business_id=business_id,
        product_id=product_id,
        location_id=location_id,
        counterpart_location_id=counterpart_location_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_before=before,
        quantity_after=after,
        unit_cost_cents=unit_cost_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        reason=reason,
        actor_id=actor_id,
    )
    db.session.add(movement)
    db.session.flush()
    return movement, balance


def check_availability(location_id: int, requirements: dict[int, int], products: dict[int, Product]) -> None:
    """
    Fail fast if any tracked product lacks the requested quantity.

    Outside a unit this is advisory only; inside one it is repeated by
    apply_movement() against locked rows.
    """
    for product_id in sorted(requirements):
        product = products[product_id]
        if not product.track_stock:
            continue
        requested = requirements[product_id]
        available = _current_quantity(product_id, location_id)
        if available < requested:
            raise InsufficientStockError(
                product_id=product_id,
                location_id=location_id,
                available=available,
                requested=requested,
                product_name=product.name,
            )


def record_movement(
    *,
    business_id: int,
    product_id: int,
    location_id: int,
    movement_type: str,
    quantity: int,
    actor_id: int,
    unit_cost_cents: int | None = None,
    reason: str | None = None,
) -> tuple[StockMovement, StockBalance]:
    """Manual INBOUND / OUTBOUND / ADJUSTMENT in its own unit of work."""
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise BadRequestError(
            f"Manual movements must be one of {sorted(MANUAL_MOVEMENT_TYPES)}",
            details={"movement_type": movement_type},
        )

    with unit_of_work():
        product = get_product(business_id, product_id)
        if not product.track_stock:
            raise BadRequestError(f"Product {product_id} is not stock-tracked", code="NOT_STOCK_TRACKED")
        get_location(business_id, location_id)

        movement, balance = apply_movement(
            business_id=business_id,
            product_id=product_id,
            location_id=location_id,
            movement_type=movement_type,
            quantity=quantity,
            unit_cost_cents=unit_cost_cents,
            reference_type=REF_MANUAL,
            reason=reason,
            actor_id=actor_id,
            product_name=product.name,
        )

    invalidate_stock(business_id)
    event_service.emit(
        "stock.movement_applied",
        entity_type="stock_movement",
        entity_id=movement.id,
        business_id=business_id,
        product_id=product_id,
        location_id=location_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_after=movement.quantity_after,
        actor_id=actor_id,
    )
    return movement, balance


def transfer_stock(
    *,
    business_id: int,
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity: int,
    actor_id: int,
    reason: str | None = None,
) -> tuple[StockMovement, StockMovement]:
    """
    Move stock between two locations as a paired TRANSFER_OUT / TRANSFER_IN.

    Both legs share one unit: if the outbound leg fails, neither applies.
    """
    if from_location_id == to_location_id:
        raise BadRequestError("Source and destination locations must differ")

    with unit_of_work():
        product = get_product(business_id, product_id)
        if not product.track_stock:
            raise BadRequestError(f"Product {product_id} is not stock-tracked", code="NOT_STOCK_TRACKED")
        get_location(business_id, from_location_id)
        get_location(business_id, to_location_id)

        # Lock both balances in a fixed order so opposing transfers cannot deadlock
        for location_id in sorted((from_location_id, to_location_id)):
            _locked_balance(business_id, product_id, location_id)

        out_leg, _ = apply_movement(
            business_id=business_id,
            product_id=product_id,
            location_id=from_location_id,
            counterpart_location_id=to_location_id,
            movement_type=MOVEMENT_TRANSFER_OUT,
            quantity=quantity,
            unit_cost_cents=product.cost_price_cents,
            reference_type=REF_TRANSFER,
            reason=reason,
            actor_id=actor_id,
            product_name=product.name,
        )
        in_leg, _ = apply_movement(
            business_id=business_id,
            product_id=product_id,
            location_id=to_location_id,
            counterpart_location_id=from_location_id,
            movement_type=MOVEMENT_TRANSFER_IN,
            quantity=quantity,
            unit_cost_cents=product.cost_price_cents,
            reference_type=REF_TRANSFER,
            reference_id=out_leg.id,
            reason=reason,
            actor_id=actor_id,
        )

    invalidate_stock(business_id)
    event_service.emit(
        "stock.transferred",
        entity_type="stock_movement",
        entity_id=out_leg.id,
        business_id=business_id,
        product_id=product_id,
        from_location_id=from_location_id,
        to_location_id=to_location_id,
        quantity=quantity,
        actor_id=actor_id,
    )
    return out_leg, in_leg


def get_balance(business_id: int, product_id: int, location_id: int) -> int:
    qty = (
        db.session.query(StockBalance.quantity)
        .filter_by(business_id=business_id, product_id=product_id, location_id=location_id)
        .scalar()
    )
    return int(qty or 0)


def list_balances(
    business_id: int,
    location_id: int | None = None,
    low_stock_only: bool = False,
) -> list[dict]:
    """Balances for active products, cache-aside keyed under stock:<business_id>:."""
    cache = get_cache()
    key = f"{stock_prefix(business_id)}balances:{location_id or 'all'}:{int(low_stock_only)}"
    cached = cache.get(key)
    if cached is not None:
        return cached

    query = (
        db.session.query(StockBalance)
        .join(Product, Product.id == StockBalance.product_id)
        .filter(StockBalance.business_id == business_id, Product.is_active.is_(True))
    )
    if location_id is not None:
        query = query.filter(StockBalance.location_id == location_id)
    if low_stock_only:
        query = query.filter(StockBalance.quantity < Product.reorder_threshold)

    rows = [
        balance.to_dict()
        for balance in query.order_by(StockBalance.product_id, StockBalance.location_id).all()
    ]
    cache.set(key, rows)
    return rows


def list_low_stock(business_id: int, location_id: int | None = None) -> list[dict]:
    """Low stock = balance below the product's reorder threshold (evaluated, not stored)."""
    return list_balances(business_id, location_id=location_id, low_stock_only=True)


def list_movements(
    business_id: int,
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    movement_type: str | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 200,
) -> list[StockMovement]:
    query = db.session.query(StockMovement).filter(StockMovement.business_id == business_id)
    if product_id is not None:
        query = query.filter(StockMovement.product_id == product_id)
    if location_id is not None:
        query = query.filter(StockMovement.location_id == location_id)
    if movement_type is not None:
        query = query.filter(StockMovement.movement_type == movement_type)
    if reference_type is not None:
        query = query.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        query = query.filter(StockMovement.reference_id == reference_id)
    return query.order_by(StockMovement.id.desc()).limit(limit).all()


def replay_balance(product_id: int, location_id: int) -> int:
    """Rebuild a balance from its movement history, in insertion order."""
    movements = (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, location_id=location_id)
        .order_by(StockMovement.id)
        .all()
    )
    total = 0
    for movement in movements:
        total += movement.signed_quantity
    return total
