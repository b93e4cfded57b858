# Overview: Purchase Receiving; supplier orders that become stock exactly once.

from __future__ import annotations

from flask import current_app

from ..cache import invalidate_stock
from ..errors import BadRequestError, BusinessRuleError, NotFoundError
from ..extensions import db
from ..models import Purchase, PurchaseLine, MOVEMENT_INBOUND, REF_PURCHASE
from ..validation import PurchaseLineItem
from posledger.time_utils import utcnow
from . import event_service, stock_service
from .catalog_service import get_location, get_supplier, load_products
from .concurrency import lock_for_update, unit_of_work
from .document_service import DOC_PURCHASE, next_document_number
from .pricing_service import compute_tax


def create_purchase(
    business_id: int,
    supplier_id: int,
    lines: list[PurchaseLineItem],
    actor_id: int,
    notes: str | None = None,
) -> Purchase:
    """
    Record a supplier order. Does not touch stock.

    Tax is PURCHASE_TAX_RATE_BPS on top of the line subtotal.
    """
    if not lines:
        raise BadRequestError("A purchase needs at least one line")
    get_supplier(business_id, supplier_id)
    load_products(business_id, [line.product_id for line in lines])

    tax_rate_bps = int(current_app.config.get("PURCHASE_TAX_RATE_BPS", 0))

    with unit_of_work():
        purchase = Purchase(
            business_id=business_id,
            supplier_id=supplier_id,
            number=next_document_number(business_id=business_id, document_type=DOC_PURCHASE),
            notes=notes,
            created_by_id=actor_id,
            created_at=utcnow(),
        )
        db.session.add(purchase)
        db.session.flush()

        subtotal = 0
        for line in lines:
            line_subtotal = line.quantity * line.unit_cost_cents
            db.session.add(PurchaseLine(
                purchase_id=purchase.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_cost_cents=line.unit_cost_cents,
                subtotal_cents=line_subtotal,
            ))
            subtotal += line_subtotal

        purchase.subtotal_cents = subtotal
        purchase.tax_cents = compute_tax(subtotal, tax_rate_bps, tax_included=False)
        purchase.total_cents = subtotal + purchase.tax_cents

    event_service.emit(
        "purchase.created",
        entity_type="purchase",
        entity_id=purchase.id,
        business_id=business_id,
        number=purchase.number,
        supplier_id=supplier_id,
        total_cents=purchase.total_cents,
        actor_id=actor_id,
    )
    return purchase


def receive_purchase(business_id: int, purchase_id: int, location_id: int, actor_id: int) -> Purchase:
    """
    Receive every line into location_id in one unit.

    Each line writes an INBOUND movement at its unit cost and sets the
    product's cost price to that cost (last cost wins).

    Raises:
        NotFoundError: purchase or location missing
        BusinessRuleError: purchase already received
    """
    with unit_of_work():
        purchase = (
            lock_for_update(db.session.query(Purchase).filter_by(id=purchase_id, business_id=business_id))
            .populate_existing()
            .first()
        )
        if purchase is None:
            raise NotFoundError(f"Purchase {purchase_id} not found")
        if purchase.received_at is not None:
            raise BusinessRuleError(
                f"Purchase {purchase.number} was already received",
                code="ALREADY_RECEIVED",
                details={"received_at": purchase.to_dict()["received_at"]},
            )
        location = get_location(business_id, location_id)

        lines = list(purchase.lines)
        stock_service.lock_balances(
            business_id, location.id, [line.product_id for line in lines if line.product.track_stock]
        )
        for line in lines:
            product = line.product
            if product.track_stock:
                stock_service.apply_movement(
                    business_id=business_id,
                    product_id=line.product_id,
                    location_id=location.id,
                    movement_type=MOVEMENT_INBOUND,
                    quantity=line.quantity,
                    unit_cost_cents=line.unit_cost_cents,
                    reference_type=REF_PURCHASE,
                    reference_id=purchase.id,
                    actor_id=actor_id,
                )
            product.cost_price_cents = line.unit_cost_cents

        purchase.received_at = utcnow()
        purchase.received_by_id = actor_id
        purchase.received_location_id = location.id

    invalidate_stock(business_id)
    event_service.emit(
        "purchase.received",
        entity_type="purchase",
        entity_id=purchase.id,
        business_id=business_id,
        number=purchase.number,
        location_id=location_id,
        line_count=len(lines),
        actor_id=actor_id,
    )
    return purchase


def get_purchase(business_id: int, purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None or purchase.business_id != business_id:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def list_purchases(business_id: int, received: bool | None = None, supplier_id: int | None = None) -> list[Purchase]:
    query = db.session.query(Purchase).filter(Purchase.business_id == business_id)
    if received is True:
        query = query.filter(Purchase.received_at.isnot(None))
    elif received is False:
        query = query.filter(Purchase.received_at.is_(None))
    if supplier_id is not None:
        query = query.filter(Purchase.supplier_id == supplier_id)
    return query.order_by(Purchase.created_at.desc(), Purchase.id.desc()).all()
