# Overview: Home deliveries attached to completed orders.

from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import IntegrityError

from ..errors import BadRequestError, ConflictError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import (
    Delivery,
    Order,
    DELIVERY_ASSIGNED,
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
    DELIVERY_IN_TRANSIT,
    DELIVERY_RESCHEDULED,
    DELIVERY_TRANSITIONS,
    ORDER_STATUS_COMPLETED,
)
from posledger.time_utils import utcnow
from . import event_service
from .concurrency import lock_for_update, unit_of_work

# Deliveries still on a driver's run
PENDING_STATUSES = (DELIVERY_ASSIGNED, DELIVERY_IN_TRANSIT, DELIVERY_RESCHEDULED)


def create_delivery(
    business_id: int,
    order_id: int,
    address: str,
    actor_id: int,
    driver_id: int | None = None,
    scheduled_for: datetime | None = None,
    notes: str | None = None,
) -> Delivery:
    """Schedule delivery of a completed order. A second delivery for the same order is a Conflict."""
    address = (address or "").strip()
    if not address:
        raise BadRequestError("Delivery address is required")

    with unit_of_work():
        order = lock_for_update(
            db.session.query(Order).filter_by(id=order_id, business_id=business_id)
        ).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        if order.status != ORDER_STATUS_COMPLETED:
            raise InvalidStateError(f"Only completed orders can be delivered (order is {order.status})")

        existing = db.session.query(Delivery).filter_by(order_id=order_id).first()
        if existing:
            raise ConflictError(
                f"Order {order.number} already has a delivery",
                code="DELIVERY_EXISTS",
                details={"delivery_id": existing.id},
            )

        delivery = Delivery(
            business_id=business_id,
            order_id=order_id,
            status=DELIVERY_ASSIGNED,
            driver_id=driver_id,
            address=address,
            scheduled_for=scheduled_for,
            notes=notes,
            created_by_id=actor_id,
        )
        try:
            with db.session.begin_nested():
                db.session.add(delivery)
        except IntegrityError as exc:
            raise ConflictError(f"Order {order.number} already has a delivery", code="DELIVERY_EXISTS") from exc

    event_service.emit(
        "delivery.created",
        entity_type="delivery",
        entity_id=delivery.id,
        business_id=business_id,
        order_id=order_id,
        driver_id=driver_id,
        actor_id=actor_id,
    )
    return delivery


def update_delivery_status(
    business_id: int,
    delivery_id: int,
    status: str,
    actor_id: int,
    failure_reason: str | None = None,
    scheduled_for: datetime | None = None,
    notes: str | None = None,
) -> Delivery:
    """
    Move a delivery along its lifecycle.

    ASSIGNED -> IN_TRANSIT -> DELIVERED | FAILED | RESCHEDULED
    RESCHEDULED -> ASSIGNED | IN_TRANSIT
    FAILED needs a failure_reason; RESCHEDULED needs a new scheduled_for.
    Blank notes leave the stored notes untouched.
    """
    status = (status or "").upper()
    if status not in DELIVERY_TRANSITIONS:
        raise BadRequestError(f"Unknown delivery status {status!r}")
    if status == DELIVERY_FAILED and not (failure_reason or "").strip():
        raise BadRequestError("A failure reason is required", code="FAILURE_REASON_REQUIRED")
    if status == DELIVERY_RESCHEDULED and scheduled_for is None:
        raise BadRequestError("A new scheduled time is required", code="SCHEDULE_REQUIRED")

    with unit_of_work():
        delivery = lock_for_update(
            db.session.query(Delivery).filter_by(id=delivery_id, business_id=business_id)
        ).populate_existing().first()
        if delivery is None:
            raise NotFoundError(f"Delivery {delivery_id} not found")

        previous = delivery.status
        if status not in DELIVERY_TRANSITIONS[previous]:
            raise InvalidStateError(
                f"Cannot move delivery from {previous} to {status}",
                details={"from": previous, "to": status},
            )

        delivery.status = status
        if status == DELIVERY_DELIVERED:
            delivery.delivered_at = utcnow()
        elif status == DELIVERY_FAILED:
            delivery.failure_reason = failure_reason.strip()
        elif status == DELIVERY_RESCHEDULED:
            delivery.scheduled_for = scheduled_for
        if notes is not None and notes.strip():
            delivery.notes = notes.strip()

    event_service.emit(
        "delivery.status_changed",
        entity_type="delivery",
        entity_id=delivery.id,
        business_id=business_id,
        order_id=delivery.order_id,
        from_status=previous,
        to_status=status,
        actor_id=actor_id,
    )
    return delivery


def get_delivery(business_id: int, delivery_id: int) -> Delivery:
    delivery = db.session.get(Delivery, delivery_id)
    if delivery is None or delivery.business_id != business_id:
        raise NotFoundError(f"Delivery {delivery_id} not found")
    return delivery


def list_deliveries(
    business_id: int,
    status: str | None = None,
    driver_id: int | None = None,
    pending: bool = False,
) -> list[Delivery]:
    """Deliveries for a business, newest first. pending narrows to ASSIGNED, IN_TRANSIT and RESCHEDULED."""
    query = db.session.query(Delivery).filter(Delivery.business_id == business_id)
    if status:
        query = query.filter(Delivery.status == status.upper())
    if driver_id is not None:
        query = query.filter(Delivery.driver_id == driver_id)
    if pending:
        query = query.filter(Delivery.status.in_(PENDING_STATUSES))
    return query.order_by(Delivery.created_at.desc(), Delivery.id.desc()).all()


def list_driver_deliveries(business_id: int, driver_id: int) -> list[Delivery]:
    """A driver's pending run in schedule order; unscheduled drops go last."""
    return (
        db.session.query(Delivery)
        .filter(
            Delivery.business_id == business_id,
            Delivery.driver_id == driver_id,
            Delivery.status.in_(PENDING_STATUSES),
        )
        .order_by(Delivery.scheduled_for.is_(None), Delivery.scheduled_for, Delivery.id)
        .all()
    )
