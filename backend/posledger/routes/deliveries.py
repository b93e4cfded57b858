# Overview: Flask API routes for deliveries; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, json_body
from ..services import delivery_service
from ..validation import CreateDeliveryRequest, DeliveryStatusRequest


deliveries_bp = Blueprint("deliveries", __name__, url_prefix="/api/deliveries")


@deliveries_bp.post("")
@require_actor
def create_delivery_route():
    req = CreateDeliveryRequest.from_json(json_body())
    delivery = delivery_service.create_delivery(
        business_id=g.business_id,
        order_id=req.order_id,
        address=req.address,
        actor_id=g.actor_id,
        driver_id=req.driver_id,
        scheduled_for=req.scheduled_for,
        notes=req.notes,
    )
    return jsonify({"delivery": delivery.to_dict()}), 201


@deliveries_bp.post("/<int:delivery_id>/status")
@require_actor
def update_delivery_status_route(delivery_id: int):
    req = DeliveryStatusRequest.from_json(json_body())
    delivery = delivery_service.update_delivery_status(
        business_id=g.business_id,
        delivery_id=delivery_id,
        status=req.status,
        actor_id=g.actor_id,
        failure_reason=req.failure_reason,
        scheduled_for=req.scheduled_for,
        notes=req.notes,
    )
    return jsonify({"delivery": delivery.to_dict()})


@deliveries_bp.get("/<int:delivery_id>")
@require_actor
def get_delivery_route(delivery_id: int):
    delivery = delivery_service.get_delivery(g.business_id, delivery_id)
    return jsonify({"delivery": delivery.to_dict()})


@deliveries_bp.get("")
@require_actor
def list_deliveries_route():
    """Query params: status, driver_id, pending (1/true/yes)."""
    pending = (request.args.get("pending") or "").lower() in {"1", "true", "yes"}
    deliveries = delivery_service.list_deliveries(
        business_id=g.business_id,
        status=request.args.get("status"),
        driver_id=request.args.get("driver_id", type=int),
        pending=pending,
    )
    return jsonify({"deliveries": [d.to_dict() for d in deliveries], "count": len(deliveries)})


@deliveries_bp.get("/mine")
@require_actor
def my_deliveries_route():
    deliveries = delivery_service.list_driver_deliveries(g.business_id, g.actor_id)
    return jsonify({"deliveries": [d.to_dict() for d in deliveries], "count": len(deliveries)})
