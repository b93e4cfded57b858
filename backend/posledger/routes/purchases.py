# Overview: Flask API routes for purchases; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, json_body
from ..services import purchase_service
from ..validation import CreatePurchaseRequest, ReceivePurchaseRequest


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.post("")
@require_actor
def create_purchase_route():
    """
    Record a supplier order (no stock effect).

    Request body:
    {
        "supplier_id": 1,
        "lines": [{"product_id": 1, "quantity": 10, "unit_cost_cents": 1000}],
        "notes": "..."   (optional)
    }
    """
    req = CreatePurchaseRequest.from_json(json_body())
    purchase = purchase_service.create_purchase(
        business_id=g.business_id,
        supplier_id=req.supplier_id,
        lines=req.lines,
        actor_id=g.actor_id,
        notes=req.notes,
    )
    return jsonify({"purchase": purchase.to_dict(include_lines=True)}), 201


@purchases_bp.post("/<int:purchase_id>/receive")
@require_actor
def receive_purchase_route(purchase_id: int):
    req = ReceivePurchaseRequest.from_json(json_body())
    purchase = purchase_service.receive_purchase(
        business_id=g.business_id,
        purchase_id=purchase_id,
        location_id=req.location_id,
        actor_id=g.actor_id,
    )
    return jsonify({"purchase": purchase.to_dict(include_lines=True)})


@purchases_bp.get("/<int:purchase_id>")
@require_actor
def get_purchase_route(purchase_id: int):
    purchase = purchase_service.get_purchase(g.business_id, purchase_id)
    return jsonify({"purchase": purchase.to_dict(include_lines=True)})


@purchases_bp.get("")
@require_actor
def list_purchases_route():
    """Query params: received (true/false), supplier_id."""
    raw_received = (request.args.get("received") or "").lower()
    received = None
    if raw_received in {"1", "true", "yes"}:
        received = True
    elif raw_received in {"0", "false", "no"}:
        received = False
    purchases = purchase_service.list_purchases(
        g.business_id,
        received=received,
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return jsonify({"purchases": [p.to_dict() for p in purchases], "count": len(purchases)})
