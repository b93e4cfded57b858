# Overview: Flask API routes for inventory; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, json_body
from ..services import stock_service
from ..validation import MovementRequest, TransferRequest


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/movements")
@require_actor
def record_movement_route():
    """
    Manual stock movement.

    Request body:
    {
        "product_id": 1,
        "location_id": 1,
        "movement_type": "INBOUND" | "OUTBOUND" | "ADJUSTMENT",
        "quantity": 10,            (ADJUSTMENT: the new balance)
        "unit_cost_cents": 1000,   (optional)
        "reason": "..."            (optional)
    }
    """
    req = MovementRequest.from_json(json_body())
    movement, balance = stock_service.record_movement(
        business_id=g.business_id,
        product_id=req.product_id,
        location_id=req.location_id,
        movement_type=req.movement_type,
        quantity=req.quantity,
        unit_cost_cents=req.unit_cost_cents,
        reason=req.reason,
        actor_id=g.actor_id,
    )
    return jsonify({"movement": movement.to_dict(), "quantity": balance.quantity}), 201


@inventory_bp.post("/transfers")
@require_actor
def transfer_route():
    req = TransferRequest.from_json(json_body())
    out_leg, in_leg = stock_service.transfer_stock(
        business_id=g.business_id,
        product_id=req.product_id,
        from_location_id=req.from_location_id,
        to_location_id=req.to_location_id,
        quantity=req.quantity,
        reason=req.reason,
        actor_id=g.actor_id,
    )
    return jsonify({"movements": [out_leg.to_dict(), in_leg.to_dict()]}), 201


@inventory_bp.get("/balances")
@require_actor
def list_balances_route():
    low_stock = request.args.get("low_stock", "").lower() in {"1", "true", "yes"}
    balances = stock_service.list_balances(
        g.business_id,
        location_id=request.args.get("location_id", type=int),
        low_stock_only=low_stock,
    )
    return jsonify({"balances": balances, "count": len(balances)})


@inventory_bp.get("/movements")
@require_actor
def list_movements_route():
    limit = min(request.args.get("limit", default=200, type=int) or 200, 1000)
    movements = stock_service.list_movements(
        g.business_id,
        product_id=request.args.get("product_id", type=int),
        location_id=request.args.get("location_id", type=int),
        movement_type=request.args.get("movement_type"),
        reference_type=request.args.get("reference_type"),
        reference_id=request.args.get("reference_id", type=int),
        limit=limit,
    )
    return jsonify({"movements": [m.to_dict() for m in movements], "count": len(movements)})
