# Overview: Flask API routes for orders; parses input and returns JSON responses.

"""
Order API Routes

Sales, quotations, confirmation, cancellation and returns. Each route
parses its body into a typed request, calls one workflow operation, and
serializes the result. Domain errors are rendered by the app-wide error
handlers.
"""

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, json_body
from ..services import return_service, sales_service
from ..validation import (
    CancelRequest,
    ConfirmQuoteRequest,
    CreateQuoteRequest,
    CreateSaleRequest,
    ReturnRequest,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_sale_route():
    """
    Ring up a sale.

    Request body:
    {
        "customer_id": 3,                        (optional)
        "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 2000, "discount_cents": 0}],
        "payments": [{"method": "CASH", "amount_cents": 5000}],
        "notes": "..."                           (optional)
    }
    """
    req = CreateSaleRequest.from_json(json_body())
    order = sales_service.create_sale(
        business_id=g.business_id,
        actor_id=g.actor_id,
        lines=req.lines,
        payments=req.payments,
        customer_id=req.customer_id,
        notes=req.notes,
    )
    return jsonify({"order": order.to_dict(include_lines=True)}), 201


@orders_bp.post("/quotes")
@require_actor
def create_quote_route():
    req = CreateQuoteRequest.from_json(json_body())
    order = sales_service.create_quote(
        business_id=g.business_id,
        actor_id=g.actor_id,
        lines=req.lines,
        customer_id=req.customer_id,
        notes=req.notes,
        valid_until=req.valid_until,
    )
    return jsonify({"order": order.to_dict(include_lines=True)}), 201


@orders_bp.post("/<int:order_id>/confirm")
@require_actor
def confirm_quote_route(order_id: int):
    req = ConfirmQuoteRequest.from_json(json_body())
    order = sales_service.confirm_quote(
        business_id=g.business_id,
        order_id=order_id,
        payments=req.payments,
        actor_id=g.actor_id,
    )
    return jsonify({"order": order.to_dict(include_lines=True)})


@orders_bp.post("/<int:order_id>/cancel")
@require_actor
def cancel_sale_route(order_id: int):
    req = CancelRequest.from_json(json_body())
    order = sales_service.cancel_sale(
        business_id=g.business_id,
        order_id=order_id,
        reason=req.reason,
        actor_id=g.actor_id,
    )
    return jsonify({"order": order.to_dict(include_lines=True)})


@orders_bp.post("/<int:order_id>/returns")
@require_actor
def return_sale_route(order_id: int):
    """
    Return goods from a completed sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 1}],
        "reason": "Damaged"                      (optional)
    }
    """
    req = ReturnRequest.from_json(json_body())
    result = return_service.return_sale(
        business_id=g.business_id,
        order_id=order_id,
        items=req.items,
        reason=req.reason,
        actor_id=g.actor_id,
    )
    return jsonify({"return": result.to_dict()}), 201


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    order = sales_service.get_order(g.business_id, order_id)
    return jsonify({"order": order.to_dict(include_lines=True)})


@orders_bp.get("")
@require_actor
def list_orders_route():
    limit = min(request.args.get("limit", default=100, type=int) or 100, 500)
    orders = sales_service.list_orders(
        g.business_id,
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id", type=int),
        search=request.args.get("search"),
        limit=limit,
        offset=request.args.get("offset", default=0, type=int) or 0,
    )
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)})
