# Overview: Flask API routes for cash shifts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g

from ..decorators import require_actor, json_body
from ..services import shift_service
from ..validation import CloseShiftRequest, OpenShiftRequest


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


@shifts_bp.post("")
@require_actor
def open_shift_route():
    """
    Open a shift for the calling operator.

    Request body:
    {
        "till_id": 1,
        "opening_float_cents": 50000,
        "notes": "..."   (optional)
    }
    """
    req = OpenShiftRequest.from_json(json_body())
    shift = shift_service.open_shift(
        business_id=g.business_id,
        till_id=req.till_id,
        operator_id=g.actor_id,
        opening_float_cents=req.opening_float_cents,
        notes=req.notes,
    )
    return jsonify({"shift": shift.to_dict()}), 201


@shifts_bp.post("/<int:shift_id>/close")
@require_actor
def close_shift_route(shift_id: int):
    req = CloseShiftRequest.from_json(json_body())
    shift = shift_service.close_shift(
        business_id=g.business_id,
        shift_id=shift_id,
        counted_cents=req.counted_cents,
        actor_id=g.actor_id,
        actor_role=g.actor_role,
        notes=req.notes,
    )
    return jsonify({"shift": shift.to_dict()})


@shifts_bp.get("/current")
@require_actor
def current_shift_route():
    shift = shift_service.get_open_shift_for_operator(g.business_id, g.actor_id)
    return jsonify({"shift": shift.to_dict() if shift else None})


@shifts_bp.get("/<int:shift_id>")
@require_actor
def get_shift_route(shift_id: int):
    return jsonify(shift_service.get_shift_summary(g.business_id, shift_id))


@shifts_bp.get("")
@require_actor
def list_shifts_route():
    """
    List shifts, newest first.

    Query params: till_id, operator_id, open (1/true/yes for open only,
    0/false/no for closed only).
    """
    raw_open = (request.args.get("open") or "").lower()
    is_open = None
    if raw_open in {"1", "true", "yes"}:
        is_open = True
    elif raw_open in {"0", "false", "no"}:
        is_open = False
    shifts = shift_service.list_shifts(
        business_id=g.business_id,
        till_id=request.args.get("till_id", type=int),
        operator_id=request.args.get("operator_id", type=int),
        is_open=is_open,
    )
    return jsonify({"shifts": [s.to_dict() for s in shifts], "count": len(shifts)})
