# Overview: Flask API routes for serialized stock units and the movement ledger.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import OrderDeskError
from ..services import inventory_ledger, permission_service
from .params import json_body, query_int, query_limit


stock_bp = Blueprint("stock", __name__, url_prefix="/api")


def _unit_view(unit, show_cost: bool) -> dict:
    data = unit.to_dict()
    if not show_cost:
        data.pop("purchase_price_cents", None)
    return data


@stock_bp.get("/stock-units")
@require_auth
@require_permission("VIEW_STOCK")
def list_units_route():
    """
    Query: product_id?, status?, limit?
    purchase_price_cents is omitted without VIEW_PURCHASE_PRICE.
    """
    try:
        units = inventory_ledger.list_units(
            product_id=query_int("product_id"),
            status=request.args.get("status") or None,
            limit=query_limit(default=500),
        )
        show_cost = permission_service.has_permission(g.actor, "VIEW_PURCHASE_PRICE")
        return jsonify({"stock_units": [_unit_view(u, show_cost) for u in units]}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list stock units")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/stock-units")
@require_auth
@require_permission("MANAGE_STOCK")
def arrive_unit_route():
    """
    Register an arrived unit.

    Body: {"product_id", "serial", "condition"?, "supplier"?,
           "purchase_price_cents"?, "warranty_months"?}
    """
    try:
        data = json_body()
        attrs = {k: v for k, v in data.items() if k not in ("product_id", "serial")}
        unit = inventory_ledger.arrive(data.get("product_id"), data.get("serial"), attrs, g.actor)
        return jsonify({"stock_unit": unit.to_dict()}), 201

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register stock unit")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.delete("/stock-units/<int:unit_id>")
@require_auth
@require_permission("MANAGE_STOCK")
def delete_unit_route(unit_id: int):
    try:
        inventory_ledger.delete_unit(unit_id, g.actor)
        return jsonify({"message": "Stock unit deleted", "id": unit_id}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete stock unit")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/stock-moves")
@require_auth
@require_permission("VIEW_STOCK")
def list_movements_route():
    """Query: product_id?, serial?, order_id?, type?, limit?  Newest first."""
    try:
        movements = inventory_ledger.list_movements(
            product_id=query_int("product_id"),
            serial=request.args.get("serial") or None,
            order_id=query_int("order_id"),
            movement_type=request.args.get("type") or None,
            limit=query_limit(default=500),
        )
        return jsonify({"stock_moves": [m.to_dict() for m in movements]}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500
