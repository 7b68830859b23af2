# Overview: Flask API routes for orders, status transitions and delivery confirmation.

"""Orders API routes with permission enforcement"""

from flask import Blueprint, current_app, g, jsonify, request

from ..commands import ConfirmDelivery
from ..decorators import require_auth, require_permission
from ..errors import OrderDeskError, ValidationError
from ..services import delivery_service, order_lifecycle
from .params import json_body, query_date, query_limit


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _split_items(data: dict):
    fields = dict(data)
    items = fields.pop("items", None)
    return fields, items


@orders_bp.get("")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    """
    List orders.

    Couriers only receive orders assigned to them, due today or tomorrow,
    in a deliverable status.
    """
    try:
        orders = order_lifecycle.list_orders(
            g.actor,
            status=request.args.get("status") or None,
            courier_id=request.args.get("courier_id") or None,
            delivery_date=query_date("delivery_date"),
            limit=query_limit(default=500),
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    try:
        order = order_lifecycle.get_order(order_id, g.actor)
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
@require_auth
@require_permission("CREATE_ORDER")
def create_order_route():
    """
    Create an order in status "new".

    Body: order fields plus optional "items" list.
    """
    try:
        fields, items = _split_items(json_body())
        order = order_lifecycle.create_order(fields, items, g.actor)
        return jsonify({"order": order.to_dict(include_items=True)}), 201

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>")
@require_auth
@require_permission("EDIT_ORDER")
def update_order_route(order_id: int):
    """
    Update order fields. Supplying "items" replaces the whole item list.
    """
    try:
        fields, items = _split_items(json_body())
        order = order_lifecycle.update_order(order_id, fields, items, g.actor)
        return jsonify({"order": order.to_dict(include_items=True)}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/status")
@require_auth
@require_permission("EDIT_ORDER")
def transition_order_route(order_id: int):
    """
    Move an order along its lifecycle.

    Body: {"status": "...", "courier_id": "..."?}
    Response carries "warnings" for serialized units that could not be
    reserved or written off.
    """
    try:
        data = json_body()
        status = data.get("status")
        if not status:
            raise ValidationError("status required")

        courier_id = data["courier_id"] if "courier_id" in data else order_lifecycle.UNSET
        result = order_lifecycle.transition(order_id, status, g.actor, courier_id=courier_id)
        return jsonify(result.to_dict()), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to change order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/courier")
@require_auth
@require_permission("ASSIGN_COURIER")
def assign_courier_route(order_id: int):
    """Body: {"courier_id": "..." | null}"""
    try:
        data = json_body()
        if "courier_id" not in data:
            raise ValidationError("courier_id required (null to unassign)")

        order = order_lifecycle.assign_courier(order_id, data["courier_id"], g.actor)
        return jsonify({"order": order.to_dict()}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to assign courier")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/delivery-status")
@require_auth
@require_permission("UPDATE_DELIVERY_STATUS")
def delivery_status_route(order_id: int):
    """
    Courier delivery update.

    Body: {"delivery_status", "recipient_name"?, "proof_photo_url"?,
           "proof_signature_url"?, "lat"?, "lng"?, "occurred_at"?}
    """
    try:
        command = ConfirmDelivery.from_request_body(order_id, json_body())
        order = delivery_service.update_delivery_status(order_id, command, g.actor)
        return jsonify({"order": order.to_dict()}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update delivery status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
@require_auth
@require_permission("DELETE_ORDER")
def delete_order_route(order_id: int):
    try:
        order_lifecycle.delete_order(order_id, g.actor)
        return jsonify({"message": "Order deleted", "id": order_id}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
