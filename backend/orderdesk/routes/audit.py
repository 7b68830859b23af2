# Overview: Flask API routes for reading the audit trail.

from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..errors import OrderDeskError
from ..services.audit_service import list_audit_entries
from .params import query_limit


audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")


@audit_bp.get("")
@require_auth
@require_permission("VIEW_AUDIT")
def list_audit_route():
    """Query: entity?, entity_id?, action?, limit?  Newest first."""
    try:
        entries = list_audit_entries(
            entity=request.args.get("entity") or None,
            entity_id=request.args.get("entity_id") or None,
            action=request.args.get("action") or None,
            limit=query_limit(),
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200

    except OrderDeskError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list audit entries")
        return jsonify({"error": "Internal server error"}), 500
